from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

@dataclass(frozen=True)
class Coordinates:
    lat: float
    long: float

@dataclass(frozen=True)
class Event:
    source: str                 # "google" / "icloud" / "microsoft"
    title: str
    start: datetime             # timezone-aware
    end: datetime               # timezone-aware
    all_day: bool = False
    location: Optional[str] = None
    calendar_id: str = ""
    event_id: str = ""
    description: Optional[str] = None
    lat: Optional[float] = None  # None when the location could not be geocoded
    long: Optional[float] = None

@dataclass(frozen=True)
class MergedBlock:
    start: datetime
    end: datetime
    entry_lat: Optional[float] = None
    entry_long: Optional[float] = None
    exit_lat: Optional[float] = None
    exit_long: Optional[float] = None

@dataclass(frozen=True)
class FreeGap:
    start: datetime
    end: datetime
    prev_block: Optional[MergedBlock] = None
    next_block: Optional[MergedBlock] = None

@dataclass(frozen=True)
class TimeSuggestion:
    start: datetime
    end: datetime
    added_kilometers: int
