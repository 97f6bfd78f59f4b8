from __future__ import annotations
from dataclasses import dataclass
from datetime import time
from pathlib import Path
from typing import Any, Dict, List
import yaml

@dataclass
class WorkingHoursConfig:
    start: time
    end: time

@dataclass
class TravelConfig:
    average_speed_kmh: float
    increment_minutes: int

@dataclass
class GeocodingConfig:
    user_agent: str
    cache_path: str

@dataclass
class GoogleConfig:
    enabled: bool
    calendar_ids: List[str]

@dataclass
class ICloudConfig:
    enabled: bool
    calendar_name_allowlist: List[str]

@dataclass
class MicrosoftConfig:
    enabled: bool
    calendar_ids: List[str]  # empty means the default calendar

@dataclass
class AppConfig:
    timezone: str
    working_hours: WorkingHoursConfig
    appointment_minutes: int
    ignore_all_day_events: bool
    travel: TravelConfig
    geocoding: GeocodingConfig
    google: GoogleConfig
    icloud: ICloudConfig
    microsoft: MicrosoftConfig

def parse_hhmm(s: Any) -> time:
    # PyYAML reads an unquoted 08:00 as the base-60 integer 480.
    if isinstance(s, int) and not isinstance(s, bool):
        return time(hour=s // 60, minute=s % 60)
    try:
        hh, mm = str(s).split(":")
        return time(hour=int(hh), minute=int(mm))
    except ValueError as exc:
        raise ValueError(f"Expected a HH:MM time, got {s!r}") from exc

def load_config(path: str) -> AppConfig:
    p = Path(path)
    data: Dict[str, Any] = yaml.safe_load(p.read_text(encoding="utf-8")) or {}

    working_hours = data.get("working_hours", {})
    travel = data.get("travel", {})
    geocoding = data.get("geocoding", {})
    calendars = data.get("calendars", {})

    google = calendars.get("google", {})
    icloud = calendars.get("icloud", {})
    microsoft = calendars.get("microsoft", {})

    day_start = parse_hhmm(working_hours.get("start", "08:00"))
    day_end = parse_hhmm(working_hours.get("end", "18:00"))
    if day_end <= day_start:
        raise ValueError(f"Working hours end {day_end} must be after start {day_start}")

    return AppConfig(
        timezone=data.get("timezone", "Europe/Copenhagen"),
        working_hours=WorkingHoursConfig(start=day_start, end=day_end),
        appointment_minutes=int(data.get("appointment_minutes", 60)),
        ignore_all_day_events=bool(data.get("ignore_all_day_events", False)),
        travel=TravelConfig(
            average_speed_kmh=float(travel.get("average_speed_kmh", 50)),
            increment_minutes=int(travel.get("increment_minutes", 30)),
        ),
        geocoding=GeocodingConfig(
            user_agent=str(geocoding.get("user_agent", "slotwise/1.0")),
            cache_path=str(geocoding.get("cache_path", "~/.cache/slotwise/locations.json")),
        ),
        google=GoogleConfig(
            enabled=bool(google.get("enabled", True)),
            calendar_ids=list(google.get("calendar_ids", ["primary"])),
        ),
        icloud=ICloudConfig(
            enabled=bool(icloud.get("enabled", False)),
            calendar_name_allowlist=list(icloud.get("calendar_name_allowlist", [])),
        ),
        microsoft=MicrosoftConfig(
            enabled=bool(microsoft.get("enabled", False)),
            calendar_ids=list(microsoft.get("calendar_ids", [])),
        ),
    )
