from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from .geo import haversine_km, travel_minutes
from .models import Coordinates, Event, FreeGap, TimeSuggestion
from .normalize import find_free_gaps, merge_day_blocks

TraceSink = Callable[[str, Dict[str, Any]], None]


class InvalidInputError(ValueError):
    """Raised when the engine is called with inputs it cannot rank."""


@dataclass(frozen=True)
class SuggestionSettings:
    day_start: time = time(8, 0)
    day_end: time = time(18, 0)
    appointment_minutes: int = 60
    average_speed_kmh: float = 50
    travel_increment_minutes: int = 30


def _is_coordinate(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _validate(new_location: Coordinates, start: datetime, end: datetime) -> None:
    if new_location is None:
        raise InvalidInputError("A location for the new appointment is required.")
    lat = getattr(new_location, "lat", None)
    long = getattr(new_location, "long", None)
    if not _is_coordinate(lat) or not _is_coordinate(long):
        raise InvalidInputError(f"Invalid coordinates for the new appointment: lat={lat!r}, long={long!r}")
    if start > end:
        raise InvalidInputError(f"Range start {start.isoformat()} is after range end {end.isoformat()}.")


def _leg_km(lat: Optional[float], long: Optional[float], new_location: Coordinates) -> Optional[int]:
    if lat is None or long is None:
        return None
    return haversine_km(lat, long, new_location.lat, new_location.long)


def _days(start: datetime, end: datetime) -> Iterable[date]:
    if start.tzinfo is not None:
        end = end.astimezone(start.tzinfo)
    day = start.date()
    while day <= end.date():
        yield day
        day += timedelta(days=1)


def _suggest_for_gap(
    gap: FreeGap,
    new_location: Coordinates,
    settings: SuggestionSettings,
    trace: Optional[TraceSink],
) -> Optional[TimeSuggestion]:
    outbound_km = 0
    outbound_minutes = 0
    if gap.prev_block is not None:
        km = _leg_km(gap.prev_block.exit_lat, gap.prev_block.exit_long, new_location)
        if km is not None:
            outbound_km = km
            outbound_minutes = travel_minutes(km, settings.average_speed_kmh, settings.travel_increment_minutes)

    return_km = 0
    return_minutes = 0
    if gap.next_block is not None:
        km = _leg_km(gap.next_block.entry_lat, gap.next_block.entry_long, new_location)
        if km is not None:
            return_km = km
            return_minutes = travel_minutes(km, settings.average_speed_kmh, settings.travel_increment_minutes)

    available_start = gap.start + timedelta(minutes=outbound_minutes)
    available_end = gap.end - timedelta(minutes=return_minutes)
    added_km = outbound_km + return_km

    if available_end - available_start < timedelta(minutes=settings.appointment_minutes):
        if trace:
            trace(
                "rejected",
                {
                    "gap_start": gap.start,
                    "gap_end": gap.end,
                    "outbound_minutes": outbound_minutes,
                    "return_minutes": return_minutes,
                },
            )
        return None

    suggestion = TimeSuggestion(start=available_start, end=available_end, added_kilometers=added_km)
    if trace:
        trace(
            "suggestion",
            {
                "start": suggestion.start,
                "end": suggestion.end,
                "added_kilometers": added_km,
                "outbound_km": outbound_km,
                "return_km": return_km,
                "outbound_minutes": outbound_minutes,
                "return_minutes": return_minutes,
            },
        )
    return suggestion


def _ranking_key(suggestion: TimeSuggestion):
    # An unconstrained slot adds no known travel, so it goes behind every routed slot.
    km = suggestion.added_kilometers
    return (math.inf if km == 0 else km, suggestion.start)


def rank_suggestions(suggestions: Iterable[TimeSuggestion]) -> List[TimeSuggestion]:
    return sorted(suggestions, key=_ranking_key)


def suggest(
    new_location: Coordinates,
    existing_events: Iterable[Event],
    start: datetime,
    end: datetime,
    settings: Optional[SuggestionSettings] = None,
    trace: Optional[TraceSink] = None,
) -> List[TimeSuggestion]:
    """
    Suggest appointment slots at ``new_location`` between the dates of ``start`` and ``end``.

    Every calendar date in the range (inclusive, in the zone of ``start``) contributes
    its working-hours gaps, each shrunk by the quantized travel time from the previous
    block and back to the next one. The result is sorted by added kilometers, with
    zero-kilometer slots last and ties broken by start time.

    Raises InvalidInputError for non-finite coordinates or an inverted range.
    """
    _validate(new_location, start, end)
    settings = settings or SuggestionSettings()
    events = list(existing_events)
    tz = start.tzinfo
    min_length = timedelta(minutes=settings.appointment_minutes)

    suggestions: List[TimeSuggestion] = []
    for day in _days(start, end):
        day_start = datetime.combine(day, settings.day_start, tzinfo=tz)
        day_end = datetime.combine(day, settings.day_end, tzinfo=tz)

        blocks = merge_day_blocks(day_start, day_end, events)
        gaps = find_free_gaps(day_start, day_end, blocks)
        if trace:
            trace("day", {"date": day, "blocks": len(blocks), "gaps": len(gaps)})

        for gap in gaps:
            if gap.end - gap.start < min_length:
                if trace:
                    trace("gap_too_short", {"gap_start": gap.start, "gap_end": gap.end})
                continue
            if trace:
                trace("gap", {"gap_start": gap.start, "gap_end": gap.end})
            suggestion = _suggest_for_gap(gap, new_location, settings, trace)
            if suggestion is not None:
                suggestions.append(suggestion)

    return rank_suggestions(suggestions)
