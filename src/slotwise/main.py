from __future__ import annotations

import json
import os
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

from .calendar_google import create_google_event, fetch_google_events
from .calendar_icloud import fetch_icloud_events
from .calendar_microsoft import create_microsoft_event, fetch_microsoft_events
from .config import AppConfig, load_config
from .locations import LocationCache, LocationNotResolvedError, LocationResolver, locate_events
from .models import Event, TimeSuggestion
from .suggest import SuggestionSettings, suggest

CONFIG_PATH_DEFAULT = os.path.expanduser("~/.config/slotwise/config.yaml")


def _normalize_text(value: str | None) -> str:
    if not value:
        return ""
    return " ".join(value.strip().lower().split())


def _event_sort_key(e: Event):
    """Timed order with end as tiebreak; all-day events are plain intervals here, not a leading group."""
    return (e.start, e.end, e.title.lower())


def _dedupe_events(events: List[Event]) -> List[Event]:
    """Drop copies of the same event that show up in more than one calendar."""
    deduped: List[Event] = []
    seen = set()
    for e in sorted(events, key=_event_sort_key):
        key = (
            _normalize_text(e.title),
            e.start.isoformat(),
            e.end.isoformat(),
            bool(e.all_day),
            _normalize_text(e.location),
        )
        if key in seen:
            continue
        seen.add(key)
        deduped.append(e)
    return deduped


def _fetch_events_for_range(cfg: AppConfig, range_start: datetime, range_end: datetime, tz: ZoneInfo) -> List[Event]:
    events: List[Event] = []

    if cfg.google.enabled:
        creds_path = os.environ.get("GOOGLE_CREDENTIALS_JSON", "")
        token_path = os.environ.get("GOOGLE_TOKEN_JSON", "")
        if creds_path and token_path:
            try:
                events.extend(
                    fetch_google_events(cfg.google.calendar_ids, range_start, range_end, tz, creds_path, token_path)
                )
            except Exception as e:
                print(f"Google Calendar fetch failed; continuing without Google events. Error: {e}")
        else:
            print("Google enabled but GOOGLE_CREDENTIALS_JSON/GOOGLE_TOKEN_JSON not set; skipping Google.")

    if cfg.icloud.enabled:
        user = os.environ.get("ICLOUD_USERNAME", "")
        pw = os.environ.get("ICLOUD_APP_PASSWORD", "")
        if user and pw:
            try:
                events.extend(
                    fetch_icloud_events(range_start, range_end, tz, user, pw, cfg.icloud.calendar_name_allowlist)
                )
            except Exception as e:
                print(f"iCloud fetch failed; continuing without iCloud. Error: {e}")
        else:
            print("iCloud enabled but ICLOUD_USERNAME/ICLOUD_APP_PASSWORD not set; skipping iCloud.")

    if cfg.microsoft.enabled:
        access_token = os.environ.get("MICROSOFT_ACCESS_TOKEN", "")
        if access_token:
            try:
                events.extend(
                    fetch_microsoft_events(cfg.microsoft.calendar_ids, range_start, range_end, tz, access_token)
                )
            except Exception as e:
                print(f"Microsoft Calendar fetch failed; continuing without Microsoft events. Error: {e}")
        else:
            print("Microsoft enabled but MICROSOFT_ACCESS_TOKEN not set; skipping Microsoft.")

    return events


def _suggestion_settings(cfg: AppConfig) -> SuggestionSettings:
    return SuggestionSettings(
        day_start=cfg.working_hours.start,
        day_end=cfg.working_hours.end,
        appointment_minutes=cfg.appointment_minutes,
        average_speed_kmh=cfg.travel.average_speed_kmh,
        travel_increment_minutes=cfg.travel.increment_minutes,
    )


def _print_trace(kind: str, fields: Dict[str, Any]) -> None:
    parts = []
    for key, value in fields.items():
        if isinstance(value, (datetime, date)):
            value = value.isoformat()
        parts.append(f"{key}={value}")
    print(f"[trace] {kind} " + " ".join(parts))


def _format_suggestion(s: TimeSuggestion) -> str:
    return f"{s.start:%a %Y-%m-%d} {s.start:%H:%M}–{s.end:%H:%M}  +{s.added_kilometers} km"


def _suggestion_payload(s: TimeSuggestion) -> dict:
    return {
        "start": s.start.isoformat(),
        "end": s.end.isoformat(),
        "added_kilometers": s.added_kilometers,
    }


def run_suggest(
    location: str,
    first_day: date,
    last_day: date,
    config_path: str = CONFIG_PATH_DEFAULT,
    as_json: bool = False,
    trace: bool = False,
    limit: Optional[int] = None,
) -> List[TimeSuggestion]:
    load_dotenv()
    cfg = load_config(config_path)
    tz = ZoneInfo(cfg.timezone)
    settings = _suggestion_settings(cfg)

    range_start = datetime.combine(first_day, time.min, tzinfo=tz)
    range_end = datetime.combine(last_day + timedelta(days=1), time.min, tzinfo=tz)

    events = _dedupe_events(_fetch_events_for_range(cfg, range_start, range_end, tz))
    if cfg.ignore_all_day_events:
        events = [e for e in events if not e.all_day]

    resolver = LocationResolver(LocationCache(cfg.geocoding.cache_path), user_agent=cfg.geocoding.user_agent)
    wanted = {e.location for e in events if e.location}
    wanted.add(location)
    resolved = resolver.resolve_locations(sorted(wanted))

    new_location = resolved.get(location)
    if new_location is None:
        raise LocationNotResolvedError(f"Could not resolve location {location!r}")

    located = locate_events(events, resolved)
    if not as_json:
        print(
            f"Fetched {len(events)} events; resolved {len(resolved)} of {len(wanted)} locations "
            f"for {first_day.isoformat()}..{last_day.isoformat()}"
        )

    suggestions = suggest(
        new_location,
        located,
        datetime.combine(first_day, settings.day_start, tzinfo=tz),
        datetime.combine(last_day, settings.day_start, tzinfo=tz),
        settings=settings,
        trace=_print_trace if trace else None,
    )
    if limit is not None:
        suggestions = suggestions[:limit]

    if as_json:
        print(json.dumps([_suggestion_payload(s) for s in suggestions], indent=2))
    elif not suggestions:
        print("No suggestions available")
    else:
        for s in suggestions:
            print(_format_suggestion(s))
    return suggestions


def run_book(
    title: str,
    start: datetime,
    calendar_id: Optional[str] = None,
    location: Optional[str] = None,
    description: Optional[str] = None,
    provider: str = "google",
    config_path: str = CONFIG_PATH_DEFAULT,
) -> Event:
    load_dotenv()
    cfg = load_config(config_path)
    tz = ZoneInfo(cfg.timezone)
    if start.tzinfo is None:
        start = start.replace(tzinfo=tz)
    end = start + timedelta(minutes=cfg.appointment_minutes)

    if provider == "microsoft":
        access_token = os.environ.get("MICROSOFT_ACCESS_TOKEN", "")
        if not access_token:
            raise RuntimeError("MICROSOFT_ACCESS_TOKEN must be set to book Microsoft appointments.")
        event = create_microsoft_event(
            calendar_id or "",
            title,
            start,
            end,
            tz,
            access_token,
            location=location,
            description=description,
        )
    else:
        creds_path = os.environ.get("GOOGLE_CREDENTIALS_JSON", "")
        token_path = os.environ.get("GOOGLE_TOKEN_JSON", "")
        if not (creds_path and token_path):
            raise RuntimeError("GOOGLE_CREDENTIALS_JSON/GOOGLE_TOKEN_JSON must be set to book appointments.")
        event = create_google_event(
            calendar_id or "primary",
            title,
            start,
            end,
            tz,
            creds_path,
            token_path,
            location=location,
            description=description,
        )

    print(f"Booked {event.title!r} {event.start:%Y-%m-%d %H:%M}–{event.end:%H:%M} in {event.calendar_id}")
    return event


def main():
    import argparse

    ap = argparse.ArgumentParser(description="Suggest appointment times that add the least travel")
    ap.add_argument("--config", default=CONFIG_PATH_DEFAULT)
    sub = ap.add_subparsers(dest="command", required=True)

    sug = sub.add_parser("suggest")
    sug.add_argument("--location", required=True, help="Address of the new appointment")
    sug.add_argument("--from", dest="first_day", required=True, type=date.fromisoformat)
    sug.add_argument("--to", dest="last_day", type=date.fromisoformat)
    sug.add_argument("--limit", type=int)
    sug.add_argument("--json", action="store_true")
    sug.add_argument("--trace", action="store_true")

    book = sub.add_parser("book")
    book.add_argument("--title", required=True)
    book.add_argument("--start", required=True, type=datetime.fromisoformat)
    book.add_argument("--provider", choices=["google", "microsoft"], default="google")
    book.add_argument("--calendar-id", help="Defaults to primary (Google) or the default calendar (Microsoft)")
    book.add_argument("--location")
    book.add_argument("--description")

    args = ap.parse_args()

    if args.command == "suggest":
        try:
            run_suggest(
                args.location,
                args.first_day,
                args.last_day or args.first_day,
                config_path=args.config,
                as_json=args.json,
                trace=args.trace,
                limit=args.limit,
            )
        except ValueError as e:
            print(f"Error: {e}")
            raise SystemExit(1)
        return

    if args.command == "book":
        run_book(
            args.title,
            args.start,
            calendar_id=args.calendar_id,
            provider=args.provider,
            location=args.location,
            description=args.description,
            config_path=args.config,
        )
        return


if __name__ == "__main__":
    main()
