from __future__ import annotations
from datetime import date, datetime
import logging
from typing import Any, List, Optional
from zoneinfo import ZoneInfo

import caldav
from caldav.elements import dav

from .models import Event

ICLOUD_CALDAV_URL = "https://caldav.icloud.com/"
_ICAL_COMPAT_MSG = "Ical data was modified to avoid compatibility issues"


class _IcalCompatibilityFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return _ICAL_COMPAT_MSG not in record.getMessage()


def _install_ical_compatibility_filter() -> None:
    root_logger = logging.getLogger()
    if any(isinstance(f, _IcalCompatibilityFilter) for f in root_logger.filters):
        return
    root_logger.addFilter(_IcalCompatibilityFilter())


def _to_local(value: date, tz: ZoneInfo) -> datetime:
    if isinstance(value, datetime):
        return value.astimezone(tz) if value.tzinfo else value.replace(tzinfo=tz)
    return datetime.combine(value, datetime.min.time(), tzinfo=tz)


def _text(vevent: Any, name: str) -> Optional[str]:
    if not hasattr(vevent, name):
        return None
    return str(getattr(vevent, name).value)


def _event_from_vevent(vevent: Any, calendar_name: str, tz: ZoneInfo) -> Event:
    dtstart = vevent.dtstart.value
    if hasattr(vevent, "dtend"):
        dtend = vevent.dtend.value
    elif hasattr(vevent, "duration"):
        dtend = dtstart + vevent.duration.value
    else:
        dtend = dtstart

    return Event(
        source="icloud",
        title=_text(vevent, "summary") or "(No title)",
        start=_to_local(dtstart, tz),
        end=_to_local(dtend, tz),
        all_day=not isinstance(dtstart, datetime),
        location=_text(vevent, "location"),
        calendar_id=calendar_name,
        event_id=_text(vevent, "uid") or "",
        description=_text(vevent, "description"),
    )


def fetch_icloud_events(
    range_start: datetime,
    range_end: datetime,
    tz: ZoneInfo,
    username: str,
    app_password: str,
    calendar_name_allowlist: List[str],
) -> List[Event]:
    _install_ical_compatibility_filter()

    client = caldav.DAVClient(
        url=ICLOUD_CALDAV_URL,
        username=username,
        password=app_password,
    )
    principal = client.principal()
    calendars = principal.calendars()

    events: List[Event] = []

    for cal in calendars:
        name = getattr(cal, "name", None) or cal.get_properties([dav.DisplayName()]).get(dav.DisplayName(), "")
        if calendar_name_allowlist and name not in calendar_name_allowlist:
            continue

        # expand=True turns recurring events into one occurrence per instance.
        results = cal.search(start=range_start, end=range_end, event=True, expand=True)

        for r in results:
            vevent = getattr(r.vobject_instance, "vevent", None)
            if vevent is None:
                continue
            events.append(_event_from_vevent(vevent, name, tz))

    return events
