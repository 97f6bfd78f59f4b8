from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

import requests

from .models import Event

GRAPH_URL = "https://graph.microsoft.com/v1.0"


def _parse_graph_datetime(obj: Dict[str, Any], tz: ZoneInfo) -> datetime:
    # Graph returns a naive "dateTime" plus a separate "timeZone"; we ask for UTC.
    value = str(obj["dateTime"])
    if "." in value:
        head, frac = value.split(".", 1)
        value = f"{head}.{frac[:6]}"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(tz)


def _event_from_item(item: Dict[str, Any], calendar_id: str, tz: ZoneInfo) -> Event:
    location = (item.get("location") or {}).get("displayName") or None
    return Event(
        source="microsoft",
        title=item.get("subject") or "(No title)",
        start=_parse_graph_datetime(item["start"], tz),
        end=_parse_graph_datetime(item["end"], tz),
        all_day=bool(item.get("isAllDay", False)),
        location=location,
        calendar_id=calendar_id,
        event_id=item.get("id", ""),
        description=item.get("bodyPreview") or None,
    )


def fetch_microsoft_events(
    calendar_ids: List[str],
    range_start: datetime,
    range_end: datetime,
    tz: ZoneInfo,
    access_token: str,
    session: Optional[requests.Session] = None,
) -> List[Event]:
    """Fetch events from Microsoft Graph calendar views. An empty ``calendar_ids`` means the default calendar."""
    session = session or requests.Session()
    headers = {
        "Authorization": f"Bearer {access_token}",
        "Prefer": 'outlook.timezone="UTC"',
    }
    params = {
        "startDateTime": range_start.astimezone(timezone.utc).isoformat(),
        "endDateTime": range_end.astimezone(timezone.utc).isoformat(),
        "$select": "id,subject,start,end,location,bodyPreview,isAllDay,isCancelled",
        "$orderby": "start/dateTime",
    }

    events: List[Event] = []
    for cal_id in calendar_ids or [""]:
        url = f"{GRAPH_URL}/me/calendars/{cal_id}/calendarView" if cal_id else f"{GRAPH_URL}/me/calendarView"
        next_params: Optional[Dict[str, str]] = params
        while url:
            resp = session.get(url, headers=headers, params=next_params, timeout=10)
            resp.raise_for_status()
            payload = resp.json()
            for item in payload.get("value", []):
                if item.get("isCancelled"):
                    continue
                events.append(_event_from_item(item, cal_id or "default", tz))
            # The next link already carries the query string.
            url = payload.get("@odata.nextLink")
            next_params = None

    return events


def _graph_datetime(value: datetime) -> Dict[str, str]:
    naive_utc = value.astimezone(timezone.utc).replace(tzinfo=None)
    return {"dateTime": naive_utc.isoformat(), "timeZone": "UTC"}


def create_microsoft_event(
    calendar_id: str,
    title: str,
    start: datetime,
    end: datetime,
    tz: ZoneInfo,
    access_token: str,
    location: Optional[str] = None,
    description: Optional[str] = None,
    session: Optional[requests.Session] = None,
) -> Event:
    """Create an event in a Microsoft calendar. An empty ``calendar_id`` means the default calendar."""
    session = session or requests.Session()
    headers = {
        "Authorization": f"Bearer {access_token}",
        "Prefer": 'outlook.timezone="UTC"',
    }
    body: Dict[str, Any] = {
        "subject": title,
        "start": _graph_datetime(start),
        "end": _graph_datetime(end),
    }
    if location:
        body["location"] = {"displayName": location}
    if description:
        body["body"] = {"content": description, "contentType": "text"}

    url = f"{GRAPH_URL}/me/calendars/{calendar_id}/events" if calendar_id else f"{GRAPH_URL}/me/events"
    resp = session.post(url, headers=headers, json=body, timeout=10)
    resp.raise_for_status()
    return _event_from_item(resp.json(), calendar_id or "default", tz)
