from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo
import os

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build

from .models import Event

# Event creation needs write access; reading alone would only need calendar.readonly.
SCOPES = ["https://www.googleapis.com/auth/calendar.events"]

def _save_creds(creds: Credentials, token_path: str) -> None:
    token_dir = os.path.dirname(token_path)
    if token_dir:
        os.makedirs(token_dir, exist_ok=True)
    with open(token_path, "w", encoding="utf-8") as f:
        f.write(creds.to_json())

def _get_creds(credentials_path: str, token_path: str) -> Credentials:
    if os.path.exists(token_path):
        creds = Credentials.from_authorized_user_file(token_path, SCOPES)
        if creds.valid:
            return creds
        if creds.expired and creds.refresh_token:
            creds.refresh(Request())
            _save_creds(creds, token_path)
            return creds

    flow = InstalledAppFlow.from_client_secrets_file(credentials_path, SCOPES)
    creds = flow.run_local_server(port=0)
    _save_creds(creds, token_path)
    return creds

def _parse_datetime(value: str, tz: ZoneInfo) -> datetime:
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value).astimezone(tz)

def _event_from_item(item: Dict[str, Any], calendar_id: str, tz: ZoneInfo) -> Event:
    start_obj = item.get("start", {})
    end_obj = item.get("end", {})

    # All-day events have "date" not "dateTime"
    if "date" in start_obj:
        start = datetime.fromisoformat(start_obj["date"]).replace(tzinfo=tz)
        end = datetime.fromisoformat(end_obj["date"]).replace(tzinfo=tz)
        all_day = True
    else:
        start = _parse_datetime(start_obj["dateTime"], tz)
        end = _parse_datetime(end_obj["dateTime"], tz)
        all_day = False

    return Event(
        source="google",
        title=item.get("summary", "(No title)"),
        start=start,
        end=end,
        all_day=all_day,
        location=item.get("location"),
        calendar_id=calendar_id,
        event_id=item.get("id", ""),
        description=item.get("description"),
    )

def fetch_google_events(
    calendar_ids: List[str],
    range_start: datetime,
    range_end: datetime,
    tz: ZoneInfo,
    credentials_path: str,
    token_path: str,
) -> List[Event]:
    creds = _get_creds(credentials_path, token_path)
    service = build("calendar", "v3", credentials=creds, cache_discovery=False)

    events: List[Event] = []
    time_min = range_start.isoformat()
    time_max = range_end.isoformat()

    for cal_id in calendar_ids:
        page_token: Optional[str] = None
        while True:
            resp = service.events().list(
                calendarId=cal_id,
                timeMin=time_min,
                timeMax=time_max,
                singleEvents=True,
                orderBy="startTime",
                pageToken=page_token,
            ).execute()

            for item in resp.get("items", []):
                if item.get("status") == "cancelled":
                    continue
                events.append(_event_from_item(item, cal_id, tz))

            page_token = resp.get("nextPageToken")
            if not page_token:
                break

    return events

def create_google_event(
    calendar_id: str,
    title: str,
    start: datetime,
    end: datetime,
    tz: ZoneInfo,
    credentials_path: str,
    token_path: str,
    location: Optional[str] = None,
    description: Optional[str] = None,
) -> Event:
    creds = _get_creds(credentials_path, token_path)
    service = build("calendar", "v3", credentials=creds, cache_discovery=False)

    body: Dict[str, Any] = {
        "summary": title,
        "start": {"dateTime": start.isoformat()},
        "end": {"dateTime": end.isoformat()},
    }
    if location:
        body["location"] = location
    if description:
        body["description"] = description

    created = service.events().insert(calendarId=calendar_id, body=body).execute()
    return _event_from_item(created, calendar_id, tz)
