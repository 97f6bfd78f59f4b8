from datetime import datetime
from zoneinfo import ZoneInfo

from slotwise.calendar_microsoft import create_microsoft_event, fetch_microsoft_events


class FakeResponse:
    def __init__(self, payload):
        self._payload = payload

    def raise_for_status(self):
        return None

    def json(self):
        return self._payload


class FakeSession:
    def __init__(self, pages):
        self.pages = list(pages)
        self.calls = []
        self.posts = []

    def get(self, url, headers=None, params=None, timeout=None):
        self.calls.append((url, params, headers))
        return FakeResponse(self.pages.pop(0))

    def post(self, url, headers=None, json=None, timeout=None):
        self.posts.append((url, json, headers))
        return FakeResponse(self.pages.pop(0))


def test_fetch_microsoft_events_follows_next_link_and_converts_to_local_time():
    tz = ZoneInfo("Europe/Copenhagen")
    session = FakeSession(
        [
            {
                "value": [
                    {
                        "id": "1",
                        "subject": "Install",
                        "start": {"dateTime": "2026-03-10T08:00:00.0000000", "timeZone": "UTC"},
                        "end": {"dateTime": "2026-03-10T09:00:00.0000000", "timeZone": "UTC"},
                        "location": {"displayName": "Strøget 10, Copenhagen"},
                        "bodyPreview": "Bring ladder",
                    },
                    {
                        "id": "2",
                        "subject": "Cancelled visit",
                        "isCancelled": True,
                        "start": {"dateTime": "2026-03-10T10:00:00.0000000", "timeZone": "UTC"},
                        "end": {"dateTime": "2026-03-10T11:00:00.0000000", "timeZone": "UTC"},
                    },
                ],
                "@odata.nextLink": "https://graph.microsoft.com/v1.0/me/calendarView?$skip=10",
            },
            {
                "value": [
                    {
                        "id": "3",
                        "subject": "",
                        "start": {"dateTime": "2026-03-10T12:00:00", "timeZone": "UTC"},
                        "end": {"dateTime": "2026-03-10T13:00:00", "timeZone": "UTC"},
                        "location": {"displayName": ""},
                    }
                ]
            },
        ]
    )

    events = fetch_microsoft_events(
        [],
        datetime(2026, 3, 10, 0, 0, tzinfo=tz),
        datetime(2026, 3, 11, 0, 0, tzinfo=tz),
        tz,
        "token",
        session=session,
    )

    assert [e.event_id for e in events] == ["1", "3"]
    assert events[0].start == datetime(2026, 3, 10, 9, 0, tzinfo=tz)
    assert events[0].location == "Strøget 10, Copenhagen"
    assert events[0].description == "Bring ladder"
    assert events[0].calendar_id == "default"
    assert events[1].title == "(No title)"
    assert events[1].location is None

    first_url, first_params, headers = session.calls[0]
    assert first_url == "https://graph.microsoft.com/v1.0/me/calendarView"
    assert first_params["startDateTime"].startswith("2026-03-09T23:00:00")
    assert headers["Authorization"] == "Bearer token"
    assert session.calls[1][1] is None


def test_fetch_microsoft_events_queries_each_configured_calendar():
    tz = ZoneInfo("Europe/Copenhagen")
    session = FakeSession([{"value": []}, {"value": []}])

    fetch_microsoft_events(
        ["work", "field"],
        datetime(2026, 3, 10, 0, 0, tzinfo=tz),
        datetime(2026, 3, 11, 0, 0, tzinfo=tz),
        tz,
        "token",
        session=session,
    )

    assert [url for url, _, _ in session.calls] == [
        "https://graph.microsoft.com/v1.0/me/calendars/work/calendarView",
        "https://graph.microsoft.com/v1.0/me/calendars/field/calendarView",
    ]


def test_create_microsoft_event_posts_utc_times_and_returns_local_event():
    tz = ZoneInfo("Europe/Copenhagen")
    session = FakeSession(
        [
            {
                "id": "new-1",
                "subject": "Service call",
                "start": {"dateTime": "2026-03-10T12:00:00.0000000", "timeZone": "UTC"},
                "end": {"dateTime": "2026-03-10T13:00:00.0000000", "timeZone": "UTC"},
                "location": {"displayName": "Roskilde"},
            }
        ]
    )

    event = create_microsoft_event(
        "work",
        "Service call",
        datetime(2026, 3, 10, 13, 0, tzinfo=tz),
        datetime(2026, 3, 10, 14, 0, tzinfo=tz),
        tz,
        "token",
        location="Roskilde",
        description="Bring ladder",
        session=session,
    )

    url, body, headers = session.posts[0]
    assert url == "https://graph.microsoft.com/v1.0/me/calendars/work/events"
    assert headers["Authorization"] == "Bearer token"
    assert body == {
        "subject": "Service call",
        "start": {"dateTime": "2026-03-10T12:00:00", "timeZone": "UTC"},
        "end": {"dateTime": "2026-03-10T13:00:00", "timeZone": "UTC"},
        "location": {"displayName": "Roskilde"},
        "body": {"content": "Bring ladder", "contentType": "text"},
    }
    assert event.event_id == "new-1"
    assert event.source == "microsoft"
    assert event.calendar_id == "work"
    assert event.start == datetime(2026, 3, 10, 13, 0, tzinfo=tz)


def test_create_microsoft_event_uses_default_calendar_without_id():
    tz = ZoneInfo("Europe/Copenhagen")
    session = FakeSession(
        [
            {
                "id": "new-2",
                "subject": "Visit",
                "start": {"dateTime": "2026-03-10T08:00:00", "timeZone": "UTC"},
                "end": {"dateTime": "2026-03-10T09:00:00", "timeZone": "UTC"},
            }
        ]
    )

    event = create_microsoft_event(
        "",
        "Visit",
        datetime(2026, 3, 10, 9, 0, tzinfo=tz),
        datetime(2026, 3, 10, 10, 0, tzinfo=tz),
        tz,
        "token",
        session=session,
    )

    url, body, _ = session.posts[0]
    assert url == "https://graph.microsoft.com/v1.0/me/events"
    assert "location" not in body and "body" not in body
    assert event.calendar_id == "default"
