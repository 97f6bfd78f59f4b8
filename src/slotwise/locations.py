from __future__ import annotations

import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import requests

from .models import Coordinates, Event

logger = logging.getLogger(__name__)

NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"


class LocationNotResolvedError(ValueError):
    """Raised when an address the caller depends on has no coordinates."""


class LocationCache:
    """Persistent address -> coordinates cache stored as a JSON file. Entries are never invalidated."""

    def __init__(self, path: str) -> None:
        self.path = Path(path).expanduser()
        self._entries: Optional[Dict[str, Coordinates]] = None

    def get(self, location: str) -> Optional[Coordinates]:
        return self._load().get(location)

    def put(self, location: str, coords: Coordinates) -> None:
        entries = self._load()
        if location in entries:
            return
        entries[location] = coords
        self._save(entries)

    def _load(self) -> Dict[str, Coordinates]:
        if self._entries is not None:
            return self._entries
        self._entries = {}
        if not self.path.exists():
            return self._entries
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable location cache at %s", self.path)
            return self._entries
        for location, item in data.items():
            try:
                self._entries[location] = Coordinates(lat=float(item["lat"]), long=float(item["long"]))
            except (KeyError, TypeError, ValueError):
                continue
        return self._entries

    def _save(self, entries: Dict[str, Coordinates]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {loc: {"lat": c.lat, "long": c.long} for loc, c in sorted(entries.items())}
        self.path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


class LocationResolver:
    """Resolves free-text locations to coordinates: cache first, then Nominatim."""

    def __init__(self, cache: LocationCache, user_agent: str = "slotwise/1.0") -> None:
        self.cache = cache
        self._session = requests.Session()
        self._session.headers.update({"User-Agent": user_agent})
        self._failed: set[str] = set()

    def resolve_locations(self, locations: Iterable[str]) -> Dict[str, Coordinates]:
        resolved: Dict[str, Coordinates] = {}
        for location in locations:
            if not location or not location.strip():
                continue
            coords = self.resolve(location)
            if coords is not None:
                resolved[location] = coords
        return resolved

    def resolve(self, location: str) -> Optional[Coordinates]:
        cached = self.cache.get(location)
        if cached is not None:
            return cached
        if location in self._failed:
            return None

        coords = self._geocode(location)
        if coords is None:
            self._failed.add(location)
            return None
        self.cache.put(location, coords)
        return coords

    def _geocode(self, address: str) -> Optional[Coordinates]:
        try:
            resp = self._session.get(
                NOMINATIM_URL,
                params={"q": address, "format": "json", "limit": 1},
                timeout=8,
            )
            resp.raise_for_status()
            results = resp.json()
            if not results:
                logger.info("No geocoding result for %r", address)
                return None
            item = results[0]
            return Coordinates(lat=float(item["lat"]), long=float(item["lon"]))
        except (requests.RequestException, ValueError, KeyError, TypeError) as exc:
            logger.warning("Geocoding failed for %r: %s", address, exc)
            return None


def locate_events(events: Iterable[Event], resolved: Dict[str, Coordinates]) -> List[Event]:
    located: List[Event] = []
    for event in events:
        coords = resolved.get(event.location) if event.location else None
        if coords is None:
            located.append(event)
            continue
        located.append(replace(event, lat=coords.lat, long=coords.long))
    return located
