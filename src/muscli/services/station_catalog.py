"""Station catalogs feeding `StreamingSource`.

A catalog lists stations and hands out one page of remote tracks per call.
`JsonStationCatalog` reads a user-maintained station file of the form::

    {
      "page_size": 4,
      "stations": [
        {"id": "jazz", "name": "Jazz",
         "tracks": [{"title": "...", "url": "https://...", "artist": "...",
                     "album": "...", "duration_ms": 0}]}
      ]
    }
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from muscli.errors import EnumerationError
from muscli.services.tracks import Track

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 4


@dataclass(frozen=True)
class Station:
    station_id: str
    name: str


class StationCatalog(Protocol):
    def list_stations(self) -> list[Station]:
        """Return stations; raise `EnumerationError` when unavailable."""
        ...

    def next_batch(self, station_id: str) -> list[Track]:
        """Return the next page of tracks for a station (empty when done)."""
        ...


class StaticStationCatalog:
    """In-memory catalog that pages through fixed per-station track lists."""

    def __init__(
        self,
        stations: Mapping[Station, Sequence[Track]],
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        self._stations = list(stations)
        self._tracks = {
            station.station_id: list(tracks) for station, tracks in stations.items()
        }
        self._offsets: dict[str, int] = {}
        self.page_size = page_size

    def list_stations(self) -> list[Station]:
        return list(self._stations)

    def next_batch(self, station_id: str) -> list[Track]:
        tracks = self._tracks.get(station_id)
        if tracks is None:
            raise EnumerationError(f"Unknown station: {station_id}")
        offset = self._offsets.get(station_id, 0)
        batch = tracks[offset : offset + self.page_size]
        self._offsets[station_id] = offset + len(batch)
        return batch

    def rewind(self, station_id: str) -> None:
        self._offsets.pop(station_id, None)


class JsonStationCatalog:
    """Station catalog loaded lazily from a JSON file."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._catalog: StaticStationCatalog | None = None
        self._lock = threading.Lock()

    def list_stations(self) -> list[Station]:
        return self._load().list_stations()

    def next_batch(self, station_id: str) -> list[Track]:
        return self._load().next_batch(station_id)

    def rewind(self, station_id: str) -> None:
        self._load().rewind(station_id)

    def _load(self) -> StaticStationCatalog:
        # Listing runs on a worker; later page pulls reuse the parsed file.
        with self._lock:
            if self._catalog is None:
                self._catalog = parse_station_catalog(_read_json(self.path))
                logger.info("Loaded station catalog from %s", self.path)
            return self._catalog


def parse_station_catalog(data: Any) -> StaticStationCatalog:
    """Validate decoded station-file JSON into a `StaticStationCatalog`."""
    if not isinstance(data, dict) or not isinstance(data.get("stations"), list):
        raise EnumerationError("Station file must be an object with a 'stations' list")
    page_size = data.get("page_size", DEFAULT_PAGE_SIZE)
    if isinstance(page_size, bool) or not isinstance(page_size, int) or page_size < 1:
        page_size = DEFAULT_PAGE_SIZE
    stations: dict[Station, list[Track]] = {}
    for raw in data["stations"]:
        if not isinstance(raw, dict):
            continue
        station_id = raw.get("id")
        if not isinstance(station_id, str) or not station_id:
            continue
        name = raw.get("name")
        station = Station(station_id, name if isinstance(name, str) else station_id)
        raw_tracks = raw.get("tracks")
        stations[station] = [
            track
            for track in (
                _parse_track(item)
                for item in (raw_tracks if isinstance(raw_tracks, list) else [])
            )
            if track is not None
        ]
    return StaticStationCatalog(stations, page_size=page_size)


def _parse_track(item: Any) -> Track | None:
    if not isinstance(item, dict):
        return None
    url = item.get("url")
    if not isinstance(url, str) or not url:
        return None
    duration = item.get("duration_ms", 0)
    if isinstance(duration, bool) or not isinstance(duration, int) or duration < 0:
        duration = 0
    return Track(
        title=_text(item.get("title")),
        reference=url,
        artist=_text(item.get("artist")),
        album=_text(item.get("album")),
        duration_ms=duration,
        remote=True,
    )


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _read_json(path: Path) -> Any:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise EnumerationError(f"Station file not found: {path}") from exc
    except OSError as exc:
        raise EnumerationError(f"Cannot read station file {path}: {exc}") from exc
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise EnumerationError(f"Station file {path} is invalid JSON") from exc
