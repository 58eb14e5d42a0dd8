"""Radio-style streaming source with lazily paginated station playlists."""

from __future__ import annotations

import logging

from muscli.errors import EnumerationError
from muscli.services.playlist_cursor import PlaylistCursor
from muscli.services.sources import BrowseEntry, BrowseListing
from muscli.services.station_catalog import StationCatalog
from muscli.services.tracks import Track

logger = logging.getLogger(__name__)


class StreamingSource:
    """Stations are browsable; each station playlist grows one page at a time."""

    display_name = "Stations"

    def __init__(self, catalog: StationCatalog, *, source_id: str = "stations") -> None:
        self.catalog = catalog
        self.source_id = source_id

    def list_browsable(self) -> BrowseListing:
        try:
            stations = self.catalog.list_stations()
        except EnumerationError as exc:
            logger.warning("Station listing failed: %s", exc)
            return BrowseListing(error=str(exc))
        return BrowseListing(
            entries=tuple(
                BrowseEntry(key=station.station_id, label=station.name)
                for station in stations
            )
        )

    def open_playlist(self, entry: BrowseEntry) -> PlaylistCursor:
        """Return an empty cursor that pulls pages from the catalog on demand."""
        station_id = entry.key
        rewind = getattr(self.catalog, "rewind", None)
        if callable(rewind):
            rewind(station_id)

        def extend() -> list[Track]:
            return self.catalog.next_batch(station_id)

        return PlaylistCursor(name=entry.label, extender=extend)
