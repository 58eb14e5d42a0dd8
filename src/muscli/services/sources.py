"""Source backend contract shared by local and streaming sources.

`PlaybackEngine` is written against this protocol only; each source owns its
own enumeration and pagination policy.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from muscli.services.playlist_cursor import PlaylistCursor


@dataclass(frozen=True)
class BrowseEntry:
    """One selectable item of a source: a directory or a station."""

    key: str
    label: str


@dataclass(frozen=True)
class BrowseListing:
    """Result of listing a source; enumeration failures set `error`."""

    entries: tuple[BrowseEntry, ...] = field(default_factory=tuple)
    error: str | None = None


class SourceBackend(Protocol):
    source_id: str
    display_name: str

    def list_browsable(self) -> BrowseListing: ...

    def open_playlist(self, entry: BrowseEntry) -> PlaylistCursor:
        """Build a cursor for `entry`; raise `EnumerationError` on failure."""
        ...
