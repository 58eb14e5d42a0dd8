"""Local directory source: sub-directories are browsable, files are tracks."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from pathlib import Path

from muscli.errors import EnumerationError
from muscli.media_formats import is_supported_audio_file
from muscli.services.audio_tags import AudioTags, read_audio_tags
from muscli.services.playlist_cursor import PlaylistCursor
from muscli.services.sources import BrowseEntry, BrowseListing
from muscli.services.tracks import Track

logger = logging.getLogger(__name__)


class LocalSource:
    """Eagerly enumerated playlists over a music directory tree."""

    display_name = "Local"

    def __init__(
        self,
        root: Path,
        *,
        source_id: str = "local",
        tag_reader: Callable[[Path], AudioTags] = read_audio_tags,
    ) -> None:
        self.root = root
        self.source_id = source_id
        self._tag_reader = tag_reader

    def list_browsable(self) -> BrowseListing:
        """List the root itself followed by its sub-directories."""
        try:
            subdirs = [
                BrowseEntry(key=entry.path, label=f"{entry.name}/")
                for entry in _scan(self.root)
                if entry.is_dir(follow_symlinks=True)
            ]
        except EnumerationError as exc:
            logger.warning("Local source listing failed: %s", exc)
            return BrowseListing(error=str(exc))
        root_entry = BrowseEntry(key=str(self.root), label=self.root.name or "/")
        return BrowseListing(entries=(root_entry, *subdirs))

    def open_playlist(self, entry: BrowseEntry) -> PlaylistCursor:
        """Enumerate supported audio files of one directory, in scan order."""
        directory = Path(entry.key)
        tracks = [
            self._build_track(Path(item.path))
            for item in _scan(directory)
            if item.is_file(follow_symlinks=True)
            and is_supported_audio_file(Path(item.name))
        ]
        logger.info("Loaded %d local tracks from %s", len(tracks), directory)
        return PlaylistCursor(tracks, name=directory.name or str(directory))

    def _build_track(self, path: Path) -> Track:
        tags = self._tag_reader(path)
        return Track(
            title=tags.title,
            reference=str(path),
            artist=tags.artist,
            album=tags.album,
            duration_ms=tags.duration_ms,
        )


def _scan(directory: Path) -> list[os.DirEntry[str]]:
    try:
        with os.scandir(directory) as entries:
            return list(entries)
    except OSError as exc:
        raise EnumerationError(f"Cannot read directory {directory}: {exc}") from exc
