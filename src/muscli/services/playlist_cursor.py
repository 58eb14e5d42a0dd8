"""Position-tracking view over an ordered, possibly paginated track list."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence

from muscli.errors import MuscliError
from muscli.services.tracks import Track

logger = logging.getLogger(__name__)

Extender = Callable[[], Sequence[Track]]
"""Source-supplied callable returning the next batch of tracks (maybe empty)."""


class PlaylistCursor:
    """Ordered tracks plus an optional current index.

    The index, when set, is always a valid position. Extension appends and
    never reorders existing entries.
    """

    def __init__(
        self,
        tracks: Iterable[Track] = (),
        *,
        name: str = "",
        extender: Extender | None = None,
    ) -> None:
        self.name = name
        self._tracks: list[Track] = list(tracks)
        self._index: int | None = None
        self._extender = extender
        self.last_error: str | None = None

    def __len__(self) -> int:
        return len(self._tracks)

    @property
    def tracks(self) -> tuple[Track, ...]:
        return tuple(self._tracks)

    @property
    def index(self) -> int | None:
        return self._index

    @property
    def current(self) -> Track | None:
        if self._index is None:
            return None
        return self._tracks[self._index]

    @property
    def paginated(self) -> bool:
        return self._extender is not None

    def select(self, index: int | None) -> int | None:
        """Move to `index` when valid (None clears the selection)."""
        if index is None:
            self._index = None
        elif 0 <= index < len(self._tracks):
            self._index = index
        return self._index

    def next(self) -> int | None:
        """Advance one position, wrapping to 0 past the known end."""
        self.extend_if_needed()
        if not self._tracks:
            return self._index
        if self._index is None:
            self._index = 0
        else:
            self._index = (self._index + 1) % len(self._tracks)
        return self._index

    def previous(self) -> int | None:
        """Step back one position, wrapping to the last entry before 0."""
        if not self._tracks:
            return self._index
        if self._index is None:
            self._index = 0
        else:
            self._index = (self._index - 1) % len(self._tracks)
        return self._index

    def extend_if_needed(self) -> int:
        """Fetch one more batch when within one position of the known end.

        Returns the number of tracks appended. Extender failures are logged
        and count as an empty batch so advancing never stalls.
        """
        if self._extender is None:
            return 0
        position = -1 if self._index is None else self._index
        if position + 1 < len(self._tracks) - 1:
            return 0
        try:
            batch = list(self._extender())
        except MuscliError as exc:
            self.last_error = str(exc)
            logger.warning("Playlist %r extension failed: %s", self.name, exc)
            return 0
        self.last_error = None
        self._tracks.extend(batch)
        if batch:
            logger.debug("Playlist %r extended by %d tracks", self.name, len(batch))
        return len(batch)
