"""Track descriptors shared by sources, fetchers and the engine."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePath
from urllib.parse import unquote, urlparse


@dataclass(frozen=True, eq=False)
class Track:
    """Immutable descriptor of one addressable piece of audio.

    Equality is identity: two enumerations of the same file are different
    tracks as far as the engine's staleness checks are concerned.
    """

    title: str
    reference: str
    artist: str = ""
    album: str = ""
    duration_ms: int = 0
    remote: bool = False

    @property
    def display_title(self) -> str:
        if self.title:
            return self.title
        if self.remote:
            name = PurePath(unquote(urlparse(self.reference).path)).name
        else:
            name = PurePath(self.reference).name
        return name or self.reference
