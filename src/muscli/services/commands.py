"""Commands accepted by `PlaybackEngine.handle_command`."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class EngineCommand:
    """Marker base type for engine commands."""

    pass


@dataclass(frozen=True)
class SelectNext(EngineCommand):
    """Move the selection cursor forward (wrapping)."""


@dataclass(frozen=True)
class SelectPrevious(EngineCommand):
    """Move the selection cursor backward (wrapping)."""


@dataclass(frozen=True)
class ActivateSelected(EngineCommand):
    """Play the selected track, or toggle pause if it is already playing."""


@dataclass(frozen=True)
class TogglePause(EngineCommand):
    pass


@dataclass(frozen=True)
class Stop(EngineCommand):
    pass


@dataclass(frozen=True)
class SeekRelative(EngineCommand):
    """Seek the current session by a signed offset in milliseconds."""

    delta_ms: int


@dataclass(frozen=True)
class SwitchSource(EngineCommand):
    """Make another registered source the active one."""

    source_id: str


@dataclass(frozen=True)
class OpenBrowsable(EngineCommand):
    """Open the browsable entry at `index` as the active playlist."""

    index: int
