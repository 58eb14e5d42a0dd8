"""Cross-module event/message models for engine and UI communication.

Inbox messages are consumed in FIFO order by `EngineLoop`; `SnapshotPublished`
is the only event flowing back out to the UI.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from muscli.services.commands import EngineCommand
    from muscli.services.playback_engine import EngineSnapshot
    from muscli.services.track_fetcher import FetchJob


@dataclass(frozen=True)
class Tick:
    """Periodic heartbeat driving fetch completion, auto-advance and spectrum."""


@dataclass(frozen=True)
class CommandMessage:
    """User command queued from the UI."""

    command: EngineCommand


@dataclass(frozen=True)
class FetchUpdate:
    """Fetch job transition posted from a worker thread."""

    job: FetchJob


@dataclass(frozen=True)
class BackgroundResult:
    """Finished off-thread work; `apply` runs on the engine thread."""

    apply: Callable[[], None]


InboxMessage = Tick | CommandMessage | FetchUpdate | BackgroundResult


@dataclass(frozen=True)
class SnapshotPublished:
    """Service event carrying the engine state after an inbox message."""

    snapshot: EngineSnapshot
