"""Audio backend contract consumed by `PlaybackEngine`.

The engine calls every method from its own thread and never concurrently, so
implementations do not need internal locking for engine-issued calls.
Concrete implementations (fake/VLC) translate engine commands into their
playback engine and report transport position back on demand.
"""

from __future__ import annotations

from typing import Any, Protocol

AudioHandle = Any
"""Opaque per-file handle returned by `AudioBackend.open`."""


class AudioBackend(Protocol):
    """Playback capability: decode and play one local file per handle."""

    def start(self) -> None:
        """Initialize the audio subsystem; raise `BackendUnavailableError`."""
        ...

    def shutdown(self) -> None: ...

    def open(self, path: str) -> AudioHandle:
        """Open a local file; raise `DecodeError` when it cannot be played."""
        ...

    def play(self, handle: AudioHandle) -> None: ...

    def pause(self, handle: AudioHandle, paused: bool) -> None: ...

    def seek(self, handle: AudioHandle, position_ms: int) -> None: ...

    def position_ms(self, handle: AudioHandle) -> int: ...

    def length_ms(self, handle: AudioHandle) -> int: ...

    def waveform(self, handle: AudioHandle, band_count: int) -> list[float]: ...

    def release(self, handle: AudioHandle) -> None:
        """Stop playback and free the handle; no-op if already released."""
        ...
