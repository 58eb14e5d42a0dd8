"""Fake audio backend for deterministic testing and audio-less runs."""

from __future__ import annotations

import math
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass

from muscli.errors import DecodeError


@dataclass
class FakeHandle:
    path: str
    length_ms: int
    playing: bool = False
    paused: bool = False
    released: bool = False
    anchor_pos_ms: int = 0
    anchor_clock_s: float = 0.0


class FakeAudioBackend:
    """In-memory backend that simulates playback progress from a clock.

    `handles` lists the open handles; released ones are dropped unless
    `keep_released` is set, which tests use to inspect finished sessions.
    """

    def __init__(
        self,
        *,
        default_length_ms: int = 180_000,
        lengths: Mapping[str, int] | None = None,
        fail_paths: Iterable[str] = (),
        clock: Callable[[], float] = time.monotonic,
        keep_released: bool = False,
    ) -> None:
        self._default_length_ms = default_length_ms
        self._lengths = dict(lengths or {})
        self._fail_paths = set(fail_paths)
        self._clock = clock
        self._keep_released = keep_released
        self.handles: list[FakeHandle] = []
        self.started = False

    def start(self) -> None:
        self.started = True

    def shutdown(self) -> None:
        for handle in list(self.handles):
            self.release(handle)
        self.started = False

    def open(self, path: str) -> FakeHandle:
        if path in self._fail_paths:
            raise DecodeError(f"Fake backend refuses to open {path}")
        length_ms = self._lengths.get(path, self._default_length_ms)
        handle = FakeHandle(path=path, length_ms=length_ms)
        self.handles.append(handle)
        return handle

    def play(self, handle: FakeHandle) -> None:
        handle.playing = True
        handle.paused = False
        handle.anchor_clock_s = self._clock()

    def pause(self, handle: FakeHandle, paused: bool) -> None:
        if paused == handle.paused:
            return
        handle.anchor_pos_ms = self.position_ms(handle)
        handle.anchor_clock_s = self._clock()
        handle.paused = paused

    def seek(self, handle: FakeHandle, position_ms: int) -> None:
        handle.anchor_pos_ms = _clamp(position_ms, 0, handle.length_ms)
        handle.anchor_clock_s = self._clock()

    def position_ms(self, handle: FakeHandle) -> int:
        if not handle.playing or handle.paused or handle.released:
            return handle.anchor_pos_ms
        elapsed = int((self._clock() - handle.anchor_clock_s) * 1000)
        return _clamp(handle.anchor_pos_ms + elapsed, 0, handle.length_ms)

    def length_ms(self, handle: FakeHandle) -> int:
        return handle.length_ms

    def waveform(self, handle: FakeHandle, band_count: int) -> list[float]:
        if not handle.playing or handle.paused or handle.released:
            return [0.0] * band_count
        phase = self.position_ms(handle) / 250.0
        return [0.5 * math.sin(phase + index * 0.7) for index in range(band_count)]

    def release(self, handle: FakeHandle) -> None:
        if handle.released:
            return
        handle.anchor_pos_ms = self.position_ms(handle)
        handle.playing = False
        handle.released = True
        if not self._keep_released:
            self.handles.remove(handle)


def _clamp(value: int, min_value: int, max_value: int) -> int:
    return max(min_value, min(value, max_value))
