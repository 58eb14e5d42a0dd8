"""VLC audio backend using python-vlc.

libVLC decodes and mixes on its own threads; every call made here is a short
non-blocking control call, so the backend is driven directly from the engine
thread. Waveform windows come from a background mono decode of the same file
because libVLC exposes no sample tap.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from muscli.errors import BackendUnavailableError, DecodeError
from muscli.services.audio_decode import DecodedMono, decode_mono, sample_window
from muscli.utils.async_utils import submit_blocking

logger = logging.getLogger(__name__)

_VLC_ARGS = ("--no-video", "--quiet")


@dataclass
class VlcHandle:
    path: str
    player: Any
    media: Any
    decode: Future[DecodedMono | None] | None = None
    released: bool = field(default=False)


class VlcAudioBackend:
    """Audio backend backed by one libVLC media player per opened file."""

    def __init__(self, *, decode_waveform: bool = True) -> None:
        self._decode_waveform = decode_waveform
        self._instance: Any = None

    def start(self) -> None:
        if self._instance is not None:
            return
        try:
            import vlc

            instance = vlc.Instance(*_VLC_ARGS)
        except Exception as exc:  # pragma: no cover - depends on VLC install
            raise BackendUnavailableError(
                f"VLC backend unavailable ({exc.__class__.__name__}: {exc})"
            ) from exc
        if instance is None:  # pragma: no cover - depends on VLC install
            raise BackendUnavailableError(
                "VLC backend unavailable. Ensure VLC/libVLC is installed."
            )
        self._instance = instance
        logger.info("libVLC instance created")

    def shutdown(self) -> None:
        if self._instance is None:
            return
        release = getattr(self._instance, "release", None)
        if callable(release):
            release()
        self._instance = None

    def open(self, path: str) -> VlcHandle:
        if self._instance is None:
            raise DecodeError("VLC backend not started.")
        if not Path(path).is_file():
            raise DecodeError(f"File not found: {path}")
        try:
            media = self._instance.media_new_path(path)
            player = self._instance.media_player_new()
            player.set_media(media)
        except Exception as exc:
            raise DecodeError(f"libVLC could not open {path}: {exc}") from exc
        decode = submit_blocking(decode_mono, path) if self._decode_waveform else None
        return VlcHandle(path=path, player=player, media=media, decode=decode)

    def play(self, handle: VlcHandle) -> None:
        if handle.player.play() == -1:
            raise DecodeError(f"libVLC refused to play {handle.path}")

    def pause(self, handle: VlcHandle, paused: bool) -> None:
        handle.player.set_pause(1 if paused else 0)

    def seek(self, handle: VlcHandle, position_ms: int) -> None:
        handle.player.set_time(int(position_ms))

    def position_ms(self, handle: VlcHandle) -> int:
        return max(int(handle.player.get_time()), 0)

    def length_ms(self, handle: VlcHandle) -> int:
        length = int(handle.player.get_length())
        if length <= 0:
            length = int(handle.media.get_duration())
        return max(length, 0)

    def waveform(self, handle: VlcHandle, band_count: int) -> list[float]:
        decode = handle.decode
        if decode is None or not decode.done() or decode.exception() is not None:
            return [0.0] * band_count
        decoded = decode.result()
        if decoded is None:
            return [0.0] * band_count
        return sample_window(decoded, self.position_ms(handle), band_count)

    def release(self, handle: VlcHandle) -> None:
        if handle.released:
            return
        handle.released = True
        handle.player.stop()
        handle.player.release()
        handle.media.release()
