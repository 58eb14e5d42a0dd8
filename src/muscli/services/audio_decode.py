"""Mono PCM decode used to serve waveform windows for the spectrum display.

WAV files are read directly with the `wave` module; everything else is piped
through ffmpeg. Decoding is blocking and meant to run on a worker thread.
"""

from __future__ import annotations

import logging
import shutil
import struct
import subprocess
import wave
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

MONO_TARGET_RATE = 11_025
WINDOW_MS = 40
_WAVE_SUFFIXES = {".wav", ".wave"}
_FFMPEG_TIMEOUT_S = 60.0


@dataclass(frozen=True)
class DecodedMono:
    """Mono PCM samples in [-1.0, 1.0] at `rate` Hz."""

    rate: int
    samples: list[float]

    @property
    def duration_ms(self) -> int:
        if self.rate <= 0:
            return 0
        return int(len(self.samples) * 1000 / self.rate)


def decode_mono(track_path: Path | str) -> DecodedMono | None:
    """Decode media into mono samples, or None when it cannot be decoded."""
    path = Path(track_path)
    if not path.is_file():
        return None
    decoded = _decode_wave(path)
    if decoded is None and path.suffix.lower() not in _WAVE_SUFFIXES:
        decoded = _decode_ffmpeg(path)
    if decoded is None:
        return None
    rate, samples = _resample_mono(decoded.samples, decoded.rate, MONO_TARGET_RATE)
    if rate <= 0 or not samples:
        return None
    return DecodedMono(rate=rate, samples=samples)


def sample_window(
    decoded: DecodedMono, position_ms: int, band_count: int
) -> list[float]:
    """Pick `band_count` evenly spaced samples from the window at a position."""
    if band_count <= 0:
        return []
    start = int(max(0, position_ms) * decoded.rate / 1000)
    span = max(band_count, int(decoded.rate * WINDOW_MS / 1000))
    size = len(decoded.samples)
    if start >= size:
        return [0.0] * band_count
    step = span / band_count
    out: list[float] = []
    for band in range(band_count):
        idx = start + int(band * step)
        out.append(decoded.samples[idx] if idx < size else 0.0)
    return out


def _decode_wave(path: Path) -> DecodedMono | None:
    try:
        with wave.open(str(path), "rb") as handle:
            channels = int(handle.getnchannels())
            frame_rate = int(handle.getframerate())
            sample_width = int(handle.getsampwidth())
            if channels <= 0 or frame_rate <= 0 or sample_width <= 0:
                return None
            raw = handle.readframes(handle.getnframes())
    except (wave.Error, EOFError, OSError, ValueError):
        return None
    samples = _pcm_to_mono(raw, channels=channels, sample_width=sample_width)
    if not samples:
        return None
    return DecodedMono(rate=frame_rate, samples=samples)


def _decode_ffmpeg(path: Path) -> DecodedMono | None:
    ffmpeg_bin = shutil.which("ffmpeg")
    if ffmpeg_bin is None:
        logger.debug("ffmpeg not on PATH; no waveform for %s", path)
        return None
    cmd = [
        ffmpeg_bin,
        "-v",
        "error",
        "-i",
        str(path),
        "-vn",
        "-sn",
        "-dn",
        "-f",
        "s16le",
        "-acodec",
        "pcm_s16le",
        "-ac",
        "1",
        "-ar",
        str(MONO_TARGET_RATE),
        "pipe:1",
    ]
    try:
        proc = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            timeout=_FFMPEG_TIMEOUT_S,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        logger.debug("ffmpeg decode failed for %s: %s", path, exc)
        return None
    if proc.returncode != 0 or not proc.stdout:
        return None
    usable = len(proc.stdout) - (len(proc.stdout) % 2)
    samples = [
        _clamp_sample(value / 32768.0)
        for (value,) in struct.iter_unpack("<h", proc.stdout[:usable])
    ]
    return DecodedMono(rate=MONO_TARGET_RATE, samples=samples)


def _pcm_to_mono(raw: bytes, *, channels: int, sample_width: int) -> list[float]:
    bytes_per_frame = channels * sample_width
    frame_count = len(raw) // bytes_per_frame
    max_value = _sample_max(sample_width)
    out: list[float] = []
    for frame_idx in range(frame_count):
        offset = frame_idx * bytes_per_frame
        total = 0
        for channel in range(channels):
            total += _read_sample(raw, offset + channel * sample_width, sample_width)
        out.append(_clamp_sample(total / channels / max_value))
    return out


def _read_sample(raw: bytes, offset: int, sample_width: int) -> int:
    if sample_width == 1:
        return raw[offset] - 128
    if sample_width == 2:
        return int.from_bytes(raw[offset : offset + 2], "little", signed=True)
    if sample_width == 3:
        value = int.from_bytes(raw[offset : offset + 3], "little", signed=False)
        if value & 0x800000:
            value -= 0x1000000
        return value
    if sample_width == 4:
        return int.from_bytes(raw[offset : offset + 4], "little", signed=True)
    raise ValueError("Unsupported sample width")


def _sample_max(sample_width: int) -> float:
    if sample_width == 1:
        return 128.0
    if sample_width == 3:
        return 8_388_608.0
    if sample_width == 4:
        return 2_147_483_648.0
    return 32768.0


def _resample_mono(
    samples: list[float], source_rate: int, target_rate: int
) -> tuple[int, list[float]]:
    if source_rate <= 0 or target_rate <= 0 or source_rate <= target_rate:
        return source_rate, samples
    step = source_rate / target_rate
    out: list[float] = []
    idx = 0.0
    size = len(samples)
    while int(idx) < size:
        out.append(samples[int(idx)])
        idx += step
    return target_rate, out


def _clamp_sample(value: float) -> float:
    return max(-1.0, min(1.0, float(value)))
