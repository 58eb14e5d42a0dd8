"""Embedded tag reading for local tracks.

Mutagen handles the common containers; TinyTag covers formats mutagen does
not recognize; WAV files without tags still get a duration from the header.
"""

from __future__ import annotations

import logging
import math
import wave
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from mutagen import File as MutagenFile
from mutagen import MutagenError
from tinytag import TinyTag

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AudioTags:
    """Normalized metadata payload; missing fields are empty / zero."""

    title: str = ""
    artist: str = ""
    album: str = ""
    duration_ms: int = 0
    error: str | None = None


def read_audio_tags(path: Path) -> AudioTags:
    """Read tags for a track path, never raising for unreadable files."""
    tags = _read_with_mutagen(path)
    if tags is not None and tags.error is None:
        return tags
    fallback = _read_with_tinytag(path)
    if fallback is not None and fallback.error is None:
        return fallback
    wave_tags = _read_wave_fallback(path)
    if wave_tags is not None:
        return wave_tags
    error = (tags.error if tags else None) or (fallback.error if fallback else None)
    logger.debug("No readable tags for %s: %s", path, error)
    return AudioTags(error=error or "Unsupported or unreadable file")


def _read_with_mutagen(path: Path) -> AudioTags | None:
    try:
        audio = MutagenFile(path, easy=True)
    except (MutagenError, OSError, ValueError) as exc:
        return AudioTags(error=str(exc) or exc.__class__.__name__)
    if audio is None:
        return None
    tags = audio.tags or {}
    return AudioTags(
        title=_first_tag(tags, "title"),
        artist=_first_tag(tags, "artist"),
        album=_first_tag(tags, "album"),
        duration_ms=_safe_duration_ms(getattr(audio.info, "length", None)),
    )


def _read_with_tinytag(path: Path) -> AudioTags | None:
    try:
        tag = TinyTag.get(str(path))
    except Exception as exc:
        return AudioTags(error=str(exc) or exc.__class__.__name__)
    return AudioTags(
        title=_clean_text(tag.title),
        artist=_clean_text(tag.artist),
        album=_clean_text(tag.album),
        duration_ms=_safe_duration_ms(getattr(tag, "duration", None)),
    )


def _read_wave_fallback(path: Path) -> AudioTags | None:
    try:
        with wave.open(str(path), "rb") as handle:
            frame_rate = int(handle.getframerate())
            frame_count = int(handle.getnframes())
    except (wave.Error, EOFError, OSError):
        return None
    if frame_rate <= 0:
        return None
    return AudioTags(duration_ms=max(1, int(frame_count * 1000 / frame_rate)))


def _first_tag(tags: Any, key: str) -> str:
    try:
        value = tags.get(key)
    except Exception:
        return ""
    if isinstance(value, list) and value:
        return _clean_text(value[0])
    return _clean_text(value)


def _clean_text(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _safe_duration_ms(value: object) -> int:
    if not isinstance(value, (int, float)):
        return 0
    normalized = float(value)
    if not math.isfinite(normalized) or normalized <= 0:
        return 0
    return int(normalized * 1000)
