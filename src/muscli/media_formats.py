"""Supported audio suffixes for local library enumeration."""

from __future__ import annotations

from pathlib import Path

SUPPORTED_AUDIO_EXTENSIONS = frozenset(
    {
        ".aac",
        ".aiff",
        ".flac",
        ".m4a",
        ".mp2",
        ".mp3",
        ".ogg",
        ".opus",
        ".wav",
        ".wma",
    }
)
"""Suffixes both the VLC backend and the tag readers handle."""


def is_supported_audio_file(path: Path) -> bool:
    """Return whether path suffix is in the app's supported audio set."""
    return path.suffix.lower() in SUPPORTED_AUDIO_EXTENSIONS
