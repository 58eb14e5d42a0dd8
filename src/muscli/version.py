"""Project version metadata used by help output."""

from __future__ import annotations

import platform

from . import __version__

__all__ = ["PROJECT_NAME", "__version__", "build_help_epilog"]

PROJECT_NAME = "muscli"


def build_help_epilog() -> str:
    return f"Platform: {platform.platform()}\nVersion: {PROJECT_NAME} {__version__}"
