"""Runtime configuration normalization helpers.

These helpers keep CLI flag interpretation deterministic across entrypoints.
"""

from __future__ import annotations

DEFAULT_TICK_MS = 75
TICK_MS_MIN = 20
TICK_MS_MAX = 500
SEEK_STEP_MS = 10_000
PLAYBACK_BACKENDS = ("fake", "vlc")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def resolve_log_level(*, verbose: bool, quiet: bool, default: str = "INFO") -> str:
    """Resolve effective log level from CLI flags.

    Precedence is deterministic: --quiet overrides --verbose, and both
    override the persisted `default` (ignored unless it names a known level).
    """
    if quiet:
        return "WARNING"
    if verbose:
        return "DEBUG"
    level = default.strip().upper() if isinstance(default, str) else ""
    return level if level in LOG_LEVELS else "INFO"


def normalize_tick_ms(value: int | None) -> int:
    """Clamp an engine tick interval to the supported range."""
    if value is None or isinstance(value, bool):
        return DEFAULT_TICK_MS
    return max(TICK_MS_MIN, min(int(value), TICK_MS_MAX))


def resolve_backend_name(cli_backend: str | None, state_backend: str | None) -> str:
    """Pick the playback backend: CLI flag, then persisted state, then VLC."""
    if cli_backend in PLAYBACK_BACKENDS:
        return cli_backend
    if state_backend in PLAYBACK_BACKENDS:
        return state_backend
    return "vlc"
