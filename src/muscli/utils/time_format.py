"""Time and progress formatting for the now-playing gauge."""

from __future__ import annotations

import math


def format_time_ms(ms: int) -> str:
    """Format milliseconds as MM:SS, or H:MM:SS from one hour on."""
    return _format_time_ms(ms, force_hours=False)


def format_time_pair_ms(position_ms: int, duration_ms: int) -> tuple[str, str]:
    """Format elapsed and total time with consistent width."""
    hours_mode = _needs_hours(position_ms) or _needs_hours(duration_ms)
    position = _format_time_ms(position_ms, force_hours=hours_mode)
    if duration_ms <= 0:
        return position, "--:--:--" if hours_mode else "--:--"
    return position, _format_time_ms(duration_ms, force_hours=hours_mode)


def progress_percent(position_ms: int, duration_ms: int) -> int:
    """Return elapsed share of the track as a 0-100 integer."""
    total = _coerce_ms(duration_ms)
    if total <= 0:
        return 0
    return max(0, min(100, _coerce_ms(position_ms) * 100 // total))


def _needs_hours(ms: int) -> bool:
    return _coerce_ms(ms) >= 3_600_000


def _format_time_ms(ms: int, *, force_hours: bool) -> str:
    total_seconds = _coerce_ms(ms) // 1000
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours > 0 or force_hours:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes:02d}:{seconds:02d}"


def _coerce_ms(value: int) -> int:
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(numeric):
        return 0
    return max(0, int(numeric))
