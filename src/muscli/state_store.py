"""JSON persistence for user-facing app settings.

The store is tolerant of invalid/missing values so upgrades and partial or
corrupt writes degrade to safe defaults instead of aborting startup.
"""

from __future__ import annotations

import errno
import json
import logging
import time
from contextlib import suppress
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any
from uuid import uuid4

from .errors import format_user_error
from .runtime_config import DEFAULT_TICK_MS

logger = logging.getLogger(__name__)

_REPLACE_BACKOFF_S = (0.02, 0.05, 0.1)


@dataclass(frozen=True)
class AppState:
    """Persisted application settings loaded at startup."""

    music_dir: str | None = None
    stations_path: str | None = None
    playback_backend: str = "vlc"
    tick_ms: int = DEFAULT_TICK_MS
    last_source_id: str = "local"
    log_level: str = "INFO"


def _coerce_state(data: dict[str, Any]) -> AppState:
    """Coerce untyped JSON object into `AppState` with safe defaults."""

    def _str_or_none(value: Any) -> str | None:
        if isinstance(value, str) and value.strip():
            return value
        return None

    def _str_or_default(value: Any, default: str) -> str:
        if isinstance(value, str):
            return value
        return default

    def _int_or_default(value: Any, default: int) -> int:
        if isinstance(value, bool):
            return default
        if isinstance(value, int):
            return value
        return default

    return AppState(
        music_dir=_str_or_none(data.get("music_dir")),
        stations_path=_str_or_none(data.get("stations_path")),
        playback_backend=_str_or_default(data.get("playback_backend"), "vlc"),
        tick_ms=_int_or_default(data.get("tick_ms"), DEFAULT_TICK_MS),
        last_source_id=_str_or_default(data.get("last_source_id"), "local"),
        log_level=_str_or_default(data.get("log_level"), "INFO"),
    )


def _reset_notice(path: Path, *, cause: str, step: str) -> str:
    return format_user_error(
        what_failed="Settings were reset to defaults.",
        likely_cause=cause,
        next_step=step.format(path=path),
    )


def load_state_with_notice(path: Path) -> tuple[AppState, str | None]:
    """Load state; the notice is set whenever a present file had to be ignored."""
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.info("No state file at %s; starting with defaults.", path)
        return AppState(), None
    except OSError as exc:
        logger.warning("State file %s unreadable (%s); using defaults.", path, exc)
        return AppState(), _reset_notice(
            path,
            cause="state file is unreadable due to permissions or IO issues.",
            step="verify access to '{path}' and restart.",
        )

    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("State file %s is invalid JSON; using defaults.", path)
        return AppState(), _reset_notice(
            path,
            cause="state file is corrupt or partially written.",
            step="remove or repair '{path}' and restart.",
        )
    if not isinstance(data, dict):
        logger.warning("State file %s is not a JSON object; using defaults.", path)
        return AppState(), _reset_notice(
            path,
            cause="state file format is invalid for this version of muscli.",
            step="remove '{path}' and restart.",
        )
    return _coerce_state(data), None


def load_state(path: Path) -> AppState:
    state, _notice = load_state_with_notice(path)
    return state


def save_state(path: Path, state: AppState) -> None:
    """Write state to a sibling temp file, then atomically replace `path`.

    Replace failures that look transient (a virus scanner or indexer holding
    the file on Windows) are retried with a short backoff.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f"{path.name}.{uuid4().hex}.tmp")
    payload = json.dumps(asdict(state), indent=2, sort_keys=True)
    try:
        tmp_path.write_text(payload, encoding="utf-8")
        for delay_s in (*_REPLACE_BACKOFF_S, None):
            try:
                tmp_path.replace(path)
            except OSError as exc:
                if delay_s is None or not _is_retryable_replace_error(exc):
                    raise
                logger.debug("Retrying state replace after %s", exc)
                time.sleep(delay_s)
            else:
                return
    finally:
        with suppress(OSError):
            tmp_path.unlink(missing_ok=True)


def _is_retryable_replace_error(exc: OSError) -> bool:
    if getattr(exc, "winerror", None) in {2, 5, 32}:
        return True
    if exc.errno in {errno.EACCES, errno.EBUSY}:
        return True
    text = str(exc).lower()
    return "used by another process" in text or "permission denied" in text
