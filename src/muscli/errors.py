"""Exception taxonomy shared by sources, fetchers, backends and the engine.

Everything except `BackendUnavailableError` is recovered at the
`PlaybackEngine` boundary and turned into a user-visible status message.
"""

from __future__ import annotations


class MuscliError(Exception):
    """Base class for recoverable and fatal muscli errors."""


class EnumerationError(MuscliError):
    """A source could not list its browsable entries or tracks."""


class FetchError(MuscliError):
    """Resolving a remote track into a local playable file failed."""


class NetworkError(FetchError):
    """Remote audio resource could not be retrieved."""


class TranscodeError(FetchError):
    """External transcode step failed or could not be launched."""


class DiskWriteError(FetchError):
    """Downloaded or transcoded audio could not be written to disk."""


class DecodeError(MuscliError):
    """Audio backend refused to open a resolved file."""


class PlaybackInvariantViolation(MuscliError):
    """A command was issued in a state where it has no meaning."""


class BackendUnavailableError(MuscliError):
    """Audio subsystem failed to initialize; startup cannot continue."""


def format_user_error(
    *, what_failed: str, likely_cause: str, next_step: str, detail: str | None = None
) -> str:
    message = f"{what_failed}\nLikely cause: {likely_cause}\nNext step: {next_step}"
    if detail:
        message = f"{message}\nDetails: {detail}"
    return message
