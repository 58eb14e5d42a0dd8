"""Playback orchestration between user commands, sources and the audio backend.

`PlaybackEngine` is the single owner of "what is playing". It is driven from
one thread only: commands, ticks and fetch updates all arrive through the
`EngineLoop` inbox, so no method here takes a lock. Directory scans and
station listings run through an injected offloader and come back through the
same inbox. Renderers read the immutable `EngineSnapshot` and never touch
engine state.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Literal

from muscli.errors import (
    DecodeError,
    EnumerationError,
    FetchError,
    MuscliError,
    PlaybackInvariantViolation,
    format_user_error,
)
from muscli.services.audio_backend import AudioBackend, AudioHandle
from muscli.services.commands import (
    ActivateSelected,
    EngineCommand,
    OpenBrowsable,
    SeekRelative,
    SelectNext,
    SelectPrevious,
    Stop,
    SwitchSource,
    TogglePause,
)
from muscli.services.playlist_cursor import PlaylistCursor
from muscli.services.sources import BrowseListing, SourceBackend
from muscli.services.spectrum_sampler import SpectrumFrame, SpectrumSampler
from muscli.services.track_fetcher import FetchJob, TrackFetcher
from muscli.services.tracks import Track

logger = logging.getLogger(__name__)

Phase = Literal["idle", "selecting", "resolving", "playing", "paused"]
AUTO_ADVANCE_LOOKAHEAD_MS = 1000

Offloader = Callable[[Callable[[], Any], Callable[[Any], None]], None]
"""Runs blocking `work` elsewhere, then calls `done(result)` on the engine thread."""


def run_inline(work: Callable[[], Any], done: Callable[[Any], None]) -> None:
    done(work())


@dataclass
class PlaybackSession:
    """The loaded audio handle and the playlist entry it belongs to."""

    handle: AudioHandle
    job: FetchJob
    index: int
    paused: bool = False
    advance_requested: bool = False

    @property
    def track(self) -> Track:
        return self.job.track


@dataclass(frozen=True)
class EngineSnapshot:
    """Read-only view of engine state for renderers."""

    phase: Phase = "idle"
    source_id: str | None = None
    sources: tuple[tuple[str, str], ...] = ()
    browse_labels: tuple[str, ...] = ()
    browse_index: int | None = None
    playlist_name: str = ""
    titles: tuple[str, ...] = ()
    selected_index: int | None = None
    playing_index: int | None = None
    pending_index: int | None = None
    paused: bool = False
    elapsed_ms: int = 0
    total_ms: int = 0
    now_title: str = ""
    now_artist: str = ""
    now_album: str = ""
    spectrum: SpectrumFrame = ()
    loading: bool = False
    notice: str | None = None
    error: str | None = None


class PlaybackEngine:
    """State machine over one source's playlist, a fetcher and an audio backend."""

    def __init__(
        self,
        *,
        backend: AudioBackend,
        fetcher: TrackFetcher,
        sources: Sequence[SourceBackend],
        sampler: SpectrumSampler | None = None,
        lookahead_ms: int = AUTO_ADVANCE_LOOKAHEAD_MS,
        offload: Offloader = run_inline,
    ) -> None:
        if not sources:
            raise ValueError("at least one source is required")
        self._backend = backend
        self._fetcher = fetcher
        self._sources = {source.source_id: source for source in sources}
        self._sampler = sampler or SpectrumSampler()
        self._lookahead_ms = max(0, lookahead_ms)
        self._offload = offload
        self._load_token = 0
        self._loading = False
        self._source: SourceBackend | None = None
        self._listing = BrowseListing()
        self._browse_index: int | None = None
        self._cursor: PlaylistCursor | None = None
        self._session: PlaybackSession | None = None
        self._fetch_job: FetchJob | None = None
        self._pending_index: int | None = None
        self._completed: deque[FetchJob] = deque()
        self._position_ms = 0
        self._length_ms = 0
        self._notice: str | None = None
        self._error: str | None = None

    @property
    def phase(self) -> Phase:
        if self._fetch_job is not None:
            return "resolving"
        if self._session is not None:
            return "paused" if self._session.paused else "playing"
        if self._cursor is not None and self._cursor.index is not None:
            return "selecting"
        return "idle"

    @property
    def cursor(self) -> PlaylistCursor | None:
        return self._cursor

    @property
    def session(self) -> PlaybackSession | None:
        return self._session

    @property
    def fetch_job(self) -> FetchJob | None:
        return self._fetch_job

    def handle_command(self, cmd: EngineCommand) -> None:
        """Apply one user command; errors end up in the snapshot."""
        logger.debug("Command %s in phase %s", cmd, self.phase)
        self._notice = None
        self._guarded(type(cmd).__name__, lambda: self._dispatch(cmd))

    def set_offloader(self, offload: Offloader) -> None:
        """Swap how directory scans and station listings are run."""
        self._offload = offload

    def _dispatch(self, cmd: EngineCommand) -> None:
        if isinstance(cmd, SelectNext):
            self._require_cursor().next()
        elif isinstance(cmd, SelectPrevious):
            self._require_cursor().previous()
        elif isinstance(cmd, ActivateSelected):
            self._activate_selected()
        elif isinstance(cmd, TogglePause):
            self._toggle_pause()
        elif isinstance(cmd, Stop):
            self._stop()
        elif isinstance(cmd, SeekRelative):
            self._seek_relative(cmd.delta_ms)
        elif isinstance(cmd, SwitchSource):
            self.switch_source(cmd.source_id)
        elif isinstance(cmd, OpenBrowsable):
            self._open_browsable(cmd.index)
        else:
            raise PlaybackInvariantViolation(f"Unsupported command: {cmd!r}")

    def _guarded(self, label: str, action: Callable[[], None]) -> None:
        try:
            action()
        except PlaybackInvariantViolation as exc:
            logger.debug("Ignored %s: %s", label, exc)
            self._notice = str(exc)
        except MuscliError as exc:
            logger.warning("%s failed: %s", label, exc)
            self._error = str(exc)
        self._refresh_transport()

    def on_fetch_update(self, job: FetchJob) -> None:
        """Record a fetch transition posted by a worker; applied on next tick."""
        self._completed.append(job)

    def tick(self) -> None:
        """Apply fetch results, check for auto-advance, advance the spectrum."""
        while self._completed:
            self._apply_fetch_update(self._completed.popleft())
        self._check_auto_advance()
        session = self._session
        if session is not None and not session.paused:
            raw = self._backend.waveform(session.handle, self._sampler.band_count)
        else:
            raw = []
        self._sampler.sample(raw)
        self._refresh_transport()

    def snapshot(self) -> EngineSnapshot:
        cursor = self._cursor
        session = self._session
        now = session.track if session is not None else None
        return EngineSnapshot(
            phase=self.phase,
            source_id=self._source.source_id if self._source else None,
            sources=tuple(
                (source.source_id, source.display_name)
                for source in self._sources.values()
            ),
            browse_labels=tuple(entry.label for entry in self._listing.entries),
            browse_index=self._browse_index,
            playlist_name=cursor.name if cursor is not None else "",
            titles=tuple(track.display_title for track in cursor.tracks)
            if cursor is not None
            else (),
            selected_index=cursor.index if cursor is not None else None,
            playing_index=session.index if session is not None else None,
            pending_index=self._pending_index,
            paused=session.paused if session is not None else False,
            elapsed_ms=self._position_ms,
            total_ms=self._length_ms,
            now_title=now.display_title if now is not None else "",
            now_artist=now.artist if now is not None else "",
            now_album=now.album if now is not None else "",
            spectrum=self._sampler.frame,
            loading=self._loading,
            notice=self._notice,
            error=self._error,
        )

    def switch_source(self, source_id: str) -> None:
        """Tear down playback and temp files, then open the source's first entry.

        The listing itself runs through the offloader; until it lands the
        engine sits in `idle` with `loading` set.
        """
        source = self._sources.get(source_id)
        if source is None:
            raise EnumerationError(f"Unknown source: {source_id}")
        self._stop()
        self._fetcher.cleanup()
        self._source = source
        self._cursor = None
        self._browse_index = None
        self._listing = BrowseListing()
        self._error = None
        token = self._begin_loading()
        self._run_offloaded(
            source.list_browsable,
            lambda result: self._listing_loaded(token, source, result),
        )

    def shutdown(self) -> None:
        """Release the session and delete every temporary fetch artifact."""
        self._load_token += 1
        self._loading = False
        self._stop()
        self._fetcher.cleanup()
        logger.info("Playback engine shut down")

    def _begin_loading(self) -> int:
        self._load_token += 1
        self._loading = True
        return self._load_token

    def _claim_load(self, token: int) -> bool:
        if token != self._load_token:
            logger.debug("Dropping superseded enumeration result %d", token)
            return False
        self._loading = False
        return True

    def _run_offloaded(
        self, work: Callable[[], Any], done: Callable[[Any], None]
    ) -> None:
        def guarded_work() -> Any:
            try:
                return work()
            except EnumerationError as exc:
                return exc
            except Exception as exc:  # worker safety net
                logger.exception("Background enumeration failed: %s", exc)
                return EnumerationError(f"{exc.__class__.__name__}: {exc}")

        self._offload(
            guarded_work,
            lambda result: self._guarded("Enumeration", lambda: done(result)),
        )

    def _listing_loaded(
        self,
        token: int,
        source: SourceBackend,
        result: BrowseListing | EnumerationError,
    ) -> None:
        if not self._claim_load(token):
            return
        if isinstance(result, EnumerationError):
            result = BrowseListing(error=str(result))
        self._listing = result
        logger.info(
            "Switched to source %s (%d entries)",
            source.source_id,
            len(result.entries),
            extra={"source_id": source.source_id},
        )
        if result.error is not None:
            self._error = format_user_error(
                what_failed=f"Could not list {source.display_name}.",
                likely_cause="Source is unreadable or unavailable.",
                next_step="Check the configured directory or station file.",
                detail=result.error,
            )
            return
        if result.entries:
            self._open_browsable(0)

    def _require_cursor(self) -> PlaylistCursor:
        if self._cursor is None:
            raise PlaybackInvariantViolation("No playlist is open.")
        return self._cursor

    def _require_session(self) -> PlaybackSession:
        if self._session is None:
            raise PlaybackInvariantViolation("Nothing is playing.")
        return self._session

    def _open_browsable(self, index: int) -> None:
        source = self._source
        if source is None:
            raise PlaybackInvariantViolation("No source is active.")
        entries = self._listing.entries
        if not 0 <= index < len(entries):
            raise PlaybackInvariantViolation(f"No browsable entry at {index}.")
        self._stop()
        self._cursor = None
        entry = entries[index]
        token = self._begin_loading()
        self._run_offloaded(
            lambda: source.open_playlist(entry),
            lambda result: self._playlist_loaded(token, index, entry.label, result),
        )

    def _playlist_loaded(
        self,
        token: int,
        index: int,
        label: str,
        result: PlaylistCursor | EnumerationError,
    ) -> None:
        if not self._claim_load(token):
            return
        if isinstance(result, EnumerationError):
            self._browse_index = None
            self._error = format_user_error(
                what_failed=f"Could not open {label}.",
                likely_cause="Directory or station is unreadable.",
                next_step="Pick another entry or fix access permissions.",
                detail=str(result),
            )
            return
        self._cursor = result
        self._browse_index = index
        self._error = None

    def _activate_selected(self) -> None:
        cursor = self._require_cursor()
        index = cursor.index
        track = cursor.current
        if index is None or track is None:
            raise PlaybackInvariantViolation("No track selected.")
        session = self._session
        if session is not None and session.track is track:
            self._toggle_pause()
            return
        job = self._fetch_job
        if job is not None and job.track is track:
            logger.debug("Track %d is already being resolved", index)
            return
        self._begin_resolve(index, track)

    def _begin_resolve(self, index: int, track: Track) -> None:
        if self._fetch_job is not None:
            logger.info(
                "Fetch job %d superseded by request for index %d",
                self._fetch_job.job_id,
                index,
            )
        self._error = None
        try:
            job = self._fetcher.resolve(track)
        except FetchError as exc:
            self._error = format_user_error(
                what_failed=f"Could not load '{track.display_title}'.",
                likely_cause="Scratch space for downloads could not be prepared.",
                next_step="Check free space and permissions of the cache directory.",
                detail=str(exc),
            )
            return
        self._fetch_job = job
        self._pending_index = index
        if job.finished:
            self._finish_fetch(job)

    def _apply_fetch_update(self, job: FetchJob) -> None:
        current = self._fetch_job
        if current is None or job.track is not current.track:
            if job.finished:
                logger.info("Discarding stale fetch job %d", job.job_id)
                self._fetcher.discard(job)
            return
        if not job.finished:
            self._fetch_job = job
            return
        self._finish_fetch(job)

    def _finish_fetch(self, job: FetchJob) -> None:
        index = self._pending_index
        self._fetch_job = None
        self._pending_index = None
        if job.state == "failed" or job.path is None or index is None:
            self._error = format_user_error(
                what_failed=f"Could not load '{job.track.display_title}'.",
                likely_cause="Download or transcode of the remote track failed.",
                next_step="Check the network connection and ffmpeg, then retry.",
                detail=job.reason,
            )
            return
        handle: AudioHandle = None
        try:
            handle = self._backend.open(job.path)
            self._backend.play(handle)
        except DecodeError as exc:
            if handle is not None:
                self._backend.release(handle)
            self._fetcher.discard(job)
            self._error = format_user_error(
                what_failed=f"Could not play '{job.track.display_title}'.",
                likely_cause="Audio backend could not open or decode the file.",
                next_step="Verify the file is a supported audio format.",
                detail=str(exc),
            )
            return
        previous = self._session
        self._session = PlaybackSession(handle=handle, job=job, index=index)
        if previous is not None:
            self._release(previous)
        logger.info("Playing index %d: %s", index, job.track.display_title)

    def _check_auto_advance(self) -> None:
        session = self._session
        cursor = self._cursor
        if session is None or cursor is None:
            return
        if session.paused or session.advance_requested:
            return
        # A queued job already names the next track.
        if self._fetch_job is not None:
            return
        length = self._backend.length_ms(session.handle)
        if length <= 0:
            return
        if self._backend.position_ms(session.handle) < length - self._lookahead_ms:
            return
        session.advance_requested = True
        cursor.select(session.index)
        index = cursor.next()
        track = cursor.current
        if index is None or track is None:
            return
        logger.info("Auto-advancing from index %d to %d", session.index, index)
        self._begin_resolve(index, track)

    def _toggle_pause(self) -> None:
        session = self._require_session()
        session.paused = not session.paused
        self._backend.pause(session.handle, session.paused)

    def _seek_relative(self, delta_ms: int) -> None:
        session = self._require_session()
        position = self._backend.position_ms(session.handle) + delta_ms
        length = self._backend.length_ms(session.handle)
        if length > 0:
            position = min(position, length)
        self._backend.seek(session.handle, max(0, position))

    def _stop(self) -> None:
        if self._fetch_job is not None:
            logger.debug("Abandoning fetch job %d", self._fetch_job.job_id)
        self._fetch_job = None
        self._pending_index = None
        session = self._session
        self._session = None
        if session is not None:
            self._release(session)
            self._sampler.reset()

    def _release(self, session: PlaybackSession) -> None:
        self._backend.release(session.handle)
        self._fetcher.discard(session.job)

    def _refresh_transport(self) -> None:
        session = self._session
        if session is None:
            self._position_ms = 0
            self._length_ms = 0
            return
        self._position_ms = self._backend.position_ms(session.handle)
        self._length_ms = self._backend.length_ms(session.handle) or (
            session.track.duration_ms
        )
