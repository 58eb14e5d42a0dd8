"""Resolution of tracks into locally playable files.

Local tracks resolve synchronously to their own path. Remote tracks are
downloaded with `requests` into a scratch directory owned by the fetcher and
transcoded to WAV by ffmpeg on a worker thread; every job transition is
reported through the listener, which the event loop turns into an inbox
message for the engine thread.
"""

from __future__ import annotations

import itertools
import logging
import shutil
import subprocess
import tempfile
import threading
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Literal, Protocol

import requests

from muscli import __version__
from muscli.errors import DiskWriteError, FetchError, NetworkError, TranscodeError
from muscli.services.tracks import Track
from muscli.utils.async_utils import submit_blocking

logger = logging.getLogger(__name__)

FetchState = Literal["queued", "running", "done", "failed"]
DOWNLOAD_CHUNK_BYTES = 64 * 1024
DOWNLOAD_TIMEOUT_S = 30
TRANSCODE_TIMEOUT_S = 300


@dataclass(frozen=True)
class FetchJob:
    """Snapshot of one resolution request; each transition is a new value."""

    job_id: int
    track: Track
    state: FetchState = "queued"
    path: str | None = None
    reason: str | None = None
    artifacts: tuple[str, ...] = ()

    @property
    def finished(self) -> bool:
        return self.state in {"done", "failed"}


FetchListener = Callable[[FetchJob], None]
Submitter = Callable[..., Any]


class Downloader(Protocol):
    def fetch(self, url: str, dest_dir: Path) -> Path:
        """Download `url` into `dest_dir`; raise NetworkError/DiskWriteError."""
        ...


class Transcoder(Protocol):
    def transcode(self, input_path: Path) -> Path:
        """Convert `input_path` into a backend-playable file; TranscodeError."""
        ...


class HttpDownloader:
    """Streams a remote resource to a uniquely named scratch file."""

    def __init__(
        self,
        *,
        session: requests.Session | None = None,
        timeout_s: float = DOWNLOAD_TIMEOUT_S,
    ) -> None:
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": f"muscli/{__version__}"})
        self.timeout_s = timeout_s

    def fetch(self, url: str, dest_dir: Path) -> Path:
        try:
            handle = tempfile.NamedTemporaryFile(
                dir=dest_dir, prefix="download-", suffix=".part", delete=False
            )
        except OSError as exc:
            raise DiskWriteError(f"Cannot create download file: {exc}") from exc
        target = Path(handle.name)
        try:
            with handle:
                with self.session.get(url, stream=True, timeout=self.timeout_s) as resp:
                    resp.raise_for_status()
                    for chunk in resp.iter_content(chunk_size=DOWNLOAD_CHUNK_BYTES):
                        if chunk:
                            handle.write(chunk)
        except requests.RequestException as exc:
            target.unlink(missing_ok=True)
            raise NetworkError(f"Download failed for {url}: {exc}") from exc
        except OSError as exc:
            target.unlink(missing_ok=True)
            raise DiskWriteError(f"Cannot write download for {url}: {exc}") from exc
        return target


class FfmpegTranscoder:
    """Runs ffmpeg to turn any downloaded container into 16-bit stereo WAV."""

    def __init__(self, *, ffmpeg_bin: str | None = None) -> None:
        self._ffmpeg_bin = ffmpeg_bin

    def transcode(self, input_path: Path) -> Path:
        ffmpeg = self._ffmpeg_bin or shutil.which("ffmpeg")
        if ffmpeg is None:
            raise TranscodeError("ffmpeg binary not found on PATH")
        target = input_path.with_name(f"{input_path.stem}.wav")
        cmd = [
            ffmpeg,
            "-y",
            "-v",
            "error",
            "-i",
            str(input_path),
            "-vn",
            "-acodec",
            "pcm_s16le",
            "-ar",
            "44100",
            "-ac",
            "2",
            str(target),
        ]
        try:
            proc = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=TRANSCODE_TIMEOUT_S,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            target.unlink(missing_ok=True)
            raise TranscodeError(f"ffmpeg could not be run: {exc}") from exc
        if proc.returncode != 0:
            target.unlink(missing_ok=True)
            first_line = proc.stderr.strip().splitlines()[0] if proc.stderr else ""
            detail = f": {first_line}" if first_line else ""
            raise TranscodeError(f"ffmpeg exited with {proc.returncode}{detail}")
        return target


class TrackFetcher:
    """Hands out fetch jobs and owns every temporary file they create."""

    def __init__(
        self,
        *,
        downloader: Downloader | None = None,
        transcoder: Transcoder | None = None,
        scratch_root: Path | None = None,
        submit: Submitter = submit_blocking,
        listener: FetchListener | None = None,
    ) -> None:
        self._downloader = downloader or HttpDownloader()
        self._transcoder = transcoder or FfmpegTranscoder()
        self._scratch_root = scratch_root
        self._submit = submit
        self._listener = listener
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._scratch_dir: Path | None = None
        self._artifacts: set[str] = set()

    def set_listener(self, listener: FetchListener | None) -> None:
        self._listener = listener

    def resolve(self, track: Track) -> FetchJob:
        job = FetchJob(job_id=next(self._ids), track=track)
        if not track.remote:
            return replace(job, state="done", path=track.reference)
        scratch = self._ensure_scratch_dir()
        logger.info(
            "Queued fetch job %d for %s",
            job.job_id,
            track.reference,
            extra={"job_id": job.job_id},
        )
        self._submit(self._run, job, scratch)
        return job

    def discard(self, job: FetchJob) -> None:
        """Delete the artifacts a job left behind; missing files are ignored."""
        for artifact in job.artifacts:
            self._delete(artifact)

    def cleanup(self) -> None:
        """Delete every artifact and the scratch directory itself."""
        with self._lock:
            artifacts = list(self._artifacts)
            self._artifacts.clear()
            scratch = self._scratch_dir
            self._scratch_dir = None
        for artifact in artifacts:
            with suppress(OSError):
                Path(artifact).unlink(missing_ok=True)
        if scratch is not None:
            shutil.rmtree(scratch, ignore_errors=True)
            logger.debug("Removed fetch scratch directory %s", scratch)

    @property
    def artifacts(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._artifacts)

    def _ensure_scratch_dir(self) -> Path:
        with self._lock:
            if self._scratch_dir is None or not self._scratch_dir.exists():
                try:
                    if self._scratch_root is not None:
                        self._scratch_root.mkdir(parents=True, exist_ok=True)
                    self._scratch_dir = Path(
                        tempfile.mkdtemp(prefix="muscli-fetch-", dir=self._scratch_root)
                    )
                except OSError as exc:
                    raise DiskWriteError(
                        f"Cannot create fetch scratch directory: {exc}"
                    ) from exc
            return self._scratch_dir

    def _run(self, job: FetchJob, scratch: Path) -> None:
        self._notify(replace(job, state="running"))
        download: Path | None = None
        try:
            download = self._downloader.fetch(job.track.reference, scratch)
            self._track(download)
            output = self._transcoder.transcode(download)
            self._track(output)
        except FetchError as exc:
            logger.warning(
                "Fetch job %d failed: %s", job.job_id, exc, extra={"job_id": job.job_id}
            )
            self._notify(replace(job, state="failed", reason=str(exc)))
            return
        except Exception as exc:  # pragma: no cover - worker safety net
            logger.exception("Fetch job %d crashed: %s", job.job_id, exc)
            self._notify(replace(job, state="failed", reason=str(exc)))
            return
        finally:
            if download is not None:
                self._delete(str(download))
        logger.info(
            "Fetch job %d ready at %s", job.job_id, output, extra={"job_id": job.job_id}
        )
        self._notify(
            replace(job, state="done", path=str(output), artifacts=(str(output),))
        )

    def _track(self, path: Path) -> None:
        with self._lock:
            self._artifacts.add(str(path))

    def _delete(self, artifact: str) -> None:
        with self._lock:
            self._artifacts.discard(artifact)
        with suppress(OSError):
            Path(artifact).unlink(missing_ok=True)

    def _notify(self, job: FetchJob) -> None:
        listener = self._listener
        if listener is None:
            logger.debug("Dropping fetch update for job %d (no listener)", job.job_id)
            return
        listener(job)
