"""Environment diagnostics for `muscli --doctor`."""

from __future__ import annotations

import importlib
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from muscli.errors import EnumerationError
from muscli.services.station_catalog import JsonStationCatalog

DoctorStatus = Literal["ok", "missing", "error"]


@dataclass(frozen=True)
class DoctorCheck:
    """One readiness check result."""

    name: str
    status: DoctorStatus
    required: bool
    detail: str
    hint: str | None = None


@dataclass(frozen=True)
class DoctorReport:
    backend: str
    checks: list[DoctorCheck]

    @property
    def exit_code(self) -> int:
        """Return 2 when any required check is not ok."""
        if any(check.required and check.status != "ok" for check in self.checks):
            return 2
        return 0


def run_doctor(
    backend: str, *, music_dir: Path | None = None, stations_path: Path | None = None
) -> DoctorReport:
    """Probe tag readers, the playback runtime, ffmpeg and configured paths."""
    checks = [
        probe_module("mutagen", required=True),
        probe_module("tinytag", required=False),
        probe_module("requests", required=True),
        probe_vlc(required=backend == "vlc"),
        probe_ffmpeg(required=False),
    ]
    if music_dir is not None:
        checks.append(probe_music_dir(music_dir))
    if stations_path is not None:
        checks.append(probe_stations(stations_path))
    return DoctorReport(backend=backend, checks=checks)


def render_report(report: DoctorReport) -> str:
    lines = [f"muscli doctor (backend={report.backend})", ""]
    for check in report.checks:
        req = "required" if check.required else "optional"
        lines.append(
            f"{_STATUS_TOKENS[check.status]} {check.name:<11} [{req}] {check.detail}"
        )
        if check.hint:
            lines.append(f"      hint: {check.hint}")
    lines.append("")
    lines.append("Result: OK" if report.exit_code == 0 else "Result: FAIL")
    return "\n".join(lines)


def probe_module(name: str, *, required: bool) -> DoctorCheck:
    """Check that a Python dependency imports and report its version."""
    try:
        module = importlib.import_module(name)
    except ImportError as exc:
        return DoctorCheck(
            name=name,
            status="missing",
            required=required,
            detail=f"not importable ({exc.__class__.__name__})",
            hint="Reinstall Python dependencies (pip install muscli).",
        )
    version = getattr(module, "__version__", None) or getattr(module, "version", None)
    if isinstance(version, tuple):
        version = ".".join(str(part) for part in version)
    detail = f"importable ({version})" if isinstance(version, str) else "importable"
    return DoctorCheck(name=name, status="ok", required=required, detail=detail)


def probe_vlc(*, required: bool) -> DoctorCheck:
    """Check that python-vlc loads libVLC and can build a media player."""
    hint = "Install VLC/libVLC or run with --backend fake."
    try:
        vlc = importlib.import_module("vlc")
    except (ImportError, OSError) as exc:
        return DoctorCheck(
            name="vlc/libvlc",
            status="missing",
            required=required,
            detail=f"python-vlc import failed ({exc.__class__.__name__})",
            hint=hint,
        )
    try:
        instance = vlc.Instance("--no-video", "--quiet")
        if instance is None:
            raise RuntimeError("libvlc_new returned NULL")
        instance.media_player_new().release()
    except Exception as exc:
        return DoctorCheck(
            name="vlc/libvlc",
            status="error",
            required=required,
            detail=f"libVLC runtime unavailable ({exc.__class__.__name__})",
            hint=hint,
        )
    release = vlc.libvlc_get_version()
    if isinstance(release, bytes):
        release = release.decode("utf-8", errors="replace")
    instance.release()
    return DoctorCheck(
        name="vlc/libvlc",
        status="ok",
        required=required,
        detail=f"libVLC {release or 'detected'}",
    )


def probe_ffmpeg(*, required: bool) -> DoctorCheck:
    """Check the ffmpeg binary used to transcode station tracks."""
    ffmpeg = shutil.which("ffmpeg")
    if ffmpeg is None:
        return DoctorCheck(
            name="ffmpeg",
            status="missing",
            required=required,
            detail="binary not found on PATH",
            hint="Install ffmpeg to play station tracks and non-WAV spectrum.",
        )
    try:
        proc = subprocess.run(
            [ffmpeg, "-version"],
            capture_output=True,
            text=True,
            timeout=2,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        return DoctorCheck(
            name="ffmpeg",
            status="error",
            required=required,
            detail=f"launch failed ({exc.__class__.__name__})",
            hint="Reinstall ffmpeg and verify PATH.",
        )
    if proc.returncode != 0:
        return DoctorCheck(
            name="ffmpeg",
            status="error",
            required=required,
            detail=f"ffmpeg -version failed (exit={proc.returncode})",
            hint="Reinstall ffmpeg and verify PATH.",
        )
    first_line = proc.stdout.strip().splitlines()[0] if proc.stdout else ""
    return DoctorCheck(
        name="ffmpeg",
        status="ok",
        required=required,
        detail=first_line or f"binary found at {ffmpeg}",
    )


def probe_music_dir(path: Path) -> DoctorCheck:
    if not path.is_dir():
        return DoctorCheck(
            name="music-dir",
            status="missing",
            required=False,
            detail=f"{path} is not a directory",
            hint="Pass --music-dir or set music_dir in state.json.",
        )
    return DoctorCheck(name="music-dir", status="ok", required=False, detail=str(path))


def probe_stations(path: Path) -> DoctorCheck:
    try:
        stations = JsonStationCatalog(path).list_stations()
    except EnumerationError as exc:
        return DoctorCheck(
            name="stations",
            status="missing" if not path.exists() else "error",
            required=False,
            detail=str(exc),
            hint="Create the station file or pass --stations.",
        )
    return DoctorCheck(
        name="stations",
        status="ok",
        required=False,
        detail=f"{len(stations)} station(s) in {path}",
    )


_STATUS_TOKENS: dict[DoctorStatus, str] = {
    "ok": "[OK]",
    "missing": "[MISS]",
    "error": "[ERR]",
}
