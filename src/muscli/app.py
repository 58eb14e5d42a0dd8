"""Textual TUI app for muscli."""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence
from dataclasses import replace
from pathlib import Path

from textual.app import App, ComposeResult
from textual.containers import Horizontal, Vertical
from textual.widgets import Footer, Header

from . import __version__
from .doctor import render_report, run_doctor
from .errors import BackendUnavailableError, format_user_error
from .events import SnapshotPublished
from .logging_utils import setup_logging
from .paths import cache_dir, log_dir, state_path, stations_path
from .runtime_config import (
    PLAYBACK_BACKENDS,
    SEEK_STEP_MS,
    normalize_tick_ms,
    resolve_backend_name,
    resolve_log_level,
)
from .services.audio_backend import AudioBackend
from .services.commands import (
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
from .services.engine_loop import EngineLoop
from .services.fake_backend import FakeAudioBackend
from .services.local_source import LocalSource
from .services.playback_engine import EngineSnapshot, PlaybackEngine
from .services.sources import SourceBackend
from .services.station_catalog import JsonStationCatalog
from .services.streaming_source import StreamingSource
from .services.track_fetcher import TrackFetcher
from .services.vlc_backend import VlcAudioBackend
from .state_store import AppState, load_state_with_notice, save_state
from .ui.modals.error import ErrorModal
from .ui.player_view import (
    BrowseLine,
    NowPlaying,
    PlaylistView,
    SourceTabs,
    SpectrumView,
    StatusLine,
    TransportGauge,
)
from .utils.async_utils import run_blocking
from .version import build_help_epilog

logger = logging.getLogger(__name__)


class MuscliApp(App):
    TITLE = "muscli"
    CSS = """
    Screen {
        layout: vertical;
    }

    #source-tabs, #browse-line, #status-line {
        height: 1;
        padding: 0 1;
    }

    #main {
        height: 1fr;
    }

    #playlist-view {
        width: 1fr;
        min-width: 40%;
        border: solid white;
        overflow: hidden;
    }

    #right-pane {
        width: 1fr;
    }

    #now-playing {
        height: 6;
        border: solid white;
        padding: 0 1;
    }

    #spectrum-view {
        height: 1fr;
        border: solid white;
        overflow: hidden;
    }

    #transport-gauge {
        height: 1;
        padding: 0 1;
    }

    ModalScreen {
        align: center middle;
    }

    #modal-body {
        padding: 1 2;
        border: solid white;
        width: 60%;
        height: auto;
    }
    """
    BINDINGS = [
        ("up", "select_previous", "Up"),
        ("down", "select_next", "Down"),
        ("enter", "activate", "Play"),
        ("space", "toggle_pause", "Pause"),
        ("s", "stop", "Stop"),
        ("z", "seek_back", "Seek -10s"),
        ("x", "seek_forward", "Seek +10s"),
        ("left", "previous_source", "Prev source"),
        ("right", "next_source", "Next source"),
        ("[", "previous_browsable", "Prev dir"),
        ("]", "next_browsable", "Next dir"),
        ("q", "quit", "Quit"),
    ]

    def __init__(
        self,
        *,
        backend: AudioBackend,
        sources: Sequence[SourceBackend],
        fetcher: TrackFetcher | None = None,
        tick_ms: int | None = None,
        state: AppState | None = None,
        state_file: Path | None = None,
        startup_notice: str | None = None,
    ) -> None:
        super().__init__()
        self.state = state or AppState()
        self.backend = backend
        self.sources = list(sources)
        self.fetcher = fetcher or TrackFetcher()
        self.engine = PlaybackEngine(
            backend=backend, fetcher=self.fetcher, sources=self.sources
        )
        self.engine_loop = EngineLoop(
            self.engine,
            fetcher=self.fetcher,
            emit_event=self._handle_engine_event,
            tick_ms=tick_ms if tick_ms is not None else self.state.tick_ms,
        )
        self.snapshot = EngineSnapshot()
        self._state_file = state_file
        self._startup_notice = startup_notice
        self._tabs = SourceTabs(id="source-tabs")
        self._browse = BrowseLine(id="browse-line")
        self._playlist = PlaylistView(id="playlist-view")
        self._now_playing = NowPlaying(id="now-playing")
        self._spectrum = SpectrumView(id="spectrum-view")
        self._gauge = TransportGauge(id="transport-gauge")
        self._status = StatusLine(id="status-line")

    def compose(self) -> ComposeResult:
        yield Header()
        yield self._tabs
        yield self._browse
        yield Horizontal(
            self._playlist,
            Vertical(self._now_playing, self._spectrum, id="right-pane"),
            id="main",
        )
        yield self._gauge
        yield self._status
        yield Footer()

    async def on_mount(self) -> None:
        await self.engine_loop.start()
        self.engine_loop.submit(SwitchSource(self._initial_source_id()))
        if self._startup_notice:
            await self.push_screen(
                ErrorModal(self._startup_notice, heading="Settings reset")
            )

    async def on_unmount(self) -> None:
        await self.engine_loop.shutdown()
        self.backend.shutdown()
        if self._state_file is not None:
            if self.snapshot.source_id is not None:
                self.state = replace(self.state, last_source_id=self.snapshot.source_id)
            try:
                await run_blocking(save_state, self._state_file, self.state)
            except OSError as exc:
                logger.warning("Failed to persist state: %s", exc)

    async def _handle_engine_event(self, event: object) -> None:
        if not isinstance(event, SnapshotPublished):
            return
        self.snapshot = event.snapshot
        self._render_snapshot(event.snapshot)

    def _render_snapshot(self, snapshot: EngineSnapshot) -> None:
        for view in (
            self._tabs,
            self._browse,
            self._playlist,
            self._now_playing,
            self._spectrum,
            self._gauge,
            self._status,
        ):
            view.update_snapshot(snapshot)

    def _initial_source_id(self) -> str:
        known = [source.source_id for source in self.sources]
        if self.state.last_source_id in known:
            return self.state.last_source_id
        return known[0]

    def _submit(self, command: EngineCommand) -> None:
        self.engine_loop.submit(command)

    def action_select_previous(self) -> None:
        self._submit(SelectPrevious())

    def action_select_next(self) -> None:
        self._submit(SelectNext())

    def action_activate(self) -> None:
        self._submit(ActivateSelected())

    def action_toggle_pause(self) -> None:
        self._submit(TogglePause())

    def action_stop(self) -> None:
        self._submit(Stop())

    def action_seek_back(self) -> None:
        self._submit(SeekRelative(-SEEK_STEP_MS))

    def action_seek_forward(self) -> None:
        self._submit(SeekRelative(SEEK_STEP_MS))

    def action_previous_source(self) -> None:
        self._cycle_source(-1)

    def action_next_source(self) -> None:
        self._cycle_source(1)

    def action_previous_browsable(self) -> None:
        self._cycle_browsable(-1)

    def action_next_browsable(self) -> None:
        self._cycle_browsable(1)

    async def action_quit(self) -> None:
        self.exit()

    def _cycle_source(self, step: int) -> None:
        ids = [source.source_id for source in self.sources]
        current = self.snapshot.source_id
        position = ids.index(current) if current in ids else 0
        self._submit(SwitchSource(ids[(position + step) % len(ids)]))

    def _cycle_browsable(self, step: int) -> None:
        count = len(self.snapshot.browse_labels)
        if count == 0:
            return
        current = self.snapshot.browse_index
        position = 0 if current is None else (current + step) % count
        self._submit(OpenBrowsable(position))


def build_backend(name: str) -> AudioBackend:
    logger.info("Playback backend selected: %s", name)
    if name == "vlc":
        return VlcAudioBackend()
    return FakeAudioBackend()


def build_sources(music_dir: Path, stations_file: Path) -> list[SourceBackend]:
    return [
        LocalSource(music_dir),
        StreamingSource(JsonStationCatalog(stations_file)),
    ]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="muscli",
        description="Terminal music player for local files and radio stations.",
        epilog=build_help_epilog(),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument(
        "--quiet", action="store_true", help="Only show warnings and errors"
    )
    parser.add_argument("--log-file", help="Write logs to a file path")
    parser.add_argument(
        "--backend",
        choices=PLAYBACK_BACKENDS,
        help="Playback backend to use (fake or vlc).",
    )
    parser.add_argument("--music-dir", help="Directory to browse as the local source")
    parser.add_argument("--stations", help="Path to the station catalog JSON file")
    parser.add_argument(
        "--tick-ms", type=int, help="Engine tick interval in milliseconds"
    )
    parser.add_argument(
        "--doctor",
        action="store_true",
        help="Check runtime dependencies and configured paths, then exit.",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        state_file = state_path()
        state, notice = load_state_with_notice(state_file)
        level = resolve_log_level(
            verbose=args.verbose, quiet=args.quiet, default=state.log_level
        )
        setup_logging(
            log_dir=log_dir(),
            level=level,
            log_file=Path(args.log_file) if args.log_file else None,
            console=False,
        )
        backend_name = resolve_backend_name(args.backend, state.playback_backend)
        music_dir = Path(
            args.music_dir or state.music_dir or Path.home() / "Music"
        ).expanduser()
        stations_file = Path(
            args.stations or state.stations_path or stations_path()
        ).expanduser()
        tick_ms = normalize_tick_ms(
            args.tick_ms if args.tick_ms is not None else state.tick_ms
        )
        if args.doctor:
            report = run_doctor(
                backend_name, music_dir=music_dir, stations_path=stations_file
            )
            print(render_report(report))
            return report.exit_code
        state = replace(
            state,
            music_dir=str(music_dir),
            stations_path=str(stations_file),
            playback_backend=backend_name,
            tick_ms=tick_ms,
        )
        backend = build_backend(backend_name)
        backend.start()
        logger.info("Starting muscli TUI")
        MuscliApp(
            backend=backend,
            sources=build_sources(music_dir, stations_file),
            fetcher=TrackFetcher(scratch_root=cache_dir() / "fetch"),
            tick_ms=tick_ms,
            state=state,
            state_file=state_file,
            startup_notice=notice,
        ).run()
        return 0
    except BackendUnavailableError as exc:
        logger.exception("Audio backend failed to start: %s", exc)
        print(
            format_user_error(
                what_failed="Startup failed: audio backend unavailable.",
                likely_cause="VLC/libVLC runtime is not installed or not found.",
                next_step="Install VLC, run `muscli --doctor`, or use --backend fake.",
                detail=str(exc),
            ),
            file=sys.stderr,
        )
        return 1
    except Exception as exc:  # pragma: no cover - top-level safety net
        logger.exception("Fatal startup error: %s", exc)
        print(
            "Startup failed. Verify backend/state/log paths and re-run with --verbose.",
            file=sys.stderr,
        )
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
