"""Tests for PlaybackEngine state transitions over fake backends."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import pytest

from muscli.errors import EnumerationError, NetworkError
from muscli.services.commands import (
    ActivateSelected,
    OpenBrowsable,
    SeekRelative,
    SelectNext,
    SelectPrevious,
    Stop,
    SwitchSource,
    TogglePause,
)
from muscli.services.fake_backend import FakeAudioBackend
from muscli.services.playback_engine import PlaybackEngine
from muscli.services.playlist_cursor import PlaylistCursor
from muscli.services.sources import BrowseEntry, BrowseListing
from muscli.services.station_catalog import Station, StaticStationCatalog
from muscli.services.streaming_source import StreamingSource
from muscli.services.track_fetcher import TrackFetcher
from muscli.services.tracks import Track

LENGTH_MS = 5000


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: int) -> None:
        self.now += ms / 1000.0


class ManualSubmit:
    """Collects fetch workers so tests decide when each one runs."""

    def __init__(self) -> None:
        self.calls: list[tuple[object, tuple[object, ...]]] = []

    def __call__(self, func, *args):
        self.calls.append((func, args))

    def run(self, index: int = 0) -> None:
        func, args = self.calls.pop(index)
        func(*args)  # type: ignore[operator]

    def run_all(self) -> None:
        while self.calls:
            self.run(0)


class FileDownloader:
    def __init__(self, *, fail_urls: set[str] | None = None) -> None:
        self.fail_urls = fail_urls or set()
        self.count = 0

    def fetch(self, url: str, dest_dir: Path) -> Path:
        if url in self.fail_urls:
            raise NetworkError(f"connection refused for {url}")
        self.count += 1
        target = dest_dir / f"download-{self.count}.part"
        target.write_bytes(b"encoded audio")
        return target


class WavTranscoder:
    def transcode(self, input_path: Path) -> Path:
        target = input_path.with_suffix(".wav")
        target.write_bytes(b"RIFF")
        return target


class ListSource:
    display_name = "Local"

    def __init__(self, tracks: list[Track], *, source_id: str = "local") -> None:
        self.source_id = source_id
        self.tracks = tracks
        self.opened = 0

    def list_browsable(self) -> BrowseListing:
        return BrowseListing(
            entries=(
                BrowseEntry(key="root", label="music"),
                BrowseEntry(key="sub", label="sub/"),
            )
        )

    def open_playlist(self, entry: BrowseEntry) -> PlaylistCursor:
        self.opened += 1
        return PlaylistCursor(self.tracks, name=entry.label)


@dataclass
class Harness:
    engine: PlaybackEngine
    backend: FakeAudioBackend
    fetcher: TrackFetcher
    submit: ManualSubmit
    clock: FakeClock
    local_tracks: list[Track]
    station_tracks: list[Track]
    scratch: Path


def _local_tracks() -> list[Track]:
    return [
        Track(title=name.upper(), reference=f"/music/{name}.mp3")
        for name in ("a", "b", "c")
    ]


def _station_tracks(count: int = 3) -> list[Track]:
    return [
        Track(
            title=f"Song {index}",
            reference=f"https://radio.example/jazz/{index}.mp3",
            artist="Band",
            remote=True,
        )
        for index in range(count)
    ]


def _build(
    tmp_path: Path,
    *,
    fail_paths: tuple[str, ...] = (),
    downloader: FileDownloader | None = None,
    page_size: int = 2,
) -> Harness:
    clock = FakeClock()
    backend = FakeAudioBackend(
        default_length_ms=LENGTH_MS,
        fail_paths=fail_paths,
        clock=clock,
        keep_released=True,
    )
    submit = ManualSubmit()
    scratch = tmp_path / "scratch"
    fetcher = TrackFetcher(
        downloader=downloader or FileDownloader(),
        transcoder=WavTranscoder(),
        scratch_root=scratch,
        submit=submit,
    )
    local_tracks = _local_tracks()
    station_tracks = _station_tracks()
    catalog = StaticStationCatalog(
        {Station("jazz", "Jazz"): station_tracks}, page_size=page_size
    )
    engine = PlaybackEngine(
        backend=backend,
        fetcher=fetcher,
        sources=[ListSource(local_tracks), StreamingSource(catalog)],
    )
    fetcher.set_listener(engine.on_fetch_update)
    return Harness(
        engine=engine,
        backend=backend,
        fetcher=fetcher,
        submit=submit,
        clock=clock,
        local_tracks=local_tracks,
        station_tracks=station_tracks,
        scratch=scratch,
    )


def _local(tmp_path: Path, **kwargs) -> Harness:
    harness = _build(tmp_path, **kwargs)
    harness.engine.handle_command(SwitchSource("local"))
    return harness


def _stations(tmp_path: Path, **kwargs) -> Harness:
    harness = _build(tmp_path, **kwargs)
    harness.engine.handle_command(SwitchSource("stations"))
    return harness


class ManualOffload:
    """Holds background listings until a test applies them."""

    def __init__(self) -> None:
        self.pending: list[tuple[object, object]] = []

    def __call__(self, work, done) -> None:
        self.pending.append((work, done))

    def run(self, index: int = 0) -> None:
        work, done = self.pending.pop(index)
        done(work())  # type: ignore[operator]


def _play_remote_first(harness: Harness) -> None:
    harness.engine.handle_command(SelectNext())
    harness.engine.handle_command(ActivateSelected())
    harness.submit.run_all()
    harness.engine.tick()


def test_switch_source_opens_first_entry_without_selection(tmp_path: Path) -> None:
    harness = _local(tmp_path)
    snap = harness.engine.snapshot()
    assert snap.source_id == "local"
    assert snap.browse_index == 0
    assert snap.titles == ("A", "B", "C")
    assert snap.selected_index is None
    assert snap.phase == "idle"
    assert snap.sources == (("local", "Local"), ("stations", "Stations"))


def test_select_next_wraps_and_previous_from_none_selects_first(
    tmp_path: Path,
) -> None:
    engine = _local(tmp_path).engine
    engine.handle_command(SelectPrevious())
    assert engine.snapshot().selected_index == 0
    seen = []
    for _ in range(3):
        engine.handle_command(SelectNext())
        seen.append(engine.snapshot().selected_index)
    assert seen == [1, 2, 0]
    engine.handle_command(SelectPrevious())
    assert engine.snapshot().selected_index == 2
    assert engine.snapshot().phase == "selecting"


def test_activate_local_track_plays_immediately(tmp_path: Path) -> None:
    harness = _local(tmp_path)
    harness.engine.handle_command(SelectNext())
    harness.engine.handle_command(ActivateSelected())

    snap = harness.engine.snapshot()
    assert snap.phase == "playing"
    assert snap.playing_index == 0
    assert snap.now_title == "A"
    assert harness.backend.handles[0].path == "/music/a.mp3"
    assert harness.submit.calls == []


def test_activate_without_selection_is_a_noop_notice(tmp_path: Path) -> None:
    engine = _local(tmp_path).engine
    engine.handle_command(ActivateSelected())
    snap = engine.snapshot()
    assert snap.phase == "idle"
    assert snap.notice == "No track selected."
    assert snap.error is None


def test_activating_the_playing_track_toggles_pause(tmp_path: Path) -> None:
    harness = _local(tmp_path)
    engine = harness.engine
    engine.handle_command(SelectNext())
    engine.handle_command(ActivateSelected())
    harness.clock.advance_ms(1200)

    engine.handle_command(ActivateSelected())
    snap = engine.snapshot()
    assert snap.phase == "paused"
    assert snap.elapsed_ms == 1200
    harness.clock.advance_ms(3000)
    engine.tick()
    assert engine.snapshot().elapsed_ms == 1200
    assert len(harness.backend.handles) == 1


def test_toggle_pause_twice_restores_playing(tmp_path: Path) -> None:
    harness = _local(tmp_path)
    engine = harness.engine
    engine.handle_command(SelectNext())
    engine.handle_command(ActivateSelected())
    before = engine.snapshot()

    engine.handle_command(TogglePause())
    engine.handle_command(TogglePause())
    after = engine.snapshot()

    assert after.phase == before.phase == "playing"
    assert after.playing_index == before.playing_index
    assert after.paused is False
    assert harness.backend.handles[0].paused is False


def test_activating_another_track_replaces_the_session(tmp_path: Path) -> None:
    harness = _local(tmp_path)
    engine = harness.engine
    engine.handle_command(SelectNext())
    engine.handle_command(ActivateSelected())
    engine.handle_command(SelectNext())
    engine.handle_command(ActivateSelected())

    first, second = harness.backend.handles
    assert first.released is True
    assert second.path == "/music/b.mp3"
    assert engine.snapshot().playing_index == 1


def test_auto_advance_from_last_track_wraps_to_first(tmp_path: Path) -> None:
    harness = _local(tmp_path)
    engine = harness.engine
    engine.handle_command(SelectPrevious())
    engine.handle_command(SelectPrevious())
    engine.handle_command(ActivateSelected())
    assert engine.snapshot().playing_index == 2

    harness.clock.advance_ms(LENGTH_MS - 1000)
    engine.tick()

    snap = engine.snapshot()
    assert snap.playing_index == 0
    assert snap.selected_index == 0
    assert snap.phase == "playing"
    assert harness.backend.handles[0].released is True
    assert harness.backend.handles[1].path == "/music/a.mp3"


def test_auto_advance_waits_for_lookahead_window(tmp_path: Path) -> None:
    harness = _local(tmp_path)
    engine = harness.engine
    engine.handle_command(SelectNext())
    engine.handle_command(ActivateSelected())

    harness.clock.advance_ms(LENGTH_MS - 1001)
    engine.tick()
    assert engine.snapshot().playing_index == 0
    assert len(harness.backend.handles) == 1


def test_paused_session_never_auto_advances(tmp_path: Path) -> None:
    harness = _local(tmp_path)
    engine = harness.engine
    engine.handle_command(SelectNext())
    engine.handle_command(ActivateSelected())
    harness.clock.advance_ms(LENGTH_MS - 500)
    engine.handle_command(TogglePause())

    harness.clock.advance_ms(60_000)
    engine.tick()

    assert engine.snapshot().playing_index == 0
    assert engine.snapshot().phase == "paused"


def test_auto_advance_follows_playing_index_not_selection(tmp_path: Path) -> None:
    harness = _local(tmp_path)
    engine = harness.engine
    engine.handle_command(SelectNext())
    engine.handle_command(ActivateSelected())
    engine.handle_command(SelectNext())
    engine.handle_command(SelectNext())

    harness.clock.advance_ms(LENGTH_MS)
    engine.tick()

    assert engine.snapshot().playing_index == 1


def test_seek_relative_clamps_to_track_bounds(tmp_path: Path) -> None:
    harness = _local(tmp_path)
    engine = harness.engine
    engine.handle_command(SelectNext())
    engine.handle_command(ActivateSelected())
    harness.clock.advance_ms(2000)

    engine.handle_command(SeekRelative(-10_000))
    assert engine.snapshot().elapsed_ms == 0

    engine.handle_command(SeekRelative(10_000))
    assert engine.snapshot().elapsed_ms == LENGTH_MS


def test_seek_without_session_is_a_noop(tmp_path: Path) -> None:
    engine = _local(tmp_path).engine
    engine.handle_command(SeekRelative(10_000))
    engine.handle_command(TogglePause())
    snap = engine.snapshot()
    assert snap.notice == "Nothing is playing."
    assert snap.error is None
    assert snap.phase == "idle"


def test_stop_releases_session_and_keeps_selection(tmp_path: Path) -> None:
    harness = _local(tmp_path)
    engine = harness.engine
    engine.handle_command(SelectNext())
    engine.handle_command(ActivateSelected())
    engine.handle_command(Stop())

    snap = engine.snapshot()
    assert snap.phase == "selecting"
    assert snap.selected_index == 0
    assert snap.playing_index is None
    assert snap.elapsed_ms == 0
    assert harness.backend.handles[0].released is True


def test_decode_error_reports_and_keeps_current_session(tmp_path: Path) -> None:
    harness = _local(tmp_path, fail_paths=("/music/b.mp3",))
    engine = harness.engine
    engine.handle_command(SelectNext())
    engine.handle_command(ActivateSelected())
    engine.handle_command(SelectNext())
    engine.handle_command(ActivateSelected())

    snap = engine.snapshot()
    assert snap.playing_index == 0
    assert snap.phase == "playing"
    assert snap.error is not None
    assert "Could not play 'B'." in snap.error
    assert harness.backend.handles[0].released is False


def test_spectrum_is_flat_without_playback(tmp_path: Path) -> None:
    harness = _local(tmp_path)
    harness.engine.tick()
    frame = harness.engine.snapshot().spectrum
    assert len(frame) == 70
    assert set(frame) == {2.0}

    harness.engine.handle_command(SelectNext())
    harness.engine.handle_command(ActivateSelected())
    harness.clock.advance_ms(300)
    harness.engine.tick()
    assert any(value != 2.0 for value in harness.engine.snapshot().spectrum)


def test_snapshot_is_read_only(tmp_path: Path) -> None:
    harness = _local(tmp_path)
    engine = harness.engine
    engine.handle_command(SelectNext())
    first = engine.snapshot()
    second = engine.snapshot()
    assert first == second
    assert engine.cursor is not None
    assert engine.cursor.index == 0


def test_open_browsable_stops_playback_and_loads_entry(tmp_path: Path) -> None:
    harness = _local(tmp_path)
    engine = harness.engine
    engine.handle_command(SelectNext())
    engine.handle_command(ActivateSelected())

    engine.handle_command(OpenBrowsable(1))

    snap = engine.snapshot()
    assert snap.browse_index == 1
    assert snap.playlist_name == "sub/"
    assert snap.phase == "idle"
    assert harness.backend.handles[0].released is True

    engine.handle_command(OpenBrowsable(9))
    assert engine.snapshot().notice == "No browsable entry at 9."


def test_switch_to_unknown_source_reports_error(tmp_path: Path) -> None:
    engine = _local(tmp_path).engine
    engine.handle_command(SwitchSource("spotify"))
    snap = engine.snapshot()
    assert snap.error == "Unknown source: spotify"
    assert snap.source_id == "local"


def test_station_playlist_extends_on_first_selection(tmp_path: Path) -> None:
    engine = _stations(tmp_path).engine
    snap = engine.snapshot()
    assert snap.browse_labels == ("Jazz",)
    assert snap.titles == ()

    engine.handle_command(SelectNext())
    snap = engine.snapshot()
    assert snap.selected_index == 0
    assert snap.titles == ("Song 0", "Song 1")


def test_remote_track_resolves_in_background_then_plays(tmp_path: Path) -> None:
    harness = _stations(tmp_path)
    engine = harness.engine
    engine.handle_command(SelectNext())
    engine.handle_command(ActivateSelected())

    snap = engine.snapshot()
    assert snap.phase == "resolving"
    assert snap.pending_index == 0
    assert harness.backend.handles == []
    assert len(harness.submit.calls) == 1

    harness.submit.run_all()
    assert engine.snapshot().phase == "resolving"
    engine.tick()

    snap = engine.snapshot()
    assert snap.phase == "playing"
    assert snap.playing_index == 0
    assert snap.pending_index is None
    assert snap.now_artist == "Band"
    played = Path(harness.backend.handles[0].path)
    assert played.suffix == ".wav"
    assert played.exists()
    assert not list(played.parent.glob("*.part"))


def test_activating_a_resolving_track_again_does_not_refetch(tmp_path: Path) -> None:
    harness = _stations(tmp_path)
    harness.engine.handle_command(SelectNext())
    harness.engine.handle_command(ActivateSelected())
    harness.engine.handle_command(ActivateSelected())
    assert len(harness.submit.calls) == 1


def test_stale_fetch_result_is_discarded_and_deleted(tmp_path: Path) -> None:
    harness = _stations(tmp_path)
    engine = harness.engine
    engine.handle_command(SelectNext())
    engine.handle_command(ActivateSelected())
    engine.handle_command(SelectNext())
    engine.handle_command(ActivateSelected())
    assert len(harness.submit.calls) == 2

    harness.submit.run(0)
    stale = set(harness.fetcher.artifacts)
    assert len(stale) == 1
    engine.tick()

    snap = engine.snapshot()
    assert snap.phase == "resolving"
    assert snap.pending_index == 1
    assert harness.backend.handles == []
    assert all(not Path(path).exists() for path in stale)

    harness.submit.run(0)
    engine.tick()
    snap = engine.snapshot()
    assert snap.playing_index == 1
    assert snap.now_title == "Song 1"


def test_reselecting_original_track_accepts_its_late_result(tmp_path: Path) -> None:
    harness = _stations(tmp_path)
    engine = harness.engine
    engine.handle_command(SelectNext())
    engine.handle_command(ActivateSelected())
    engine.handle_command(SelectNext())
    engine.handle_command(ActivateSelected())
    engine.handle_command(SelectPrevious())
    engine.handle_command(ActivateSelected())

    harness.submit.run(0)
    engine.tick()
    assert engine.snapshot().playing_index == 0

    harness.submit.run_all()
    engine.tick()
    snap = engine.snapshot()
    assert snap.playing_index == 0
    assert len(harness.backend.handles) == 1
    assert harness.fetcher.artifacts == frozenset({harness.backend.handles[0].path})


def test_fetch_failure_surfaces_error_and_keeps_selection(tmp_path: Path) -> None:
    downloader = FileDownloader(fail_urls={"https://radio.example/jazz/0.mp3"})
    harness = _stations(tmp_path, downloader=downloader)
    engine = harness.engine
    engine.handle_command(SelectNext())
    engine.handle_command(ActivateSelected())
    harness.submit.run_all()
    engine.tick()

    snap = engine.snapshot()
    assert snap.phase == "selecting"
    assert snap.selected_index == 0
    assert snap.pending_index is None
    assert snap.error is not None
    assert snap.error.startswith("Could not load 'Song 0'.")
    assert "connection refused" in snap.error
    engine.tick()
    assert harness.submit.calls == []


def test_remote_auto_advance_keeps_old_session_until_ready(tmp_path: Path) -> None:
    harness = _stations(tmp_path)
    engine = harness.engine
    _play_remote_first(harness)
    first = harness.backend.handles[0]

    harness.clock.advance_ms(LENGTH_MS - 900)
    engine.tick()
    engine.tick()

    snap = engine.snapshot()
    assert len(harness.submit.calls) == 1
    assert snap.phase == "resolving"
    assert snap.playing_index == 0
    assert snap.pending_index == 1
    assert first.released is False

    harness.submit.run_all()
    engine.tick()
    snap = engine.snapshot()
    assert snap.playing_index == 1
    assert snap.phase == "playing"
    assert first.released is True
    assert not Path(first.path).exists()


def test_switch_source_deletes_temporary_files(tmp_path: Path) -> None:
    harness = _stations(tmp_path)
    _play_remote_first(harness)
    assert harness.fetcher.artifacts
    scratch_dirs = list(harness.scratch.iterdir())
    assert scratch_dirs

    harness.engine.handle_command(SwitchSource("local"))

    assert harness.fetcher.artifacts == frozenset()
    assert list(harness.scratch.iterdir()) == []
    snap = harness.engine.snapshot()
    assert snap.source_id == "local"
    assert snap.phase == "idle"
    assert harness.backend.handles[0].released is True


def test_shutdown_releases_session_and_cleans_up(tmp_path: Path) -> None:
    harness = _stations(tmp_path)
    _play_remote_first(harness)

    harness.engine.shutdown()

    assert harness.backend.handles[0].released is True
    assert list(harness.scratch.iterdir()) == []


@pytest.mark.parametrize("source_id", ["local", "stations"])
def test_every_source_starts_idle(tmp_path: Path, source_id: str) -> None:
    harness = _build(tmp_path)
    assert harness.engine.snapshot().phase == "idle"
    harness.engine.handle_command(SwitchSource(source_id))
    assert harness.engine.snapshot().phase == "idle"


def test_third_activation_of_playing_track_resumes(tmp_path: Path) -> None:
    engine = _local(tmp_path).engine
    engine.handle_command(SelectNext())
    phases = []
    for _ in range(3):
        engine.handle_command(ActivateSelected())
        phases.append(engine.snapshot().phase)
    assert phases == ["playing", "paused", "playing"]


def test_older_fetch_finishing_last_is_discarded(tmp_path: Path) -> None:
    harness = _stations(tmp_path)
    engine = harness.engine
    engine.handle_command(SelectNext())
    engine.handle_command(ActivateSelected())
    engine.handle_command(SelectNext())
    engine.handle_command(ActivateSelected())

    harness.submit.run(1)
    engine.tick()
    assert engine.snapshot().playing_index == 1
    playing = harness.backend.handles[0].path

    harness.submit.run(0)
    stale = set(harness.fetcher.artifacts) - {playing}
    assert len(stale) == 1
    engine.tick()

    snap = engine.snapshot()
    assert snap.playing_index == 1
    assert snap.now_title == "Song 1"
    assert snap.phase == "playing"
    assert len(harness.backend.handles) == 1
    assert harness.fetcher.artifacts == frozenset({playing})
    assert all(not Path(path).exists() for path in stale)


def test_auto_advance_leaves_user_pending_fetch_alone(tmp_path: Path) -> None:
    harness = _stations(tmp_path)
    engine = harness.engine
    _play_remote_first(harness)
    engine.handle_command(SelectNext())
    engine.handle_command(SelectNext())
    engine.handle_command(ActivateSelected())
    assert engine.snapshot().pending_index == 2

    harness.clock.advance_ms(LENGTH_MS - 500)
    engine.tick()

    snap = engine.snapshot()
    assert snap.pending_index == 2
    assert snap.selected_index == 2
    assert snap.playing_index == 0
    assert len(harness.submit.calls) == 1

    harness.submit.run_all()
    engine.tick()
    snap = engine.snapshot()
    assert snap.playing_index == 2
    assert snap.now_title == "Song 2"


def test_unusable_scratch_dir_reports_error_instead_of_raising(
    tmp_path: Path,
) -> None:
    harness = _stations(tmp_path)
    harness.scratch.write_text("not a directory")
    engine = harness.engine
    engine.handle_command(SelectNext())
    engine.handle_command(ActivateSelected())

    snap = engine.snapshot()
    assert snap.phase == "selecting"
    assert snap.pending_index is None
    assert snap.error is not None
    assert snap.error.startswith("Could not load 'Song 0'.")
    assert "scratch directory" in snap.error
    assert harness.submit.calls == []


def test_source_listing_is_applied_when_background_work_lands(
    tmp_path: Path,
) -> None:
    harness = _build(tmp_path)
    offload = ManualOffload()
    engine = harness.engine
    engine.set_offloader(offload)

    engine.handle_command(SwitchSource("local"))
    snap = engine.snapshot()
    assert snap.loading is True
    assert snap.phase == "idle"
    assert snap.source_id == "local"
    assert snap.browse_labels == ()

    offload.run()
    snap = engine.snapshot()
    assert snap.loading is True
    assert snap.browse_labels == ("music", "sub/")
    assert snap.titles == ()

    offload.run()
    snap = engine.snapshot()
    assert snap.loading is False
    assert snap.browse_index == 0
    assert snap.titles == ("A", "B", "C")


def test_superseded_listing_is_dropped(tmp_path: Path) -> None:
    harness = _build(tmp_path)
    offload = ManualOffload()
    engine = harness.engine
    engine.set_offloader(offload)

    engine.handle_command(SwitchSource("local"))
    engine.handle_command(SwitchSource("stations"))
    offload.run(1)
    offload.run(1)
    offload.run(0)

    snap = engine.snapshot()
    assert snap.source_id == "stations"
    assert snap.browse_labels == ("Jazz",)
    assert snap.playlist_name == "Jazz"
    assert snap.loading is False
    assert offload.pending == []


class BrokenSource(ListSource):
    display_name = "Broken"

    def __init__(self, exc: Exception, **kwargs) -> None:
        super().__init__([], **kwargs)
        self.exc = exc

    def list_browsable(self) -> BrowseListing:
        raise self.exc


@pytest.mark.parametrize(
    "exc", [EnumerationError("unreadable"), OSError("disk gone")]
)
def test_listing_failures_become_errors(tmp_path: Path, exc: Exception) -> None:
    engine = PlaybackEngine(
        backend=FakeAudioBackend(),
        fetcher=TrackFetcher(scratch_root=tmp_path / "scratch"),
        sources=[BrokenSource(exc, source_id="broken")],
    )
    engine.handle_command(SwitchSource("broken"))

    snap = engine.snapshot()
    assert snap.phase == "idle"
    assert snap.loading is False
    assert snap.error is not None
    assert snap.error.startswith("Could not list Broken.")
    assert str(exc) in snap.error
