"""Snapshot-driven widgets for the player screen.

Every widget renders from an `EngineSnapshot` only. Rendering helpers are
plain functions so they can be exercised without a running app.
"""

from __future__ import annotations

from collections.abc import Sequence

from rich.text import Text
from textual.widgets import Static

from muscli.services.playback_engine import EngineSnapshot
from muscli.utils.time_format import format_time_pair_ms, progress_percent

BAR_GLYPHS = " ▁▂▃▄▅▆▇█"
SPECTRUM_MAX = 102.0
ACCENT = "bold #F2C94C"
ALERT = "bold #FF5A36"


class SourceTabs(Static):
    def update_snapshot(self, snapshot: EngineSnapshot) -> None:
        self.update(render_tabs(snapshot))


class BrowseLine(Static):
    def update_snapshot(self, snapshot: EngineSnapshot) -> None:
        self.update(render_browse(snapshot))


class PlaylistView(Static):
    """Windowed track list centred on the selection."""

    def update_snapshot(self, snapshot: EngineSnapshot) -> None:
        rows = max(1, self.size.height or 10)
        self.update(render_playlist(snapshot, rows))


class NowPlaying(Static):
    def update_snapshot(self, snapshot: EngineSnapshot) -> None:
        self.update(render_now_playing(snapshot))


class SpectrumView(Static):
    def update_snapshot(self, snapshot: EngineSnapshot) -> None:
        height = max(1, self.size.height or 8)
        self.update(render_spectrum(snapshot.spectrum, height))


class TransportGauge(Static):
    def update_snapshot(self, snapshot: EngineSnapshot) -> None:
        width = max(10, (self.size.width or 60) - 16)
        self.update(render_gauge(snapshot.elapsed_ms, snapshot.total_ms, width))


class StatusLine(Static):
    def update_snapshot(self, snapshot: EngineSnapshot) -> None:
        self.update(render_status(snapshot))


def render_tabs(snapshot: EngineSnapshot) -> Text:
    text = Text()
    for position, (source_id, name) in enumerate(snapshot.sources):
        if position:
            text.append(" | ")
        style = "reverse bold" if source_id == snapshot.source_id else "dim"
        text.append(f" {name} ", style=style)
    return text


def render_browse(snapshot: EngineSnapshot) -> Text:
    text = Text()
    text.append("Browse: ", style=ACCENT)
    if not snapshot.browse_labels:
        text.append("(nothing to browse)", style="dim")
        return text
    index = snapshot.browse_index
    label = snapshot.browse_labels[index] if index is not None else "-"
    text.append(label)
    position = f"{index + 1}/" if index is not None else "-/"
    text.append(f"  [{position}{len(snapshot.browse_labels)}]", style="dim")
    return text


def render_playlist(snapshot: EngineSnapshot, rows: int) -> Text:
    """Render titles with markers for playing (>) and resolving (~) entries."""
    titles = snapshot.titles
    text = Text()
    if not titles:
        text.append("No tracks.", style="dim")
        return text
    start, stop = playlist_window(len(titles), snapshot.selected_index, rows)
    for index in range(start, stop):
        if index > start:
            text.append("\n")
        if index == snapshot.playing_index:
            marker = ">"
        elif index == snapshot.pending_index:
            marker = "~"
        else:
            marker = " "
        style = "reverse" if index == snapshot.selected_index else ""
        text.append(f"{marker} {titles[index]}", style=style)
    return text


def playlist_window(total: int, selected: int | None, rows: int) -> tuple[int, int]:
    """Return the [start, stop) slice that keeps `selected` visible."""
    rows = max(1, rows)
    if total <= rows:
        return 0, total
    anchor = selected if selected is not None else 0
    start = max(0, min(anchor - rows // 2, total - rows))
    return start, start + rows


def render_now_playing(snapshot: EngineSnapshot) -> Text:
    text = Text()
    text.append("Title: ", style=ACCENT)
    text.append(snapshot.now_title or "-")
    text.append("\nArtist: ", style=ACCENT)
    text.append(snapshot.now_artist or "-")
    text.append("\nAlbum: ", style=ACCENT)
    text.append(snapshot.now_album or "-")
    text.append("\nState: ", style=ACCENT)
    text.append(snapshot.phase)
    return text


def render_spectrum(frame: Sequence[float], height: int) -> Text:
    """Draw bars bottom-up with eighth-block glyphs."""
    height = max(1, height)
    steps = len(BAR_GLYPHS) - 1
    levels = [
        round(max(0.0, min(value / SPECTRUM_MAX, 1.0)) * height * steps)
        for value in frame
    ]
    lines = []
    for row in range(height - 1, -1, -1):
        base = row * steps
        lines.append(
            "".join(BAR_GLYPHS[max(0, min(level - base, steps))] for level in levels)
        )
    return Text("\n".join(lines), style="#4FC3F7")


def render_gauge(elapsed_ms: int, total_ms: int, width: int) -> Text:
    percent = progress_percent(elapsed_ms, total_ms)
    filled = width * percent // 100
    pos_text, dur_text = format_time_pair_ms(elapsed_ms, total_ms)
    text = Text()
    text.append("█" * filled, style="#4FC3F7")
    text.append("░" * (width - filled), style="dim")
    text.append(f" {pos_text}/{dur_text}")
    return text


def render_status(snapshot: EngineSnapshot) -> Text:
    text = Text()
    if snapshot.error:
        text.append("Error: ", style=ALERT)
        text.append(snapshot.error.replace("\n", " | "))
        return text
    if snapshot.notice:
        text.append("Notice: ", style=ACCENT)
        text.append(snapshot.notice)
        text.append(" | ")
    text.append("Status: ", style=ACCENT)
    text.append(snapshot.phase)
    if snapshot.loading:
        text.append(" (loading)", style="dim")
    if snapshot.playlist_name:
        text.append(" | ")
        text.append("Playlist: ", style=ACCENT)
        text.append(snapshot.playlist_name)
    return text
