"""Single-consumer inbox driving `PlaybackEngine` on the event loop thread."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import suppress
from typing import Any

from muscli.events import (
    BackgroundResult,
    CommandMessage,
    FetchUpdate,
    InboxMessage,
    SnapshotPublished,
    Tick,
)
from muscli.runtime_config import DEFAULT_TICK_MS, normalize_tick_ms
from muscli.services.commands import EngineCommand
from muscli.services.playback_engine import PlaybackEngine, run_inline
from muscli.services.track_fetcher import FetchJob, Submitter, TrackFetcher
from muscli.utils.async_utils import submit_blocking

logger = logging.getLogger(__name__)


class EngineLoop:
    """Serializes ticks, commands and fetch updates into one engine thread."""

    def __init__(
        self,
        engine: PlaybackEngine,
        *,
        fetcher: TrackFetcher,
        emit_event: Callable[[object], Awaitable[None]],
        tick_ms: int = DEFAULT_TICK_MS,
        submit: Submitter = submit_blocking,
    ) -> None:
        self._engine = engine
        self._fetcher = fetcher
        self._emit_event = emit_event
        self._tick_s = normalize_tick_ms(tick_ms) / 1000.0
        self._inbox: asyncio.Queue[InboxMessage] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._consumer_task: asyncio.Task[None] | None = None
        self._ticker_task: asyncio.Task[None] | None = None
        self._tick_pending = False
        self._submit = submit
        self._pending_offloads = 0

    @property
    def engine(self) -> PlaybackEngine:
        return self._engine

    @property
    def running(self) -> bool:
        return self._consumer_task is not None

    async def start(self) -> None:
        """Attach listener and offloader, then start the consumer and ticker."""
        if self._consumer_task is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._fetcher.set_listener(self._post_fetch_update)
        self._engine.set_offloader(self._offload)
        self._consumer_task = asyncio.create_task(self._consume())
        self._ticker_task = asyncio.create_task(self._tick_forever())
        await self._emit_event(SnapshotPublished(self._engine.snapshot()))
        logger.info("Engine loop started (tick %.0f ms)", self._tick_s * 1000)

    async def shutdown(self) -> None:
        """Stop the tasks, detach the listener and tear the engine down."""
        for task in (self._ticker_task, self._consumer_task):
            if task is not None:
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task
        self._ticker_task = None
        self._consumer_task = None
        self._fetcher.set_listener(None)
        self._engine.set_offloader(run_inline)
        self._engine.shutdown()
        logger.info("Engine loop stopped")

    def submit(self, command: EngineCommand) -> None:
        """Queue a command; must be called from the event loop thread."""
        self._inbox.put_nowait(CommandMessage(command))

    async def drain(self) -> None:
        """Wait until queued messages and offloaded work have all been handled."""
        while True:
            await self._inbox.join()
            if self._pending_offloads == 0 and self._inbox.empty():
                return
            await asyncio.sleep(0.005)

    def _offload(
        self, work: Callable[[], Any], done: Callable[[Any], None]
    ) -> None:
        self._pending_offloads += 1
        future = self._submit(work)

        def finished(fut: Any) -> None:
            self._post_threadsafe(BackgroundResult(lambda: done(fut.result())))

        future.add_done_callback(finished)

    def _post_fetch_update(self, job: FetchJob) -> None:
        if not self._post_threadsafe(FetchUpdate(job)):
            logger.debug("Dropping fetch update for job %d (loop gone)", job.job_id)

    def _post_threadsafe(self, message: InboxMessage) -> bool:
        loop = self._loop
        if loop is None or loop.is_closed():
            return False
        try:
            loop.call_soon_threadsafe(self._inbox.put_nowait, message)
        except RuntimeError:
            return False
        return True

    async def _tick_forever(self) -> None:
        while True:
            await asyncio.sleep(self._tick_s)
            # Collapse ticks while the consumer is behind.
            if self._tick_pending:
                continue
            self._tick_pending = True
            self._inbox.put_nowait(Tick())

    async def _consume(self) -> None:
        while True:
            message = await self._inbox.get()
            try:
                self._dispatch(message)
                await self._emit_event(SnapshotPublished(self._engine.snapshot()))
            except Exception:  # pragma: no cover - engine safety net
                logger.exception("Engine failed handling %s", type(message).__name__)
            finally:
                self._inbox.task_done()

    def _dispatch(self, message: InboxMessage) -> None:
        if isinstance(message, Tick):
            self._tick_pending = False
            self._engine.tick()
        elif isinstance(message, CommandMessage):
            self._engine.handle_command(message.command)
        elif isinstance(message, FetchUpdate):
            self._engine.on_fetch_update(message.job)
        elif isinstance(message, BackgroundResult):
            self._pending_offloads -= 1
            message.apply()
