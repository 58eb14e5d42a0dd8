"""Helpers for offloading blocking callables away from the engine thread.

This module provides:
- a fire-and-forget bridge (`submit_blocking`) for worker jobs whose results
  travel back through a callback, and
- an awaitable bridge (`run_blocking`) for one-off IO from async code.
"""

from __future__ import annotations

import asyncio
import atexit
from concurrent.futures import Future, ThreadPoolExecutor
from functools import partial
from typing import Any, Callable, TypeVar

T = TypeVar("T")

_IO_EXECUTOR = ThreadPoolExecutor(max_workers=4, thread_name_prefix="muscli-io")


@atexit.register
def _shutdown_io_executor() -> None:
    _IO_EXECUTOR.shutdown(wait=False, cancel_futures=True)


def submit_blocking(func: Callable[..., T], /, *args: Any, **kwargs: Any) -> Future[T]:
    """Schedule blocking callable on the shared IO executor."""
    if not callable(func):
        raise TypeError("func must be callable")
    if kwargs:
        return _IO_EXECUTOR.submit(partial(func, *args, **kwargs))
    return _IO_EXECUTOR.submit(func, *args)


async def run_blocking(func: Callable[..., T], /, *args: Any, **kwargs: Any) -> T:
    """Run blocking callable on dedicated IO executor and await its result."""
    if not callable(func):
        raise TypeError("func must be callable")
    loop = asyncio.get_running_loop()
    if kwargs:
        future = loop.run_in_executor(_IO_EXECUTOR, partial(func, *args, **kwargs))
    else:
        future = loop.run_in_executor(_IO_EXECUTOR, func, *args)
    # Some environments can miss thread->loop wakeups for executor completion.
    # Polling with a short timeout keeps completion deterministic.
    while True:
        try:
            return await asyncio.wait_for(asyncio.shield(future), timeout=0.1)
        except asyncio.TimeoutError:
            continue
