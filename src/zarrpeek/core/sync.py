"""
Run the async store and fetch layer from synchronous code.

Coroutines are submitted to one event loop running on a daemon thread. Chunk decoding is
offloaded from that loop with ``asyncio.to_thread``, which uses the loop's default executor;
that executor is a thread pool sized by ``threading.max_workers`` and is rebuilt when the
setting changes between calls.
"""

from __future__ import annotations

import asyncio
import atexit
import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

from zarrpeek.core.config import config, parse_max_workers

if TYPE_CHECKING:
    from collections.abc import Coroutine
    from typing import Any

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SyncError(Exception):
    """Raised when :func:`sync` would block the event loop it is running on."""


@dataclass
class _IOState:
    loop: asyncio.AbstractEventLoop | None = None
    thread: threading.Thread | None = None
    executor: ThreadPoolExecutor | None = None
    max_workers: int | None = None
    lock: threading.Lock = field(default_factory=threading.Lock)


_state = _IOState()


def _get_loop() -> asyncio.AbstractEventLoop:
    """Return the IO loop, starting its thread on first use."""
    if _state.loop is None:
        with _state.lock:
            if _state.loop is None:
                logger.debug("Starting zarrpeek IO loop thread")
                new_loop = asyncio.new_event_loop()
                thread = threading.Thread(target=new_loop.run_forever, name="zarrpeek_io", daemon=True)
                thread.start()
                _state.loop, _state.thread = new_loop, thread
    assert _state.loop is not None
    return _state.loop


def _decode_executor() -> ThreadPoolExecutor:
    """
    Return the thread pool that ``asyncio.to_thread`` uses on the IO loop.

    A pool built for a different ``threading.max_workers`` value is shut down and replaced;
    work already submitted to it still completes.
    """
    max_workers = parse_max_workers(config.get("threading.max_workers", None))
    io_loop = _get_loop()
    with _state.lock:
        if _state.executor is None or _state.max_workers != max_workers:
            stale = _state.executor
            logger.debug("Creating decode thread pool with max_workers=%s", max_workers)
            _state.executor = ThreadPoolExecutor(
                max_workers=max_workers, thread_name_prefix="zarrpeek_decode"
            )
            _state.max_workers = max_workers
            io_loop.set_default_executor(_state.executor)
            if stale is not None:
                stale.shutdown(wait=False)
        return _state.executor


def shutdown() -> None:
    """Stop the IO loop and the decode pool. Safe to call more than once."""
    with _state.lock:
        io_loop, thread, executor = _state.loop, _state.thread, _state.executor
        _state.loop = _state.thread = _state.executor = None
        _state.max_workers = None
    if io_loop is not None:
        io_loop.call_soon_threadsafe(io_loop.stop)
        if thread is not None:
            thread.join(timeout=0.2)
            if thread.is_alive():
                logger.warning("IO loop thread did not stop in time; closing its loop anyway")
        io_loop.close()
    if executor is not None:
        executor.shutdown(wait=True, cancel_futures=True)


atexit.register(shutdown)


def _reset_after_fork() -> None:
    # the parent's loop thread does not exist in the child
    global _state
    _state = _IOState()  # pragma: no cover


if hasattr(os, "register_at_fork"):
    os.register_at_fork(after_in_child=_reset_after_fork)


def sync(
    coro: Coroutine[Any, Any, T],
    loop: asyncio.AbstractEventLoop | None = None,
    timeout: float | None = None,
) -> T:
    """
    Run ``coro`` on ``loop`` (the IO loop by default) and block until it returns.

    Parameters
    ----------
    coro : coroutine
        The coroutine to run. Exceptions it raises propagate to the caller.
    loop : asyncio.AbstractEventLoop, optional
        A loop running on another thread.
    timeout : float, optional
        Seconds to wait before cancelling the coroutine. Defaults to ``async.timeout``.

    Raises
    ------
    TimeoutError
        If the coroutine did not finish within ``timeout`` seconds.
    SyncError
        If called from a coroutine running on ``loop`` itself.
    """
    if loop is None:
        loop = _get_loop()
    if not isinstance(loop, asyncio.AbstractEventLoop):
        raise TypeError(f"loop cannot be of type {type(loop)}")
    if loop.is_closed():
        raise RuntimeError("Loop is not running")
    try:
        running = asyncio.get_running_loop()
    except RuntimeError:
        running = None
    if running is loop:
        raise SyncError("Calling sync() from within a running loop")
    if timeout is None:
        timeout = config.get("async.timeout", None)
    if loop is _state.loop:
        _decode_executor()

    future = asyncio.run_coroutine_threadsafe(coro, loop)
    try:
        return future.result(timeout)
    except TimeoutError:
        if not future.done():
            future.cancel()
            raise TimeoutError(f"Coroutine {coro} failed to finish within {timeout} s") from None
        raise
