"""
Clock and timers for a running session.

Usage:
    sched = AsyncioScheduler()          # inside a running loop, or pass loop=
                                        # to schedule from worker threads
    ticker = sched.every(50, on_tick)
    later = sched.after(2000, on_advance)
    ...
    ticker.cancel(); later.cancel()     # both idempotent
"""

import asyncio
import time
from typing import Callable, Optional, Protocol

from .logging_utils import get_logger

logger = get_logger("jbbly.scheduler")


class Clock(Protocol):
    def now(self) -> int:
        ...


class MonotonicClock:
    """Milliseconds from a monotonic source."""

    def now(self) -> int:
        return int(time.monotonic() * 1000)


class Handle(Protocol):
    def cancel(self) -> None:
        ...

    @property
    def cancelled(self) -> bool:
        ...


class Scheduler(Protocol):
    def after(self, delay_ms: int, fn: Callable[[], None]) -> Handle:
        ...

    def every(self, interval_ms: int, fn: Callable[[], None]) -> Handle:
        ...


def _run_safely(fn: Callable[[], None]) -> None:
    try:
        fn()
    except Exception as e:
        logger.exception("timer_callback_failed", extra={"error": str(e)})


def _on_loop(loop: asyncio.AbstractEventLoop) -> bool:
    try:
        return asyncio.get_running_loop() is loop
    except RuntimeError:
        return False


class _TimerHandle:
    def __init__(self, loop: asyncio.AbstractEventLoop):
        self._loop = loop
        self._handle: Optional[asyncio.TimerHandle] = None
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True
        handle, self._handle = self._handle, None
        if handle is None:
            return
        if _on_loop(self._loop):
            handle.cancel()
        elif not self._loop.is_closed():
            self._loop.call_soon_threadsafe(handle.cancel)

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class AsyncioScheduler:
    """Timers on an asyncio loop via call_later.

    Without an explicit loop, each timer goes on the loop running when it is
    scheduled. With one, timers may be scheduled and cancelled from any
    thread. ``offload=True`` runs callbacks in the loop's default executor so
    blocking work in them (leaderboard writes) stays off the loop.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None, offload: bool = False):
        self._loop = loop
        self.offload = offload

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def _arm(self, handle: _TimerHandle, delay: float, fire: Callable[[], None]) -> None:
        loop = handle._loop
        if _on_loop(loop):
            handle._handle = loop.call_later(delay, fire)
            return

        def arm() -> None:
            if not handle.cancelled:
                handle._handle = loop.call_later(delay, fire)

        loop.call_soon_threadsafe(arm)

    def _run(self, loop: asyncio.AbstractEventLoop, fn: Callable[[], None]) -> None:
        if self.offload:
            loop.run_in_executor(None, _run_safely, fn)
        else:
            _run_safely(fn)

    def after(self, delay_ms: int, fn: Callable[[], None]) -> _TimerHandle:
        handle = _TimerHandle(self.loop)

        def fire() -> None:
            if handle.cancelled:
                return
            handle._handle = None
            self._run(handle._loop, fn)

        self._arm(handle, max(delay_ms, 0) / 1000, fire)
        return handle

    def every(self, interval_ms: int, fn: Callable[[], None]) -> _TimerHandle:
        handle = _TimerHandle(self.loop)
        delay = max(interval_ms, 1) / 1000

        def fire() -> None:
            if handle.cancelled:
                return
            # re-armed first so fn may cancel the next run
            handle._handle = handle._loop.call_later(delay, fire)
            self._run(handle._loop, fn)

        self._arm(handle, delay, fire)
        return handle
