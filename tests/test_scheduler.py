import asyncio
import threading

from jbbly.scheduler import AsyncioScheduler, MonotonicClock


def test_monotonic_clock_moves_forward():
    clock = MonotonicClock()
    a = clock.now()
    b = clock.now()
    assert isinstance(a, int) and b >= a


async def _run_timers():
    sched = AsyncioScheduler()
    fired = []
    ticks = []
    sched.after(20, lambda: fired.append("once"))
    cancelled = sched.after(20, lambda: fired.append("never"))
    cancelled.cancel()

    def on_tick():
        ticks.append(1)
        if len(ticks) == 3:
            ticker.cancel()

    ticker = sched.every(5, on_tick)
    await asyncio.sleep(0.2)
    return fired, ticks, ticker, cancelled


def test_asyncio_scheduler_fires_and_cancels():
    fired, ticks, ticker, cancelled = asyncio.run(_run_timers())
    assert fired == ["once"]
    assert len(ticks) == 3
    assert ticker.cancelled and cancelled.cancelled


async def _failing_callback():
    sched = AsyncioScheduler()
    after_failure = []

    def boom():
        raise RuntimeError("bad callback")

    sched.after(1, boom)
    sched.after(5, lambda: after_failure.append(True))
    await asyncio.sleep(0.05)
    return after_failure


def test_failing_callback_is_contained():
    assert asyncio.run(_failing_callback()) == [True]


async def _from_worker_thread():
    loop = asyncio.get_running_loop()
    sched = AsyncioScheduler(loop=loop, offload=True)
    loop_thread = threading.get_ident()
    ran_on = []

    # scheduled and cancelled from a thread with no running loop
    await loop.run_in_executor(None, lambda: sched.after(10, lambda: ran_on.append(threading.get_ident())))
    dropped = await loop.run_in_executor(None, lambda: sched.after(10, lambda: ran_on.append("never")))
    await loop.run_in_executor(None, dropped.cancel)
    await asyncio.sleep(0.1)
    return loop_thread, ran_on


def test_scheduling_from_another_thread_with_offload():
    loop_thread, ran_on = asyncio.run(_from_worker_thread())
    assert len(ran_on) == 1
    # offloaded callbacks run in the executor, not on the loop thread
    assert ran_on[0] != loop_thread
