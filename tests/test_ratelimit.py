import asyncio
import threading
import time

import pytest

from quickcall import AbortedError, AsyncSlidingWindowLimiter, RateLimit, SlidingWindowLimiter


class RecordingLimiter(SlidingWindowLimiter):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.admissions = []

    def _reserve(self, now):
        delay = super()._reserve(now)
        if delay <= 0:
            self.admissions.append(now)
        return delay


def test_sixth_request_waits_for_window():
    limiter = RecordingLimiter(RateLimit(5, 0.3))
    threads = [threading.Thread(target=limiter.admit) for _ in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)
    adm = limiter.admissions
    assert len(adm) == 6  # noqa: PLR2004
    assert adm[4] - adm[0] < 0.3  # noqa: PLR2004
    assert adm[5] - adm[0] >= 0.299  # noqa: PLR2004


def test_never_more_than_n_in_any_window():
    limiter = RecordingLimiter(RateLimit(3, 0.1))
    threads = [threading.Thread(target=limiter.admit) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)
    adm = limiter.admissions
    assert len(adm) == 10  # noqa: PLR2004
    for i in range(len(adm) - 3):
        assert adm[i + 3] - adm[i] >= 0.099  # noqa: PLR2004


def test_cancel_event_aborts_waiter():
    cancel = threading.Event()
    limiter = SlidingWindowLimiter(RateLimit(1, 10.0), cancel=cancel)
    limiter.admit()
    errors = []

    def _second():
        try:
            limiter.admit()
        except AbortedError as e:
            errors.append(e)

    t = threading.Thread(target=_second)
    t.start()
    time.sleep(0.1)
    cancel.set()
    t.join(timeout=2)
    assert not t.is_alive()
    assert len(errors) == 1
    assert limiter.stats()["admitted"] == 1


@pytest.mark.asyncio
async def test_async_fifo_and_bound():
    limiter = AsyncSlidingWindowLimiter(RateLimit(2, 0.1))
    order, stamps = [], []

    async def _admit(i):
        await limiter.admit()
        order.append(i)
        stamps.append(time.monotonic())

    await asyncio.gather(*(_admit(i) for i in range(6)))
    assert order == list(range(6))
    assert stamps[2] - stamps[0] >= 0.09  # noqa: PLR2004
    assert stamps[4] - stamps[2] >= 0.09  # noqa: PLR2004


@pytest.mark.asyncio
async def test_async_waiter_cancellation_frees_queue():
    limiter = AsyncSlidingWindowLimiter(RateLimit(1, 0.2))
    await limiter.admit()
    blocked = asyncio.create_task(limiter.admit())
    await asyncio.sleep(0.01)
    blocked.cancel()
    with pytest.raises(asyncio.CancelledError):
        await blocked
    waited = await limiter.admit()
    assert waited > 0


def test_threads_admitted_in_arrival_order():
    limiter = RecordingLimiter(RateLimit(1, 0.05))
    names = []
    orig = limiter._reserve

    def _reserve(now):
        delay = orig(now)
        if delay <= 0:
            names.append(threading.current_thread().name)
        return delay

    limiter._reserve = _reserve
    limiter.admit()
    threads = []
    for i in range(5):
        t = threading.Thread(target=limiter.admit, name=f"caller-{i}")
        t.start()
        threads.append(t)
        # wait until this caller holds its place in line
        deadline = time.monotonic() + 2
        while time.monotonic() < deadline:
            with limiter._cond:
                if len(limiter._queue) + len(limiter.admissions) >= i + 2:
                    break
            time.sleep(0.001)
    for t in threads:
        t.join(timeout=5)
    assert names[1:] == [f"caller-{i}" for i in range(5)]
