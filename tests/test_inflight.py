import asyncio
import threading
import time

import pytest

from quickcall import AbortedError, AsyncInFlightRegistry, InFlightRegistry


def _wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached")
        time.sleep(0.005)


def test_threads_share_one_execution():
    registry = InFlightRegistry()
    release = threading.Event()
    calls = []

    def _work():
        calls.append(1)
        release.wait(2)
        return {"value": 42}

    results = []
    threads = [
        threading.Thread(target=lambda: results.append(registry.join_or_start("k", _work)))
        for _ in range(5)
    ]
    for t in threads:
        t.start()
    _wait_for(lambda: registry.stats()["joined"] == 4)  # noqa: PLR2004
    release.set()
    for t in threads:
        t.join(timeout=2)
    assert len(calls) == 1
    assert len(results) == 5  # noqa: PLR2004
    assert all(r is results[0] for r in results)
    assert not registry.in_flight("k")


def test_threads_share_failure_and_entry_is_removed():
    registry = InFlightRegistry()
    release = threading.Event()
    boom = RuntimeError("boom")

    def _fail():
        release.wait(2)
        raise boom

    errors = []

    def _call():
        try:
            registry.join_or_start("k", _fail)
        except RuntimeError as e:
            errors.append(e)

    threads = [threading.Thread(target=_call) for _ in range(3)]
    for t in threads:
        t.start()
    _wait_for(lambda: registry.stats()["joined"] == 2)  # noqa: PLR2004
    release.set()
    for t in threads:
        t.join(timeout=2)
    assert errors == [boom, boom, boom]
    # a later call starts fresh instead of replaying the failure
    assert registry.join_or_start("k", lambda: "fresh") == "fresh"


@pytest.mark.asyncio
async def test_async_gather_one_execution():
    registry = AsyncInFlightRegistry()
    calls = []

    async def _work():
        calls.append(1)
        await asyncio.sleep(0.05)
        return "v"

    results = await asyncio.gather(*(registry.join_or_start("k", _work) for _ in range(5)))
    assert results == ["v"] * 5
    assert len(calls) == 1
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_cancel_owner():
    registry = AsyncInFlightRegistry()

    async def _work():
        await asyncio.sleep(0.05)
        return "v"

    owner = asyncio.create_task(registry.join_or_start("k", _work))
    await asyncio.sleep(0)
    waiter = asyncio.create_task(registry.join_or_start("k", _work))
    await asyncio.sleep(0.01)
    waiter.cancel()
    with pytest.raises(asyncio.CancelledError):
        await waiter
    assert await owner == "v"


@pytest.mark.asyncio
async def test_cancelled_owner_aborts_waiters():
    registry = AsyncInFlightRegistry()

    async def _work():
        await asyncio.sleep(5)

    owner = asyncio.create_task(registry.join_or_start("k", _work))
    await asyncio.sleep(0)
    waiter = asyncio.create_task(registry.join_or_start("k", _work))
    await asyncio.sleep(0.01)
    owner.cancel()
    with pytest.raises(asyncio.CancelledError):
        await owner
    with pytest.raises(AbortedError):
        await waiter
    assert not registry.in_flight("k")
