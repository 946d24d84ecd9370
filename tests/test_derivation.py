import asyncio

import pytest

from chain.errors import ChainError
from pricing.derivation import LatestDerivation, QuotePoller


@pytest.mark.asyncio
async def test_newer_run_cancels_and_discards_older():
    derivation = LatestDerivation("test")
    started = asyncio.Event()

    async def slow():
        started.set()
        await asyncio.sleep(10)
        return "stale"

    async def fast():
        return "fresh"

    first = asyncio.create_task(derivation.run(slow))
    await started.wait()
    second = await derivation.run(fast)

    assert second == "fresh"
    assert await first is None
    assert derivation.latest == "fresh"


@pytest.mark.asyncio
async def test_none_result_does_not_replace_latest():
    derivation = LatestDerivation("test")

    async def value():
        return 1

    async def nothing():
        return None

    await derivation.run(value)
    assert await derivation.run(nothing) is None
    assert derivation.latest == 1


@pytest.mark.asyncio
async def test_cancel_invalidates_in_flight_run():
    derivation = LatestDerivation("test")
    started = asyncio.Event()

    async def slow():
        started.set()
        await asyncio.sleep(10)
        return "never"

    pending = asyncio.create_task(derivation.run(slow))
    await started.wait()
    generation = derivation.generation
    derivation.cancel()

    assert await pending is None
    assert not derivation.is_current(generation)
    assert derivation.latest is None


@pytest.mark.asyncio
async def test_errors_of_current_run_propagate():
    derivation = LatestDerivation("test")

    async def broken():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError, match="boom"):
        await derivation.run(broken)


@pytest.mark.asyncio
async def test_poller_refreshes_until_stopped():
    calls = {"count": 0}
    results = []

    async def derive():
        calls["count"] += 1
        return calls["count"]

    poller = QuotePoller(derive, interval=0.01, on_result=results.append)
    task = asyncio.create_task(poller.run())
    while len(results) < 3:
        await asyncio.sleep(0.005)
    poller.stop()
    await asyncio.wait_for(task, timeout=1)

    assert results[:3] == [1, 2, 3]
    assert poller.latest >= 3


@pytest.mark.asyncio
async def test_poller_update_swaps_inputs():
    async def first():
        return "a"

    async def second():
        return "b"

    poller = QuotePoller(first, interval=60)
    assert await poller.refresh() == "a"
    assert await poller.update(second) == "b"
    assert poller.latest == "b"


def test_poller_rejects_non_positive_interval():
    async def derive():
        return 1

    with pytest.raises(ValueError, match="interval"):
        QuotePoller(derive, interval=0)


@pytest.mark.asyncio
async def test_poller_keeps_polling_after_failed_refresh():
    calls = {"count": 0}
    results = []

    async def derive():
        calls["count"] += 1
        if calls["count"] == 1:
            raise ChainError("RPC request failed")
        return calls["count"]

    poller = QuotePoller(derive, interval=0.01, on_result=results.append)
    task = asyncio.create_task(poller.run())
    while len(results) < 2:
        await asyncio.sleep(0.005)
    poller.stop()
    await asyncio.wait_for(task, timeout=1)

    assert results[:2] == [2, 3]
