"""Tests for the bounded worker pool."""

import asyncio

import pytest

from leadcrm.services.worker_pool import map_with_concurrency


@pytest.mark.asyncio
async def test_every_item_runs_once_in_order():
    seen = []

    async def worker(item):
        seen.append(item)
        await asyncio.sleep(0)
        return item * 2

    outcomes = await map_with_concurrency(list(range(10)), worker, concurrency=3)

    assert sorted(seen) == list(range(10))
    assert [o.result for o in outcomes] == [i * 2 for i in range(10)]
    assert all(o.ok for o in outcomes)


@pytest.mark.asyncio
async def test_concurrency_is_bounded():
    in_flight = 0
    peak = 0

    async def worker(item):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return item

    await map_with_concurrency(list(range(12)), worker, concurrency=4)
    assert peak == 4


@pytest.mark.asyncio
async def test_failure_is_isolated():
    async def worker(item):
        if item == 2:
            raise ValueError("bad item")
        return item

    outcomes = await map_with_concurrency([1, 2, 3], worker, concurrency=2)

    assert [o.ok for o in outcomes] == [True, False, True]
    assert isinstance(outcomes[1].error, ValueError)
    assert outcomes[1].item == 2
    assert outcomes[2].result == 3


@pytest.mark.asyncio
async def test_empty_input():
    async def worker(item):
        return item

    assert await map_with_concurrency([], worker) == []
