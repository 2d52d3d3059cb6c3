import asyncio
import random

import numpy as np
import pytest

from digitflow.agent.cache import BatchPrefetchCache
from digitflow.core.types import Batch


def _batch(size, width=3, label=0):
    return Batch(inputs=np.zeros((size, width)), targets=np.full(size, label, dtype=np.int64))


class ControlledSource:
    """Fetches that stay pending until the test resolves them."""

    def __init__(self):
        self.futures = []
        self.requested = []

    async def __call__(self, size):
        future = asyncio.get_running_loop().create_future()
        self.futures.append(future)
        self.requested.append(size)
        return await future

    def open_futures(self):
        return [f for f in self.futures if not f.done()]

    def complete(self, index=0):
        future = self.open_futures()[index]
        future.set_result(_batch(self.requested[self.futures.index(future)]))

    def fail(self, index=0, exc=None):
        self.open_futures()[index].set_exception(exc or RuntimeError("boom"))


async def settle(rounds=5):
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_refill_dispatches_up_to_capacity():
    source = ControlledSource()
    cache = BatchPrefetchCache(source, capacity=3)

    assert cache.refill(8) == 3
    await settle()
    assert cache.in_flight == 3
    assert source.requested == [8, 8, 8]
    assert cache.refill(8) == 0

    source.complete()
    await settle()
    assert cache.queued == 1
    assert cache.in_flight == 2
    assert cache.refill(8) == 0
    cache.close()


@pytest.mark.asyncio
async def test_failed_fetch_is_counted_and_not_enqueued(caplog):
    source = ControlledSource()
    cache = BatchPrefetchCache(source, capacity=2)
    cache.refill(4)
    await settle()

    source.fail()
    await settle()

    assert cache.failures == 1
    assert cache.queued == 0
    assert cache.in_flight == 1
    assert "Batch fetch failed" in caplog.text
    assert cache.refill(4) == 1
    cache.close()


@pytest.mark.asyncio
async def test_shrinking_capacity_drops_newest_batches_then_cancels_fetches():
    source = ControlledSource()
    cache = BatchPrefetchCache(source, capacity=4)
    first, second = _batch(2, label=1), _batch(2, label=2)
    cache.push(first)
    cache.push(second)
    cache.refill(2)
    await settle()
    assert cache.in_flight == 2

    cache.set_capacity(1)
    await settle()

    assert cache.queued == 1
    assert cache.in_flight == 0
    assert cache.pop() is first
    assert cache.discarded == 1


@pytest.mark.asyncio
async def test_cancelled_fetch_does_not_enqueue():
    source = ControlledSource()
    cache = BatchPrefetchCache(source, capacity=2)
    cache.refill(2)
    await settle()
    cache.set_capacity(0)
    await settle()
    assert cache.in_flight == 0
    assert cache.queued == 0
    assert cache.failures == 0


def test_pop_matching_discards_stale_sizes():
    cache = BatchPrefetchCache(ControlledSource(), capacity=4)
    wanted = _batch(4)
    cache.push(_batch(2))
    cache.push(_batch(3))
    cache.push(wanted)
    cache.push(_batch(2))

    assert cache.pop_matching(4) is wanted
    assert cache.discarded == 2
    assert cache.queued == 1
    assert cache.pop_matching(4) is None
    assert cache.queued == 0
    assert cache.discarded == 3


def test_pushed_batches_are_kept_beyond_capacity():
    cache = BatchPrefetchCache(ControlledSource(), capacity=1)
    cache.push(_batch(2))
    cache.push(_batch(2))
    assert cache.refill(2) == 0
    assert len(cache) == 2


def test_negative_capacity_is_rejected():
    with pytest.raises(ValueError):
        BatchPrefetchCache(ControlledSource(), capacity=-1)
    cache = BatchPrefetchCache(ControlledSource(), capacity=1)
    with pytest.raises(ValueError):
        cache.set_capacity(-2)


@pytest.mark.asyncio
async def test_capacity_bound_holds_over_random_event_sequences():
    rnd = random.Random(1234)
    source = ControlledSource()
    cache = BatchPrefetchCache(source, capacity=3)

    for _ in range(300):
        event = rnd.choice(["resize", "complete", "fail", "pop"])
        if event == "resize":
            cache.set_capacity(rnd.randint(0, 6))
        elif event == "complete" and source.open_futures():
            source.complete(rnd.randrange(len(source.open_futures())))
        elif event == "fail" and source.open_futures():
            source.fail(rnd.randrange(len(source.open_futures())))
        elif event == "pop":
            cache.pop_matching(5)
        await settle(2)
        cache.refill(5)
        assert cache.queued + cache.in_flight <= cache.capacity
        await settle(2)
        assert cache.queued + cache.in_flight <= cache.capacity

    cache.close()
    await settle()
    assert cache.in_flight == 0


@pytest.mark.asyncio
async def test_drain_waits_for_outstanding_fetches():
    async def fetch(size):
        await asyncio.sleep(0.01)
        return _batch(size)

    cache = BatchPrefetchCache(fetch, capacity=2)
    cache.refill(3)
    await cache.drain()
    assert cache.in_flight == 0
    assert cache.queued == 2
