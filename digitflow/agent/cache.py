"""Bounded prefetch cache of ready-to-train batches."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import deque
from typing import Awaitable, Callable, Deque, Set

from ..core.types import Batch

logger = logging.getLogger(__name__)

FetchBatch = Callable[[int], Awaitable[Batch]]


class BatchPrefetchCache:
    """Keep ``queued + in_flight`` at ``capacity`` by issuing async fetches.

    Fetches run as asyncio tasks on the running loop. Completion callbacks
    append to the queue; the controller pops from it. Both go through a
    single lock so batches can also be pushed from other threads.
    """

    def __init__(self, fetch_batch: FetchBatch, capacity: int = 4) -> None:
        if capacity < 0:
            raise ValueError("capacity must be non-negative")
        self._fetch_batch = fetch_batch
        self.capacity = int(capacity)
        self._queue: Deque[Batch] = deque()
        self._lock = threading.Lock()
        self._pending: Set[asyncio.Task[Batch]] = set()
        self.failures = 0
        self.discarded = 0

    # ------------------------------------------------------------------
    # Queue access

    def __len__(self) -> int:
        with self._lock:
            return len(self._queue)

    @property
    def queued(self) -> int:
        return len(self)

    @property
    def in_flight(self) -> int:
        return len(self._pending)

    def push(self, batch: Batch) -> None:
        with self._lock:
            self._queue.append(batch)

    def pop(self) -> Batch | None:
        with self._lock:
            return self._queue.popleft() if self._queue else None

    def pop_matching(self, batch_size: int) -> Batch | None:
        """Pop the oldest batch of ``batch_size`` samples, dropping stale ones ahead of it."""

        with self._lock:
            while self._queue:
                batch = self._queue.popleft()
                if len(batch) == batch_size:
                    return batch
                self.discarded += 1
                logger.debug(
                    "Discarding stale batch of size %d (expected %d)", len(batch), batch_size
                )
        return None

    # ------------------------------------------------------------------
    # Refill

    def set_capacity(self, capacity: int) -> None:
        """Change the target size; shrinking cancels surplus in-flight fetches, then
        drops the newest queued batches, until ``queued + in_flight <= capacity``."""

        if capacity < 0:
            raise ValueError("capacity must be non-negative")
        self.capacity = int(capacity)
        self._trim()

    def refill(self, batch_size: int) -> int:
        """Restore ``queued + in_flight == capacity``; return the number of fetches issued."""

        issued = 0
        while self.queued + self.in_flight < self.capacity:
            self._dispatch(batch_size)
            issued += 1
        return issued

    def _trim(self) -> None:
        while self._pending and self.queued + len(self._pending) > self.capacity:
            task = self._pending.pop()
            task.cancel()
        with self._lock:
            while len(self._queue) > self.capacity:
                self._queue.pop()
                self.discarded += 1

    def _dispatch(self, batch_size: int) -> None:
        task = asyncio.ensure_future(self._fetch_batch(batch_size))
        self._pending.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task[Batch]) -> None:
        if task not in self._pending:
            # cancelled by a capacity trim and already accounted for
            return
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.failures += 1
            logger.warning("Batch fetch failed: %s", exc)
            return
        self.push(task.result())

    def close(self) -> None:
        """Cancel every outstanding fetch."""

        pending = list(self._pending)
        self._pending.clear()
        for task in pending:
            task.cancel()

    async def drain(self) -> None:
        """Wait until all outstanding fetches have completed (used by tests and shutdown)."""

        while self._pending:
            await asyncio.wait(set(self._pending))
            await asyncio.sleep(0)


__all__ = ["BatchPrefetchCache", "FetchBatch"]
