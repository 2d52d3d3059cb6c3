"""Cooperative training loop driven by control messages."""

from __future__ import annotations

import asyncio
import logging
from typing import Mapping, Sequence

from ..core.types import DimensionMismatchError, LearningRates, WeightPair
from ..training.engine import ModelEngine
from .cache import BatchPrefetchCache, FetchBatch
from .protocol import (
    AddData,
    ControlMessage,
    GetStatus,
    SetBatchSize,
    SetCacheSize,
    SetLearningRate,
    SetWeights,
    Start,
    StatusSnapshot,
    Stop,
)

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 128
DEFAULT_CACHE_CAPACITY = 4
DEFAULT_TICK_TIMEOUT = 0.05


class TrainingController:
    """Sole owner of a :class:`ModelEngine` and a :class:`BatchPrefetchCache`.

    Each loop iteration waits up to ``tick_timeout`` for one control message,
    applies it, then runs one :meth:`tick`: at most one training step, one
    cache refill round and, when something changed, one status snapshot on
    :attr:`statuses`.

    ``callbacks`` receive ``on_step(iteration, metrics)`` after every training
    step, the same hook the metric sinks in :mod:`digitflow.reporting` expose.
    """

    def __init__(
        self,
        engine: ModelEngine,
        fetch_batch: FetchBatch,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        cache_capacity: int = DEFAULT_CACHE_CAPACITY,
        tick_timeout: float = DEFAULT_TICK_TIMEOUT,
        callbacks: Sequence[object] | None = None,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.engine = engine
        self.cache = BatchPrefetchCache(fetch_batch, cache_capacity)
        self.tick_timeout = float(tick_timeout)
        self.callbacks = list(callbacks or [])

        self.training = False
        self.batch_size = int(batch_size)
        self.iteration = 0
        self.last_loss = 0.0
        self.last_accuracy = 0.0

        self.inbox: asyncio.Queue[ControlMessage] = asyncio.Queue()
        self.statuses: asyncio.Queue[StatusSnapshot] = asyncio.Queue()
        self._status_due = False

    # ------------------------------------------------------------------
    # Messages

    async def send(self, message: ControlMessage) -> None:
        await self.inbox.put(message)

    def send_nowait(self, message: ControlMessage) -> None:
        self.inbox.put_nowait(message)

    def handle(self, message: ControlMessage) -> None:
        """Apply one control message to the controller state."""

        if isinstance(message, Start):
            if not self.training:
                logger.info("Training started")
            self.training = True
            self.iteration = 0
        elif isinstance(message, Stop):
            if self.training:
                logger.info("Training stopped at iteration %d", self.iteration)
            self.training = False
        elif isinstance(message, GetStatus):
            pass
        elif isinstance(message, SetWeights):
            self.engine.replace_weights(WeightPair.from_pair(message.weights))
        elif isinstance(message, SetBatchSize):
            if message.batch_size <= 0:
                raise ValueError(f"batch size must be positive, got {message.batch_size}")
            self.batch_size = int(message.batch_size)
        elif isinstance(message, SetLearningRate):
            rates = LearningRates.uniform(message.learning_rate)
            self.engine = ModelEngine(self.engine.export_weights(), rates)
        elif isinstance(message, SetCacheSize):
            self.cache.set_capacity(message.capacity)
        elif isinstance(message, AddData):
            self.cache.push(message.batch)
        else:
            raise TypeError(f"Unknown control message: {message!r}")
        self._status_due = True

    # ------------------------------------------------------------------
    # Tick

    def train_step(self) -> bool:
        """Train on one queued batch if running; return whether a step happened."""

        if not self.training:
            return False
        batch = self.cache.pop_matching(self.batch_size)
        if batch is None:
            return False
        try:
            loss, acc = self.engine.evaluate_batch(batch.inputs, batch.targets)
        except DimensionMismatchError as exc:
            logger.warning("Skipping malformed batch: %s", exc)
            return False
        self.last_loss = loss
        self.last_accuracy = acc
        self.iteration += 1
        self._status_due = True
        logger.debug(
            "Iter %d - Loss: %.4f Accuracy %.4f", self.iteration, loss, acc
        )
        self._notify({"loss": loss, "accuracy": acc})
        return True

    async def tick(self) -> StatusSnapshot | None:
        """Run one training step, one refill round, and emit a status if due."""

        try:
            self.train_step()
        except Exception:
            logger.exception("Training step failed; continuing")
        self.cache.refill(self.batch_size)
        # let freshly dispatched fetches start before the next wait
        await asyncio.sleep(0)
        if not self._status_due:
            return None
        self._status_due = False
        snapshot = self.status()
        await self.statuses.put(snapshot)
        return snapshot

    def status(self) -> StatusSnapshot:
        return StatusSnapshot.capture(
            self.engine.export_weights(),
            loss=self.last_loss,
            accuracy=self.last_accuracy,
            batch_size=self.batch_size,
            learning_rate=self.engine.learning_rates.layer1,
            queued_count=self.cache.queued,
            in_flight_count=self.cache.in_flight,
            iteration=self.iteration,
            cache_capacity=self.cache.capacity,
            training=self.training,
        )

    # ------------------------------------------------------------------
    # Loop

    async def _next_message(self) -> ControlMessage | None:
        try:
            return await asyncio.wait_for(self.inbox.get(), timeout=self.tick_timeout)
        except asyncio.TimeoutError:
            return None

    async def run(self, *, limit: int | None = None) -> None:
        """Run the control loop until cancelled, or for ``limit`` iterations."""

        count = 0
        while limit is None or count < limit:
            count += 1
            message = await self._next_message()
            if message is not None:
                try:
                    self.handle(message)
                except Exception as exc:
                    logger.warning("Ignoring control message %s: %s", type(message).__name__, exc)
            try:
                await self.tick()
            except Exception:
                logger.exception("Control loop tick failed; continuing")

    async def aclose(self) -> None:
        self.cache.close()
        await asyncio.sleep(0)

    def _notify(self, metrics: Mapping[str, float]) -> None:
        payload = dict(metrics)
        payload["queued"] = float(self.cache.queued)
        payload["in_flight"] = float(self.cache.in_flight)
        for callback in self.callbacks:
            if hasattr(callback, "on_step"):
                callback.on_step(self.iteration, payload)  # type: ignore[attr-defined]
            elif callable(callback):
                callback(self.iteration, payload)


__all__ = [
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_CACHE_CAPACITY",
    "DEFAULT_TICK_TIMEOUT",
    "TrainingController",
]
