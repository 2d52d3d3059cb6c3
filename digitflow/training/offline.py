"""Bulk offline training over a full labelled dataset."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping, Sequence

import numpy as np

from ..data.csv_dataset import Dataset
from ..data.weights_store import WeightStore
from .engine import ModelEngine
from .metrics import accuracy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OfflineResult:
    steps: int
    final_loss: float
    final_accuracy: float


def train_offline(
    engine: ModelEngine,
    dataset: Dataset,
    *,
    iterations: int,
    batch_size: int,
    rng: np.random.Generator | None = None,
    store: WeightStore | None = None,
    sync_every: int = 500,
    callbacks: Sequence[object] | None = None,
) -> OfflineResult:
    """Run ``iterations`` training steps on random blocks of ``dataset``.

    The snapshot in ``store`` is written before the first step, every
    ``sync_every`` steps and after the last one.
    """

    if iterations < 0:
        raise ValueError("iterations must be non-negative")
    rng = rng or np.random.default_rng()
    callbacks = list(callbacks or [])

    if store is not None:
        store.save(engine.export_weights())
    logger.info("Training for %d iterations", iterations)

    loss = 0.0
    acc = 0.0
    for step in range(iterations):
        batch = dataset.sample_block(batch_size, rng)
        loss, acc = engine.evaluate_batch(batch.inputs, batch.targets)
        logger.debug("Iter %d - Loss: %.4f Accuracy %.4f", step, loss, acc)
        _emit(callbacks, step, {"loss": loss, "accuracy": acc})
        if store is not None and sync_every > 0 and step % sync_every == 0:
            logger.info("Iter %d - Syncing weights", step)
            store.save(engine.export_weights())

    if store is not None:
        store.save(engine.export_weights())
    return OfflineResult(steps=iterations, final_loss=float(loss), final_accuracy=float(acc))


def evaluate(
    engine: ModelEngine,
    dataset: Dataset,
    *,
    iterations: int,
    batch_size: int,
    rng: np.random.Generator | None = None,
) -> float:
    """Mean accuracy over ``iterations`` random blocks of held-out data."""

    if iterations <= 0:
        raise ValueError("iterations must be positive")
    rng = rng or np.random.default_rng()
    logger.info("Testing for %d iterations", iterations)
    scores = []
    for _ in range(iterations):
        batch = dataset.sample_block(batch_size, rng)
        scores.append(accuracy(engine.infer_batch(batch.inputs), batch.targets))
    return float(np.mean(scores))


def _emit(callbacks: Sequence[object], step: int, metrics: Mapping[str, float]) -> None:
    for callback in callbacks:
        if hasattr(callback, "on_step"):
            callback.on_step(step, metrics)  # type: ignore[attr-defined]
        elif callable(callback):
            callback(step, metrics)


__all__ = ["OfflineResult", "evaluate", "train_offline"]
