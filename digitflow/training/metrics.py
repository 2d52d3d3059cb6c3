"""Metric helpers for the engine and the training loops."""

from __future__ import annotations

import numpy as np

from ..core.types import Array


def first_argmax(values: Array) -> int:
    """Index of the maximum of ``values``; the lowest index wins ties.

    Scans with a strict ``>`` against a running best that starts at ``-inf``,
    so NaN entries are never selected and an all-NaN row maps to 0.
    """

    best_idx = 0
    best = -np.inf
    for idx, value in enumerate(np.asarray(values, dtype=np.float64).ravel()):
        if value > best:
            best_idx, best = idx, value
    return best_idx


def first_argmax_rows(values: Array) -> Array:
    values = np.asarray(values, dtype=np.float64)
    if values.ndim == 1:
        return np.asarray([first_argmax(values)], dtype=np.int64)
    # np.argmax already returns the first occurrence; NaNs are mapped to -inf
    clean = np.where(np.isnan(values), -np.inf, values)
    return np.argmax(clean, axis=1).astype(np.int64)


def accuracy(predictions: Array, labels: Array) -> float:
    predictions = np.asarray(predictions).reshape(-1)
    labels = np.asarray(labels).reshape(-1)
    if predictions.size == 0:
        return 0.0
    return float(np.mean(predictions == labels))


__all__ = ["accuracy", "first_argmax", "first_argmax_rows"]
