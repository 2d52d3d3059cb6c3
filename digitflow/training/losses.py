"""Loss helpers used by the model engine."""

from __future__ import annotations

import numpy as np

from ..core.types import Array, DimensionMismatchError


def one_hot(labels: Array, num_classes: int) -> Array:
    """Return ``float64`` one-hot rows for integer ``labels``.

    A scalar label yields a single vector, an array of labels yields a matrix.
    """

    labels = np.asarray(labels)
    if labels.dtype.kind == "f":
        if not np.all(np.equal(np.mod(labels, 1), 0)):
            raise DimensionMismatchError("labels must be integral")
        labels = labels.astype(np.int64)
    elif labels.dtype.kind not in "iu":
        raise DimensionMismatchError(f"labels must be integers, got dtype {labels.dtype}")
    if np.any(labels < 0) or np.any(labels >= num_classes):
        raise DimensionMismatchError(f"labels must lie in [0, {num_classes})")
    if labels.ndim == 0:
        out = np.zeros(num_classes, dtype=np.float64)
        out[int(labels)] = 1.0
        return out
    eye = np.eye(num_classes, dtype=np.float64)
    return eye[labels.reshape(-1)]


def cross_entropy(log_probs: Array, target: Array) -> float:
    """Negative log-likelihood of one-hot ``target`` under ``log_probs``.

    Sums over classes; for a batch the per-row sums are averaged.
    """

    per_row = -np.sum(target * log_probs, axis=-1)
    return float(np.mean(per_row))


def cross_entropy_grad(target: Array) -> Array:
    """Gradient of :func:`cross_entropy` with respect to the log-probabilities (per row)."""

    return -np.asarray(target, dtype=np.float64)


__all__ = ["cross_entropy", "cross_entropy_grad", "one_hot"]
