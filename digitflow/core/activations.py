"""Activation utilities for digitflow.

Every function accepts a single vector or a batch of row vectors. Batched
reductions (max, sum) are taken along the last axis.
"""

from __future__ import annotations

import numpy as np

from .types import Array, DimensionMismatchError


def _as_float(x: Array) -> Array:
    x = np.asarray(x, dtype=np.float64)
    if x.ndim not in (1, 2):
        raise DimensionMismatchError(f"expected a vector or a row batch, got ndim={x.ndim}")
    return x


def relu(x: Array) -> Array:
    """Return the ReLU activation."""

    return np.maximum(_as_float(x), 0.0)


def relu_backward(pre_activation: Array, upstream_grad: Array) -> Array:
    """Gate ``upstream_grad`` by where ``pre_activation`` is strictly positive."""

    pre_activation = _as_float(pre_activation)
    upstream_grad = _as_float(upstream_grad)
    if pre_activation.shape != upstream_grad.shape:
        raise DimensionMismatchError(
            f"relu_backward shapes differ: {pre_activation.shape} vs {upstream_grad.shape}"
        )
    return upstream_grad * (pre_activation > 0).astype(np.float64)


def _shifted(x: Array) -> Array:
    return x - np.max(x, axis=-1, keepdims=True)


def softmax(x: Array) -> Array:
    x = _as_float(x)
    e = np.exp(_shifted(x))
    return e / np.sum(e, axis=-1, keepdims=True)


def log_softmax(x: Array) -> Array:
    """Return ``x - max(x) - log(sum(exp(x - max(x))))`` per row."""

    shifted = _shifted(_as_float(x))
    return shifted - np.log(np.sum(np.exp(shifted), axis=-1, keepdims=True))


def log_softmax_jacobian(x: Array) -> Array:
    """Return the Jacobian of log-softmax at ``x``.

    ``J[..., i, j] = delta_ij - softmax(x)_j``; shape ``(C, C)`` for a vector
    and ``(B, C, C)`` for a batch.
    """

    p = softmax(x)
    n = p.shape[-1]
    eye = np.eye(n, dtype=np.float64)
    # every row of the broadcast matrix is the probability vector
    return eye - p[..., np.newaxis, :]


def log_softmax_backward(x: Array, upstream_grad: Array) -> Array:
    """Propagate ``upstream_grad`` through log-softmax using its explicit Jacobian."""

    x = _as_float(x)
    upstream_grad = _as_float(upstream_grad)
    if x.shape != upstream_grad.shape:
        raise DimensionMismatchError(
            f"log_softmax_backward shapes differ: {x.shape} vs {upstream_grad.shape}"
        )
    jacobian = log_softmax_jacobian(x)
    if x.ndim == 1:
        return upstream_grad @ jacobian
    return np.einsum("bi,bij->bj", upstream_grad, jacobian)


__all__ = [
    "log_softmax",
    "log_softmax_backward",
    "log_softmax_jacobian",
    "relu",
    "relu_backward",
    "softmax",
]
