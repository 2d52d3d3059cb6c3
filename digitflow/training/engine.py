"""Two-layer feed-forward classifier with a closed-form backward pass."""

from __future__ import annotations

import numpy as np

from ..core.activations import log_softmax, log_softmax_backward, relu, relu_backward
from ..core.types import (
    Array,
    DimensionMismatchError,
    HIDDEN_DIM,
    INPUT_DIM,
    LearningRates,
    NUM_CLASSES,
    WeightPair,
)
from .losses import cross_entropy, cross_entropy_grad, one_hot
from .metrics import accuracy, first_argmax, first_argmax_rows


class ModelEngine:
    """Own the two weight matrices and their learning rates.

    ``w_in_hidden`` has shape ``(H, D)`` and ``w_hidden_out`` has shape
    ``(C, H)``; there are no biases. D, H and C are fixed by the weights the
    engine is constructed with.
    """

    def __init__(self, weights: WeightPair, learning_rates: LearningRates) -> None:
        weights.validate()
        self._dims = weights.dims
        self._weights = weights.copy()
        self.learning_rates = learning_rates

    @classmethod
    def zeros(
        cls,
        d: int = INPUT_DIM,
        h: int = HIDDEN_DIM,
        c: int = NUM_CLASSES,
        lr: float = 0.01,
    ) -> "ModelEngine":
        weights = WeightPair(np.zeros((h, d)), np.zeros((c, h)))
        return cls(weights, LearningRates.uniform(lr))

    @classmethod
    def random(
        cls,
        d: int = INPUT_DIM,
        h: int = HIDDEN_DIM,
        c: int = NUM_CLASSES,
        lr: float = 0.01,
        rng: np.random.Generator | None = None,
    ) -> "ModelEngine":
        return cls(random_weights(d, h, c, rng), LearningRates.uniform(lr))

    # ------------------------------------------------------------------
    # Shape contracts

    @property
    def dims(self) -> tuple[int, int, int]:
        return self._dims

    def _check_vector(self, features: Array) -> Array:
        x = np.asarray(features, dtype=np.float64)
        if x.ndim != 1 or x.shape[0] != self._dims[0]:
            raise DimensionMismatchError(
                f"expected a feature vector of width {self._dims[0]}, got shape {x.shape}"
            )
        return x

    def _check_batch(self, features: Array) -> Array:
        X = np.asarray(features, dtype=np.float64)
        if X.ndim != 2 or X.shape[0] == 0:
            raise DimensionMismatchError(f"expected a non-empty row batch, got shape {X.shape}")
        if X.shape[1] != self._dims[0]:
            raise DimensionMismatchError(
                f"expected feature width {self._dims[0]}, got {X.shape[1]}"
            )
        return X

    def _check_labels(self, labels: Array, rows: int) -> Array:
        labels = np.asarray(labels)
        if labels.ndim != 1 or labels.shape[0] != rows:
            raise DimensionMismatchError(
                f"expected {rows} labels, got shape {labels.shape}"
            )
        return one_hot(labels, self._dims[2])

    # ------------------------------------------------------------------
    # Forward pass

    def _forward(self, X: Array) -> tuple[Array, Array, Array]:
        hidden_pre = X @ self._weights.w_in_hidden.T
        hidden = relu(hidden_pre)
        logits = hidden @ self._weights.w_hidden_out.T
        return hidden_pre, hidden, logits

    def logits(self, features: Array) -> Array:
        X = np.asarray(features, dtype=np.float64)
        if X.ndim == 1:
            return self._forward(self._check_vector(X))[2]
        return self._forward(self._check_batch(X))[2]

    def infer(self, features: Array) -> int:
        """Return the predicted class of a single feature vector."""

        _, _, logits = self._forward(self._check_vector(features))
        return first_argmax(logits)

    def infer_batch(self, features: Array) -> Array:
        _, _, logits = self._forward(self._check_batch(features))
        return first_argmax_rows(logits)

    # ------------------------------------------------------------------
    # Training

    def _step(self, X: Array, target: Array) -> float:
        hidden_pre, hidden, logits = self._forward(X)
        log_probs = log_softmax(logits)
        loss = cross_entropy(log_probs, target)

        # summed over the batch rows; only the reported loss is averaged
        out_grad = log_softmax_backward(log_probs, cross_entropy_grad(target))
        hidden_grad = relu_backward(hidden_pre, out_grad @ self._weights.w_hidden_out)
        if X.ndim == 1:
            grad_hidden_out = np.outer(out_grad, hidden)
            grad_in_hidden = np.outer(hidden_grad, X)
        else:
            grad_hidden_out = out_grad.T @ hidden
            grad_in_hidden = hidden_grad.T @ X
        self._apply(grad_in_hidden, grad_hidden_out)
        return loss

    def _apply(self, grad_in_hidden: Array, grad_hidden_out: Array) -> None:
        lr = self.learning_rates
        self._weights = WeightPair(
            w_in_hidden=self._weights.w_in_hidden - lr.layer1 * grad_in_hidden,
            w_hidden_out=self._weights.w_hidden_out - lr.layer2 * grad_hidden_out,
        )

    def train_single(self, features: Array, label: int) -> float:
        """Run one SGD step on a single sample and return its loss."""

        x = self._check_vector(features)
        target = one_hot(np.asarray(label), self._dims[2])
        return self._step(x, target)

    def train_batch(self, features: Array, labels: Array) -> float:
        """Run one SGD step with the row-summed gradient; return the mean cross-entropy."""

        X = self._check_batch(features)
        target = self._check_labels(labels, X.shape[0])
        return self._step(X, target)

    def evaluate_batch(self, features: Array, labels: Array) -> tuple[float, float]:
        """Measure accuracy on the batch, then train on it.

        Returns ``(loss, accuracy)``; accuracy reflects the weights before
        the update.
        """

        X = self._check_batch(features)
        self._check_labels(labels, X.shape[0])
        acc = accuracy(self.infer_batch(X), labels)
        return self.train_batch(X, labels), acc

    # ------------------------------------------------------------------
    # Weight management

    def export_weights(self) -> WeightPair:
        return self._weights.copy()

    def replace_weights(
        self, weights: WeightPair, learning_rates: LearningRates | None = None
    ) -> None:
        weights.validate()
        if weights.dims != self._dims:
            raise DimensionMismatchError(
                f"replacement weights have dims {weights.dims}, engine expects {self._dims}"
            )
        self._weights = weights.copy()
        if learning_rates is not None:
            self.learning_rates = learning_rates

    def set_learning_rates(self, learning_rates: LearningRates) -> None:
        self.learning_rates = learning_rates


def random_weights(
    d: int = INPUT_DIM,
    h: int = HIDDEN_DIM,
    c: int = NUM_CLASSES,
    rng: np.random.Generator | None = None,
) -> WeightPair:
    """Draw every weight uniformly from ``[-1, 1)``."""

    rng = rng or np.random.default_rng()
    return WeightPair(
        w_in_hidden=rng.uniform(-1.0, 1.0, size=(h, d)),
        w_hidden_out=rng.uniform(-1.0, 1.0, size=(c, h)),
    )


__all__ = ["ModelEngine", "random_weights"]
