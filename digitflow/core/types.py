"""Core typing contracts for digitflow."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

Array = np.ndarray

INPUT_DIM = 784
HIDDEN_DIM = 128
NUM_CLASSES = 10


class DimensionMismatchError(ValueError):
    """Raised when an input does not conform to the model's dimensions."""


@dataclass(frozen=True)
class Sample:
    """One labelled example."""

    features: Array
    label: int


@dataclass(frozen=True)
class Batch:
    """A group of samples trained together in one gradient step."""

    inputs: Array
    targets: Array

    def __len__(self) -> int:
        return int(self.inputs.shape[0])

    @classmethod
    def from_samples(cls, samples: Sequence[Sample]) -> "Batch":
        if not samples:
            raise DimensionMismatchError("cannot build a batch from zero samples")
        inputs = np.stack([np.asarray(s.features, dtype=np.float64) for s in samples])
        targets = np.asarray([s.label for s in samples], dtype=np.int64)
        return cls(inputs=inputs, targets=targets)

    def samples(self) -> list[Sample]:
        return [
            Sample(features=self.inputs[idx], label=int(self.targets[idx]))
            for idx in range(len(self))
        ]


@dataclass(frozen=True)
class LearningRates:
    """Step sizes for the two dense layers."""

    layer1: float
    layer2: float

    def __post_init__(self) -> None:
        if self.layer1 < 0 or self.layer2 < 0:
            raise ValueError("learning rates must be non-negative")

    @classmethod
    def uniform(cls, rate: float) -> "LearningRates":
        return cls(float(rate), float(rate))


@dataclass(frozen=True)
class WeightPair:
    """The two dense layers: ``(H, D)`` input->hidden and ``(C, H)`` hidden->output."""

    w_in_hidden: Array
    w_hidden_out: Array

    @property
    def dims(self) -> tuple[int, int, int]:
        """Return ``(D, H, C)``."""

        hidden, d_in = self.w_in_hidden.shape
        return int(d_in), int(hidden), int(self.w_hidden_out.shape[0])

    @classmethod
    def from_pair(cls, pair: "WeightPair | Sequence[Array]") -> "WeightPair":
        """Accept a ``WeightPair`` or a ``(w_in_hidden, w_hidden_out)`` sequence."""

        if isinstance(pair, cls):
            return pair
        if len(pair) != 2:
            raise DimensionMismatchError(f"expected two weight matrices, got {len(pair)}")
        first, second = pair
        return cls(
            w_in_hidden=np.asarray(first, dtype=np.float64),
            w_hidden_out=np.asarray(second, dtype=np.float64),
        )

    def copy(self) -> "WeightPair":
        return WeightPair(
            w_in_hidden=np.array(self.w_in_hidden, dtype=np.float64, copy=True),
            w_hidden_out=np.array(self.w_hidden_out, dtype=np.float64, copy=True),
        )

    def validate(self) -> None:
        if self.w_in_hidden.ndim != 2 or self.w_hidden_out.ndim != 2:
            raise DimensionMismatchError("weight matrices must be two-dimensional")
        if self.w_hidden_out.shape[1] != self.w_in_hidden.shape[0]:
            raise DimensionMismatchError(
                f"hidden width mismatch: w_in_hidden has {self.w_in_hidden.shape[0]} rows "
                f"but w_hidden_out has {self.w_hidden_out.shape[1]} columns"
            )

    def allclose(self, other: "WeightPair", atol: float = 0.0) -> bool:
        return bool(
            self.w_in_hidden.shape == other.w_in_hidden.shape
            and self.w_hidden_out.shape == other.w_hidden_out.shape
            and np.allclose(self.w_in_hidden, other.w_in_hidden, atol=atol, rtol=0.0)
            and np.allclose(self.w_hidden_out, other.w_hidden_out, atol=atol, rtol=0.0)
        )


__all__ = [
    "Array",
    "Batch",
    "DimensionMismatchError",
    "HIDDEN_DIM",
    "INPUT_DIM",
    "LearningRates",
    "NUM_CLASSES",
    "Sample",
    "WeightPair",
]
