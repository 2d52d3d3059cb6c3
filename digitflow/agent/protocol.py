"""Control and status messages exchanged with the training controller."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Sequence, Union

import numpy as np

from ..core.types import Batch, WeightPair


@dataclass(frozen=True)
class Start:
    """Enable training and reset the iteration counter."""


@dataclass(frozen=True)
class Stop:
    """Disable training; fetches already in flight keep running."""


@dataclass(frozen=True)
class GetStatus:
    """Request a status snapshot without changing any state."""


@dataclass(frozen=True)
class SetWeights:
    """Replace both matrices; a plain ``(w_in_hidden, w_hidden_out)`` pair is accepted too."""

    weights: WeightPair | Sequence[np.ndarray]


@dataclass(frozen=True)
class SetBatchSize:
    batch_size: int


@dataclass(frozen=True)
class SetLearningRate:
    learning_rate: float


@dataclass(frozen=True)
class SetCacheSize:
    capacity: int


@dataclass(frozen=True)
class AddData:
    """Push an externally supplied batch straight onto the cache queue."""

    batch: Batch


ControlMessage = Union[
    Start, Stop, GetStatus, SetWeights, SetBatchSize, SetLearningRate, SetCacheSize, AddData
]


def _frozen(matrix: np.ndarray) -> np.ndarray:
    out = np.array(matrix, dtype=np.float64, copy=True)
    out.setflags(write=False)
    return out


@dataclass(frozen=True)
class StatusSnapshot:
    """Read-only report of engine, controller and cache state."""

    weights: WeightPair
    loss: float
    accuracy: float
    batch_size: int
    learning_rate: float
    queued_count: int
    in_flight_count: int
    iteration: int
    cache_capacity: int
    training: bool = False

    @classmethod
    def capture(cls, weights: WeightPair, **fields: object) -> "StatusSnapshot":
        frozen = WeightPair(
            w_in_hidden=_frozen(weights.w_in_hidden),
            w_hidden_out=_frozen(weights.w_hidden_out),
        )
        return cls(weights=frozen, **fields)  # type: ignore[arg-type]

    def to_dict(self, *, include_weights: bool = True) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "loss": float(self.loss),
            "accuracy": float(self.accuracy),
            "batch_size": int(self.batch_size),
            "learning_rate": float(self.learning_rate),
            "queued_count": int(self.queued_count),
            "in_flight_count": int(self.in_flight_count),
            "iteration": int(self.iteration),
            "cache_capacity": int(self.cache_capacity),
            "training": bool(self.training),
        }
        if include_weights:
            payload["weights"] = [
                self.weights.w_in_hidden.tolist(),
                self.weights.w_hidden_out.tolist(),
            ]
        return payload


__all__ = [
    "AddData",
    "ControlMessage",
    "GetStatus",
    "SetBatchSize",
    "SetCacheSize",
    "SetLearningRate",
    "SetWeights",
    "Start",
    "StatusSnapshot",
    "Stop",
]
