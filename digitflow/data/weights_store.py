"""JSON weight snapshots with atomic replacement."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Mapping

import numpy as np

from ..core.types import DimensionMismatchError, HIDDEN_DIM, INPUT_DIM, NUM_CLASSES, WeightPair
from ..training.engine import random_weights

logger = logging.getLogger(__name__)


class WeightsFormatError(ValueError):
    """Raised when a weight snapshot cannot be decoded."""


def weights_to_json(weights: WeightPair) -> dict:
    """Encode as ``{"weights": [rows_in_hidden, rows_hidden_out]}``."""

    return {"weights": [weights.w_in_hidden.tolist(), weights.w_hidden_out.tolist()]}


def weights_from_json(payload: Mapping[str, object]) -> WeightPair:
    if not isinstance(payload, Mapping) or "weights" not in payload:
        raise WeightsFormatError("snapshot must be an object with a 'weights' key")
    pair = payload["weights"]
    if not isinstance(pair, (list, tuple)) or len(pair) != 2:
        raise WeightsFormatError("'weights' must hold exactly two matrices")
    try:
        first = np.asarray(pair[0], dtype=np.float64)
        second = np.asarray(pair[1], dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise WeightsFormatError(f"weight matrices must be numeric rows: {exc}") from exc
    weights = WeightPair(w_in_hidden=first, w_hidden_out=second)
    try:
        weights.validate()
    except DimensionMismatchError as exc:
        raise WeightsFormatError(str(exc)) from exc
    return weights


class WeightStore:
    """A single flat weight snapshot on disk.

    Writes go to ``<path>.tmp`` and are renamed over ``path`` so readers
    never observe a partial file.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    @property
    def temp_path(self) -> Path:
        return self.path.with_name(self.path.name + ".tmp")

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> WeightPair:
        try:
            payload = json.loads(self.path.read_text())
        except json.JSONDecodeError as exc:
            raise WeightsFormatError(f"{self.path} is not valid JSON: {exc}") from exc
        return weights_from_json(payload)

    def save(self, weights: WeightPair) -> Path:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp = self.temp_path
        temp.unlink(missing_ok=True)
        with temp.open("w", encoding="utf-8") as handle:
            json.dump(weights_to_json(weights), handle)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp, self.path)
        return self.path

    def ensure(
        self,
        d: int = INPUT_DIM,
        h: int = HIDDEN_DIM,
        c: int = NUM_CLASSES,
        rng: np.random.Generator | None = None,
    ) -> WeightPair:
        """Return the stored snapshot, creating a random one when none exists."""

        if not self.exists():
            logger.info("Creating weights file %s", self.path)
            self.save(random_weights(d, h, c, rng))
        return self.load()


__all__ = ["WeightStore", "WeightsFormatError", "weights_from_json", "weights_to_json"]
