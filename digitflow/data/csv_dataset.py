"""CSV digit datasets (one file of pixels, one file of labels)."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

import numpy as np
import pandas as pd

from ..core.types import Array, Batch


@dataclass(frozen=True)
class Dataset:
    """Features ``(N, D)`` and integer labels ``(N,)`` held in memory."""

    features: Array
    labels: Array

    def __post_init__(self) -> None:
        if self.features.ndim != 2:
            raise ValueError("features must be a 2-D array")
        if self.labels.shape != (self.features.shape[0],):
            raise ValueError(
                f"expected {self.features.shape[0]} labels, got shape {self.labels.shape}"
            )

    def __len__(self) -> int:
        return int(self.features.shape[0])

    def sample_block(self, size: int, rng: np.random.Generator) -> Batch:
        """Return ``size`` distinct samples chosen at random."""

        if size <= 0 or size > len(self):
            raise ValueError(f"cannot sample {size} items from a dataset of {len(self)}")
        idx = rng.permutation(len(self))[:size]
        return Batch(inputs=self.features[idx], targets=self.labels[idx])

    def batches(self, size: int, rng: np.random.Generator) -> Iterator[Batch]:
        while True:
            yield self.sample_block(size, rng)


def load_csv_dataset(
    x_path: str | Path, y_path: str | Path, *, binarize: bool = True
) -> Dataset:
    """Load pixels and labels from two CSV files with header rows."""

    x_df = pd.read_csv(x_path)
    y_df = pd.read_csv(y_path)
    if len(x_df) != len(y_df):
        raise ValueError(
            f"{x_path} has {len(x_df)} rows but {y_path} has {len(y_df)}"
        )
    features = x_df.to_numpy(dtype=np.float64)
    if binarize:
        features = (features > 0).astype(np.float64)
    labels = np.rint(y_df.iloc[:, 0].to_numpy(dtype=np.float64)).astype(np.int64)
    return Dataset(features=features, labels=labels)


def load_split(data_dir: str | Path, split: str, *, binarize: bool = True) -> Dataset:
    """Load ``x{split}.csv``/``y{split}.csv`` from ``data_dir`` (``split`` is train or test)."""

    if split not in {"train", "test"}:
        raise ValueError(f"Unknown split: {split}")
    base = Path(data_dir)
    return load_csv_dataset(base / f"x{split}.csv", base / f"y{split}.csv", binarize=binarize)


__all__ = ["Dataset", "load_csv_dataset", "load_split"]
