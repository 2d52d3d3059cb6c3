"""Dataset loading and weight snapshot storage."""

from .csv_dataset import Dataset, load_csv_dataset, load_split
from .weights_store import WeightStore, WeightsFormatError

__all__ = ["Dataset", "WeightStore", "WeightsFormatError", "load_csv_dataset", "load_split"]
