"""Live training agent: control protocol, prefetch cache and controller."""

from . import protocol
from .cache import BatchPrefetchCache
from .controller import TrainingController
from .sources import BatchFetchError, DatasetBatchSource, HttpBatchSource

__all__ = [
    "BatchFetchError",
    "BatchPrefetchCache",
    "DatasetBatchSource",
    "HttpBatchSource",
    "TrainingController",
    "protocol",
]
