"""digitflow public API."""

from .agent.controller import TrainingController
from .config import Settings, load_settings
from .core import activations  # noqa: F401
from .core import types  # noqa: F401
from .core.types import Batch, DimensionMismatchError, LearningRates, Sample, WeightPair
from .training.engine import ModelEngine, random_weights

__all__ = [
    "Batch",
    "DimensionMismatchError",
    "LearningRates",
    "ModelEngine",
    "Sample",
    "Settings",
    "TrainingController",
    "WeightPair",
    "activations",
    "load_settings",
    "random_weights",
    "types",
]
