"""Model engine and training loops."""

from .engine import ModelEngine, random_weights

__all__ = ["ModelEngine", "random_weights"]
