"""Core numerical primitives for digitflow."""

from . import activations, types

__all__ = ["activations", "types"]
