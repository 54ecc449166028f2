"""Utility functions and helpers for querychain."""

from querychain.utils.decorators import traced

__all__ = [
    "traced",
]
