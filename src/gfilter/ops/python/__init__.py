"""Host reference implementations of the math kernels."""

from .reference import mult, pown

__all__ = ["mult", "pown"]
