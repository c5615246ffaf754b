"""Kernel stages with staged buffer execution."""

from . import kernels
from .kernels import MATH_KERNELS
from .math import Mult, Pown
from .stage import ComputeStage, MemorySlot

__all__ = [
    "ComputeStage",
    "MATH_KERNELS",
    "MemorySlot",
    "Mult",
    "Pown",
    "kernels",
]
