"""Torch-backed accelerator runtime used by the kernel stages."""

from .env import ComputeEnv, EnvInfo
from .memory import Buffer, Context, MemFlags
from .program import Kernel, KernelDef, Program, register_program
from .queue import CommandQueue, CompletionToken

__all__ = [
    "Buffer",
    "CommandQueue",
    "CompletionToken",
    "ComputeEnv",
    "Context",
    "EnvInfo",
    "Kernel",
    "KernelDef",
    "MemFlags",
    "Program",
    "register_program",
]
