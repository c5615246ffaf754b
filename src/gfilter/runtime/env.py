"""Compute environment holding the contexts, queues, and programs stages bind to."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import torch

from ..errors import ErrorCode, RuntimeTransportError
from ..utils.dispatch import get_available_device
from .memory import Context
from .program import Program
from .queue import CommandQueue


@dataclass(frozen=True)
class EnvInfo:
    """Selects the context, queue(s), and program a stage binds to.

    Attributes:
        context_index: Index of the context in the environment.
        queue_indices: Indices of the queues (within the context) the stage uses.
        program_index: Index of the program holding the stage's kernel.
    """

    context_index: int = 0
    queue_indices: tuple[int, ...] = (0,)
    program_index: int = 0


class ComputeEnv:
    """A configured set of contexts, per-context queues, and loaded programs.

    Example::

        env = ComputeEnv()
        env.add_context()
        env.add_queue(0)
        env.add_program(0, "math_kernels")
    """

    def __init__(self) -> None:
        self.contexts: list[Context] = []
        self.queues: list[list[CommandQueue]] = []
        self.programs: list[Program] = []

    def add_context(
        self,
        device: Optional[str | torch.device] = None,
        dtype: torch.dtype = torch.float32,
    ) -> int:
        """Create a context on ``device`` (best available when ``None``).

        Returns:
            Index of the new context.
        """

        if device is None:
            device = get_available_device()
        self.contexts.append(Context(torch.device(device), dtype=dtype))
        self.queues.append([])
        return len(self.contexts) - 1

    def add_queue(self, context_index: int, profiling: bool = False) -> int:
        """Create a command queue on a context.

        Returns:
            Index of the queue within the context.
        """

        context = self.get_context(context_index)
        self.queues[context_index].append(CommandQueue(context, profiling=profiling))
        return len(self.queues[context_index]) - 1

    def add_program(self, context_index: int, name: str) -> int:
        """Load the precompiled program ``name`` for a context.

        Returns:
            Index of the program.
        """

        self.get_context(context_index)
        self.programs.append(Program(name))
        return len(self.programs) - 1

    def get_context(self, index: int) -> Context:
        if not 0 <= index < len(self.contexts):
            raise RuntimeTransportError(
                f"no context at index {index}", ErrorCode.INVALID_VALUE
            )
        return self.contexts[index]

    def get_queue(self, context_index: int, queue_index: int) -> CommandQueue:
        self.get_context(context_index)
        queues = self.queues[context_index]
        if not 0 <= queue_index < len(queues):
            raise RuntimeTransportError(
                f"no queue {queue_index} on context {context_index}",
                ErrorCode.INVALID_VALUE,
            )
        return queues[queue_index]

    def get_program(self, index: int) -> Program:
        if not 0 <= index < len(self.programs):
            raise RuntimeTransportError(
                f"no program at index {index}", ErrorCode.INVALID_PROGRAM
            )
        return self.programs[index]
