"""Stages organizing the execution of the ``math_kernels`` program.

Both stages assume a fully configured :class:`~gfilter.runtime.ComputeEnv`:
a known context, a queue on it, and the ``math_kernels`` program loaded.
"""

from __future__ import annotations

from enum import Enum

from ..common import Direction, Placement, Staging
from ..runtime.env import ComputeEnv, EnvInfo
from .stage import ComputeStage, MemorySlot


class Mult(ComputeStage):
    """Interface class for the ``mult`` kernel.

    ``mult`` multiplies two input arrays together, element-wise. The stage
    creates its own buffers unless buffers were bound to its slots with
    :meth:`bind` before ``init``.

    ========  =========  ===  ==========  ==========
    Memory    Placement  I/O  Use         Flags
    ========  =========  ===  ==========  ==========
    H_IN_A    Host       I    Staging     ALLOC_HOST_PTR
    H_IN_B    Host       I    Staging     ALLOC_HOST_PTR
    H_OUT     Host       O    Staging     ALLOC_HOST_PTR
    D_IN_A    Device     I    Processing  READ_ONLY
    D_IN_B    Device     I    Processing  READ_ONLY
    D_OUT     Device     O    Processing  WRITE_ONLY
    ========  =========  ===  ==========  ==========

    Args:
        env: Configured compute environment.
        info: Selects the context, queue, and program to bind to.
    """

    class Memory(Enum):
        H_IN_A = "h_in_a"
        H_IN_B = "h_in_b"
        H_OUT = "h_out"
        D_IN_A = "d_in_a"
        D_IN_B = "d_in_b"
        D_OUT = "d_out"

    kernel_name = "mult"
    SLOTS = {
        Memory.H_IN_A: MemorySlot(Placement.HOST, Direction.INPUT, partner=Memory.D_IN_A),
        Memory.H_IN_B: MemorySlot(Placement.HOST, Direction.INPUT, partner=Memory.D_IN_B),
        Memory.H_OUT: MemorySlot(Placement.HOST, Direction.OUTPUT, partner=Memory.D_OUT),
        Memory.D_IN_A: MemorySlot(Placement.DEVICE, Direction.INPUT, 0, Memory.H_IN_A),
        Memory.D_IN_B: MemorySlot(Placement.DEVICE, Direction.INPUT, 1, Memory.H_IN_B),
        Memory.D_OUT: MemorySlot(Placement.DEVICE, Direction.OUTPUT, 2, Memory.H_OUT),
    }

    def init(
        self, width: int, height: int, staging: Staging = Staging.INPUT_AND_OUTPUT
    ) -> None:
        """Configure kernel execution parameters.

        Args:
            width: Width of the arrays to process.
            height: Height of the arrays to process.
            staging: Staging buffers to instantiate.

        Raises:
            ConfigurationError: If ``width * height`` is zero or not a
                multiple of 4.
        """

        self._configure(width, height, staging)


class Pown(ComputeStage):
    """Interface class for the ``pown_`` kernel.

    ``pown_`` raises an array to an integer power, element-wise. The power is
    bound as the third kernel argument and can be changed between launches
    with :meth:`set_exponent`.

    =====  =========  ===  ==========  ==========
    Name   Placement  I/O  Use         Flags
    =====  =========  ===  ==========  ==========
    H_IN   Host       I    Staging     ALLOC_HOST_PTR
    H_OUT  Host       O    Staging     ALLOC_HOST_PTR
    D_IN   Device     I    Processing  READ_ONLY
    D_OUT  Device     O    Processing  WRITE_ONLY
    =====  =========  ===  ==========  ==========

    Args:
        env: Configured compute environment.
        info: Selects the context, queue, and program to bind to.
    """

    class Memory(Enum):
        H_IN = "h_in"
        H_OUT = "h_out"
        D_IN = "d_in"
        D_OUT = "d_out"

    kernel_name = "pown_"
    SLOTS = {
        Memory.H_IN: MemorySlot(Placement.HOST, Direction.INPUT, partner=Memory.D_IN),
        Memory.H_OUT: MemorySlot(Placement.HOST, Direction.OUTPUT, partner=Memory.D_OUT),
        Memory.D_IN: MemorySlot(Placement.DEVICE, Direction.INPUT, 0, Memory.H_IN),
        Memory.D_OUT: MemorySlot(Placement.DEVICE, Direction.OUTPUT, 1, Memory.H_OUT),
    }

    EXPONENT_ARG = 2

    def __init__(self, env: ComputeEnv, info: EnvInfo = EnvInfo()):
        super().__init__(env, info)
        self._n = 1

    def init(
        self,
        width: int,
        height: int,
        n: int,
        staging: Staging = Staging.INPUT_AND_OUTPUT,
    ) -> None:
        """Configure kernel execution parameters.

        Args:
            width: Width of the array to process.
            height: Height of the array to process.
            n: Power to which to raise the input array.
            staging: Staging buffers to instantiate.

        Raises:
            ConfigurationError: If ``width * height`` is zero or not a
                multiple of 4.
        """

        self._configure(width, height, staging)
        self.set_exponent(n)

    def _bind_scalars(self) -> None:
        self.kernel.set_arg(self.EXPONENT_ARG, self._n)

    def get_exponent(self) -> int:
        return self._n

    def set_exponent(self, n: int) -> None:
        """Update the power; takes effect on the next :meth:`run`."""

        self._n = int(n)
        self.kernel.set_arg(self.EXPONENT_ARG, self._n)
