"""Contexts and the memory objects allocated from them."""

from __future__ import annotations

import logging
from enum import Flag, auto

import torch

from ..errors import ErrorCode, RuntimeTransportError, classify_runtime_failure

logger = logging.getLogger(__name__)


class MemFlags(Flag):
    """Allocation flags for :meth:`Context.allocate`.

    ``ALLOC_HOST_PTR`` requests host-visible memory; the remaining flags are
    kernel access hints for device-resident memory.
    """

    READ_WRITE = auto()
    READ_ONLY = auto()
    WRITE_ONLY = auto()
    ALLOC_HOST_PTR = auto()


class Buffer:
    """A flat ``float32`` memory object owned by a context.

    Args:
        context: Context that allocated the buffer.
        data: Backing tensor, one-dimensional.
        flags: Flags the buffer was allocated with.
    """

    def __init__(self, context: "Context", data: torch.Tensor, flags: MemFlags):
        self.context = context
        self.data = data
        self.flags = flags

    @property
    def length(self) -> int:
        """Number of elements."""

        return self.data.numel()

    @property
    def size(self) -> int:
        """Size in bytes."""

        return self.data.numel() * self.data.element_size()

    @property
    def is_host(self) -> bool:
        return bool(self.flags & MemFlags.ALLOC_HOST_PTR)

    @property
    def device(self) -> torch.device:
        return self.data.device

    def __repr__(self) -> str:
        placement = "host" if self.is_host else "device"
        return f"Buffer({placement}, length={self.length}, flags={self.flags})"


class Context:
    """Allocation domain bound to one torch device.

    Args:
        device: Device executing the kernels of this context.
        dtype: Element type of every buffer allocated here.
    """

    def __init__(self, device: torch.device, dtype: torch.dtype = torch.float32):
        self.device = torch.device(device)
        self.dtype = dtype

    @property
    def pinned_staging(self) -> bool:
        return self.device.type == "cuda"

    def allocate(self, size: int, flags: MemFlags = MemFlags.READ_WRITE) -> Buffer:
        """Allocate a buffer of ``size`` bytes.

        Args:
            size: Requested size in bytes; must be a positive multiple of the
                element size.
            flags: ``ALLOC_HOST_PTR`` for staging memory, otherwise an access
                hint for device memory.

        Returns:
            The new :class:`Buffer`.

        Raises:
            RuntimeTransportError: If the size is invalid or the allocation fails.
        """

        itemsize = torch.empty((), dtype=self.dtype).element_size()
        if size <= 0 or size % itemsize != 0:
            raise RuntimeTransportError(
                f"cannot allocate a buffer of {size} bytes", ErrorCode.INVALID_VALUE
            )
        length = size // itemsize
        try:
            if flags & MemFlags.ALLOC_HOST_PTR:
                data = torch.zeros(
                    length, dtype=self.dtype, pin_memory=self.pinned_staging
                )
            else:
                data = torch.empty(length, dtype=self.dtype, device=self.device)
        except RuntimeError as exc:
            raise RuntimeTransportError(
                f"allocation of {size} bytes failed", classify_runtime_failure(exc)
            ) from exc
        logger.debug("allocated %d bytes on %s (%s)", size, data.device, flags)
        return Buffer(self, data, flags)

    def __repr__(self) -> str:
        return f"Context(device={self.device}, dtype={self.dtype})"
