"""Staged buffer execution harness shared by every kernel stage.

A stage owns one kernel and the memory around it. Every memory role of the
kernel has a device buffer bound to a fixed kernel argument and, depending on
the :class:`~gfilter.common.Staging` policy, a host-visible staging buffer
used to ferry data across the host/device boundary.

Buffers bound with :meth:`ComputeStage.bind` before ``init`` are borrowed:
the stage reuses them verbatim and never replaces them. This is how stages are
chained without a host round trip::

    first.init(640, 480, Staging.INPUT_ONLY)
    second.bind(Pown.Memory.D_IN, first.get(Mult.Memory.D_OUT))
    second.init(640, 480, 2, Staging.OUTPUT_ONLY)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Optional, Sequence

import torch

from ..common import Direction, Ownership, Placement, Staging
from ..errors import (
    ConfigurationError,
    ErrorCode,
    RuntimeTransportError,
    classify_runtime_failure,
)
from ..runtime.env import ComputeEnv, EnvInfo
from ..runtime.memory import Buffer, MemFlags
from ..runtime.queue import CompletionToken

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MemorySlot:
    """Static description of one memory object handled by a stage.

    Attributes:
        placement: Host staging buffer or device buffer.
        direction: Whether the kernel reads or writes the role.
        arg_index: Kernel argument slot (device buffers only).
        partner: For device slots, the staging slot ferrying its data; for
            staging slots, the device slot they mirror.
    """

    placement: Placement
    direction: Direction
    arg_index: Optional[int] = None
    partner: Optional[Enum] = None


_DEVICE_FLAGS = {
    Direction.INPUT: MemFlags.READ_ONLY,
    Direction.OUTPUT: MemFlags.WRITE_ONLY,
}


class ComputeStage:
    """Base class orchestrating one kernel's memory and execution lifecycle.

    Subclasses declare ``kernel_name``, a ``Memory`` enum, and ``SLOTS``
    mapping each ``Memory`` member to its :class:`MemorySlot`. They implement
    ``init`` by calling :meth:`_configure`.

    Args:
        env: Configured compute environment.
        info: Selects the context, queue, and program to bind to.
    """

    kernel_name: ClassVar[str]
    SLOTS: ClassVar[dict[Any, MemorySlot]]

    def __init__(self, env: ComputeEnv, info: EnvInfo = EnvInfo()):
        self.env = env
        self.info = info
        self.context = env.get_context(info.context_index)
        self.queue = env.get_queue(info.context_index, info.queue_indices[0])
        self.kernel = env.get_program(info.program_index).create_kernel(self.kernel_name)
        self._buffers: dict[Any, Optional[Buffer]] = {mem: None for mem in self.SLOTS}
        self._ownership: dict[Any, Optional[Ownership]] = {mem: None for mem in self.SLOTS}
        self._mapped: dict[Any, Optional[torch.Tensor]] = {mem: None for mem in self.SLOTS}
        self._staging = Staging.NONE
        self._length = 0
        self._global_size = 0
        self._configured = False
        self.last_token: Optional[CompletionToken] = None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def configured(self) -> bool:
        return self._configured

    @property
    def staging(self) -> Staging:
        return self._staging

    @property
    def length(self) -> int:
        """Number of elements processed per launch."""

        return self._length

    @property
    def global_size(self) -> int:
        """Number of work items per launch."""

        return self._global_size

    @property
    def vector_width(self) -> int:
        return self.kernel.vector_width

    def ownership(self, mem: Enum) -> Optional[Ownership]:
        self._check_member(mem)
        return self._ownership[mem]

    # ------------------------------------------------------------------
    # Buffer sharing
    # ------------------------------------------------------------------

    def get(self, mem: Enum) -> Optional[Buffer]:
        """Return the buffer currently bound to ``mem``.

        Args:
            mem: Member of the stage's ``Memory`` enum.

        Returns:
            The bound buffer, or ``None`` if nothing is bound yet.
        """

        self._check_member(mem)
        return self._buffers[mem]

    def bind(self, mem: Enum, buffer: Optional[Buffer]) -> None:
        """Bind an externally owned buffer to ``mem``.

        The buffer is reused verbatim by the next ``init``; the caller must
        keep its size compatible with the stage dimensions. Binding ``None``
        clears the slot so the next ``init`` allocates a fresh buffer.

        Args:
            mem: Member of the stage's ``Memory`` enum.
            buffer: Buffer to share, typically another stage's ``get`` result.
        """

        self._check_member(mem)
        self._buffers[mem] = buffer
        self._ownership[mem] = None if buffer is None else Ownership.BORROWED
        self._mapped[mem] = None

    def host(self, mem: Enum) -> Optional[torch.Tensor]:
        """Return the host view of a staging buffer, ``None`` if not staged.

        The view is invalidated when a later ``init`` reallocates the buffer.
        """

        self._check_member(mem)
        return self._mapped[mem]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _configure(self, width: int, height: int, staging: Staging) -> None:
        """Validate dimensions, set up memory, and bind the buffer arguments."""

        length = width * height
        name = type(self).__name__
        try:
            try:
                policy = Staging(staging)
            except ValueError:
                raise ConfigurationError(f"Unknown staging policy {staging!r}") from None
            if length <= 0:
                raise ConfigurationError("The image cannot have zeroed dimensions")
            if length % self.vector_width != 0:
                raise ConfigurationError(
                    "The number of elements in the array has to be a multiple "
                    f"of {self.vector_width}"
                )
        except ConfigurationError as exc:
            logger.error("Error[%s]: %s", name, exc)
            raise

        itemsize = torch.empty((), dtype=self.context.dtype).element_size()
        size = length * itemsize
        self._length = length
        self._global_size = length // self.vector_width
        self._staging = policy

        staged: list[Any] = []
        for mem, slot in self.SLOTS.items():
            if slot.placement is not Placement.HOST:
                continue
            if self._staging.stages(slot.direction):
                self._ensure(mem, size, MemFlags.ALLOC_HOST_PTR)
                staged.append(mem)
            else:
                self._drop(mem)

        for mem in staged:
            buffer = self._buffers[mem]
            view, _ = self.queue.enqueue_map_buffer(buffer, False)
            self.queue.enqueue_unmap_mem_object(buffer, view)
            self._mapped[mem] = view[:length]
        if staged:
            self.queue.finish()

        for mem, slot in self.SLOTS.items():
            if slot.placement is not Placement.DEVICE:
                continue
            buffer = self._ensure(mem, size, _DEVICE_FLAGS[slot.direction])
            self.queue.retain(buffer)
            self.kernel.set_arg(slot.arg_index, buffer)

        self._bind_scalars()
        self._configured = True
        logger.debug(
            "%s configured: %d elements, %d work items, staging=%s",
            name,
            length,
            self._global_size,
            self._staging.name,
        )

    def _bind_scalars(self) -> None:
        """Bind scalar kernel arguments; stages with scalars override this."""

    def _ensure(self, mem: Any, size: int, flags: MemFlags) -> Buffer:
        current = self._buffers[mem]
        if current is not None and self._ownership[mem] is Ownership.BORROWED:
            logger.debug("%s: reusing borrowed buffer for %s", type(self).__name__, mem.name)
            return current
        if current is not None and current.size == size:
            return current
        if current is not None:
            logger.debug("%s: releasing %s (%d bytes)", type(self).__name__, mem.name, current.size)
            self.queue.finish()
        buffer = self.context.allocate(size, flags)
        self._buffers[mem] = buffer
        self._ownership[mem] = Ownership.OWNED
        self._mapped[mem] = None
        return buffer

    def _drop(self, mem: Any) -> None:
        self._mapped[mem] = None
        if self._ownership[mem] is Ownership.OWNED:
            self.queue.finish()
            self._buffers[mem] = None
            self._ownership[mem] = None

    def write(
        self,
        mem: Enum,
        data: Optional[Any] = None,
        blocking: bool = False,
        wait_for: Optional[Sequence[CompletionToken]] = None,
    ) -> Optional[CompletionToken]:
        """Transfer a staging buffer to its input device buffer.

        Nothing happens (and ``None`` is returned) when the policy has no
        input staging or ``mem`` is not an input device role.

        Args:
            mem: Input device role, e.g. ``Mult.Memory.D_IN_A``.
            data: Optional host array; when given, ``length`` elements are
                first copied into the staging buffer.
            blocking: Wait for the transfer before returning.
            wait_for: Tokens that must complete before the transfer.

        Returns:
            Token completing with the transfer, or ``None`` for a no-op.
        """

        self._require_configured()
        slot = self.SLOTS.get(mem)
        if (
            slot is None
            or slot.placement is not Placement.DEVICE
            or slot.direction is not Direction.INPUT
            or not self._staging.stages_input
        ):
            logger.debug("%s: write(%s) skipped under %s", type(self).__name__, mem, self._staging.name)
            return None

        view = self._mapped[slot.partner]
        if view.numel() < self._length:
            raise RuntimeTransportError(
                f"staging buffer for {mem.name} holds {view.numel()} elements, "
                f"{self._length} required",
                ErrorCode.INVALID_VALUE,
            )
        if data is not None:
            self._stage_input(view, data)
        token = self.queue.enqueue_write_buffer(
            self._buffers[mem], blocking, view, wait_for, length=self._length
        )
        self.last_token = token
        return token

    def _stage_input(self, view: torch.Tensor, data: Any) -> None:
        try:
            source = torch.as_tensor(data, dtype=view.dtype).reshape(-1)
        except (RuntimeError, TypeError, ValueError) as exc:
            raise RuntimeTransportError(
                f"cannot stage {type(data).__name__} as {view.dtype}: {exc}",
                ErrorCode.INVALID_VALUE,
            ) from exc
        if source.numel() < self._length:
            raise RuntimeTransportError(
                f"source holds {source.numel()} elements, {self._length} required",
                ErrorCode.INVALID_VALUE,
            )
        try:
            view.copy_(source[: self._length])
        except RuntimeError as exc:
            raise RuntimeTransportError(
                f"copy into staging buffer failed: {exc}", classify_runtime_failure(exc)
            ) from exc

    def run(
        self, wait_for: Optional[Sequence[CompletionToken]] = None
    ) -> CompletionToken:
        """Enqueue the kernel over the configured work items. Never blocks.

        Args:
            wait_for: Tokens that must complete before the launch.

        Returns:
            Token completing with the kernel.
        """

        self._require_configured()
        token = self.queue.enqueue_nd_range_kernel(self.kernel, self._global_size, wait_for)
        self.last_token = token
        return token

    def read(
        self,
        mem: Enum,
        blocking: bool = True,
        wait_for: Optional[Sequence[CompletionToken]] = None,
    ) -> Optional[torch.Tensor]:
        """Transfer an output device buffer to its staging buffer.

        Args:
            mem: Output staging role, e.g. ``Mult.Memory.H_OUT``.
            blocking: Wait for the transfer before returning. Non-blocking
                callers wait on ``last_token`` before touching the result.
            wait_for: Tokens that must complete before the transfer.

        Returns:
            Host view of the staging buffer, or ``None`` when the policy has
            no output staging or ``mem`` is not an output staging role.
        """

        self._require_configured()
        slot = self.SLOTS.get(mem)
        if (
            slot is None
            or slot.placement is not Placement.HOST
            or slot.direction is not Direction.OUTPUT
            or not self._staging.stages_output
        ):
            logger.debug("%s: read(%s) skipped under %s", type(self).__name__, mem, self._staging.name)
            return None

        view = self._mapped[mem]
        self.last_token = self.queue.enqueue_read_buffer(
            self._buffers[slot.partner], blocking, view, wait_for, length=self._length
        )
        return view

    def _require_configured(self) -> None:
        if not self._configured:
            raise ConfigurationError(f"{type(self).__name__} is used before init")

    def _check_member(self, mem: Any) -> None:
        if mem not in self.SLOTS:
            raise KeyError(f"{type(self).__name__} has no memory object {mem!r}")

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(length={self._length}, "
            f"staging={self._staging.name}, configured={self._configured})"
        )
