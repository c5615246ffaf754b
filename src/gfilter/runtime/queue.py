"""Ordered command queues and the completion tokens they hand out."""

from __future__ import annotations

import time
from typing import Callable, Optional, Sequence

import torch

from ..errors import ErrorCode, RuntimeTransportError, classify_runtime_failure
from .memory import Buffer, Context
from .program import Kernel


class CompletionToken:
    """Future completion point of an enqueued operation.

    A token wraps a ``torch.cuda.Event`` recorded on the producing stream. On
    the CPU, operations complete before the enqueue call returns and the token
    only carries the completion timestamp.

    Args:
        event: Event recorded after the operation, ``None`` for completed work.
    """

    def __init__(self, event: Optional[torch.cuda.Event] = None):
        self.event = event
        self._completed_at: Optional[float] = None if event is not None else time.perf_counter()

    def query(self) -> bool:
        """Return ``True`` once the operation has finished."""

        if self.event is None:
            return True
        return bool(self.event.query())

    def wait(self) -> None:
        """Block the calling thread until the operation has finished."""

        if self.event is None:
            return
        try:
            self.event.synchronize()
        except RuntimeError as exc:
            raise RuntimeTransportError(
                f"waiting for completion failed: {exc}", classify_runtime_failure(exc)
            ) from exc

    def elapsed_ms(self, end: "CompletionToken") -> float:
        """Milliseconds between this token and a later ``end`` token.

        CUDA tokens need a queue created with ``profiling=True``.
        """

        if self.event is not None and end.event is not None:
            end.wait()
            return float(self.event.elapsed_time(end.event))
        if self._completed_at is None or end._completed_at is None:
            raise RuntimeTransportError(
                "cannot time tokens from different kinds of queues",
                ErrorCode.INVALID_EVENT_WAIT_LIST,
            )
        return (end._completed_at - self._completed_at) * 1000.0

    def _block_stream(self, stream: torch.cuda.Stream) -> None:
        if self.event is not None:
            stream.wait_event(self.event)

    def __repr__(self) -> str:
        return f"CompletionToken(complete={self.query()})"


def _check_wait_list(
    wait_for: Optional[Sequence[CompletionToken]],
) -> list[CompletionToken]:
    if wait_for is None:
        return []
    tokens = list(wait_for)
    for token in tokens:
        if not isinstance(token, CompletionToken):
            raise RuntimeTransportError(
                f"wait list entry {token!r} is not a completion token",
                ErrorCode.INVALID_EVENT_WAIT_LIST,
            )
    return tokens


class CommandQueue:
    """In-order queue of transfers and kernel launches on one context.

    CUDA contexts get a dedicated ``torch.cuda.Stream``; operations return
    immediately and complete asynchronously. CPU contexts execute each
    operation eagerly in enqueue order.

    Args:
        context: Context whose memory the queue operates on.
        profiling: Record timing information in completion tokens.
    """

    def __init__(self, context: Context, profiling: bool = False):
        self.context = context
        self.profiling = profiling
        self.stream: Optional[torch.cuda.Stream] = None
        if context.device.type == "cuda":
            self.stream = torch.cuda.Stream(device=context.device)

    @property
    def is_async(self) -> bool:
        return self.stream is not None

    def _submit(
        self,
        op: Callable[[], None],
        wait_for: Optional[Sequence[CompletionToken]],
        blocking: bool,
        what: str,
    ) -> CompletionToken:
        tokens = _check_wait_list(wait_for)
        try:
            if self.stream is None:
                for token in tokens:
                    token.wait()
                op()
                return CompletionToken()
            with torch.cuda.stream(self.stream):
                for token in tokens:
                    token._block_stream(self.stream)
                op()
                event = torch.cuda.Event(enable_timing=self.profiling)
                event.record(self.stream)
        except RuntimeTransportError:
            raise
        except RuntimeError as exc:
            raise RuntimeTransportError(
                f"{what} failed: {exc}", classify_runtime_failure(exc)
            ) from exc
        token = CompletionToken(event)
        if blocking:
            token.wait()
        return token

    def _transfer_length(self, buffer: Buffer, host: torch.Tensor, length: Optional[int]) -> int:
        count = buffer.length if length is None else length
        if count > buffer.length or count > host.numel():
            raise RuntimeTransportError(
                f"transfer of {count} elements exceeds buffer "
                f"({buffer.length}) or host region ({host.numel()})",
                ErrorCode.INVALID_VALUE,
            )
        return count

    def enqueue_write_buffer(
        self,
        buffer: Buffer,
        blocking: bool,
        host: torch.Tensor,
        wait_for: Optional[Sequence[CompletionToken]] = None,
        length: Optional[int] = None,
    ) -> CompletionToken:
        """Copy ``host`` memory into ``buffer``.

        Args:
            buffer: Destination buffer.
            blocking: Wait for the copy before returning.
            host: Source host tensor; must stay untouched until the copy completes.
            wait_for: Tokens that must complete before the copy starts.
            length: Elements to copy, defaults to the whole buffer.

        Returns:
            Token completing with the copy.
        """

        count = self._transfer_length(buffer, host, length)
        source = host.reshape(-1)[:count]

        def op() -> None:
            buffer.data[:count].copy_(source, non_blocking=self.is_async)

        return self._submit(op, wait_for, blocking, "write to buffer")

    def enqueue_read_buffer(
        self,
        buffer: Buffer,
        blocking: bool,
        host: torch.Tensor,
        wait_for: Optional[Sequence[CompletionToken]] = None,
        length: Optional[int] = None,
    ) -> CompletionToken:
        """Copy ``buffer`` into ``host`` memory.

        Args:
            buffer: Source buffer.
            blocking: Wait for the copy before returning.
            host: Destination host tensor; only valid once the token completes.
            wait_for: Tokens that must complete before the copy starts.
            length: Elements to copy, defaults to the whole buffer.

        Returns:
            Token completing with the copy.
        """

        count = self._transfer_length(buffer, host, length)
        target = host.reshape(-1)[:count]

        def op() -> None:
            target.copy_(buffer.data[:count], non_blocking=self.is_async)

        return self._submit(op, wait_for, blocking, "read from buffer")

    def enqueue_map_buffer(
        self,
        buffer: Buffer,
        blocking: bool,
        wait_for: Optional[Sequence[CompletionToken]] = None,
    ) -> tuple[torch.Tensor, CompletionToken]:
        """Expose a host-visible buffer as a host tensor.

        Returns:
            The host view and a token completing once preceding work on the
            queue has finished with the region.

        Raises:
            RuntimeTransportError: If the buffer lives in device memory.
        """

        if buffer.data.device.type != "cpu":
            raise RuntimeTransportError(
                "only host-visible buffers can be mapped", ErrorCode.INVALID_MEM_OBJECT
            )
        token = self._submit(lambda: None, wait_for, blocking, "map buffer")
        return buffer.data, token

    def enqueue_unmap_mem_object(
        self,
        buffer: Buffer,
        mapped: torch.Tensor,
        wait_for: Optional[Sequence[CompletionToken]] = None,
    ) -> CompletionToken:
        """Release a mapping obtained from :meth:`enqueue_map_buffer`."""

        if mapped.data_ptr() != buffer.data.data_ptr():
            raise RuntimeTransportError(
                "mapped region does not belong to the buffer", ErrorCode.INVALID_VALUE
            )
        return self._submit(lambda: None, wait_for, False, "unmap buffer")

    def enqueue_nd_range_kernel(
        self,
        kernel: Kernel,
        global_size: int,
        wait_for: Optional[Sequence[CompletionToken]] = None,
    ) -> CompletionToken:
        """Launch ``kernel`` over ``global_size`` work items. Never blocks."""

        return self._submit(
            lambda: kernel.launch(global_size),
            wait_for,
            False,
            f"kernel '{kernel.name}'",
        )

    def enqueue_marker(
        self, wait_for: Optional[Sequence[CompletionToken]] = None
    ) -> CompletionToken:
        """Token completing once all previously enqueued work has finished."""

        return self._submit(lambda: None, wait_for, False, "marker")

    def flush(self) -> None:
        """Submit enqueued operations to the device without waiting for them.

        CPU queues execute eagerly, so there is nothing to submit.
        """

        if self.stream is None:
            return
        try:
            self.stream.query()
        except RuntimeError as exc:
            raise RuntimeTransportError(
                f"flush failed: {exc}", classify_runtime_failure(exc)
            ) from exc

    def finish(self) -> None:
        """Block until every enqueued operation has completed."""

        if self.stream is None:
            return
        try:
            self.stream.synchronize()
        except RuntimeError as exc:
            raise RuntimeTransportError(
                f"finish failed: {exc}", classify_runtime_failure(exc)
            ) from exc

    def retain(self, buffer: Buffer) -> None:
        """Keep device memory of ``buffer`` alive until queued work is done.

        The caching allocator would otherwise hand the memory out again as
        soon as the last reference is dropped, while kernels on this queue
        may still use it.
        """

        if self.stream is not None and buffer.data.is_cuda:
            buffer.data.record_stream(self.stream)

    def __repr__(self) -> str:
        return f"CommandQueue(device={self.context.device}, profiling={self.profiling})"
