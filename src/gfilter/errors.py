"""Error taxonomy shared by the runtime and the kernel stages."""

from __future__ import annotations

import sys
from contextlib import contextmanager
from enum import Enum
from typing import Iterator, Optional

import torch


class ErrorCode(Enum):
    """Status codes reported by the accelerator runtime."""

    INVALID_VALUE = -30
    INVALID_MEM_OBJECT = -38
    INVALID_PROGRAM = -44
    INVALID_KERNEL_NAME = -46
    INVALID_ARG_INDEX = -49
    INVALID_KERNEL_ARGS = -52
    INVALID_GLOBAL_WORK_SIZE = -63
    INVALID_EVENT_WAIT_LIST = -57
    MEM_OBJECT_ALLOCATION_FAILURE = -4
    OUT_OF_RESOURCES = -5
    DEVICE_FAULT = -9999


def error_code_string(code: ErrorCode) -> str:
    """Return the human-readable name of a runtime status code.

    Args:
        code: Status code attached to a :class:`RuntimeTransportError`.

    Returns:
        The code name, e.g. ``"INVALID_KERNEL_ARGS"``.
    """

    return code.name


class GFilterError(Exception):
    """Base class for every error raised by the package."""


class ConfigurationError(GFilterError, ValueError):
    """A stage was configured with a contract-violating setup."""


class RuntimeTransportError(GFilterError, RuntimeError):
    """The accelerator runtime failed during allocation, transfer, or execution.

    Args:
        message: Description of the failed operation.
        code: Runtime status code.
    """

    def __init__(self, message: str, code: ErrorCode = ErrorCode.DEVICE_FAULT):
        super().__init__(message)
        self.message = message
        self.code = code

    def __str__(self) -> str:
        return f"{self.message} ({error_code_string(self.code)})"


def classify_runtime_failure(exc: BaseException) -> ErrorCode:
    """Map a torch runtime exception onto a status code."""

    if isinstance(exc, torch.cuda.OutOfMemoryError):
        return ErrorCode.MEM_OBJECT_ALLOCATION_FAILURE
    text = str(exc).lower()
    if "out of memory" in text:
        return ErrorCode.MEM_OBJECT_ALLOCATION_FAILURE
    if "size" in text or "shape" in text:
        return ErrorCode.INVALID_VALUE
    return ErrorCode.DEVICE_FAULT


@contextmanager
def abort_on_error(stream: Optional[object] = None) -> Iterator[None]:
    """Terminate the process when a package error escapes the block.

    The diagnostic is written to ``stream`` (``sys.stderr`` by default) and the
    interpreter exits with status 1. Other exceptions propagate untouched.

    Args:
        stream: Text stream receiving the diagnostic.

    Returns:
        A context manager guarding a pipeline section.
    """

    try:
        yield
    except GFilterError as exc:
        out = stream if stream is not None else sys.stderr
        print(f"{type(exc).__name__}: {exc}", file=out)
        raise SystemExit(1) from exc
