"""Precompiled kernel programs and kernel argument binding."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

import torch

from ..errors import ErrorCode, RuntimeTransportError
from .memory import Buffer


@dataclass(frozen=True)
class KernelDef:
    """A kernel body registered under a program.

    Attributes:
        body: Callable receiving the bound arguments (buffers resolved to
            tensors) followed by the ``global_size`` keyword.
        num_args: Number of positional argument slots.
        vector_width: Elements processed by one work item.
    """

    body: Callable[..., None]
    num_args: int
    vector_width: int = 4


_PROGRAMS: dict[str, dict[str, KernelDef]] = {}


def register_program(name: str, kernels: dict[str, KernelDef]) -> None:
    """Make a set of kernel bodies loadable under ``name``."""

    _PROGRAMS[name] = dict(kernels)


class Kernel:
    """A kernel instance with its own positional argument slots.

    Args:
        name: Kernel function name.
        definition: Registered body and argument layout.
    """

    def __init__(self, name: str, definition: KernelDef):
        self.name = name
        self.definition = definition
        self._args: list[Optional[Any]] = [None] * definition.num_args

    @property
    def vector_width(self) -> int:
        return self.definition.vector_width

    @property
    def num_args(self) -> int:
        return self.definition.num_args

    def set_arg(self, index: int, value: Any) -> None:
        """Bind ``value`` (a :class:`Buffer` or a scalar) to slot ``index``.

        Raises:
            RuntimeTransportError: If ``index`` is not a slot of this kernel.
        """

        if not 0 <= index < self.definition.num_args:
            raise RuntimeTransportError(
                f"kernel '{self.name}' has no argument {index}",
                ErrorCode.INVALID_ARG_INDEX,
            )
        self._args[index] = value

    def get_arg(self, index: int) -> Optional[Any]:
        return self._args[index]

    def launch(self, global_size: int) -> None:
        """Execute the body over ``global_size`` work items on the current stream."""

        extent = global_size * self.vector_width
        resolved: list[Any] = []
        for index, value in enumerate(self._args):
            if value is None:
                raise RuntimeTransportError(
                    f"argument {index} of kernel '{self.name}' is not set",
                    ErrorCode.INVALID_KERNEL_ARGS,
                )
            if isinstance(value, Buffer):
                if value.is_host:
                    raise RuntimeTransportError(
                        f"argument {index} of kernel '{self.name}' is a staging buffer",
                        ErrorCode.INVALID_MEM_OBJECT,
                    )
                if value.length < extent:
                    raise RuntimeTransportError(
                        f"argument {index} of kernel '{self.name}' holds "
                        f"{value.length} elements, {extent} required",
                        ErrorCode.INVALID_GLOBAL_WORK_SIZE,
                    )
                resolved.append(value.data[:extent])
            elif isinstance(value, torch.Tensor):
                resolved.append(value[:extent])
            else:
                resolved.append(value)
        self.definition.body(*resolved, global_size=global_size)

    def __repr__(self) -> str:
        return f"Kernel({self.name!r}, num_args={self.num_args})"


class Program:
    """A loaded program from which kernels are instantiated.

    Args:
        name: Registered program name.
    """

    def __init__(self, name: str):
        if name not in _PROGRAMS:
            raise RuntimeTransportError(
                f"program '{name}' is not available", ErrorCode.INVALID_PROGRAM
            )
        self.name = name
        self._kernels = _PROGRAMS[name]

    @property
    def kernel_names(self) -> list[str]:
        return sorted(self._kernels)

    def create_kernel(self, name: str) -> Kernel:
        """Instantiate kernel ``name`` with unbound argument slots."""

        if name not in self._kernels:
            raise RuntimeTransportError(
                f"program '{self.name}' has no kernel '{name}'",
                ErrorCode.INVALID_KERNEL_NAME,
            )
        return Kernel(name, self._kernels[name])
