"""Bodies of the ``math_kernels`` program.

Each body works on ``float4`` vectors: one work item covers four consecutive
elements, so buffers arrive already sliced to ``4 * global_size`` elements.
"""

from __future__ import annotations

import torch

from ..runtime.program import KernelDef, register_program

VECTOR_WIDTH = 4


def _vectors(tensor: torch.Tensor, global_size: int) -> torch.Tensor:
    return tensor.view(global_size, VECTOR_WIDTH)


def mult(
    in_a: torch.Tensor, in_b: torch.Tensor, out: torch.Tensor, *, global_size: int
) -> None:
    """``out[i] = in_a[i] * in_b[i]``."""

    torch.mul(
        _vectors(in_a, global_size),
        _vectors(in_b, global_size),
        out=_vectors(out, global_size),
    )


def pown_(
    inp: torch.Tensor, out: torch.Tensor, n: int, *, global_size: int
) -> None:
    """``out[i] = inp[i] ** n`` for an integer ``n``."""

    torch.pow(_vectors(inp, global_size), int(n), out=_vectors(out, global_size))


MATH_KERNELS = "math_kernels"

register_program(
    MATH_KERNELS,
    {
        "mult": KernelDef(mult, num_args=3, vector_width=VECTOR_WIDTH),
        "pown_": KernelDef(pown_, num_args=3, vector_width=VECTOR_WIDTH),
    },
)
