from __future__ import annotations

import torch


def mult(a: torch.Tensor, b: torch.Tensor) -> torch.Tensor:
    """Reference element-wise multiplication computed on the host.

    Args:
        a: First operand.
        b: Second operand with the same number of elements as ``a``.

    Returns:
        ``a * b`` as a flat ``float32`` CPU tensor.
    """

    a = a.detach().to("cpu", torch.float32).reshape(-1)
    b = b.detach().to("cpu", torch.float32).reshape(-1)
    if a.numel() != b.numel():
        raise ValueError("a and b must have the same number of elements.")
    return a * b


def pown(x: torch.Tensor, n: int) -> torch.Tensor:
    """Reference raise-to-integer-power computed on the host.

    Args:
        x: Input array.
        n: Integer power.

    Returns:
        ``x ** n`` as a flat ``float32`` CPU tensor.
    """

    x = x.detach().to("cpu", torch.float32).reshape(-1)
    return torch.pow(x, int(n))
