from __future__ import annotations

from typing import Callable

import torch


def has_cuda_device() -> bool:
    """Return ``True`` when torch can reach a CUDA device."""

    try:
        return bool(torch.cuda.is_available())
    except Exception:
        return False


def has_cpu_device() -> bool:
    """Return ``True``; the host always executes kernels eagerly."""

    return True


def _device_checks() -> dict[str, Callable[[], bool]]:
    """Return availability predicates for the known devices."""

    return {
        "cuda": has_cuda_device,
        "cpu": has_cpu_device,
    }


def get_available_device(preferred: str | None = None) -> str:
    """Return the best available device type.

    The search defaults to CUDA, then the CPU. A caller may optionally supply
    a ``preferred`` device; if that device is unavailable the function falls
    back to the default order.

    Args:
        preferred: Optional device type to prioritize (``"cuda"`` or ``"cpu"``).

    Returns:
        The name of the first available device type.

    Raises:
        ValueError: If ``preferred`` is not a known device type.
        RuntimeError: If no device is available.
    """

    checks = _device_checks()
    order: list[str] = []
    if preferred is not None:
        if preferred not in checks:
            raise ValueError(f"unknown device preference: {preferred}")
        order.append(preferred)
    order.extend(name for name in ("cuda", "cpu") if name not in order)

    for device in order:
        if checks[device]():
            return device

    raise RuntimeError("no available device detected")
