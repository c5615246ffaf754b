"""Utility namespace for device discovery."""

from .dispatch import get_available_device, has_cpu_device, has_cuda_device

__all__ = [
    "get_available_device",
    "has_cpu_device",
    "has_cuda_device",
]
