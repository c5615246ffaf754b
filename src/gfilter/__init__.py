"""GPU-accelerated building blocks for guided filtering pipelines."""

from .common import Ownership, Staging
from .errors import (
    ConfigurationError,
    ErrorCode,
    GFilterError,
    RuntimeTransportError,
    abort_on_error,
    error_code_string,
)
from .ops import MATH_KERNELS, ComputeStage, Mult, Pown
from .runtime import CommandQueue, CompletionToken, ComputeEnv, EnvInfo

__version__ = "0.1.0"

__all__ = [
    "CommandQueue",
    "CompletionToken",
    "ComputeEnv",
    "ComputeStage",
    "ConfigurationError",
    "EnvInfo",
    "ErrorCode",
    "GFilterError",
    "MATH_KERNELS",
    "Mult",
    "Ownership",
    "Pown",
    "RuntimeTransportError",
    "Staging",
    "__version__",
    "abort_on_error",
    "error_code_string",
]
