import sys
from pathlib import Path

import pytest


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "cuda: marks tests that need a CUDA device"
    )
    # Ensure src/ is importable without installing the package
    root = Path(__file__).resolve().parents[1]
    src = root / "src"
    if str(src) not in sys.path:
        sys.path.insert(0, str(src))


@pytest.fixture(params=["cpu", pytest.param("cuda", marks=pytest.mark.cuda)])
def device(request):
    import torch

    if request.param == "cuda" and not torch.cuda.is_available():
        pytest.skip("CUDA is not available")
    return request.param


@pytest.fixture
def env(device):
    from gfilter import MATH_KERNELS, ComputeEnv

    compute_env = ComputeEnv()
    ctx = compute_env.add_context(device)
    compute_env.add_queue(ctx)
    compute_env.add_program(ctx, MATH_KERNELS)
    return compute_env


@pytest.fixture
def generator():
    import torch

    gen = torch.Generator()
    gen.manual_seed(0)
    return gen
