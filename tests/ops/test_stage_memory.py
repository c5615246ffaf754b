"""Buffer allocation, ownership, and dimension checks of the stage harness."""

from __future__ import annotations

import logging

import pytest
import torch

from gfilter import (
    ConfigurationError,
    ErrorCode,
    Mult,
    Ownership,
    Pown,
    RuntimeTransportError,
    Staging,
)
from gfilter.runtime import MemFlags


@pytest.mark.parametrize("width, height", [(0, 480), (640, 0), (3, 3), (5, 7)])
def test_init_rejects_invalid_dimensions(env, caplog, width, height):
    mult = Mult(env)
    with caplog.at_level(logging.ERROR, logger="gfilter.ops.stage"):
        with pytest.raises(ConfigurationError):
            mult.init(width, height)

    assert "Error[Mult]" in caplog.text
    assert not mult.configured
    assert all(mult.get(mem) is None for mem in Mult.Memory)


def test_configuration_error_is_a_value_error(env):
    with pytest.raises(ValueError):
        Pown(env).init(0, 0, 2)


def test_failed_reinit_keeps_previous_configuration(env):
    pown = Pown(env)
    pown.init(640, 480, 3)
    device_out = pown.get(Pown.Memory.D_OUT)

    with pytest.raises(ConfigurationError):
        pown.init(641, 1, 4)

    assert pown.length == 640 * 480
    assert pown.get_exponent() == 3
    assert pown.get(Pown.Memory.D_OUT) is device_out


def test_unknown_staging_policy_keeps_previous_configuration(env, caplog, generator):
    pown = Pown(env)
    pown.init(8, 8, 2)
    device_out = pown.get(Pown.Memory.D_OUT)

    with caplog.at_level(logging.ERROR, logger="gfilter.ops.stage"):
        with pytest.raises(ConfigurationError):
            pown.init(16, 16, 2, "bogus")

    assert "Error[Pown]" in caplog.text
    assert pown.length == 64
    assert pown.global_size == 16
    assert pown.staging is Staging.INPUT_AND_OUTPUT
    assert pown.get(Pown.Memory.D_OUT) is device_out

    x = torch.rand(64, generator=generator)
    pown.write(Pown.Memory.D_IN, x)
    pown.run()
    torch.testing.assert_close(pown.read(Pown.Memory.H_OUT), x * x)


def test_workspace_partition(env):
    mult = Mult(env)
    mult.init(640, 480)

    assert mult.length == 307200
    assert mult.vector_width == 4
    assert mult.global_size == 307200 // 4


def test_use_before_init_is_rejected(env):
    mult = Mult(env)
    with pytest.raises(ConfigurationError):
        mult.run()
    with pytest.raises(ConfigurationError):
        mult.write(Mult.Memory.D_IN_A)


def test_buffer_flags_follow_roles(env):
    mult = Mult(env)
    mult.init(8, 8)

    for mem in (Mult.Memory.H_IN_A, Mult.Memory.H_IN_B, Mult.Memory.H_OUT):
        buffer = mult.get(mem)
        assert buffer.is_host
        assert buffer.device.type == "cpu"
        assert buffer.size == 64 * 4
    assert mult.get(Mult.Memory.D_IN_A).flags == MemFlags.READ_ONLY
    assert mult.get(Mult.Memory.D_IN_B).flags == MemFlags.READ_ONLY
    assert mult.get(Mult.Memory.D_OUT).flags == MemFlags.WRITE_ONLY
    assert mult.get(Mult.Memory.D_OUT).device.type == env.get_context(0).device.type


def test_stage_owns_what_it_allocates(env):
    mult = Mult(env)
    assert mult.ownership(Mult.Memory.D_OUT) is None
    mult.init(16, 16)
    assert all(mult.ownership(mem) is Ownership.OWNED for mem in Mult.Memory)


def test_reinit_with_new_size_reallocates_owned_buffers(env):
    mult = Mult(env)
    mult.init(16, 16)
    old = {mem: mult.get(mem) for mem in Mult.Memory}
    old_view = mult.host(Mult.Memory.H_IN_A)

    mult.init(32, 16)

    for mem in Mult.Memory:
        assert mult.get(mem) is not old[mem]
        assert mult.get(mem).length == 32 * 16
    assert mult.host(Mult.Memory.H_IN_A) is not old_view
    assert mult.host(Mult.Memory.H_IN_A).numel() == 32 * 16


def test_reinit_preserves_borrowed_buffers(env, generator):
    producer = Mult(env)
    producer.init(32, 16)
    shared = producer.get(Mult.Memory.D_OUT)

    consumer = Pown(env)
    consumer.bind(Pown.Memory.D_IN, shared)
    consumer.init(32, 16, 2)
    assert consumer.ownership(Pown.Memory.D_IN) is Ownership.BORROWED

    # A smaller stage still fits in the borrowed buffer.
    consumer.init(16, 16, 2)
    assert consumer.get(Pown.Memory.D_IN) is shared
    assert consumer.ownership(Pown.Memory.D_IN) is Ownership.BORROWED
    assert consumer.get(Pown.Memory.D_OUT).length == 16 * 16

    x = torch.rand(16 * 16, generator=generator)
    shared.data[: x.numel()].copy_(x.to(shared.device))
    if shared.device.type == "cuda":
        torch.cuda.synchronize()
    consumer.run()
    torch.testing.assert_close(consumer.read(Pown.Memory.H_OUT), x * x)


def test_bound_staging_buffer_is_reused(env):
    first = Pown(env)
    first.init(8, 8, 2)
    staging = first.get(Pown.Memory.H_OUT)

    second = Pown(env)
    second.bind(Pown.Memory.H_OUT, staging)
    second.init(8, 8, 2, Staging.OUTPUT_ONLY)

    assert second.get(Pown.Memory.H_OUT) is staging
    assert second.host(Pown.Memory.H_OUT).data_ptr() == staging.data.data_ptr()


def test_unbinding_restores_allocation(env):
    producer = Mult(env)
    producer.init(8, 8)

    consumer = Pown(env)
    consumer.bind(Pown.Memory.D_IN, producer.get(Mult.Memory.D_OUT))
    consumer.bind(Pown.Memory.D_IN, None)
    consumer.init(8, 8, 2)

    assert consumer.get(Pown.Memory.D_IN) is not producer.get(Mult.Memory.D_OUT)
    assert consumer.ownership(Pown.Memory.D_IN) is Ownership.OWNED


def test_dropping_staging_releases_owned_host_buffers(env):
    mult = Mult(env)
    mult.init(8, 8, Staging.INPUT_AND_OUTPUT)
    mult.init(8, 8, Staging.NONE)

    for mem in (Mult.Memory.H_IN_A, Mult.Memory.H_IN_B, Mult.Memory.H_OUT):
        assert mult.get(mem) is None
        assert mult.host(mem) is None
        assert mult.ownership(mem) is None
    assert mult.staging is Staging.NONE


def test_unknown_memory_object(env):
    mult = Mult(env)
    with pytest.raises(KeyError):
        mult.get(Pown.Memory.D_IN)


def test_write_through_undersized_staging_buffer(env):
    mult = Mult(env)
    mult.bind(Mult.Memory.H_IN_A, env.get_context(0).allocate(4 * 4, MemFlags.ALLOC_HOST_PTR))
    mult.init(8, 8)

    with pytest.raises(RuntimeTransportError) as excinfo:
        mult.write(Mult.Memory.D_IN_A, torch.ones(64))
    assert excinfo.value.code is ErrorCode.INVALID_VALUE


@pytest.mark.parametrize("data", [["a"] * 64, object(), torch.ones(32)])
def test_write_rejects_unusable_source_data(env, data):
    mult = Mult(env)
    mult.init(8, 8)

    with pytest.raises(RuntimeTransportError) as excinfo:
        mult.write(Mult.Memory.D_IN_A, data)
    assert excinfo.value.code is ErrorCode.INVALID_VALUE


def test_reinit_after_pending_work_reallocates_safely(env, generator):
    mult = Mult(env)
    mult.init(16, 16)
    a = torch.rand(16 * 16, generator=generator)
    mult.write(Mult.Memory.D_IN_A, a)
    mult.write(Mult.Memory.D_IN_B, a)
    mult.run()

    mult.init(32, 16)
    a = torch.rand(32 * 16, generator=generator)
    b = torch.rand(32 * 16, generator=generator)
    mult.write(Mult.Memory.D_IN_A, a)
    mult.write(Mult.Memory.D_IN_B, b)
    mult.run()

    torch.testing.assert_close(mult.read(Mult.Memory.H_OUT), a * b)
