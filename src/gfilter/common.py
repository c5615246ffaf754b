from __future__ import annotations

from enum import Enum


class Staging(Enum):
    """Selects the staging buffers a stage instantiates at ``init``.

    Attributes:
        NONE: No staging buffers; the stage only touches device memory.
        INPUT_ONLY: Staging buffers for the input roles.
        OUTPUT_ONLY: Staging buffers for the output roles.
        INPUT_AND_OUTPUT: Staging buffers for every role.
    """

    NONE = "none"
    INPUT_ONLY = "i"
    OUTPUT_ONLY = "o"
    INPUT_AND_OUTPUT = "io"

    @property
    def stages_input(self) -> bool:
        return _STAGING_TABLE[self][Direction.INPUT]

    @property
    def stages_output(self) -> bool:
        return _STAGING_TABLE[self][Direction.OUTPUT]

    def stages(self, direction: "Direction") -> bool:
        return _STAGING_TABLE[self][direction]


class Direction(Enum):
    """Data direction of a memory role relative to the kernel."""

    INPUT = "input"
    OUTPUT = "output"


class Placement(Enum):
    HOST = "host"
    DEVICE = "device"


class Ownership(Enum):
    """Who releases the buffer bound to a slot.

    Attributes:
        OWNED: Allocated by the stage; replaced when the size changes.
        BORROWED: Bound from outside before ``init``; reused verbatim.
    """

    OWNED = "owned"
    BORROWED = "borrowed"


_STAGING_TABLE: dict[Staging, dict[Direction, bool]] = {
    Staging.NONE: {Direction.INPUT: False, Direction.OUTPUT: False},
    Staging.INPUT_ONLY: {Direction.INPUT: True, Direction.OUTPUT: False},
    Staging.OUTPUT_ONLY: {Direction.INPUT: False, Direction.OUTPUT: True},
    Staging.INPUT_AND_OUTPUT: {Direction.INPUT: True, Direction.OUTPUT: True},
}
