"""Core toolpath data structures.

A toolpath is an ordered list of segments for one tool.  Each segment
moves the tool to ``endpoint`` at height ``z`` using one motion variant.
Z=0 is the top of the sheet; negative Z goes into the material.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from ..geometry import Point2D
from ..part import OperationType


@dataclass(frozen=True)
class Rapid:
    """G0: no cutting, full speed."""


@dataclass(frozen=True)
class Linear:
    """G1: straight cutting move (plunge feed when Z descends)."""


@dataclass(frozen=True)
class ArcCW:
    """G2: clockwise arc; ``i``/``j`` locate the center from the arc start."""
    i: float
    j: float


@dataclass(frozen=True)
class ArcCCW:
    """G3: counter-clockwise arc; ``i``/``j`` as for ``ArcCW``."""
    i: float
    j: float


@dataclass(frozen=True)
class DrillCycle:
    """Canned drilling cycle at the segment endpoint.

    ``peck_depth`` of 0 means a straight (non-pecking) drill.
    """
    retract_z: float
    final_z: float
    peck_depth: float = 0.0


Motion = Union[Rapid, Linear, ArcCW, ArcCCW, DrillCycle]

RAPID = Rapid()
LINEAR = Linear()


@dataclass(frozen=True)
class ToolpathSegment:
    motion: Motion
    endpoint: Point2D
    z: float

    @property
    def x(self) -> float:
        return self.endpoint.x

    @property
    def y(self) -> float:
        return self.endpoint.y

    def as_tuple(self) -> tuple[float, float, float]:
        return (self.endpoint.x, self.endpoint.y, self.z)


@dataclass(frozen=True)
class Toolpath:
    """All motion for one operation with one tool."""
    tool_number: int
    rpm: float
    feed_rate: float
    plunge_rate: float
    segments: tuple[ToolpathSegment, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not isinstance(self.segments, tuple):
            object.__setattr__(self, "segments", tuple(self.segments))

    @property
    def is_empty(self) -> bool:
        return len(self.segments) == 0

    @property
    def start(self) -> Point2D:
        return self.segments[0].endpoint

    @property
    def end(self) -> Point2D:
        return self.segments[-1].endpoint


@dataclass(frozen=True)
class AnnotatedToolpath:
    """A toolpath plus where it came from, for preview and debugging."""
    toolpath: Toolpath
    part_label: str
    placement_id: str
    operation_type: OperationType

    @property
    def tool_number(self) -> int:
        return self.toolpath.tool_number


def rapid(x: float, y: float, z: float) -> ToolpathSegment:
    return ToolpathSegment(RAPID, Point2D(x, y), z)


def linear(x: float, y: float, z: float) -> ToolpathSegment:
    return ToolpathSegment(LINEAR, Point2D(x, y), z)
