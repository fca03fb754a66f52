"""Rectangular cabinet parts and the machining operations they carry.

Operations are a closed set of frozen dataclasses (``Dado``, ``Rabbet``,
``Drill``, ``PocketHole``).  Coordinates are relative to the part's own
lower-left corner in its unrotated orientation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Union

from .geometry import Point2D, Rect


class GrainDirection(Enum):
    """Grain runs along the part height (length-wise) or across it."""
    LENGTH_WISE = "length_wise"
    WIDTH_WISE = "width_wise"


class Edge(Enum):
    TOP = "top"
    BOTTOM = "bottom"
    LEFT = "left"
    RIGHT = "right"


class DadoOrientation(Enum):
    HORIZONTAL = "horizontal"   # runs across the width (along X)
    VERTICAL = "vertical"       # runs along the height (along Y)


def _require_positive(**values: float) -> None:
    for name, value in values.items():
        if value <= 0:
            raise ValueError(f"{name} must be positive, got {value}")


@dataclass(frozen=True)
class Dado:
    """Rectangular groove whose centerline sits at *position*.

    *position* is measured along Y for a horizontal dado and along X for
    a vertical one.
    """

    position: float
    width: float
    depth: float
    orientation: DadoOrientation = DadoOrientation.HORIZONTAL

    def __post_init__(self) -> None:
        _require_positive(width=self.width, depth=self.depth)


@dataclass(frozen=True)
class Rabbet:
    edge: Edge
    width: float
    depth: float

    def __post_init__(self) -> None:
        _require_positive(width=self.width, depth=self.depth)


@dataclass(frozen=True)
class Drill:
    x: float
    y: float
    diameter: float
    depth: float

    def __post_init__(self) -> None:
        _require_positive(diameter=self.diameter, depth=self.depth)


@dataclass(frozen=True)
class PocketHole:
    """Angled pocket-screw bore.  Only machined when ``cnc_flag`` is set;
    otherwise it is drilled off-machine and appears on the cut list only."""

    x: float
    y: float
    edge: Edge
    cnc_flag: bool = False


Operation = Union[Dado, Rabbet, Drill, PocketHole]


@dataclass(frozen=True)
class Part:
    """A rectangular panel as produced by the cabinet model.

    ``rect.width`` runs along X and ``rect.height`` along Y.  A
    length-wise grain follows the height.
    """

    label: str
    rect: Rect
    thickness: float
    grain_direction: GrainDirection = GrainDirection.LENGTH_WISE
    operations: tuple[Operation, ...] = field(default_factory=tuple)
    quantity: int = 1

    def __post_init__(self) -> None:
        if not self.label:
            raise ValueError("Part label must not be empty")
        _require_positive(
            width=self.rect.width,
            height=self.rect.height,
            thickness=self.thickness,
        )
        if self.quantity < 1:
            raise ValueError(f"Part quantity must be at least 1, got {self.quantity}")
        if not isinstance(self.operations, tuple):
            object.__setattr__(self, "operations", tuple(self.operations))

    @classmethod
    def of_size(
        cls,
        label: str,
        width: float,
        height: float,
        thickness: float,
        **kwargs,
    ) -> Part:
        return cls(label, Rect(Point2D(0.0, 0.0), width, height), thickness, **kwargs)

    @property
    def width(self) -> float:
        return self.rect.width

    @property
    def height(self) -> float:
        return self.rect.height


# Edge that each edge lands on after a 90 degree counter-clockwise turn.
_CCW_EDGE = {
    Edge.BOTTOM: Edge.RIGHT,
    Edge.RIGHT: Edge.TOP,
    Edge.TOP: Edge.LEFT,
    Edge.LEFT: Edge.BOTTOM,
}


def rotate_operation(op: Operation, part_height: float) -> Operation:
    """Map *op* into the frame of its part turned 90 degrees CCW.

    A point ``(u, v)`` on a part of height ``H`` moves to ``(H - v, u)``,
    so the rotated part is ``H`` wide and its former width tall.
    """
    if isinstance(op, Dado):
        if op.orientation is DadoOrientation.HORIZONTAL:
            return Dado(part_height - op.position, op.width, op.depth, DadoOrientation.VERTICAL)
        return Dado(op.position, op.width, op.depth, DadoOrientation.HORIZONTAL)
    if isinstance(op, Rabbet):
        return Rabbet(_CCW_EDGE[op.edge], op.width, op.depth)
    if isinstance(op, Drill):
        return Drill(part_height - op.y, op.x, op.diameter, op.depth)
    if isinstance(op, PocketHole):
        return PocketHole(part_height - op.y, op.x, _CCW_EDGE[op.edge], op.cnc_flag)
    raise TypeError(f"Unknown operation type: {type(op).__name__}")


class OperationType(Enum):
    """Kind of machining a toolpath performs; ``PROFILE`` is the implicit
    outline cut every placed part receives."""
    PROFILE = "profile"
    DADO = "dado"
    RABBET = "rabbet"
    DRILL = "drill"
    POCKET_HOLE = "pocket_hole"


_OPERATION_TYPES = {
    Dado: OperationType.DADO,
    Rabbet: OperationType.RABBET,
    Drill: OperationType.DRILL,
    PocketHole: OperationType.POCKET_HOLE,
}


def operation_type(op: Operation) -> OperationType:
    try:
        return _OPERATION_TYPES[type(op)]
    except KeyError:
        raise TypeError(f"Unknown operation type: {type(op).__name__}") from None
