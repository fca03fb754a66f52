"""Router bits, the tool library with JSON persistence, and the mapping of
operation kinds onto tool numbers."""

from __future__ import annotations

import json
from dataclasses import dataclass, asdict, replace
from enum import Enum
from pathlib import Path
from typing import Optional

from .part import Drill, Operation, OperationType, operation_type
from .units import Units


class ToolType(Enum):
    ENDMILL = "endmill"
    STRAIGHT_BIT = "straight_bit"
    COMPRESSION = "compression"
    BALL_NOSE = "ball_nose"
    V_BIT = "v_bit"
    DRILL = "drill"


@dataclass
class Tool:
    """A cutting tool definition.

    All dimensions are stored in the project's native units (inch or mm).
    ``cutting_length`` is the usable flute length; cuts deeper than it
    would drive the collet or holder into the work.
    """
    number: int
    name: str
    tool_type: ToolType
    diameter: float
    flute_count: int = 2
    cutting_length: float = 1.0
    default_rpm: int = 18000

    @property
    def radius(self) -> float:
        return self.diameter / 2.0

    @property
    def chip_load(self) -> float:
        """Conservative per-tooth chip load for sheet goods (inch/tooth)."""
        if self.tool_type in (ToolType.ENDMILL, ToolType.STRAIGHT_BIT, ToolType.COMPRESSION):
            if self.diameter <= 0.25:
                return 0.005
            if self.diameter <= 0.5:
                return 0.012
            return 0.018
        if self.tool_type is ToolType.BALL_NOSE:
            return 0.005
        if self.tool_type is ToolType.V_BIT:
            return 0.004
        return 0.003

    def recommended_feed_rate(self, rpm: float, units: Units = Units.INCH) -> float:
        """Feed (units/min) = rpm x flutes x chip load.

        Chip loads are tabulated in inches, so a metric tool is sized and
        fed through its inch equivalent.
        """
        if units is not Units.INCH:
            inch_tool = replace(self, diameter=units.convert(self.diameter, Units.INCH))
            return Units.INCH.convert(inch_tool.recommended_feed_rate(rpm), units)
        return rpm * self.flute_count * self.chip_load

    def to_dict(self) -> dict:
        d = asdict(self)
        d["tool_type"] = self.tool_type.value
        return d

    @classmethod
    def from_dict(cls, d: dict) -> Tool:
        d = dict(d)
        d["tool_type"] = ToolType(d["tool_type"])
        known = cls.__dataclass_fields__
        return cls(**{k: v for k, v in d.items() if k in known})


class ToolLibrary:
    """Persistent tool library backed by a JSON file."""

    def __init__(self, path: Optional[Path] = None):
        if path is None:
            path = Path.home() / ".cabinetcam" / "tools.json"
        self._path: Optional[Path] = path
        self._tools: dict[int, Tool] = {}
        if self._path.exists():
            self.load()

    @classmethod
    def in_memory(cls, tools: list[Tool]) -> ToolLibrary:
        """Library that is never read from or written to disk."""
        lib = cls.__new__(cls)
        lib._path = None
        lib._tools = {}
        for t in tools:
            lib.add(t)
        return lib

    def add(self, tool: Tool) -> None:
        self._tools[tool.number] = tool

    def remove(self, number: int) -> None:
        self._tools.pop(number, None)

    def get(self, number: int) -> Optional[Tool]:
        return self._tools.get(number)

    def __contains__(self, number: int) -> bool:
        return number in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def list_tools(self) -> list[Tool]:
        return sorted(self._tools.values(), key=lambda t: t.number)

    def find_drill(self, diameter: float, tol: float = 1e-4) -> Optional[Tool]:
        """Lowest-numbered drill bit whose diameter matches *diameter*."""
        for t in self.list_tools():
            if t.tool_type is ToolType.DRILL and abs(t.diameter - diameter) <= tol:
                return t
        return None

    def save(self) -> None:
        if self._path is None:
            raise RuntimeError("In-memory tool library has no file to save to")
        self._path.parent.mkdir(parents=True, exist_ok=True)
        data = [t.to_dict() for t in self.list_tools()]
        self._path.write_text(json.dumps(data, indent=2))

    def load(self) -> None:
        if self._path is None:
            raise RuntimeError("In-memory tool library has no file to load from")
        data = json.loads(self._path.read_text())
        self._tools = {}
        for d in data:
            tool = Tool.from_dict(d)
            self._tools[tool.number] = tool


@dataclass(frozen=True)
class ToolAssignment:
    """Tool numbers used for each kind of operation.

    A ``Drill`` whose diameter matches a drill bit in the library uses
    that bit instead of the generic ``drill`` tool.
    """

    profile: int = 1
    dado: int = 1
    rabbet: int = 1
    drill: int = 1
    pocket_hole: int = 1

    def for_type(self, kind: OperationType) -> int:
        return getattr(self, kind.value)

    def for_operation(self, op: Operation, library: Optional[ToolLibrary] = None) -> int:
        if isinstance(op, Drill) and library is not None:
            bit = library.find_drill(op.diameter)
            if bit is not None:
                return bit.number
        return self.for_type(operation_type(op))
