"""Immutable project snapshot handed to the generation pipeline.

A project is read from JSON written by the cabinet designer::

    {
      "name": "Kitchen",
      "units": "inch",
      "materials": {"ply": {"name": "Plywood", "thickness": 0.75}},
      "cabinets": [
        {"name": "base", "parts": [
          {"label": "side", "width": 24, "height": 30, "thickness": 0.75,
           "material": "ply", "quantity": 2,
           "operations": [{"Dado": {"position": 15, "width": 0.75, "depth": 0.375}}]}
        ]}
      ]
    }

``tools``, ``assignment`` and ``feeds`` are optional and default to the
built-in shop set.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

from ..config.defaults import (
    build_default_assignment,
    build_default_feed_table,
    build_default_tool_library,
)
from .feeds import FeedTable
from .material import Material, MaterialGroup, TaggedPart, group_parts_by_material
from .part import GrainDirection, Part
from .tool import Tool, ToolAssignment, ToolLibrary
from .units import Units
from .wire import decode_operation


@dataclass(frozen=True)
class Project:
    name: str
    parts: tuple[TaggedPart, ...]
    tools: Optional[ToolLibrary] = field(default=None, compare=False)
    assignment: ToolAssignment = field(default_factory=build_default_assignment)
    feeds: Optional[FeedTable] = field(default=None, compare=False)
    units: Units = Units.INCH
    rpm_override: Optional[float] = None

    def __post_init__(self) -> None:
        if not isinstance(self.parts, tuple):
            object.__setattr__(self, "parts", tuple(self.parts))
        # Built-in tooling is sized for the project's units.
        if self.tools is None:
            object.__setattr__(self, "tools", build_default_tool_library(self.units))
        if self.feeds is None:
            object.__setattr__(self, "feeds", build_default_feed_table(self.units))

    @property
    def cabinets(self) -> list[str]:
        seen: list[str] = []
        for tp in self.parts:
            if tp.cabinet and tp.cabinet not in seen:
                seen.append(tp.cabinet)
        return seen

    @property
    def multi_cabinet(self) -> bool:
        return len(self.cabinets) > 1

    def display_label(self, tp: TaggedPart) -> str:
        """``cabinet/label`` when several cabinets share the project."""
        if self.multi_cabinet and tp.cabinet:
            return f"{tp.cabinet}/{tp.part.label}"
        return tp.part.label

    def material_groups(self) -> list[MaterialGroup]:
        return group_parts_by_material(self.parts)

    def with_rpm(self, rpm: Optional[float]) -> Project:
        return Project(
            self.name, self.parts, self.tools, self.assignment, self.feeds, self.units, rpm,
        )

    # ------------------------------------------------------------------
    # JSON loading
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Project:
        """Build a project from its JSON form.

        Raises
        ------
        ValueError:
            If a part references an unknown material or is malformed.
        """
        units = Units.parse(data.get("units", "inch"))
        # 4 x 8 ft sheets unless given
        width = Units.INCH.convert(48.0, units)
        length = Units.INCH.convert(96.0, units)
        materials = {
            key: Material(
                name=m.get("name", key),
                thickness=float(m["thickness"]),
                sheet_width=float(m.get("sheet_width", width)),
                sheet_length=float(m.get("sheet_length", length)),
            )
            for key, m in data.get("materials", {}).items()
        }

        entries: list[tuple[str, Mapping[str, Any]]] = []
        for cab in data.get("cabinets", []):
            entries.extend((cab.get("name", ""), p) for p in cab.get("parts", []))
        entries.extend((p.get("cabinet", ""), p) for p in data.get("parts", []))

        parts = []
        for cabinet, p in entries:
            key = p.get("material")
            if key not in materials:
                raise ValueError(f"Part {p.get('label')!r} references unknown material {key!r}")
            part = Part.of_size(
                p["label"],
                float(p["width"]),
                float(p["height"]),
                float(p.get("thickness", materials[key].thickness)),
                grain_direction=GrainDirection(p.get("grain", GrainDirection.LENGTH_WISE.value)),
                operations=tuple(decode_operation(op) for op in p.get("operations", [])),
                quantity=int(p.get("quantity", 1)),
            )
            parts.append(TaggedPart(part, materials[key], cabinet))

        kwargs: dict[str, Any] = {}
        if "tools" in data:
            kwargs["tools"] = ToolLibrary.in_memory([Tool.from_dict(t) for t in data["tools"]])
        if "assignment" in data:
            kwargs["assignment"] = ToolAssignment(**data["assignment"])
        if "feeds" in data:
            kwargs["feeds"] = FeedTable.from_list(data["feeds"])
        rpm = data.get("rpm")

        return cls(
            name=data.get("name", "Untitled"),
            parts=tuple(parts),
            units=units,
            rpm_override=float(rpm) if rpm is not None else None,
            **kwargs,
        )

    @classmethod
    def load(cls, path: Path) -> Project:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Project file not found: {path}")
        return cls.from_dict(json.loads(path.read_text()))
