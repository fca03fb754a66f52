"""Sheet materials and grouping of parts by material name x thickness."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

from .part import Part


@dataclass(frozen=True)
class Material:
    """A sheet good, e.g. 3/4" birch plywood on 48x96 sheets."""

    name: str
    thickness: float
    sheet_width: float = 48.0
    sheet_length: float = 96.0

    def __post_init__(self) -> None:
        if self.thickness <= 0:
            raise ValueError(f"Material thickness must be positive, got {self.thickness}")
        if self.sheet_width <= 0 or self.sheet_length <= 0:
            raise ValueError(
                f"Sheet size must be positive, got {self.sheet_width} x {self.sheet_length}"
            )

    @property
    def key(self) -> tuple[str, float]:
        return (self.name, round(self.thickness, 6))

    def __str__(self) -> str:
        return f"{self.name} {self.thickness:g}"

    @property
    def slug(self) -> str:
        """File-name friendly form, e.g. ``birch-plywood-0_75``."""
        name = re.sub(r"[^a-z0-9]+", "-", self.name.lower()).strip("-") or "material"
        return f"{name}-{self.thickness:g}".replace(".", "_")


@dataclass(frozen=True)
class TaggedPart:
    """A part tagged with the material it is cut from and its cabinet."""

    part: Part
    material: Material
    cabinet: str = ""


@dataclass(frozen=True)
class MaterialGroup:
    material: Material
    parts: tuple[TaggedPart, ...]

    @property
    def cabinets(self) -> list[str]:
        return sorted({tp.cabinet for tp in self.parts if tp.cabinet})


def group_parts_by_material(parts: Iterable[TaggedPart]) -> list[MaterialGroup]:
    """Bucket *parts* by material name x thickness.

    Groups appear in the order their material is first referenced; parts
    keep their input order inside a group.  The first ``Material`` seen
    for a key supplies the sheet size of the whole group.
    """
    buckets: dict[tuple[str, float], list[TaggedPart]] = {}
    materials: dict[tuple[str, float], Material] = {}
    for tp in parts:
        key = tp.material.key
        if key not in buckets:
            buckets[key] = []
            materials[key] = tp.material
        buckets[key].append(tp)
    return [MaterialGroup(materials[k], tuple(v)) for k, v in buckets.items()]
