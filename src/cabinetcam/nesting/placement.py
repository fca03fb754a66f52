"""Checks for hand-placed (interactive) nesting layouts."""

from __future__ import annotations

from dataclasses import dataclass
from itertools import combinations
from typing import Sequence

from ..core.geometry import Point2D, Rect
from .packer import NestingConfig, PlacedPart, SheetLayout

# Overlaps smaller than this (square units) are float noise, not collisions.
MIN_OVERLAP_AREA = 1e-6


@dataclass(frozen=True)
class ManualPlacement:
    """A part dragged onto a sheet by the user.

    ``width``/``height`` are the footprint after any rotation.
    """

    id: str
    x: float
    y: float
    width: float
    height: float
    rotated: bool = False

    @property
    def rect(self) -> Rect:
        return Rect(Point2D(self.x, self.y), self.width, self.height)


@dataclass(frozen=True)
class Collision:
    part_a: str
    part_b: str
    overlap_area: float


@dataclass(frozen=True)
class PlacementValidation:
    collisions: tuple[Collision, ...]
    out_of_bounds: tuple[str, ...]
    utilization: float   # percent

    @property
    def valid(self) -> bool:
        return not self.collisions and not self.out_of_bounds


def validate_manual_placement(
    placements: Sequence[ManualPlacement],
    config: NestingConfig,
) -> PlacementValidation:
    """Find kerf-aware collisions and parts hanging off the sheet.

    Each part is inflated by half the kerf on every side, so two parts
    collide when they sit closer than one kerf apart.
    """
    ids = [p.id for p in placements]
    if len(set(ids)) != len(ids):
        raise ValueError("Manual placements must have unique ids")

    half_kerf = config.kerf / 2.0
    sheet = config.sheet_rect
    inflated = {p.id: p.rect.expanded(half_kerf) for p in placements}

    out_of_bounds = tuple(
        p.id for p in placements
        if not sheet.contains(inflated[p.id], tol=MIN_OVERLAP_AREA)
    )

    shapes = {pid: r.as_shapely_polygon() for pid, r in inflated.items()}
    collisions: list[Collision] = []
    for a, b in combinations(placements, 2):
        if not inflated[a.id].intersects(inflated[b.id]):
            continue
        area = shapes[a.id].intersection(shapes[b.id]).area
        if area > MIN_OVERLAP_AREA:
            collisions.append(Collision(a.id, b.id, area))

    placed_area = sum(p.width * p.height for p in placements)
    utilization = min(100.0, placed_area / config.sheet_area * 100.0)
    return PlacementValidation(tuple(collisions), out_of_bounds, utilization)


def sheet_layout_from_manual(
    placements: Sequence[ManualPlacement],
    config: NestingConfig,
    sheet_index: int = 0,
) -> SheetLayout:
    """Turn accepted manual placements into a regular ``SheetLayout``."""
    parts = [PlacedPart(p.id, p.rect, p.rotated) for p in placements]
    return SheetLayout.build(sheet_index, config.sheet_rect, parts)
