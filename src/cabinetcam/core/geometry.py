"""2D value types shared by nesting, CAM and validation.

All dimensions are in the project's native units (inch or mm).  The
sheet origin is the lower-left corner; +X runs along the sheet width and
+Y along the sheet length.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from shapely.geometry import Polygon, box

EPS = 1e-9


@dataclass(frozen=True)
class Point2D:
    x: float
    y: float

    def distance_to(self, other: Point2D) -> float:
        return math.hypot(other.x - self.x, other.y - self.y)

    def as_tuple(self) -> tuple[float, float]:
        return (self.x, self.y)


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle anchored at its lower-left ``origin``."""

    origin: Point2D
    width: float
    height: float

    @classmethod
    def from_bounds(cls, min_x: float, min_y: float, max_x: float, max_y: float) -> Rect:
        return cls(Point2D(min_x, min_y), max_x - min_x, max_y - min_y)

    @property
    def min_x(self) -> float:
        return self.origin.x

    @property
    def min_y(self) -> float:
        return self.origin.y

    @property
    def max_x(self) -> float:
        return self.origin.x + self.width

    @property
    def max_y(self) -> float:
        return self.origin.y + self.height

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def bounds_2d(self) -> tuple[float, float, float, float]:
        """(xmin, ymin, xmax, ymax) of the rectangle."""
        return (self.min_x, self.min_y, self.max_x, self.max_y)

    def expanded(self, amount: float) -> Rect:
        """Grow every side by *amount* (shrink when negative)."""
        return Rect(
            Point2D(self.origin.x - amount, self.origin.y - amount),
            self.width + 2.0 * amount,
            self.height + 2.0 * amount,
        )

    def with_trailing(self, amount: float) -> Rect:
        """Grow the right and top edges by *amount*, keeping the origin."""
        return Rect(self.origin, self.width + amount, self.height + amount)

    def contains_point(self, x: float, y: float, tol: float = EPS) -> bool:
        return (
            self.min_x - tol <= x <= self.max_x + tol
            and self.min_y - tol <= y <= self.max_y + tol
        )

    def contains(self, other: Rect, tol: float = EPS) -> bool:
        return (
            other.min_x >= self.min_x - tol
            and other.min_y >= self.min_y - tol
            and other.max_x <= self.max_x + tol
            and other.max_y <= self.max_y + tol
        )

    def intersects(self, other: Rect, tol: float = EPS) -> bool:
        """True when the two rectangles share positive area.

        Rectangles that merely touch along an edge do not intersect.
        """
        return (
            self.min_x < other.max_x - tol
            and other.min_x < self.max_x - tol
            and self.min_y < other.max_y - tol
            and other.min_y < self.max_y - tol
        )

    def as_shapely_polygon(self) -> Polygon:
        """Return a Shapely Polygon of the rectangle footprint."""
        return box(self.min_x, self.min_y, self.max_x, self.max_y)
