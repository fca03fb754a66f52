"""Toolpath generators for each machining operation.

Every generator takes the part rectangle already positioned on the sheet
(and already rotated when nesting turned the part), so no geometry is
re-derived here.  All toolpaths start and end with the tool at ``safe_z``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Optional, Union

from ..feeds import FeedEntry
from ..geometry import Point2D, Rect
from ..part import Dado, DadoOrientation, Drill, Edge, PocketHole, Rabbet
from ..tool import Tool
from ..units import Units
from .base import DrillCycle, Toolpath, ToolpathSegment, linear, rapid
from .utils import compute_z_levels


@dataclass(frozen=True)
class CamConfig:
    """Clearance heights, pass depth and hold-down tab settings.

    Lengths are in the units of the toolpaths being built; the defaults
    are inches.  ``depth_per_pass`` of None means one tool diameter per
    pass.
    """

    safe_z: float = 1.0
    rapid_z: float = 0.25
    depth_per_pass: Optional[float] = None
    tab_width: float = 0.5
    tab_height: float = 0.125
    tabs_per_side: int = 2
    pocket_hole_depth: float = 0.625

    def __post_init__(self) -> None:
        if self.rapid_z < 0 or self.rapid_z > self.safe_z:
            raise ValueError(
                f"rapid_z must lie between the work surface and safe_z "
                f"(rapid_z={self.rapid_z}, safe_z={self.safe_z})"
            )
        if self.depth_per_pass is not None and self.depth_per_pass <= 0:
            raise ValueError("depth_per_pass must be positive")
        if self.tab_width < 0 or self.tab_height < 0 or self.tabs_per_side < 0:
            raise ValueError("Tab settings must not be negative")
        if self.pocket_hole_depth <= 0:
            raise ValueError("pocket_hole_depth must be positive")

    def converted(self, source: Units, target: Units) -> CamConfig:
        """The same settings with every length moved from *source* to
        *target* units."""
        if source is target:
            return self
        scale = source.convert(1.0, target)
        depth = self.depth_per_pass
        return replace(
            self,
            safe_z=self.safe_z * scale,
            rapid_z=self.rapid_z * scale,
            depth_per_pass=depth * scale if depth is not None else None,
            tab_width=self.tab_width * scale,
            tab_height=self.tab_height * scale,
            pocket_hole_depth=self.pocket_hole_depth * scale,
        )

    def pass_depth(self, tool: Tool) -> float:
        """Deepest single pass *tool* may take."""
        depth = self.depth_per_pass if self.depth_per_pass is not None else tool.diameter
        return min(depth, tool.cutting_length)


def _toolpath(tool: Tool, feeds: FeedEntry, segments: list[ToolpathSegment]) -> Toolpath:
    return Toolpath(
        tool_number=tool.number,
        rpm=feeds.rpm,
        feed_rate=feeds.feed_rate,
        plunge_rate=feeds.plunge_rate,
        segments=tuple(segments),
    )


def _tab_count(length: float, config: CamConfig) -> int:
    """Tabs that fit on a side without touching each other or a corner."""
    if config.tab_width <= 0:
        return 0
    room = int(length // (2.0 * config.tab_width)) - 1
    return max(0, min(config.tabs_per_side, room))


def _side_with_tabs(
    segments: list[ToolpathSegment],
    a: Point2D,
    b: Point2D,
    z: float,
    tab_z: float,
    config: CamConfig,
) -> None:
    length = a.distance_to(b)
    n = _tab_count(length, config)
    ux, uy = (b.x - a.x) / length, (b.y - a.y) / length
    half = config.tab_width / 2.0
    for k in range(n):
        center = length * (k + 1) / (n + 1)
        t0, t1 = center - half, center + half
        x0, y0 = a.x + ux * t0, a.y + uy * t0
        x1, y1 = a.x + ux * t1, a.y + uy * t1
        segments.append(linear(x0, y0, z))
        segments.append(linear(x0, y0, tab_z))
        segments.append(linear(x1, y1, tab_z))
        segments.append(linear(x1, y1, z))
    segments.append(linear(b.x, b.y, z))


def profile_cut(
    part_rect: Rect,
    thickness: float,
    tool: Tool,
    feeds: FeedEntry,
    config: CamConfig,
) -> Toolpath:
    """Outside profile of a placed part, cut clockwise in depth passes.

    The tool center runs on the part outline offset outward by the tool
    radius.  The final pass leaves hold-down tabs ``tab_height`` tall so
    the part stays attached to the sheet.
    """
    cut = part_rect.expanded(tool.radius)
    corners = [
        Point2D(cut.min_x, cut.min_y),
        Point2D(cut.min_x, cut.max_y),
        Point2D(cut.max_x, cut.max_y),
        Point2D(cut.max_x, cut.min_y),
        Point2D(cut.min_x, cut.min_y),
    ]
    start = corners[0]
    levels = compute_z_levels(0.0, -thickness, config.pass_depth(tool))
    tab_z = -thickness + config.tab_height
    use_tabs = config.tabs_per_side > 0 and 0 < config.tab_height < thickness

    segments = [
        rapid(start.x, start.y, config.safe_z),
        rapid(start.x, start.y, config.rapid_z),
    ]
    for idx, z in enumerate(levels):
        segments.append(linear(start.x, start.y, z))
        final = idx == len(levels) - 1
        for a, b in zip(corners, corners[1:]):
            if final and use_tabs:
                _side_with_tabs(segments, a, b, z, tab_z, config)
            else:
                segments.append(linear(b.x, b.y, z))
    segments.append(rapid(start.x, start.y, config.safe_z))
    return _toolpath(tool, feeds, segments)


def _pass_offsets(width: float, tool: Tool, centered: bool) -> list[float]:
    """Tool-center offsets across a groove *width*, measured from its near
    side.  A groove narrower than the tool gets one pass, centered or held
    against the far side."""
    d, r = tool.diameter, tool.radius
    if width <= d + 1e-9:
        return [width / 2.0 if centered else width - r]
    n = math.ceil(width / d - 1e-9)
    step = (width - d) / (n - 1)
    return [r + k * step for k in range(n)]


def _groove(
    lines: list[tuple[Point2D, Point2D]],
    depth: float,
    tool: Tool,
    feeds: FeedEntry,
    config: CamConfig,
) -> Toolpath:
    """Cut parallel *lines* zig-zag at each depth level, stepping over
    inside the groove and retracting to ``rapid_z`` between levels."""
    first = lines[0][0]
    segments = [rapid(first.x, first.y, config.safe_z)]
    for z in compute_z_levels(0.0, -depth, config.pass_depth(tool)):
        segments.append(rapid(first.x, first.y, config.rapid_z))
        segments.append(linear(first.x, first.y, z))
        for k, (a, b) in enumerate(lines):
            begin, end = (a, b) if k % 2 == 0 else (b, a)
            if k > 0:
                segments.append(linear(begin.x, begin.y, z))
            segments.append(linear(end.x, end.y, z))
        last = segments[-1].endpoint
        segments.append(rapid(last.x, last.y, config.rapid_z))
    last = segments[-1].endpoint
    segments.append(rapid(last.x, last.y, config.safe_z))
    return _toolpath(tool, feeds, segments)


def dado_cut(
    part_rect: Rect,
    dado: Dado,
    tool: Tool,
    feeds: FeedEntry,
    config: CamConfig,
) -> Toolpath:
    """Groove across (horizontal) or along (vertical) the part face."""
    r = tool.radius
    offsets = _pass_offsets(dado.width, tool, centered=True)
    near = dado.position - dado.width / 2.0
    if dado.orientation is DadoOrientation.HORIZONTAL:
        x0, x1 = part_rect.min_x + r, part_rect.max_x - r
        lines = [
            (Point2D(x0, part_rect.min_y + near + o), Point2D(x1, part_rect.min_y + near + o))
            for o in offsets
        ]
    else:
        y0, y1 = part_rect.min_y + r, part_rect.max_y - r
        lines = [
            (Point2D(part_rect.min_x + near + o, y0), Point2D(part_rect.min_x + near + o, y1))
            for o in offsets
        ]
    return _groove(lines, dado.depth, tool, feeds, config)


def rabbet_cut(
    part_rect: Rect,
    rabbet: Rabbet,
    tool: Tool,
    feeds: FeedEntry,
    config: CamConfig,
) -> Toolpath:
    """Step along an edge, starting flush with it and moving inward."""
    r = tool.radius
    offsets = _pass_offsets(rabbet.width, tool, centered=False)
    rc = part_rect
    if rabbet.edge in (Edge.BOTTOM, Edge.TOP):
        x0, x1 = rc.min_x + r, rc.max_x - r
        if rabbet.edge is Edge.BOTTOM:
            ys = [rc.min_y + o for o in offsets]
        else:
            ys = [rc.max_y - o for o in offsets]
        lines = [(Point2D(x0, y), Point2D(x1, y)) for y in ys]
    else:
        y0, y1 = rc.min_y + r, rc.max_y - r
        if rabbet.edge is Edge.LEFT:
            xs = [rc.min_x + o for o in offsets]
        else:
            xs = [rc.max_x - o for o in offsets]
        lines = [(Point2D(x, y0), Point2D(x, y1)) for x in xs]
    return _groove(lines, rabbet.depth, tool, feeds, config)


def peck_depth_for(depth: float, tool: Tool) -> float:
    """Peck every two diameters when the hole is deeper than three."""
    return 2.0 * tool.diameter if depth > 3.0 * tool.diameter else 0.0


def drill_hole(
    part_rect: Rect,
    op: Union[Drill, PocketHole],
    tool: Tool,
    feeds: FeedEntry,
    config: CamConfig,
) -> Optional[Toolpath]:
    """Canned drill cycle at the hole position.

    Pocket holes are only machined when flagged for the CNC; they are
    bored straight down to ``pocket_hole_depth``.
    """
    if isinstance(op, PocketHole):
        if not op.cnc_flag:
            return None
        depth = config.pocket_hole_depth
    else:
        depth = op.depth
    x, y = part_rect.min_x + op.x, part_rect.min_y + op.y
    cycle = DrillCycle(
        retract_z=config.rapid_z,
        final_z=-depth,
        peck_depth=peck_depth_for(depth, tool),
    )
    segments = [
        rapid(x, y, config.safe_z),
        ToolpathSegment(cycle, Point2D(x, y), config.rapid_z),
    ]
    return _toolpath(tool, feeds, segments)
