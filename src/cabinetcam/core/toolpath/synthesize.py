"""Turn one nested sheet into an ordered list of annotated toolpaths.

Toolpaths are grouped by tool so each tool is loaded once per sheet.
Tool groups run in order of first use, except that groups cutting part
profiles run last: once a profile is through, the part is held only by
its tabs and must not be machined further.  Inside a group, interior
operations come before profiles and each batch is ordered by a
nearest-neighbour walk to keep rapid travel short.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence

import numpy as np

from ..feeds import FeedEntry, FeedTable
from ..geometry import Rect
from ..part import (
    Dado,
    Drill,
    Operation,
    OperationType,
    Part,
    PocketHole,
    Rabbet,
    operation_type,
    rotate_operation,
)
from ..tool import Tool, ToolAssignment, ToolLibrary
from ..units import Units
from ...nesting.packer import SheetLayout
from .base import AnnotatedToolpath, Toolpath
from .ops import CamConfig, dado_cut, drill_hole, profile_cut, rabbet_cut
from .utils import arc_fit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CamContext:
    """Everything toolpath synthesis reads besides the sheet itself."""

    tools: ToolLibrary
    assignment: ToolAssignment
    feeds: FeedTable
    material_name: str
    config: CamConfig = field(default_factory=CamConfig)
    rpm_override: Optional[float] = None
    fit_arcs: bool = False
    units: Units = Units.INCH

    def tool(self, number: int) -> Tool:
        tool = self.tools.get(number)
        if tool is None:
            raise ValueError(f"Tool T{number} is not in the tool library")
        return tool

    def feeds_for(self, tool: Tool) -> FeedEntry:
        return self.feeds.resolve(self.material_name, tool, self.rpm_override, self.units)


def _operation_toolpath(
    op: Operation,
    rect: Rect,
    tool: Tool,
    feeds: FeedEntry,
    config: CamConfig,
) -> Optional[Toolpath]:
    if isinstance(op, Dado):
        return dado_cut(rect, op, tool, feeds, config)
    if isinstance(op, Rabbet):
        return rabbet_cut(rect, op, tool, feeds, config)
    if isinstance(op, (Drill, PocketHole)):
        return drill_hole(rect, op, tool, feeds, config)
    raise TypeError(f"Unknown operation type: {type(op).__name__}")


def synthesize(
    sheet: SheetLayout,
    parts_by_id: Mapping[str, Part],
    context: CamContext,
) -> list[AnnotatedToolpath]:
    """Toolpaths for every placed part on *sheet*, in cutting order.

    Raises
    ------
    ValueError:
        If a placed id has no part definition or an assigned tool is
        missing from the library.
    """
    generated: list[AnnotatedToolpath] = []
    for placed in sheet.parts:
        part = parts_by_id.get(placed.id)
        if part is None:
            raise ValueError(f"No part definition for placement {placed.id!r}")

        ops = part.operations
        if placed.rotated:
            ops = tuple(rotate_operation(op, part.height) for op in ops)

        for op in ops:
            tool = context.tool(context.assignment.for_operation(op, context.tools))
            tp = _operation_toolpath(op, placed.rect, tool, context.feeds_for(tool), context.config)
            if tp is not None:
                generated.append(AnnotatedToolpath(tp, part.label, placed.id, operation_type(op)))

        tool = context.tool(context.assignment.profile)
        tp = profile_cut(placed.rect, part.thickness, tool, context.feeds_for(tool), context.config)
        generated.append(AnnotatedToolpath(tp, part.label, placed.id, OperationType.PROFILE))

    ordered = order_toolpaths(generated)
    if context.fit_arcs:
        ordered = [
            AnnotatedToolpath(arc_fit(a.toolpath), a.part_label, a.placement_id, a.operation_type)
            for a in ordered
        ]
    logger.debug(
        "Sheet %d: %d toolpaths from %d parts",
        sheet.sheet_index, len(ordered), len(sheet.parts),
    )
    return ordered


def _nearest_neighbor(
    items: Sequence[AnnotatedToolpath],
    start: tuple[float, float],
) -> list[AnnotatedToolpath]:
    if not items:
        return []
    starts = np.array([a.toolpath.start.as_tuple() for a in items], dtype=float)
    visited = np.zeros(len(items), dtype=bool)
    pos = np.asarray(start, dtype=float)
    order: list[AnnotatedToolpath] = []
    for _ in range(len(items)):
        dist = np.hypot(starts[:, 0] - pos[0], starts[:, 1] - pos[1])
        dist[visited] = np.inf
        k = int(np.argmin(dist))
        visited[k] = True
        order.append(items[k])
        pos = np.asarray(items[k].toolpath.end.as_tuple(), dtype=float)
    return order


def order_toolpaths(
    toolpaths: Sequence[AnnotatedToolpath],
    origin: tuple[float, float] = (0.0, 0.0),
) -> list[AnnotatedToolpath]:
    """Group by tool and order for few tool changes and short rapids."""
    groups: dict[int, list[AnnotatedToolpath]] = {}
    for a in toolpaths:
        if a.toolpath.is_empty:
            continue
        groups.setdefault(a.tool_number, []).append(a)

    cuts_profiles = {
        t for t, items in groups.items()
        if any(a.operation_type is OperationType.PROFILE for a in items)
    }
    tool_order = [t for t in groups if t not in cuts_profiles]
    tool_order += [t for t in groups if t in cuts_profiles]

    ordered: list[AnnotatedToolpath] = []
    pos = origin
    for t in tool_order:
        interior = [a for a in groups[t] if a.operation_type is not OperationType.PROFILE]
        profiles = [a for a in groups[t] if a.operation_type is OperationType.PROFILE]
        for batch in (interior, profiles):
            seq = _nearest_neighbor(batch, pos)
            if seq:
                ordered.extend(seq)
                pos = seq[-1].toolpath.end.as_tuple()
    return ordered
