"""Feasibility checks against the target machine.

``validate_project`` runs before anything is generated and looks only at
the parts, tools and feeds.  ``validate_toolpaths`` re-checks the
synthesized motion, since retracts and tool-radius offsets can reach
beyond the raw part envelope.  Errors block G-code output; warnings are
informational.  Every issue is a small frozen dataclass carrying the
offending numbers, with a ready-made ``message`` for display.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional, Sequence, Union

import numpy as np

from ..config.machine_profiles import MachineProfile
from ..core.geometry import Rect
from ..core.part import (
    Dado,
    DadoOrientation,
    Edge,
    Operation,
    OperationType,
    Part,
    PocketHole,
    Rabbet,
    operation_type,
)
from ..core.toolpath.base import AnnotatedToolpath, DrillCycle, Rapid, Toolpath
from ..core.toolpath.ops import CamConfig
from ..core.units import Units

if TYPE_CHECKING:
    from ..core.project import Project
    from ..nesting.packer import NestingConfig

logger = logging.getLogger(__name__)

_TOL = 1e-9


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PartExceedsTravel:
    part_label: str
    part_width: float
    part_height: float
    travel_x: float
    travel_y: float

    @property
    def message(self) -> str:
        return (
            f"Part '{self.part_label}' ({self.part_width:.3f}\" x {self.part_height:.3f}\") "
            f"exceeds machine travel ({self.travel_x:.1f}\" x {self.travel_y:.1f}\")"
        )


@dataclass(frozen=True)
class RpmOutOfRange:
    requested: float
    min: float
    max: float
    tool_number: Optional[int] = None

    @property
    def message(self) -> str:
        tool = f"T{self.tool_number}: " if self.tool_number is not None else ""
        return (
            f"{tool}Requested RPM {int(self.requested)} is outside machine range "
            f"({int(self.min)}-{int(self.max)})"
        )


@dataclass(frozen=True)
class CutDepthExceedsTool:
    part_label: str
    cut_depth: float
    cutting_length: float
    tool_number: int
    tool_description: str

    @property
    def message(self) -> str:
        return (
            f"Part '{self.part_label}' requires {self.cut_depth:.3f}\" cut depth but "
            f"{self.tool_description} only has {self.cutting_length:.3f}\" cutting length"
        )


@dataclass(frozen=True)
class GcodeBoundsExceeded:
    axis: str
    value: float
    limit: float

    @property
    def message(self) -> str:
        return (
            f"G-code {self.axis} coordinate {self.value:.4f} exceeds machine travel "
            f"limit {self.limit:.4f}"
        )


@dataclass(frozen=True)
class RapidIntoMaterial:
    x: float
    y: float
    z: float

    @property
    def message(self) -> str:
        return f"Rapid move to Z{self.z:.4f} at X{self.x:.4f} Y{self.y:.4f} is below the work surface"


@dataclass(frozen=True)
class ToolpathOutsideSheet:
    placement_id: str
    x: float
    y: float

    @property
    def message(self) -> str:
        return (
            f"Toolpath for '{self.placement_id}' leaves the sheet at "
            f"X{self.x:.4f} Y{self.y:.4f}"
        )


@dataclass(frozen=True)
class ToolNotInLibrary:
    tool_number: int
    operation: str

    @property
    def message(self) -> str:
        return f"Tool T{self.tool_number} assigned to {self.operation} is not in the tool library"


@dataclass(frozen=True)
class KerfNarrowerThanTool:
    kerf: float
    tool_diameter: float
    tool_number: int

    @property
    def message(self) -> str:
        return (
            f"Nesting kerf {self.kerf:.4f} is narrower than the {self.tool_diameter:.4f} "
            f"profile tool T{self.tool_number}; neighbouring parts would be cut into"
        )


@dataclass(frozen=True)
class OperationOutsidePart:
    part_label: str
    operation: str

    @property
    def message(self) -> str:
        return f"Part '{self.part_label}': {self.operation} lies outside the part"


# ---------------------------------------------------------------------------
# Warnings
# ---------------------------------------------------------------------------


class SplitKind(Enum):
    HALVES = "halves"
    QUADRANTS = "quadrants"
    MULTIPLE = "multiple"


@dataclass(frozen=True)
class BedSplit:
    """How to cut an oversized sheet into pieces the bed can hold.

    ``columns`` x ``rows`` equal pieces of ``piece_width`` x ``piece_length``;
    ``turned`` means the sheet is loaded with its length along X.
    """

    kind: SplitKind
    columns: int
    rows: int
    piece_width: float
    piece_length: float
    turned: bool = False

    @property
    def pieces(self) -> int:
        return self.columns * self.rows

    def __str__(self) -> str:
        return (
            f"split into {self.kind.value} ({self.columns} x {self.rows} pieces of "
            f"{self.piece_width:.2f}\" x {self.piece_length:.2f}\")"
        )


@dataclass(frozen=True)
class PartNeedsPreCutting:
    part_label: str
    part_width: float
    part_height: float
    piece_width: float
    piece_length: float

    @property
    def message(self) -> str:
        return (
            f"Part '{self.part_label}' ({self.part_width:.3f}\" x {self.part_height:.3f}\") "
            f"does not fit a bed-sized sheet piece ({self.piece_width:.1f}\" x {self.piece_length:.1f}\"); "
            f"pre-cut its blank before loading"
        )


@dataclass(frozen=True)
class MultipleToolsNoAtc:
    tool_count: int

    @property
    def message(self) -> str:
        return (
            f"{self.tool_count} tools required but machine has no automatic tool changer; "
            f"manual changes needed"
        )


@dataclass(frozen=True)
class SheetExceedsBed:
    material: str
    sheet_width: float
    sheet_length: float
    travel_x: float
    travel_y: float
    split: BedSplit

    @property
    def message(self) -> str:
        return (
            f"{self.material}: sheet ({self.sheet_width:.0f}\" x {self.sheet_length:.0f}\") "
            f"exceeds machine bed ({self.travel_x:.1f}\" x {self.travel_y:.1f}\"); {self.split}"
        )


@dataclass(frozen=True)
class GrooveNarrowerThanTool:
    part_label: str
    groove_width: float
    tool_diameter: float

    @property
    def message(self) -> str:
        return (
            f"Part '{self.part_label}': {self.groove_width:.3f}\" dado is narrower than the "
            f"{self.tool_diameter:.3f}\" tool and will be cut oversize"
        )


ValidationError = Union[
    PartExceedsTravel,
    RpmOutOfRange,
    CutDepthExceedsTool,
    GcodeBoundsExceeded,
    RapidIntoMaterial,
    ToolpathOutsideSheet,
    ToolNotInLibrary,
    KerfNarrowerThanTool,
    OperationOutsidePart,
]
ValidationWarning = Union[
    PartNeedsPreCutting,
    MultipleToolsNoAtc,
    SheetExceedsBed,
    GrooveNarrowerThanTool,
]


@dataclass
class ValidationResult:
    errors: list[ValidationError] = field(default_factory=list)
    warnings: list[ValidationWarning] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)

    @property
    def is_ok(self) -> bool:
        return not self.errors and not self.warnings

    def merged(self, other: ValidationResult) -> ValidationResult:
        return ValidationResult(self.errors + other.errors, self.warnings + other.warnings)

    def errors_of(self, kind: type) -> list:
        return [e for e in self.errors if isinstance(e, kind)]

    def warnings_of(self, kind: type) -> list:
        return [w for w in self.warnings if isinstance(w, kind)]


# ---------------------------------------------------------------------------
# Project checks
# ---------------------------------------------------------------------------


def recommend_bed_split(
    sheet_width: float,
    sheet_length: float,
    travel_x: float,
    travel_y: float,
) -> Optional[BedSplit]:
    """Fewest equal pieces that each fit the bed, or None if the sheet fits.

    Both sheet orientations are tried; on a tie the sheet stays unturned.
    """
    if sheet_width <= travel_x + _TOL and sheet_length <= travel_y + _TOL:
        return None
    options = []
    for turned in (False, True):
        along_x, along_y = (sheet_length, sheet_width) if turned else (sheet_width, sheet_length)
        cols = max(1, math.ceil(along_x / travel_x - _TOL))
        rows = max(1, math.ceil(along_y / travel_y - _TOL))
        options.append((cols * rows, turned, cols, rows, along_x / cols, along_y / rows))
    pieces, turned, cols, rows, pw, pl = min(options)
    if pieces <= 2:
        kind = SplitKind.HALVES
    elif pieces <= 4:
        kind = SplitKind.QUADRANTS
    else:
        kind = SplitKind.MULTIPLE
    return BedSplit(kind, cols, rows, pw, pl, turned)


def _fits_piece(width: float, height: float, split: BedSplit) -> bool:
    pw, pl = split.piece_width, split.piece_length
    return (width <= pw + _TOL and height <= pl + _TOL) or (width <= pl + _TOL and height <= pw + _TOL)


def _inside_part(op: Operation, part: Part) -> bool:
    """Whether *op* stays on *part*, in the part's own frame."""
    w, h = part.width, part.height
    if isinstance(op, Dado):
        span = h if op.orientation is DadoOrientation.HORIZONTAL else w
        half = op.width / 2.0
        return op.position - half >= -_TOL and op.position + half <= span + _TOL
    if isinstance(op, Rabbet):
        span = h if op.edge in (Edge.BOTTOM, Edge.TOP) else w
        return op.width <= span + _TOL
    return -_TOL <= op.x <= w + _TOL and -_TOL <= op.y <= h + _TOL


def validate_project(
    project: Project,
    machine: MachineProfile,
    cam: Optional[CamConfig] = None,
    nesting: Optional[NestingConfig] = None,
) -> ValidationResult:
    """Check that every part, tool and spindle speed suits *machine*.

    With *nesting* given, its kerf is also checked against the profile
    tool, since parts are spaced one kerf apart.  Pure function of its
    inputs; nothing is generated or written.
    """
    cam = cam or CamConfig().converted(Units.INCH, project.units)
    m = machine.machine
    tx = Units.INCH.convert(m.travel_x, project.units)
    ty = Units.INCH.convert(m.travel_y, project.units)
    result = ValidationResult()

    for tp in project.parts:
        part = tp.part
        if part.width > tx or part.height > ty:
            result.errors.append(PartExceedsTravel(
                project.display_label(tp), part.width, part.height, tx, ty,
            ))
        for op in part.operations:
            if not _inside_part(op, part):
                result.errors.append(OperationOutsidePart(
                    project.display_label(tp), operation_type(op).value,
                ))

    profile_tool = project.tools.get(project.assignment.profile)
    if (
        nesting is not None
        and profile_tool is not None
        and nesting.kerf < profile_tool.diameter - _TOL
    ):
        result.errors.append(KerfNarrowerThanTool(
            nesting.kerf, profile_tool.diameter, profile_tool.number,
        ))

    for group in project.material_groups():
        mat = group.material
        split = recommend_bed_split(mat.sheet_width, mat.sheet_length, tx, ty)
        if split is None:
            continue
        result.warnings.append(SheetExceedsBed(
            str(mat), mat.sheet_width, mat.sheet_length, tx, ty, split,
        ))
        for tp in group.parts:
            part = tp.part
            if part.width > tx or part.height > ty:
                continue   # already an error
            if not _fits_piece(part.width, part.height, split):
                result.warnings.append(PartNeedsPreCutting(
                    project.display_label(tp), part.width, part.height,
                    split.piece_width, split.piece_length,
                ))

    required: dict[int, str] = {}
    missing_reported: set[int] = set()
    rpm_checked: set[tuple[int, float]] = set()

    for tp in project.parts:
        part = tp.part
        label = project.display_label(tp)
        cuts: list[tuple[OperationType, int, float, Optional[float]]] = [
            (OperationType.PROFILE, project.assignment.profile, part.thickness, None),
        ]
        for op in part.operations:
            if isinstance(op, PocketHole):
                if not op.cnc_flag:
                    continue
                depth = cam.pocket_hole_depth
            else:
                depth = op.depth
            width = op.width if isinstance(op, Dado) else None
            cuts.append((
                operation_type(op),
                project.assignment.for_operation(op, project.tools),
                depth,
                width,
            ))

        for kind, number, depth, groove_width in cuts:
            required.setdefault(number, kind.value)
            tool = project.tools.get(number)
            if tool is None:
                if number not in missing_reported:
                    missing_reported.add(number)
                    result.errors.append(ToolNotInLibrary(number, kind.value))
                continue

            if depth > tool.cutting_length + _TOL:
                result.errors.append(CutDepthExceedsTool(
                    label, depth, tool.cutting_length, tool.number, tool.name,
                ))
            if groove_width is not None and groove_width < tool.diameter - _TOL:
                result.warnings.append(GrooveNarrowerThanTool(label, groove_width, tool.diameter))

            feeds = project.feeds.resolve(
                tp.material.name, tool, project.rpm_override, project.units,
            )
            rpm = feeds.rpm
            if (tool.number, rpm) in rpm_checked:
                continue
            rpm_checked.add((tool.number, rpm))
            if rpm < m.min_rpm or rpm > m.max_rpm:
                result.errors.append(RpmOutOfRange(rpm, m.min_rpm, m.max_rpm, tool.number))

    if len(required) > 1 and not m.has_atc:
        result.warnings.append(MultipleToolsNoAtc(len(required)))

    logger.info(
        "Validated %d parts against %s: %d errors, %d warnings",
        len(project.parts), m.name, len(result.errors), len(result.warnings),
    )
    return result


# ---------------------------------------------------------------------------
# Toolpath checks
# ---------------------------------------------------------------------------


def validate_toolpaths(
    toolpaths: Sequence[Union[Toolpath, AnnotatedToolpath]],
    machine: MachineProfile,
    sheet_rect: Optional[Rect] = None,
    edge_margin: float = 0.0,
    units: Units = Units.INCH,
) -> ValidationResult:
    """Re-check synthesized motion against travel, surface and sheet.

    Checks performed:
    - every X/Y/Z (drill-cycle depths included) within +/- travel
    - no rapid move below Z0
    - with *sheet_rect*, no segment outside the sheet grown by *edge_margin*
    - spindle speeds within the machine range

    Machine travel is in inches and is converted to *units* first.
    """
    m = machine.machine
    result = ValidationResult()
    allowed = sheet_rect.expanded(edge_margin) if sheet_rect is not None else None
    coords: list[tuple[float, float, float]] = []
    rpm_seen: set[tuple[int, float]] = set()

    for item in toolpaths:
        if isinstance(item, AnnotatedToolpath):
            tp, owner = item.toolpath, item.placement_id
        else:
            tp, owner = item, f"T{item.tool_number}"

        key = (tp.tool_number, tp.rpm)
        if key not in rpm_seen:
            rpm_seen.add(key)
            if tp.rpm < m.min_rpm or tp.rpm > m.max_rpm:
                result.errors.append(RpmOutOfRange(tp.rpm, m.min_rpm, m.max_rpm, tp.tool_number))

        rapid_flagged = False
        outside_flagged = False
        for seg in tp.segments:
            coords.append(seg.as_tuple())
            if isinstance(seg.motion, DrillCycle):
                coords.append((seg.x, seg.y, seg.motion.retract_z))
                coords.append((seg.x, seg.y, seg.motion.final_z))
            if isinstance(seg.motion, Rapid) and seg.z < -_TOL and not rapid_flagged:
                rapid_flagged = True
                result.errors.append(RapidIntoMaterial(seg.x, seg.y, seg.z))
            if allowed is not None and not outside_flagged and not allowed.contains_point(seg.x, seg.y, tol=1e-6):
                outside_flagged = True
                result.errors.append(ToolpathOutsideSheet(owner, seg.x, seg.y))

    if coords:
        pts = np.asarray(coords, dtype=float)
        for col, axis, travel in ((0, "X", m.travel_x), (1, "Y", m.travel_y), (2, "Z", m.travel_z)):
            limit = Units.INCH.convert(travel, units)
            values = pts[:, col]
            worst = values[np.argmax(np.abs(values))]
            if abs(worst) > limit + _TOL:
                result.errors.append(GcodeBoundsExceeded(axis, float(worst), limit))
    return result
