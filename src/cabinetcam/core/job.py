"""Job orchestrator: ties project + machine + nesting + CAM together.

The Job class is the top-level entry point for the CLI.  It is an
immutable snapshot; build a new Job whenever parts or settings change.
Independent material groups are nested on worker threads.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from functools import cached_property
from pathlib import Path
from typing import Mapping, Optional

import numpy as np

from ..config.machine_profiles import MachineProfile
from ..gcode.post import emit
from ..gcode.validate import ValidationResult, validate_project, validate_toolpaths
from ..nesting.packer import NestingConfig, NestingResult, SheetLayout, expand_parts, nest
from .material import Material, MaterialGroup, TaggedPart
from .part import Part
from .project import Project
from .toolpath.base import AnnotatedToolpath
from .toolpath.ops import CamConfig
from .toolpath.synthesize import CamContext, synthesize
from .toolpath.utils import path_distances
from .units import Units
from .wire import encode_annotated

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MaterialGroupResult:
    """Nesting outcome for one material x thickness group."""

    material: Material
    config: NestingConfig
    result: NestingResult
    sources: Mapping[str, TaggedPart] = field(compare=False, repr=False)

    @property
    def thickness(self) -> float:
        return self.material.thickness

    def parts_by_id(self) -> dict[str, Part]:
        return {nid: tp.part for nid, tp in self.sources.items()}


@dataclass(frozen=True)
class ToolpathVisualizationDto:
    """Everything a preview needs to draw and summarize one sheet."""

    toolpaths: list[AnnotatedToolpath]
    sheet_width: float
    sheet_height: float
    total_segments: int
    rapid_distance: float
    cut_distance: float
    part_count: int
    estimated_time_s: float
    bounds: tuple[float, float, float, float]   # min_x, min_y, max_x, max_y

    def to_dict(self) -> dict:
        return {
            "toolpaths": [encode_annotated(a) for a in self.toolpaths],
            "sheet_width": self.sheet_width,
            "sheet_height": self.sheet_height,
            "total_segments": self.total_segments,
            "rapid_distance": self.rapid_distance,
            "cut_distance": self.cut_distance,
            "part_count": self.part_count,
            "estimated_time_s": self.estimated_time_s,
            "bounds": list(self.bounds),
        }


@dataclass(frozen=True)
class SheetGcode:
    material: str
    thickness: float
    sheet_index: int
    filename: str
    gcode_text: str


@dataclass
class GenerationResult:
    validation: ValidationResult
    sheets: list[SheetGcode] = field(default_factory=list)
    groups: list[MaterialGroupResult] = field(default_factory=list)
    blocked: bool = False

    def write(self, output_dir: Path) -> list[Path]:
        """Write one ``.nc`` file per sheet; nothing when blocked."""
        if self.blocked:
            return []
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        written = []
        for sheet in self.sheets:
            path = output_dir / sheet.filename
            path.write_text(sheet.gcode_text)
            written.append(path)
        logger.info("Wrote %d G-code files to %s", len(written), output_dir)
        return written


@dataclass(frozen=True)
class Job:
    """A complete generation request for one project on one machine."""

    project: Project
    machine: MachineProfile
    nesting: NestingConfig = field(default_factory=NestingConfig)
    cam: Optional[CamConfig] = None
    max_workers: Optional[int] = None
    fit_arcs: bool = False

    @property
    def cam_config(self) -> CamConfig:
        """CAM settings in project units, with clearance heights from the
        machine profile unless given explicitly."""
        if self.cam is not None:
            return self.cam
        post = self.machine.post
        inch = CamConfig(safe_z=post.safe_z, rapid_z=post.rapid_z)
        return inch.converted(Units.INCH, self.units)

    @property
    def units(self) -> Units:
        return self.project.units

    def nesting_config_for(self, material: Material) -> NestingConfig:
        return replace(
            self.nesting,
            sheet_width=material.sheet_width,
            sheet_length=material.sheet_length,
        )

    # ------------------------------------------------------------------
    # Pipeline stages
    # ------------------------------------------------------------------

    def validate(self) -> ValidationResult:
        return validate_project(self.project, self.machine, self.cam_config, self.nesting)

    def _nest_group(self, group: MaterialGroup) -> MaterialGroupResult:
        config = self.nesting_config_for(group.material)
        parts, sources = expand_parts(group.parts, prefix_cabinet=self.project.multi_cabinet)
        return MaterialGroupResult(group.material, config, nest(parts, config), sources)

    @cached_property
    def _nested(self) -> tuple[MaterialGroupResult, ...]:
        groups = self.project.material_groups()
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            return tuple(pool.map(self._nest_group, groups))

    def nest(self) -> list[MaterialGroupResult]:
        """Nest every material group, in the order groups first appear."""
        return list(self._nested)

    def _sheet(self, material_index: int, sheet_index: int) -> tuple[MaterialGroupResult, SheetLayout]:
        groups = self._nested
        if not 0 <= material_index < len(groups):
            raise IndexError(
                f"Material index {material_index} out of range (0..{len(groups) - 1})"
            )
        group = groups[material_index]
        sheets = group.result.sheets
        if not 0 <= sheet_index < len(sheets):
            raise IndexError(
                f"Sheet index {sheet_index} out of range for {group.material} "
                f"({len(sheets)} sheets)"
            )
        return group, sheets[sheet_index]

    def _context(self, material: Material) -> CamContext:
        return CamContext(
            tools=self.project.tools,
            assignment=self.project.assignment,
            feeds=self.project.feeds,
            material_name=material.name,
            config=self.cam_config,
            rpm_override=self.project.rpm_override,
            fit_arcs=self.fit_arcs,
            units=self.units,
        )

    def _synthesize(self, group: MaterialGroupResult, sheet: SheetLayout) -> list[AnnotatedToolpath]:
        return synthesize(sheet, group.parts_by_id(), self._context(group.material))

    def _check_sheet(
        self,
        group: MaterialGroupResult,
        sheet: SheetLayout,
        toolpaths: list[AnnotatedToolpath],
    ) -> ValidationResult:
        return validate_toolpaths(
            toolpaths,
            self.machine,
            sheet_rect=sheet.sheet_rect,
            edge_margin=group.config.edge_margin,
            units=self.units,
        )

    # ------------------------------------------------------------------
    # Boundary API
    # ------------------------------------------------------------------

    def get_toolpaths(self, material_index: int, sheet_index: int) -> ToolpathVisualizationDto:
        """Toolpaths and summary numbers for one sheet.

        Raises
        ------
        IndexError:
            If either index is out of range.
        """
        group, sheet = self._sheet(material_index, sheet_index)
        toolpaths = self._synthesize(group, sheet)

        rapid_rate = Units.INCH.convert(self.machine.machine.max_feed, self.units)
        rapid_total = cut_total = minutes = 0.0
        for a in toolpaths:
            r, c = path_distances([a.toolpath])
            rapid_total += r
            cut_total += c
            minutes += c / a.toolpath.feed_rate + r / rapid_rate

        coords = [s.as_tuple() for a in toolpaths for s in a.toolpath.segments]
        if coords:
            pts = np.asarray(coords, dtype=float)
            lo, hi = pts[:, :2].min(axis=0), pts[:, :2].max(axis=0)
            bounds = (float(lo[0]), float(lo[1]), float(hi[0]), float(hi[1]))
        else:
            bounds = sheet.sheet_rect.bounds_2d

        return ToolpathVisualizationDto(
            toolpaths=toolpaths,
            sheet_width=sheet.sheet_rect.width,
            sheet_height=sheet.sheet_rect.height,
            total_segments=len(coords),
            rapid_distance=rapid_total,
            cut_distance=cut_total,
            part_count=len(sheet.parts),
            estimated_time_s=minutes * 60.0,
            bounds=bounds,
        )

    def _filename(self, group: MaterialGroupResult, sheet: SheetLayout) -> str:
        return f"{group.material.slug}-sheet-{sheet.sheet_index + 1}.nc"

    def _program_name(self, group: MaterialGroupResult, sheet: SheetLayout) -> str:
        return (
            f"{self.project.name} {group.material} "
            f"sheet {sheet.sheet_index + 1} of {group.result.sheet_count}"
        )

    def generate_gcode(self) -> GenerationResult:
        """Validate, nest, synthesize and post every sheet.

        Nothing is emitted when project validation or the per-sheet
        toolpath checks report an error; the result is then ``blocked``.
        """
        validation = self.validate()
        if validation.has_errors:
            logger.warning("Generation blocked by %d validation errors", len(validation.errors))
            return GenerationResult(validation, blocked=True)

        groups = self.nest()
        pending = []
        for group in groups:
            for sheet in group.result.sheets:
                toolpaths = self._synthesize(group, sheet)
                validation = validation.merged(self._check_sheet(group, sheet, toolpaths))
                pending.append((group, sheet, toolpaths))

        if validation.has_errors:
            logger.warning("Generation blocked by %d toolpath errors", len(validation.errors))
            return GenerationResult(validation, groups=groups, blocked=True)

        sheets = [
            SheetGcode(
                material=group.material.name,
                thickness=group.thickness,
                sheet_index=sheet.sheet_index,
                filename=self._filename(group, sheet),
                gcode_text=emit(toolpaths, self.machine, self.units, self._program_name(group, sheet)),
            )
            for group, sheet, toolpaths in pending
        ]
        logger.info("Generated %d sheet programs", len(sheets))
        return GenerationResult(validation, sheets, groups)

    def preview_gcode(self, material_index: int, sheet_index: int) -> str:
        """G-code for a single sheet, without writing anything.

        Raises
        ------
        IndexError:
            If either index is out of range.
        PostProcessorError:
            If the sheet's motion leaves the machine envelope.
        """
        group, sheet = self._sheet(material_index, sheet_index)
        toolpaths = self._synthesize(group, sheet)
        return emit(toolpaths, self.machine, self.units, self._program_name(group, sheet))

    def write_gcode_files(self, output_dir: Path) -> GenerationResult:
        """Generate and write every sheet program to *output_dir*."""
        result = self.generate_gcode()
        result.write(output_dir)
        return result
