"""Tests for project and toolpath validation."""

import pytest

from cabinetcam.config.machine_profiles import MachineInfo, MachineProfile, PostConfig, get_profile
from cabinetcam.core.geometry import Point2D, Rect
from cabinetcam.core.material import Material, TaggedPart
from cabinetcam.core.part import (
    Dado,
    DadoOrientation,
    Drill,
    Edge,
    OperationType,
    Part,
    PocketHole,
    Rabbet,
    operation_type,
)
from cabinetcam.core.project import Project
from cabinetcam.core.tool import ToolAssignment
from cabinetcam.core.toolpath.base import (
    AnnotatedToolpath,
    DrillCycle,
    Toolpath,
    ToolpathSegment,
    linear,
    rapid,
)
from cabinetcam.core.units import Units
from cabinetcam.gcode.validate import (
    CutDepthExceedsTool,
    GcodeBoundsExceeded,
    GrooveNarrowerThanTool,
    KerfNarrowerThanTool,
    MultipleToolsNoAtc,
    OperationOutsidePart,
    PartExceedsTravel,
    PartNeedsPreCutting,
    RapidIntoMaterial,
    RpmOutOfRange,
    SheetExceedsBed,
    SplitKind,
    ToolNotInLibrary,
    ToolpathOutsideSheet,
    ValidationResult,
    recommend_bed_split,
    validate_project,
    validate_toolpaths,
)
from cabinetcam.nesting import NestingConfig


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


PLY = Material("Plywood", 0.75)


@pytest.fixture
def shopbot() -> MachineProfile:
    return get_profile("shopbot-prs-96-48")


def _project(*parts: Part, material: Material = PLY, **kwargs) -> Project:
    return Project("test", tuple(TaggedPart(p, material) for p in parts), **kwargs)


def _plain(label: str = "panel", width: float = 20.0, height: float = 30.0) -> Part:
    return Part.of_size(label, width, height, 0.75)


def _machine(travel_x: float, travel_y: float, has_atc: bool = False) -> MachineProfile:
    return MachineProfile(
        MachineInfo("Test", "LinuxCNC", travel_x, travel_y, 6.0, max_rpm=24000, min_rpm=6000,
                    has_atc=has_atc),
        PostConfig(),
    )


# ---------------------------------------------------------------------------
# Project validation
# ---------------------------------------------------------------------------


class TestProjectValidation:
    def test_clean_project_passes(self, shopbot):
        result = validate_project(_project(_plain()), shopbot)
        assert result.is_ok

    def test_rpm_above_machine_max(self, shopbot):
        project = _project(_plain(), rpm_override=22000)
        result = validate_project(project, shopbot)
        assert result.errors == [RpmOutOfRange(22000, 7000, 18000, 1)]
        assert result.warnings == []

    def test_rpm_below_machine_min(self, shopbot):
        result = validate_project(_project(_plain(), rpm_override=5000), shopbot)
        assert len(result.errors_of(RpmOutOfRange)) == 1

    def test_two_tools_without_atc_warns_once(self, shopbot):
        side = Part.of_size("side", 20.0, 30.0, 0.75, operations=(Dado(15.0, 0.75, 0.375),))
        result = validate_project(_project(side, side), shopbot)
        assert result.errors == []
        assert result.warnings == [MultipleToolsNoAtc(2)]

    def test_atc_machine_does_not_warn(self):
        side = Part.of_size("side", 20.0, 30.0, 0.75, operations=(Dado(15.0, 0.75, 0.375),))
        result = validate_project(_project(side), get_profile("avid-pro4896"))
        assert result.warnings_of(MultipleToolsNoAtc) == []

    @pytest.mark.parametrize("axis", ["x", "y"])
    def test_travel_overshoot_is_caught(self, axis):
        machine = _machine(30.0, 40.0)
        width, height = (30.001, 10.0) if axis == "x" else (10.0, 40.001)
        result = validate_project(_project(_plain("big", width, height)), machine)
        errors = result.errors_of(PartExceedsTravel)
        assert len(errors) == 1
        assert errors[0].part_label == "big"

    def test_part_exactly_at_travel_is_fine(self):
        machine = _machine(30.0, 40.0)
        result = validate_project(_project(_plain("snug", 30.0, 40.0)), machine)
        assert result.errors_of(PartExceedsTravel) == []

    def test_mm_project_converts_travel(self):
        machine = _machine(30.0, 40.0)
        mm = Material("Plywood", 18.0, 1220.0, 2440.0)
        part = Part.of_size("side", 700.0, 900.0, 18.0)
        result = validate_project(_project(part, material=mm, units=Units.MM), machine)
        assert result.errors_of(PartExceedsTravel) == []

    def test_cut_depth_exceeds_tool(self, shopbot):
        thick = Material("Hardwood", 1.5)
        part = Part.of_size("top", 20.0, 30.0, 1.5)
        result = validate_project(_project(part, material=thick), shopbot)
        errors = result.errors_of(CutDepthExceedsTool)
        assert len(errors) == 1
        assert errors[0].cut_depth == pytest.approx(1.5)
        assert errors[0].cutting_length == pytest.approx(1.0)

    def test_missing_tool_reported_once(self, shopbot):
        side = Part.of_size("side", 20.0, 30.0, 0.75, operations=(Dado(15.0, 0.75, 0.375),))
        project = _project(side, side, assignment=ToolAssignment(profile=1, dado=9))
        result = validate_project(project, shopbot)
        assert result.errors_of(ToolNotInLibrary) == [ToolNotInLibrary(9, OperationType.DADO.value)]

    def test_groove_narrower_than_tool_warns(self, shopbot):
        side = Part.of_size("side", 20.0, 30.0, 0.75, operations=(Dado(15.0, 0.25, 0.25),))
        result = validate_project(_project(side), shopbot)
        assert len(result.warnings_of(GrooveNarrowerThanTool)) == 1
        assert not result.has_errors

    def test_manual_pocket_holes_need_no_tool(self, shopbot):
        part = Part.of_size("rail", 20.0, 3.0, 0.75, operations=(PocketHole(1.0, 1.5, Edge.LEFT),))
        result = validate_project(_project(part), shopbot)
        assert result.is_ok

    def test_cnc_pocket_holes_need_their_drill(self, shopbot):
        part = Part.of_size(
            "rail", 20.0, 3.0, 0.75,
            operations=(PocketHole(1.0, 1.5, Edge.LEFT, cnc_flag=True),),
        )
        result = validate_project(_project(part), shopbot)
        assert result.warnings_of(MultipleToolsNoAtc) == [MultipleToolsNoAtc(2)]

    def test_kerf_narrower_than_profile_bit(self, shopbot):
        result = validate_project(_project(_plain()), shopbot, nesting=NestingConfig(kerf=0.125))
        assert result.errors == [KerfNarrowerThanTool(0.125, 0.25, 1)]

    def test_kerf_matching_profile_bit_is_fine(self, shopbot):
        result = validate_project(_project(_plain()), shopbot, nesting=NestingConfig(kerf=0.25))
        assert result.is_ok

    @pytest.mark.parametrize("op", [
        Drill(21.0, 5.0, 0.19685, 0.5),
        Drill(5.0, -0.5, 0.19685, 0.5),
        Dado(29.8, 0.75, 0.375),
        Dado(19.9, 0.75, 0.375, DadoOrientation.VERTICAL),
        Rabbet(Edge.LEFT, 20.5, 0.375),
    ])
    def test_operation_off_the_part(self, shopbot, op):
        part = Part.of_size("side", 20.0, 30.0, 0.75, operations=(op,))
        result = validate_project(_project(part), shopbot)
        assert result.errors_of(OperationOutsidePart) == [
            OperationOutsidePart("side", operation_type(op).value),
        ]

    def test_operation_on_the_edge_is_fine(self, shopbot):
        ops = (Drill(20.0, 30.0, 0.19685, 0.5), Dado(29.625, 0.75, 0.375))
        part = Part.of_size("side", 20.0, 30.0, 0.75, operations=ops)
        result = validate_project(_project(part), get_profile("avid-pro4896"))
        assert result.errors_of(OperationOutsidePart) == []

    def test_mm_project_uses_metric_tooling(self, shopbot):
        mm = Material("Plywood", 18.0, 1220.0, 2440.0)
        part = Part.of_size("side", 500.0, 700.0, 18.0)
        project = _project(part, material=mm, units=Units.MM)
        result = validate_project(project, shopbot, nesting=NestingConfig(1220.0, 2440.0, 6.35, 12.7))
        assert result.is_ok
        assert project.tools.get(1).diameter == pytest.approx(6.35)



class TestBedSplit:
    def test_sheet_that_fits_needs_no_split(self):
        assert recommend_bed_split(48.0, 96.0, 50.0, 98.0) is None

    def test_halves(self):
        split = recommend_bed_split(48.0, 96.0, 50.0, 50.0)
        assert split.kind is SplitKind.HALVES
        assert (split.columns, split.rows) == (1, 2)
        assert split.piece_length == pytest.approx(48.0)

    def test_quadrants(self):
        split = recommend_bed_split(48.0, 96.0, 25.0, 50.0)
        assert split.kind is SplitKind.QUADRANTS
        assert split.pieces == 4

    def test_small_machine_needs_many_pieces(self):
        split = recommend_bed_split(48.0, 96.0, 18.0, 9.5)
        assert split.kind is SplitKind.MULTIPLE
        assert split.pieces == 33
        assert not split.turned

    def test_turning_the_sheet_can_help(self):
        split = recommend_bed_split(48.0, 96.0, 100.0, 30.0)
        assert split.turned
        assert split.pieces == 2

    def test_sheet_exceeds_bed_warning_with_precut(self):
        machine = _machine(50.0, 50.0)
        project = _project(_plain("small", 20.0, 20.0), _plain("long", 30.0, 49.0))
        result = validate_project(project, machine)
        assert not result.has_errors
        sheet_warnings = result.warnings_of(SheetExceedsBed)
        assert len(sheet_warnings) == 1
        assert sheet_warnings[0].split.kind is SplitKind.HALVES
        precut = result.warnings_of(PartNeedsPreCutting)
        assert [w.part_label for w in precut] == ["long"]


# ---------------------------------------------------------------------------
# Toolpath validation
# ---------------------------------------------------------------------------


def _tp(*segments, rpm: float = 18000) -> Toolpath:
    return Toolpath(1, rpm, 180.0, 90.0, segments)


class TestToolpathValidation:
    def test_valid_toolpath_passes(self, shopbot):
        tp = _tp(rapid(1.0, 1.0, 0.75), linear(1.0, 1.0, -0.25), linear(5.0, 1.0, -0.25))
        assert validate_toolpaths([tp], shopbot).is_ok

    @pytest.mark.parametrize("segment,axis", [
        (linear(60.0, 1.0, -0.25), "X"),
        (linear(1.0, -99.0, -0.25), "Y"),
        (rapid(1.0, 1.0, 9.0), "Z"),
    ])
    def test_out_of_travel(self, shopbot, segment, axis):
        result = validate_toolpaths([_tp(segment)], shopbot)
        errors = result.errors_of(GcodeBoundsExceeded)
        assert [e.axis for e in errors] == [axis]

    def test_one_error_per_axis_with_worst_value(self, shopbot):
        tp = _tp(linear(55.0, 1.0, -0.25), linear(70.0, 1.0, -0.25))
        errors = validate_toolpaths([tp], shopbot).errors_of(GcodeBoundsExceeded)
        assert errors == [GcodeBoundsExceeded("X", 70.0, 50.0)]

    def test_drill_depth_counts_toward_z(self, shopbot):
        seg = ToolpathSegment(DrillCycle(0.2, -9.0), Point2D(1.0, 1.0), 0.2)
        errors = validate_toolpaths([_tp(seg)], shopbot).errors_of(GcodeBoundsExceeded)
        assert errors[0].axis == "Z"
        assert errors[0].value == pytest.approx(-9.0)

    def test_rapid_into_material(self, shopbot):
        result = validate_toolpaths([_tp(rapid(1.0, 1.0, -0.1), rapid(2.0, 1.0, -0.1))], shopbot)
        assert result.errors_of(RapidIntoMaterial) == [RapidIntoMaterial(1.0, 1.0, -0.1)]

    def test_segment_outside_sheet(self, shopbot):
        annotated = AnnotatedToolpath(
            _tp(rapid(1.0, 1.0, 0.75), linear(-1.0, 5.0, -0.25)),
            "side", "side_1", OperationType.PROFILE,
        )
        sheet = Rect(Point2D(0.0, 0.0), 48.0, 96.0)
        result = validate_toolpaths([annotated], shopbot, sheet_rect=sheet, edge_margin=0.5)
        assert result.errors_of(ToolpathOutsideSheet) == [ToolpathOutsideSheet("side_1", -1.0, 5.0)]

    def test_margin_allows_slight_overhang(self, shopbot):
        sheet = Rect(Point2D(0.0, 0.0), 48.0, 96.0)
        tp = _tp(linear(-0.25, 5.0, -0.25))
        assert validate_toolpaths([tp], shopbot, sheet_rect=sheet, edge_margin=0.5).is_ok

    def test_rpm_checked_per_tool(self, shopbot):
        result = validate_toolpaths([_tp(rapid(1, 1, 1), rpm=20000)] * 3, shopbot)
        assert result.errors_of(RpmOutOfRange) == [RpmOutOfRange(20000, 7000, 18000, 1)]


class TestValidationResult:
    def test_merged_keeps_both(self):
        a = ValidationResult(errors=[RapidIntoMaterial(0, 0, -1)])
        b = ValidationResult(warnings=[MultipleToolsNoAtc(3)])
        merged = a.merged(b)
        assert merged.has_errors and merged.has_warnings
        assert not merged.is_ok

    def test_messages_carry_numbers(self):
        msg = RpmOutOfRange(22000, 7000, 18000, 1).message
        assert "22000" in msg and "18000" in msg and msg.startswith("T1")
