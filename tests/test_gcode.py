"""Tests for G-code formatting and the profile-driven post-processor."""

import pytest

from cabinetcam.config.machine_profiles import (
    MachineInfo,
    MachineProfile,
    PostConfig,
    get_profile,
)
from cabinetcam.core.geometry import Point2D
from cabinetcam.core.part import OperationType
from cabinetcam.core.toolpath.base import (
    AnnotatedToolpath,
    ArcCCW,
    DrillCycle,
    Toolpath,
    ToolpathSegment,
    linear,
    rapid,
)
from cabinetcam.core.units import Units
from cabinetcam.gcode import gcode_writer as gw
from cabinetcam.gcode.post import PostProcessor, PostProcessorError, emit


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def shopbot() -> MachineProfile:
    return get_profile("shopbot-prs-96-48")


def _square_toolpath(tool: int = 1, rpm: float = 18000) -> Toolpath:
    """A small artificial cut for testing the post-processor."""
    return Toolpath(tool, rpm, 180.0, 90.0, [
        rapid(1.0, 1.0, 0.75),
        rapid(1.0, 1.0, 0.2),
        linear(1.0, 1.0, -0.25),
        linear(5.0, 1.0, -0.25),
        linear(5.0, 5.0, -0.25),
        rapid(5.0, 5.0, 0.75),
    ])


def _drill_toolpath(peck: float = 0.0, final_z: float = -0.5) -> Toolpath:
    return Toolpath(3, 8000, 48.0, 14.4, [
        rapid(12.0, 13.0, 0.75),
        ToolpathSegment(DrillCycle(0.2, final_z, peck), Point2D(12.0, 13.0), 0.2),
    ])


# ---------------------------------------------------------------------------
# Word formatting
# ---------------------------------------------------------------------------


class TestFormatting:
    @pytest.mark.parametrize("value,decimals,expected", [
        (1.5, 4, "1.5"),
        (2.0, 4, "2"),
        (0.123456, 4, "0.1235"),
        (-0.00001, 4, "0"),
        (-0.0, 3, "0"),
        (10.0, 0, "10"),
        (-1.26, 1, "-1.3"),
    ])
    def test_fmt(self, value, decimals, expected):
        assert gw.fmt(value, decimals) == expected

    def test_rapid_words(self):
        assert gw.rapid(x=1.0, y=2.5) == "G00 X1 Y2.5"
        assert gw.rapid(z=0.75) == "G00 Z0.75"

    def test_linear_with_feed(self):
        assert gw.linear(1.0, 2.0, -0.25, f=120.0) == "G01 X1 Y2 Z-0.25 F120"

    def test_arc_words(self):
        assert gw.arc(True, 1.0, 0.0, 0.0, -1.0) == "G02 X1 Y0 I0 J-1"
        assert gw.arc(False, 0.0, 1.0, -1.0, 0.0, f=50.0) == "G03 X0 Y1 I-1 J0 F50"

    def test_drill_cycle_words(self):
        assert gw.drill_cycle("G83", 1.0, 2.0, -1.0, 0.2, 15.0, q=0.4) == (
            "G98 G83 X1 Y2 Z-1 R0.2 Q0.4 F15"
        )

    def test_comment_strips_parens(self):
        assert gw.comment("side (left)") == "(side left)"

    def test_number_lines_skips_comments_and_tape_marks(self):
        lines = gw.number_lines(["%", "(hello)", "G20", "", "M30", "%"])
        assert lines == ["%", "(hello)", "N10 G20", "", "N20 M30", "%"]


# ---------------------------------------------------------------------------
# Post-processor
# ---------------------------------------------------------------------------


class TestPostProcessor:
    def test_full_program(self, shopbot):
        lines = PostProcessor(shopbot, program_name="test").get_lines([_square_toolpath()])
        assert lines == [
            "%",
            "(test)",
            "(Machine: ShopBot PRSalpha 96-48)",
            "G20",
            "G90 G17 G40 G49 G80 G94",
            "G54",
            "(Tool change: T1)",
            "M05",
            "G00 Z0.75",
            "T1 M06",
            "G43 H1",
            "S18000 M03",
            "G00 X1 Y1",
            "G00 Z0.2",
            "G01 X1 Y1 Z-0.25 F90",
            "G01 X5 Y1 Z-0.25 F180",
            "G01 X5 Y5 Z-0.25",
            "G00 Z0.75",
            "M05",
            "G00 Z0.75",
            "G00 X0 Y0",
            "M30",
            "%",
        ]

    def test_mm_mode_uses_g21(self, shopbot):
        text = emit([_square_toolpath()], shopbot, units=Units.MM)
        assert "\nG21\n" in text
        assert "G20" not in text

    def test_mm_mode_retracts_in_millimetres(self, shopbot):
        tp = Toolpath(1, 18000, 4572.0, 2286.0, [
            rapid(25.0, 25.0, 19.05),
            rapid(25.0, 25.0, 5.08),
            linear(25.0, 25.0, -6.0),
            linear(125.0, 25.0, -6.0),
            rapid(125.0, 25.0, 19.05),
        ])
        lines = PostProcessor(shopbot, units=Units.MM).get_lines([tp])
        start = lines.index("(Tool change: T1)")
        assert lines[start:] == [
            "(Tool change: T1)",
            "M05",
            "G00 Z19.05",
            "T1 M06",
            "G43 H1",
            "S18000 M03",
            "G00 X25 Y25",
            "G00 Z5.08",
            "G01 X25 Y25 Z-6 F2286",
            "G01 X125 Y25 Z-6 F4572",
            "G00 Z19.05",
            "M05",
            "G00 Z19.05",
            "G00 X0 Y0",
            "M30",
            "%",
        ]


    def test_emit_is_deterministic(self, shopbot):
        tps = [_square_toolpath(), _drill_toolpath(), _square_toolpath(tool=2, rpm=16000)]
        first = emit(tps, shopbot)
        assert first == emit(tps, shopbot)
        assert first.endswith("%\n")

    def test_tool_change_only_when_tool_differs(self, shopbot):
        text = emit([_square_toolpath(), _square_toolpath()], shopbot)
        assert text.count("M06") == 1

    def test_rpm_change_on_same_tool(self, shopbot):
        lines = PostProcessor(shopbot).get_lines([_square_toolpath(), _square_toolpath(rpm=16000)])
        assert "S16000 M03" in lines
        assert sum(1 for ln in lines if ln.endswith("M06")) == 1

    def test_retract_between_operations(self, shopbot):
        first = Toolpath(1, 18000, 180.0, 90.0, [
            rapid(1.0, 1.0, 0.2),
            linear(1.0, 1.0, -0.25),
            linear(5.0, 1.0, -0.25),
        ])
        lines = PostProcessor(shopbot).get_lines([first, _square_toolpath()])
        k = lines.index("G01 X5 Y1 Z-0.25 F180")
        assert lines[k + 1] == "G00 Z0.75"

    def test_rapid_lifts_before_travel(self, shopbot):
        tp = Toolpath(1, 18000, 180.0, 90.0, [
            rapid(1.0, 1.0, 0.2),
            linear(1.0, 1.0, -0.25),
            rapid(6.0, 6.0, 0.75),
        ])
        lines = PostProcessor(shopbot).get_lines([tp])
        k = lines.index("G01 X1 Y1 Z-0.25 F90")
        assert lines[k + 1:k + 3] == ["G00 Z0.75", "G00 X6 Y6"]

    def test_rapid_travels_before_descending(self, shopbot):
        tp = Toolpath(1, 18000, 180.0, 90.0, [rapid(3.0, 4.0, 0.2)])
        lines = PostProcessor(shopbot).get_lines([tp])
        k = lines.index("S18000 M03")
        assert lines[k + 1:k + 3] == ["G00 X3 Y4", "G00 Z0.2"]

    def test_straight_drill_cycle(self, shopbot):
        lines = PostProcessor(shopbot).get_lines([_drill_toolpath()])
        k = lines.index("G98 G81 X12 Y13 Z-0.5 R0.2 F14.4")
        assert lines[k - 1] == "G00 X12 Y13"
        assert lines[k + 1] == "G80"

    def test_peck_cycle_follows_profile(self, shopbot):
        text = emit([_drill_toolpath(peck=0.3937, final_z=-1.0)], shopbot)
        assert "G98 G83 X12 Y13 Z-1 R0.2 Q0.3937 F14.4" in text
        avid = get_profile("avid-pro4896")
        assert "G98 G73 X12 Y13 Z-1 R0.2 Q0.3937 F14.4" in emit(
            [_drill_toolpath(peck=0.3937, final_z=-1.0)], avid,
        )

    def test_arc_output(self, shopbot):
        tp = Toolpath(1, 18000, 180.0, 90.0, [
            rapid(1.0, 0.0, 0.2),
            linear(1.0, 0.0, -0.1),
            ToolpathSegment(ArcCCW(-1.0, 0.0), Point2D(0.0, 1.0), -0.1),
        ])
        text = emit([tp], shopbot)
        assert "G03 X0 Y1 I-1 J0 F180" in text

    def test_operation_comment(self, shopbot):
        annotated = AnnotatedToolpath(_square_toolpath(), "side", "side_1", OperationType.PROFILE)
        assert "(profile side_1)" in emit([annotated], shopbot)

    def test_line_numbers_and_decimals(self):
        grbl = get_profile("grbl-desktop")
        tp = Toolpath(1, 18000, 180.0, 90.0, [
            rapid(1.23456, 1.0, 0.5),
            rapid(1.23456, 1.0, 0.1),
            linear(1.23456, 1.0, -0.25),
        ])
        lines = PostProcessor(grbl).get_lines([tp])
        assert lines[0] == "%"
        assert lines[1].startswith("(")
        assert lines[2] == "N10 G20"
        assert "X1.235" in "\n".join(lines)

    def test_empty_toolpaths_still_frame_program(self, shopbot):
        lines = PostProcessor(shopbot).get_lines([])
        assert lines[0] == "%"
        assert lines[-2:] == ["M30", "%"]
        assert not any("M06" in ln for ln in lines)

    def test_generate_writes_file(self, shopbot, tmp_path):
        out = PostProcessor(shopbot).generate([_square_toolpath()], tmp_path / "nc" / "sheet.nc")
        assert out.read_text() == emit([_square_toolpath()], shopbot)


class TestPostProcessorErrors:
    def test_out_of_travel_refused(self):
        pcnc = get_profile("pcnc1100")
        tp = Toolpath(1, 8000, 100.0, 50.0, [rapid(30.0, 1.0, 1.0)])
        with pytest.raises(PostProcessorError, match="X"):
            emit([tp], pcnc)

    def test_mm_travel_is_converted(self):
        pcnc = get_profile("pcnc1100")
        # 400 mm is inside 18" (457.2 mm) of X travel
        tp = Toolpath(1, 8000, 2500.0, 1200.0, [rapid(400.0, 10.0, 25.0)])
        assert "G00 X400 Y10" in emit([tp], pcnc, units=Units.MM)
        with pytest.raises(PostProcessorError):
            emit([tp], pcnc, units=Units.INCH)

    def test_rapid_into_material_refused(self, shopbot):
        tp = Toolpath(1, 18000, 180.0, 90.0, [rapid(1.0, 1.0, -0.1)])
        with pytest.raises(PostProcessorError, match="below the work surface"):
            emit([tp], shopbot)

    def test_invalid_profile_refused(self):
        broken = MachineProfile(
            MachineInfo("Broken", "none", 10.0, 10.0, 2.0, max_rpm=1000, min_rpm=5000),
            PostConfig(),
        )
        with pytest.raises(PostProcessorError, match="min_rpm"):
            emit([_square_toolpath()], broken)

    def test_unknown_motion_is_fatal(self, shopbot):
        tp = Toolpath(1, 18000, 180.0, 90.0, [ToolpathSegment("bogus", Point2D(1.0, 1.0), 0.5)])
        with pytest.raises(PostProcessorError, match="Unknown motion"):
            emit([tp], shopbot)
