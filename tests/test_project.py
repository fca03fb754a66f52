"""Tests for project loading, the operation wire format, feeds and tools."""

import json

import pytest

from cabinetcam.config.defaults import build_default_tool_library
from cabinetcam.config.settings import AppSettings
from cabinetcam.core.feeds import ANY_MATERIAL, FeedEntry, FeedTable
from cabinetcam.core.geometry import Point2D
from cabinetcam.core.material import Material, TaggedPart, group_parts_by_material
from cabinetcam.core.part import (
    Dado,
    DadoOrientation,
    Drill,
    Edge,
    GrainDirection,
    OperationType,
    Part,
    PocketHole,
    Rabbet,
    rotate_operation,
)
from cabinetcam.core.project import Project
from cabinetcam.core.tool import Tool, ToolAssignment, ToolLibrary, ToolType
from cabinetcam.core.toolpath.base import (
    AnnotatedToolpath,
    ArcCW,
    DrillCycle,
    Rapid,
    Toolpath,
    ToolpathSegment,
    linear,
)
from cabinetcam.core.units import Units
from cabinetcam.core.wire import (
    decode_annotated,
    decode_motion,
    decode_operation,
    decode_toolpath,
    encode_annotated,
    encode_motion,
    encode_operation,
    encode_toolpath,
)


# ---------------------------------------------------------------------------
# Wire format
# ---------------------------------------------------------------------------


class TestWire:
    def test_unit_variant_is_bare_string(self):
        assert encode_motion(Rapid()) == "Rapid"
        assert decode_motion("Rapid") == Rapid()

    def test_field_variant_is_one_key_object(self):
        assert encode_motion(ArcCW(0.5, 0.0)) == {"ArcCW": {"i": 0.5, "j": 0.0}}

    def test_enum_fields_use_values(self):
        encoded = encode_operation(Rabbet(Edge.LEFT, 0.375, 0.25))
        assert encoded == {"Rabbet": {"edge": "left", "width": 0.375, "depth": 0.25}}
        assert decode_operation(encoded) == Rabbet(Edge.LEFT, 0.375, 0.25)

    def test_dado_orientation_defaults(self):
        op = decode_operation({"Dado": {"position": 10, "width": 0.75, "depth": 0.25}})
        assert op.orientation is DadoOrientation.HORIZONTAL

    def test_pocket_hole_flag_alias(self):
        op = decode_operation({"PocketHole": {"x": 1, "y": 2, "edge": "top", "cnc_operation": True}})
        assert op == PocketHole(1, 2, Edge.TOP, cnc_flag=True)

    def test_toolpath_document(self):
        tp = Toolpath(2, 16000, 250.0, 60.0, [
            linear(1.0, 2.0, -0.25),
            ToolpathSegment(DrillCycle(0.2, -0.5, 0.1), Point2D(3.0, 4.0), 0.2),
        ])
        doc = json.loads(json.dumps(encode_toolpath(tp)))
        assert doc["segments"][0]["motion"] == "Linear"
        assert decode_toolpath(doc) == tp

    def test_annotated_toolpath(self):
        tp = Toolpath(1, 18000, 180.0, 90.0, [linear(0.0, 0.0, -0.25)])
        annotated = AnnotatedToolpath(tp, "side", "base/side_1", OperationType.PROFILE)
        doc = encode_annotated(annotated)
        assert doc["operation_type"] == "profile"
        assert decode_annotated(doc) == annotated

    @pytest.mark.parametrize("data", [
        {"Mortise": {"width": 1}},
        {"Dado": {"position": 1}},
        {"Dado": {}, "Drill": {}},
        42,
    ])
    def test_rejects_malformed(self, data):
        with pytest.raises(ValueError):
            decode_operation(data)


# ---------------------------------------------------------------------------
# Parts and materials
# ---------------------------------------------------------------------------


class TestParts:
    @pytest.mark.parametrize("kwargs", [
        {"width": 0.0},
        {"thickness": -0.75},
        {"quantity": 0},
    ])
    def test_rejects_bad_dimensions(self, kwargs):
        args = {"width": 10.0, "height": 20.0, "thickness": 0.75}
        quantity = kwargs.pop("quantity", 1)
        args.update(kwargs)
        with pytest.raises(ValueError):
            Part.of_size("p", args["width"], args["height"], args["thickness"], quantity=quantity)

    def test_empty_label(self):
        with pytest.raises(ValueError):
            Part.of_size("", 1.0, 1.0, 0.75)

    def test_rotate_moves_ops_with_part(self):
        assert rotate_operation(Drill(2.0, 3.0, 0.2, 0.5), 30.0) == Drill(27.0, 2.0, 0.2, 0.5)
        assert rotate_operation(Rabbet(Edge.LEFT, 0.5, 0.25), 30.0).edge is Edge.BOTTOM
        turned = rotate_operation(Dado(10.0, 0.75, 0.25), 30.0)
        assert turned.orientation is DadoOrientation.VERTICAL
        assert turned.position == pytest.approx(20.0)

    def test_group_by_material_and_thickness(self):
        ply = Material("Plywood", 0.75)
        thin = Material("Plywood", 0.5)
        parts = [
            TaggedPart(Part.of_size("a", 1, 1, 0.75), ply),
            TaggedPart(Part.of_size("b", 1, 1, 0.5), thin),
            TaggedPart(Part.of_size("c", 1, 1, 0.75), Material("Plywood", 0.75, 60.0, 120.0)),
        ]
        groups = group_parts_by_material(parts)
        assert [g.material.thickness for g in groups] == [0.75, 0.5]
        assert [tp.part.label for tp in groups[0].parts] == ["a", "c"]
        assert groups[0].material.sheet_width == pytest.approx(48.0)

    def test_material_slug(self):
        assert Material("Baltic Birch Plywood", 0.75).slug == "baltic-birch-plywood-0_75"


# ---------------------------------------------------------------------------
# Project files
# ---------------------------------------------------------------------------


PROJECT_DOC = {
    "name": "Vanity",
    "units": "inch",
    "rpm": 16000,
    "materials": {
        "ply": {"name": "Plywood", "thickness": 0.75},
        "back": {"name": "Hardboard", "thickness": 0.25, "sheet_width": 49, "sheet_length": 97},
    },
    "cabinets": [
        {"name": "base", "parts": [
            {"label": "side", "width": 21, "height": 30, "material": "ply", "quantity": 2,
             "operations": [
                 {"Dado": {"position": 15, "width": 0.75, "depth": 0.375}},
                 {"Drill": {"x": 2, "y": 2, "diameter": 0.19685, "depth": 0.5}},
             ]},
            {"label": "back", "width": 30, "height": 30, "material": "back",
             "grain": "width_wise"},
        ]},
    ],
}


class TestProjectLoading:
    def test_from_dict(self):
        project = Project.from_dict(PROJECT_DOC)
        assert project.name == "Vanity"
        assert project.units is Units.INCH
        assert project.rpm_override == pytest.approx(16000.0)
        side, back = project.parts
        assert side.cabinet == "base"
        assert side.part.quantity == 2
        assert side.part.thickness == pytest.approx(0.75)
        assert isinstance(side.part.operations[0], Dado)
        assert back.part.grain_direction is GrainDirection.WIDTH_WISE
        assert back.material.sheet_length == pytest.approx(97.0)

    def test_defaults_when_tools_omitted(self):
        project = Project.from_dict(PROJECT_DOC)
        assert len(project.tools) == 5
        assert project.assignment.dado == 2

    def test_metric_defaults(self):
        doc = {
            "units": "mm",
            "materials": {"ply": {"name": "Plywood", "thickness": 18}},
            "parts": [{"label": "side", "width": 500, "height": 700, "material": "ply"}],
        }
        project = Project.from_dict(doc)
        material = project.parts[0].material
        assert material.sheet_width == pytest.approx(1219.2)
        assert material.sheet_length == pytest.approx(2438.4)
        assert project.tools.get(1).diameter == pytest.approx(6.35)
        assert project.tools.get(1).cutting_length == pytest.approx(25.4)
        assert project.tools.find_drill(5.0).number == 3
        assert project.feeds.lookup("Plywood", 2).feed_rate == pytest.approx(6350.0)


    def test_tools_and_assignment_override(self):
        doc = dict(PROJECT_DOC)
        doc["tools"] = [{"number": 7, "name": "3/8 bit", "tool_type": "straight_bit", "diameter": 0.375}]
        doc["assignment"] = {"profile": 7, "dado": 7, "rabbet": 7, "drill": 7, "pocket_hole": 7}
        project = Project.from_dict(doc)
        assert project.tools.get(7).diameter == pytest.approx(0.375)
        assert project.assignment.for_type(OperationType.PROFILE) == 7

    def test_unknown_material(self):
        doc = {"materials": {}, "parts": [{"label": "x", "width": 1, "height": 1, "material": "oak"}]}
        with pytest.raises(ValueError, match="unknown material"):
            Project.from_dict(doc)

    def test_load_and_missing(self, tmp_path):
        path = tmp_path / "vanity.json"
        path.write_text(json.dumps(PROJECT_DOC))
        assert Project.load(path) == Project.from_dict(PROJECT_DOC)
        with pytest.raises(FileNotFoundError):
            Project.load(tmp_path / "missing.json")

    def test_display_label_for_multi_cabinet(self):
        ply = Material("Plywood", 0.75)
        a = TaggedPart(Part.of_size("side", 1, 1, 0.75), ply, "base")
        b = TaggedPart(Part.of_size("side", 1, 1, 0.75), ply, "wall")
        project = Project("k", (a, b))
        assert project.cabinets == ["base", "wall"]
        assert project.display_label(b) == "wall/side"
        assert Project("k", (a,)).display_label(a) == "side"


# ---------------------------------------------------------------------------
# Feeds and tools
# ---------------------------------------------------------------------------


@pytest.fixture
def tools() -> ToolLibrary:
    return build_default_tool_library()


class TestFeeds:
    def test_table_entry_wins(self, tools):
        table = FeedTable()
        table.set("MDF", 1, FeedEntry(16000, 200.0, 60.0))
        assert table.resolve("MDF", tools.get(1)).feed_rate == pytest.approx(200.0)

    def test_wildcard_material(self, tools):
        table = FeedTable()
        table.set(ANY_MATERIAL, 2, FeedEntry(15000, 220.0, 55.0))
        assert table.resolve("Oak", tools.get(2)).rpm == pytest.approx(15000)

    def test_falls_back_to_chip_load(self, tools):
        entry = FeedTable().resolve("Oak", tools.get(1))
        # 18000 rpm x 2 flutes x 0.005
        assert entry.rpm == pytest.approx(18000)
        assert entry.feed_rate == pytest.approx(180.0)
        assert entry.plunge_rate == pytest.approx(90.0)

    def test_drill_plunges_slower(self, tools):
        entry = FeedTable().resolve("Oak", tools.get(3))
        assert entry.plunge_rate == pytest.approx(entry.feed_rate * 0.3)

    def test_metric_chip_load_fallback(self):
        bit = build_default_tool_library(Units.MM).get(1)
        entry = FeedTable().resolve("Oak", bit, units=Units.MM)
        # same 0.005"/tooth load as the inch bit, in mm/min
        assert entry.feed_rate == pytest.approx(4572.0)
        assert entry.plunge_rate == pytest.approx(2286.0)


    def test_override_keeps_chip_load(self, tools):
        table = FeedTable()
        table.set("MDF", 1, FeedEntry(16000, 200.0, 60.0))
        entry = table.resolve("MDF", tools.get(1), rpm_override=8000)
        assert entry.rpm == pytest.approx(8000)
        assert entry.feed_rate == pytest.approx(100.0)
        assert entry.plunge_rate == pytest.approx(30.0)

    def test_rejects_non_positive(self):
        with pytest.raises(ValueError):
            FeedEntry(0, 100.0, 50.0)

    def test_list_round_trip_and_load(self, tmp_path):
        table = FeedTable()
        table.set("MDF", 1, FeedEntry(16000, 200.0, 60.0))
        path = tmp_path / "feeds.json"
        path.write_text(json.dumps(table.to_list()))
        assert FeedTable.load(path).entries == table.entries
        with pytest.raises(FileNotFoundError):
            FeedTable.load(tmp_path / "none.json")


class TestTools:
    def test_find_drill_by_diameter(self, tools):
        assert tools.find_drill(0.19685).number == 3
        assert tools.find_drill(0.5) is None

    def test_matching_drill_overrides_assignment(self, tools):
        assignment = ToolAssignment(drill=1)
        assert assignment.for_operation(Drill(1, 1, 0.375, 0.5), tools) == 5
        assert assignment.for_operation(Drill(1, 1, 0.3, 0.5), tools) == 1

    def test_chip_load_by_size(self):
        assert Tool(1, "small", ToolType.ENDMILL, 0.125).chip_load == pytest.approx(0.005)
        assert Tool(2, "mid", ToolType.STRAIGHT_BIT, 0.5).chip_load == pytest.approx(0.012)
        assert Tool(3, "big", ToolType.COMPRESSION, 0.75).chip_load == pytest.approx(0.018)

    def test_library_persists(self, tmp_path):
        path = tmp_path / "tools.json"
        lib = ToolLibrary(path)
        lib.add(Tool(4, "1/8 endmill", ToolType.ENDMILL, 0.125, cutting_length=0.5))
        lib.save()
        reloaded = ToolLibrary(path)
        assert reloaded.get(4) == lib.get(4)

    def test_remove(self, tools):
        tools.remove(4)
        assert 4 not in tools
        assert len(tools) == 4
        tools.remove(4)

    def test_in_memory_library_cannot_save(self, tools):
        with pytest.raises(RuntimeError):
            tools.save()


class TestSettings:
    def test_save_and_load(self, tmp_path):
        path = tmp_path / "settings.json"
        AppSettings(kerf=0.125, default_machine="avid-pro4896").save(path)
        loaded = AppSettings.load(path)
        assert loaded.kerf == pytest.approx(0.125)
        assert loaded.default_machine == "avid-pro4896"

    def test_nesting_config_for_sheet(self):
        config = AppSettings(edge_margin=0.25).nesting_config(sheet_width=60.0)
        assert config.sheet_width == pytest.approx(60.0)
        assert config.sheet_length == pytest.approx(96.0)
        assert config.edge_margin == pytest.approx(0.25)

    def test_missing_file_gives_defaults(self, tmp_path):
        assert AppSettings.load(tmp_path / "none.json") == AppSettings()
