"""Default router bits, tool assignment and feeds for sheet-good cabinetry.

These are conservative starting points; users should adjust to their
specific tooling and material.
"""

from dataclasses import replace

from ..core.feeds import FeedEntry, FeedTable
from ..core.tool import Tool, ToolAssignment, ToolLibrary, ToolType
from ..core.units import Units

# 5 mm, the 32 mm system shelf-pin bore.
SHELF_PIN_DIAMETER = 0.19685


def build_default_tool_library(units: Units = Units.INCH) -> ToolLibrary:
    """Return an in-memory ToolLibrary with a typical cabinet-shop bit set,
    sized in *units*."""
    inch = [
        Tool(
            number=1,
            name="1/4\" Compression Spiral 2-flute",
            tool_type=ToolType.COMPRESSION,
            diameter=0.25,
            flute_count=2,
            cutting_length=1.0,
            default_rpm=18000,
        ),
        Tool(
            number=2,
            name="1/2\" Straight Bit 2-flute",
            tool_type=ToolType.STRAIGHT_BIT,
            diameter=0.5,
            flute_count=2,
            cutting_length=1.25,
            default_rpm=16000,
        ),
        Tool(
            number=3,
            name="5mm Brad-point Drill",
            tool_type=ToolType.DRILL,
            diameter=SHELF_PIN_DIAMETER,
            flute_count=2,
            cutting_length=1.5,
            default_rpm=8000,
        ),
        Tool(
            number=4,
            name="1/8\" Upcut Endmill 2-flute",
            tool_type=ToolType.ENDMILL,
            diameter=0.125,
            flute_count=2,
            cutting_length=0.5,
            default_rpm=18000,
        ),
        Tool(
            number=5,
            name="3/8\" Pocket-hole Step Drill",
            tool_type=ToolType.DRILL,
            diameter=0.375,
            flute_count=2,
            cutting_length=1.0,
            default_rpm=8000,
        ),
    ]
    return ToolLibrary.in_memory([
        replace(
            t,
            diameter=Units.INCH.convert(t.diameter, units),
            cutting_length=Units.INCH.convert(t.cutting_length, units),
        )
        for t in inch
    ])


def build_default_assignment() -> ToolAssignment:
    return ToolAssignment(profile=1, dado=2, rabbet=2, drill=3, pocket_hole=5)


def build_default_feed_table(units: Units = Units.INCH) -> FeedTable:
    """Shop-tested feeds for the default bits in common sheet goods."""
    table = FeedTable()
    for material, tool, feed, plunge in (
        ("MDF", 1, 200.0, 60.0),
        ("Hardwood", 1, 120.0, 40.0),
        ("Plywood", 2, 250.0, 60.0),
    ):
        table.set(material, tool, FeedEntry(
            rpm=16000,
            feed_rate=Units.INCH.convert(feed, units),
            plunge_rate=Units.INCH.convert(plunge, units),
        ))
    return table
