"""SVG rendering of nested sheet layouts for checking before cutting.

Sheet coordinates have their origin at the lower-left corner; SVG's Y axis
points down, so every rectangle is flipped on the way out.
"""

from __future__ import annotations

import logging
from pathlib import Path

import svgwrite

from ..core.job import MaterialGroupResult
from ..core.units import Units
from ..nesting.packer import SheetLayout

logger = logging.getLogger(__name__)

STYLE = """
    .sheet { stroke: #999999; stroke-width: 0.05; fill: #f9f9f9; }
    .margin { stroke: #cccccc; stroke-width: 0.03; stroke-dasharray: 0.3,0.2; fill: none; }
    .part { stroke: #ff0000; stroke-width: 0.05; fill: #fde9d9; }
    .rotated { fill: #dbe8f7; }
    .label { font-family: Arial, sans-serif; fill: #333333; }
"""


def sheet_to_svg(
    sheet: SheetLayout,
    edge_margin: float = 0.0,
    units: Units = Units.INCH,
    title: str = "",
) -> svgwrite.Drawing:
    """Drawing of one sheet: outline, usable area, and every placed part.

    Parameters
    ----------
    sheet:
        Nested sheet to draw.
    edge_margin:
        Draws the usable area inset by this much when positive.
    """
    rect = sheet.sheet_rect
    w, h = rect.width, rect.height
    unit = units.label()
    dwg = svgwrite.Drawing(size=(f"{w}{unit}", f"{h}{unit}"), viewBox=f"0 0 {w} {h}")
    dwg.defs.add(dwg.style(STYLE))
    if title:
        dwg.set_desc(title=title)

    dwg.add(dwg.rect(insert=(0, 0), size=(w, h), class_="sheet"))
    if edge_margin > 0:
        dwg.add(dwg.rect(
            insert=(edge_margin, edge_margin),
            size=(w - 2 * edge_margin, h - 2 * edge_margin),
            class_="margin",
        ))

    for placed in sheet.parts:
        r = placed.rect
        top = h - (r.min_y - rect.min_y) - r.height
        left = r.min_x - rect.min_x
        dwg.add(dwg.rect(
            insert=(left, top),
            size=(r.width, r.height),
            class_="part rotated" if placed.rotated else "part",
        ))
        font = max(0.2, min(1.0, min(r.width, r.height) / 4.0))
        text = placed.id
        if placed.rotated:
            text += " (R)"
        dwg.add(dwg.text(
            text,
            insert=(left + r.width / 2.0, top + r.height / 2.0),
            class_="label",
            font_size=f"{font:.2f}",
            text_anchor="middle",
            dominant_baseline="middle",
        ))
    return dwg


def export_layouts(
    groups: list[MaterialGroupResult],
    output_dir: Path,
    units: Units = Units.INCH,
) -> list[Path]:
    """Write ``<material>-sheet-<n>.svg`` for every nested sheet."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    written = []
    for group in groups:
        for sheet in group.result.sheets:
            n = sheet.sheet_index + 1
            dwg = sheet_to_svg(
                sheet,
                edge_margin=group.config.edge_margin,
                units=units,
                title=f"{group.material} sheet {n}",
            )
            path = output_dir / f"{group.material.slug}-sheet-{n}.svg"
            dwg.saveas(str(path))
            written.append(path)
    logger.info("Wrote %d layout SVGs to %s", len(written), output_dir)
    return written
