"""Cut list (CSV) and bill of materials (JSON) exports."""

from __future__ import annotations

import csv
import json
from pathlib import Path
from typing import Any, Optional, Sequence

from ..core.job import MaterialGroupResult
from ..core.project import Project
from ..core.wire import encode_operation

CUTLIST_HEADER = ["Part", "Width", "Height", "Thickness", "Quantity", "Operations", "Material"]


def _num(value: float) -> str:
    return f"{value:.4f}"


def cutlist_rows(project: Project) -> list[list[str]]:
    """Header plus one row per part definition (quantities not expanded).

    Multi-cabinet projects get a leading ``Cabinet`` column.
    """
    multi = project.multi_cabinet
    rows = [(["Cabinet"] if multi else []) + CUTLIST_HEADER]
    for tp in project.parts:
        part = tp.part
        row = [
            part.label,
            _num(part.width),
            _num(part.height),
            _num(part.thickness),
            str(part.quantity),
            str(len(part.operations)),
            tp.material.name,
        ]
        rows.append(([tp.cabinet] if multi else []) + row)
    return rows


def write_cutlist_csv(project: Project, path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="") as f:
        csv.writer(f).writerows(cutlist_rows(project))
    return path


def bill_of_materials(
    project: Project,
    groups: Optional[Sequence[MaterialGroupResult]] = None,
) -> dict[str, Any]:
    """Parts and sheet usage per material x thickness group.

    Without nesting *groups* the sheet figures are left out.
    """
    nested = {g.material.key: g for g in groups or ()}
    materials = []
    for group in project.material_groups():
        mat = group.material
        entry: dict[str, Any] = {
            "material": mat.name,
            "thickness": mat.thickness,
            "sheet_width": mat.sheet_width,
            "sheet_length": mat.sheet_length,
            "part_count": sum(tp.part.quantity for tp in group.parts),
            "parts": [
                {
                    "label": project.display_label(tp),
                    "width": tp.part.width,
                    "height": tp.part.height,
                    "quantity": tp.part.quantity,
                    "grain": tp.part.grain_direction.value,
                    "operations": [encode_operation(op) for op in tp.part.operations],
                }
                for tp in group.parts
            ],
        }
        g = nested.get(mat.key)
        if g is not None:
            entry["sheet_count"] = g.result.sheet_count
            entry["utilization"] = round(g.result.overall_utilization, 2)
            entry["unplaced"] = list(g.result.unplaced)
        materials.append(entry)
    return {
        "project": project.name,
        "units": project.units.value,
        "materials": materials,
    }


def write_bom_json(
    project: Project,
    path: Path,
    groups: Optional[Sequence[MaterialGroupResult]] = None,
) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(bill_of_materials(project, groups), indent=2))
    return path
