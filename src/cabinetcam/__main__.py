"""CLI entry point: ``python -m cabinetcam project.json -o out/``"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

from .config.machine_profiles import (
    MachineProfile,
    MachineProfileError,
    get_profile,
    list_profiles,
    load_profile,
    profile_names,
)
from .config.settings import AppSettings
from .core.job import Job
from .core.project import Project
from .core.units import Units
from .export.cutlist import write_bom_json, write_cutlist_csv
from .export.svg_layout import export_layouts
from .gcode.post import PostProcessorError
from .gcode.validate import ValidationResult


def _build_parser(settings: AppSettings) -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="cabinetcam",
        description="Nest cabinet parts onto sheets and generate per-sheet G-code (.nc).",
    )
    p.add_argument("project", type=Path, nargs="?", default=None,
                   help="Project JSON file")
    p.add_argument(
        "-o", "--output", type=Path, default=None,
        help="Output directory (default: <project>_nc next to the project)",
    )
    p.add_argument(
        "--machine", default=settings.default_machine,
        help=f"Built-in machine ({', '.join(profile_names())}) or a .toml/.json "
             f"profile file (default: {settings.default_machine})",
    )
    p.add_argument("--list-machines", action="store_true",
                   help="List built-in machine profiles and exit")

    # Nesting
    p.add_argument("--kerf", type=float, default=None,
                   help=f"Cut width between parts, in project units (default: {settings.kerf} in)")
    p.add_argument("--margin", type=float, default=None,
                   help=f"Unused border around each sheet, in project units "
                        f"(default: {settings.edge_margin} in)")
    p.add_argument("--rotate", action="store_true", default=settings.allow_rotation,
                   help="Allow turning parts whose grain permits it")

    # CAM
    p.add_argument("--rpm", type=float, default=None,
                   help="Spindle RPM override for every tool")
    p.add_argument("--arcs", action="store_true",
                   help="Fit G2/G3 arcs to runs of short linear moves")

    # Modes
    p.add_argument("--validate-only", action="store_true",
                   help="Check the project against the machine and exit")
    p.add_argument("--preview", metavar="M:S", default=None,
                   help="Print G-code for material group M, sheet S (0-based) and exit")
    p.add_argument("--toolpaths", metavar="M:S", default=None,
                   help="Print toolpaths and summary for material group M, sheet S as JSON and exit")

    # Exports
    p.add_argument("--export-svg", action="store_true",
                   help="Also write an SVG of each sheet layout")
    p.add_argument("--export-csv", action="store_true",
                   help="Also write cutlist.csv")
    p.add_argument("--export-bom", action="store_true",
                   help="Also write bom.json")

    p.add_argument("-v", "--verbose", action="count", default=0,
                   help="Log progress (-vv for debug detail)")
    return p


def _resolve_machine(name: str) -> MachineProfile:
    path = Path(name)
    if path.suffix.lower() in (".toml", ".json"):
        return load_profile(path)
    return get_profile(name)


def _report(result: ValidationResult) -> None:
    for error in result.errors:
        print(f"  ERROR: {error.message}", file=sys.stderr)
    for warning in result.warnings:
        print(f"  Warning: {warning.message}")


def _parse_sheet_ref(text: str) -> tuple[int, int]:
    try:
        m, s = text.split(":")
        return int(m), int(s)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected M:S, got {text!r}") from None


def main(argv: list[str] | None = None) -> int:
    settings = AppSettings.load()
    args = _build_parser(settings).parse_args(argv)

    level = {0: logging.WARNING, 1: logging.INFO}.get(args.verbose, logging.DEBUG)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    if args.list_machines:
        for profile in list_profiles():
            print(profile)
        return 0
    if args.project is None:
        print("Error: a project file is required", file=sys.stderr)
        return 2

    try:
        machine = _resolve_machine(args.machine)
        project = Project.load(args.project)
    except (FileNotFoundError, KeyError, MachineProfileError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if args.rpm is not None:
        project = project.with_rpm(args.rpm)

    # Saved settings are in inches.
    scale = Units.INCH.convert(1.0, project.units)
    try:
        nesting = replace(
            settings.nesting_config(settings.sheet_width * scale, settings.sheet_length * scale),
            kerf=args.kerf if args.kerf is not None else settings.kerf * scale,
            edge_margin=args.margin if args.margin is not None else settings.edge_margin * scale,
            allow_rotation=args.rotate,
        )
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    job = Job(project, machine, nesting=nesting, fit_arcs=args.arcs)

    if args.preview is not None:
        try:
            mi, si = _parse_sheet_ref(args.preview)
            sys.stdout.write(job.preview_gcode(mi, si))
        except (argparse.ArgumentTypeError, IndexError, PostProcessorError, ValueError) as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1
        return 0

    if args.toolpaths is not None:
        try:
            mi, si = _parse_sheet_ref(args.toolpaths)
            print(json.dumps(job.get_toolpaths(mi, si).to_dict(), indent=2))
        except (argparse.ArgumentTypeError, IndexError, ValueError) as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1
        return 0

    print(f"Project: {project.name} ({len(project.parts)} part definitions)")
    print(f"Machine: {machine}")

    if args.validate_only:
        result = job.validate()
        _report(result)
        print("Validation passed" if not result.has_errors else "Validation failed")
        return 1 if result.has_errors else 0

    output: Path = args.output or (
        Path(settings.output_dir) if settings.output_dir
        else args.project.with_name(f"{args.project.stem}_nc")
    )

    print("Generating ...")
    result = job.generate_gcode()
    _report(result.validation)
    if result.blocked:
        print("Generation blocked; no G-code written", file=sys.stderr)
        return 1

    for group in result.groups:
        res = group.result
        print(
            f"  {group.material}: {res.sheet_count} sheet(s), "
            f"{res.overall_utilization:.1f}% utilization"
        )
        for nid in res.unplaced:
            print(f"  Warning: {nid} does not fit on a {group.material} sheet")

    for path in result.write(output):
        print(f"Wrote {path}")
    if args.export_svg:
        for path in export_layouts(result.groups, output, project.units):
            print(f"Wrote {path}")
    if args.export_csv:
        print(f"Wrote {write_cutlist_csv(project, output / 'cutlist.csv')}")
    if args.export_bom:
        print(f"Wrote {write_bom_json(project, output / 'bom.json', result.groups)}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
