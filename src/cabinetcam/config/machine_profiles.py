"""CNC router / mill profiles: travel limits, spindle range and post-processor
dialect settings.

Travel limits are in inches.  Built-in profiles are module-level constants
and are never mutated; ``load_profile`` builds new ones from TOML or JSON
files with a ``[machine]`` and a ``[post]`` table.
"""

from __future__ import annotations

import json
import tomllib
import warnings
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any, Union

PECK_CYCLES = ("G73", "G83")


class MachineProfileError(ValueError):
    """A machine profile is missing a field or holds an impossible value."""


@dataclass(frozen=True)
class MachineInfo:
    """Physical capabilities of one machine."""

    name: str
    controller: str
    travel_x: float   # inches
    travel_y: float
    travel_z: float
    max_rpm: int
    min_rpm: int
    has_atc: bool = False
    max_feed: float = 600.0   # units per minute


@dataclass(frozen=True)
class PostConfig:
    """G-code dialect knobs consumed by the post-processor."""

    line_numbers: bool = False
    decimal_places: int = 4
    safe_z: float = 1.0
    rapid_z: float = 0.25
    program_end: str = "M30"
    program_header: str = "%"
    peck_cycle: str = "G83"


@dataclass(frozen=True)
class MachineProfile:
    machine: MachineInfo
    post: PostConfig = field(default_factory=PostConfig)

    @property
    def name(self) -> str:
        return self.machine.name

    def problems(self) -> list[str]:
        """Every reason this profile cannot drive a machine (empty if valid)."""
        m, p = self.machine, self.post
        found: list[str] = []
        if not m.name:
            found.append("machine name is empty")
        for axis in ("x", "y", "z"):
            value = getattr(m, f"travel_{axis}")
            if value <= 0:
                found.append(f"travel_{axis} must be positive (got {value})")
        if m.min_rpm < 0:
            found.append(f"min_rpm must not be negative (got {m.min_rpm})")
        if m.min_rpm > m.max_rpm:
            found.append(f"min_rpm {m.min_rpm} exceeds max_rpm {m.max_rpm}")
        if m.max_feed <= 0:
            found.append(f"max_feed must be positive (got {m.max_feed})")
        if not 0 <= p.decimal_places <= 6:
            found.append(f"decimal_places must be 0-6 (got {p.decimal_places})")
        if p.rapid_z < 0:
            found.append(f"rapid_z must be at or above the work surface (got {p.rapid_z})")
        if p.rapid_z > p.safe_z:
            found.append(f"rapid_z {p.rapid_z} is above safe_z {p.safe_z}")
        if p.safe_z > m.travel_z:
            found.append(f"safe_z {p.safe_z} exceeds Z travel {m.travel_z}")
        if not p.program_end.strip():
            found.append("program_end is empty")
        if p.peck_cycle not in PECK_CYCLES:
            found.append(f"peck_cycle must be one of {', '.join(PECK_CYCLES)} (got {p.peck_cycle!r})")
        return found

    def validate(self) -> None:
        """Raise ``MachineProfileError`` listing every problem found."""
        found = self.problems()
        if found:
            raise MachineProfileError(
                f"Invalid machine profile {self.machine.name!r}: " + "; ".join(found)
            )

    def __str__(self) -> str:
        m = self.machine
        atc = "ATC" if m.has_atc else "manual tool change"
        return (
            f"{m.name} ({m.controller})  "
            f"X={m.travel_x}\" Y={m.travel_y}\" Z={m.travel_z}\"  "
            f"{m.min_rpm}-{m.max_rpm} RPM  {atc}"
        )


class MachineModel(Enum):
    PCNC_1100 = "pcnc1100"
    SHOPBOT_PRS_96_48 = "shopbot-prs-96-48"
    AVID_PRO_4896 = "avid-pro4896"
    GRBL_DESKTOP = "grbl-desktop"


_PROFILES: dict[MachineModel, MachineProfile] = {
    MachineModel.PCNC_1100: MachineProfile(
        machine=MachineInfo(
            name="Tormach PCNC 1100",
            controller="PathPilot (LinuxCNC)",
            travel_x=18.0,
            travel_y=9.5,
            travel_z=16.25,
            max_rpm=10000,
            min_rpm=100,
            has_atc=False,
            max_feed=135.0,
        ),
        post=PostConfig(safe_z=1.0, rapid_z=0.25, peck_cycle="G83"),
    ),
    MachineModel.SHOPBOT_PRS_96_48: MachineProfile(
        machine=MachineInfo(
            name="ShopBot PRSalpha 96-48",
            controller="ShopBot G-code",
            travel_x=50.0,
            travel_y=98.0,
            travel_z=8.0,
            max_rpm=18000,
            min_rpm=7000,
            has_atc=False,
            max_feed=720.0,
        ),
        post=PostConfig(safe_z=0.75, rapid_z=0.2, decimal_places=4),
    ),
    MachineModel.AVID_PRO_4896: MachineProfile(
        machine=MachineInfo(
            name="Avid PRO4896",
            controller="Mach4",
            travel_x=49.0,
            travel_y=97.0,
            travel_z=8.0,
            max_rpm=24000,
            min_rpm=6000,
            has_atc=True,
            max_feed=900.0,
        ),
        post=PostConfig(safe_z=1.0, rapid_z=0.25, peck_cycle="G73"),
    ),
    MachineModel.GRBL_DESKTOP: MachineProfile(
        machine=MachineInfo(
            name="Desktop Router (Grbl)",
            controller="Grbl 1.1",
            travel_x=33.0,
            travel_y=33.0,
            travel_z=3.3,
            max_rpm=30000,
            min_rpm=10000,
            has_atc=False,
            max_feed=200.0,
        ),
        post=PostConfig(line_numbers=True, decimal_places=3, safe_z=0.5, rapid_z=0.1),
    ),
}


def get_profile(model: Union[MachineModel, str]) -> MachineProfile:
    """Look up a built-in profile by enum member or its string value."""
    if isinstance(model, str):
        try:
            model = MachineModel(model)
        except ValueError:
            raise KeyError(
                f"Unknown machine {model!r}; choose from {', '.join(profile_names())}"
            ) from None
    return _PROFILES[model]


def list_profiles() -> list[MachineProfile]:
    return list(_PROFILES.values())


def profile_names() -> list[str]:
    return [m.value for m in _PROFILES]


def _known(cls, table: dict[str, Any], section: str) -> dict[str, Any]:
    names = {f.name for f in fields(cls)}
    unknown = sorted(set(table) - names)
    if unknown:
        warnings.warn(
            f"Ignoring unknown [{section}] keys: {', '.join(unknown)}",
            UserWarning,
            stacklevel=3,
        )
    return {k: v for k, v in table.items() if k in names}


def profile_from_dict(data: dict[str, Any]) -> MachineProfile:
    """Build and validate a profile from ``{"machine": {...}, "post": {...}}``."""
    if "machine" not in data:
        raise MachineProfileError("Machine profile has no [machine] table")
    try:
        machine = MachineInfo(**_known(MachineInfo, data["machine"], "machine"))
        post = PostConfig(**_known(PostConfig, data.get("post", {}), "post"))
    except TypeError as exc:
        raise MachineProfileError(f"Incomplete machine profile: {exc}") from exc
    profile = MachineProfile(machine, post)
    profile.validate()
    return profile


def load_profile(path: Path) -> MachineProfile:
    """Read a profile from a ``.toml`` or ``.json`` file.

    Raises
    ------
    FileNotFoundError:
        If *path* does not exist.
    MachineProfileError:
        If the file is missing required fields or holds invalid values.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Machine profile not found: {path}")
    text = path.read_text()
    if path.suffix.lower() == ".json":
        data = json.loads(text)
    else:
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as exc:
            raise MachineProfileError(f"{path}: {exc}") from exc
    return profile_from_dict(data)
