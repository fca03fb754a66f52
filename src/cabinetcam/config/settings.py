"""Application preferences (persisted to disk)."""

from __future__ import annotations

import json
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional

from ..core.units import Units
from ..nesting.packer import NestingConfig
from .machine_profiles import MachineModel


@dataclass
class AppSettings:
    """User preferences, serialized to ~/.cabinetcam/settings.json."""

    default_machine: str = MachineModel.SHOPBOT_PRS_96_48.value
    default_units: str = Units.INCH.value
    sheet_width: float = 48.0
    sheet_length: float = 96.0
    kerf: float = 0.25
    edge_margin: float = 0.5
    allow_rotation: bool = False
    output_dir: str = ""
    last_open_dir: str = ""

    @staticmethod
    def _path() -> Path:
        return Path.home() / ".cabinetcam" / "settings.json"

    def nesting_config(
        self,
        sheet_width: Optional[float] = None,
        sheet_length: Optional[float] = None,
    ) -> NestingConfig:
        """Nesting defaults, optionally for a material's own sheet size."""
        return NestingConfig(
            sheet_width=sheet_width if sheet_width is not None else self.sheet_width,
            sheet_length=sheet_length if sheet_length is not None else self.sheet_length,
            kerf=self.kerf,
            edge_margin=self.edge_margin,
            allow_rotation=self.allow_rotation,
        )

    def save(self, path: Optional[Path] = None) -> None:
        p = path or self._path()
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(json.dumps(asdict(self), indent=2))

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "AppSettings":
        p = path or cls._path()
        if p.exists():
            data = json.loads(p.read_text())
            return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})
        return cls()
