"""Unit system enum and conversion helpers."""

from enum import Enum


class Units(Enum):
    INCH = "inch"
    MM = "mm"

    @classmethod
    def parse(cls, text: str) -> "Units":
        """Accept ``inch``/``in``/``imperial`` or ``mm``/``metric``."""
        key = text.strip().lower()
        if key in ("inch", "inches", "in", "imperial"):
            return cls.INCH
        if key in ("mm", "millimeter", "millimeters", "metric"):
            return cls.MM
        raise ValueError(f"Unknown unit system: {text!r}")

    def to_mm(self, value: float) -> float:
        if self is Units.MM:
            return value
        return value * 25.4

    def from_mm(self, value: float) -> float:
        if self is Units.MM:
            return value
        return value / 25.4

    def convert(self, value: float, target: "Units") -> float:
        """Convert *value* expressed in these units into *target* units."""
        if self is target:
            return value
        return target.from_mm(self.to_mm(value))

    def label(self) -> str:
        return "in" if self is Units.INCH else "mm"

    @property
    def gcode_modal(self) -> str:
        """G-code modal group 6 word."""
        return "G20" if self is Units.INCH else "G21"
