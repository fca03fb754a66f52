"""Material x tool feed-rate table.

The table is configured outside this package (shop defaults, tooling
vendor data) and is only read here.  Missing entries fall back to the
tool's chip-load formula at its default spindle speed.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .tool import Tool, ToolType
from .units import Units

# Matches every material in a table lookup.
ANY_MATERIAL = "*"


@dataclass(frozen=True)
class FeedEntry:
    rpm: float
    feed_rate: float
    plunge_rate: float

    def __post_init__(self) -> None:
        if self.rpm <= 0 or self.feed_rate <= 0 or self.plunge_rate <= 0:
            raise ValueError(
                f"Feed entry values must be positive: rpm={self.rpm} "
                f"feed={self.feed_rate} plunge={self.plunge_rate}"
            )

    def at_rpm(self, rpm: float) -> FeedEntry:
        """Same chip load at a different spindle speed."""
        scale = rpm / self.rpm
        return FeedEntry(rpm, self.feed_rate * scale, self.plunge_rate * scale)


def default_entry(
    tool: Tool,
    rpm: Optional[float] = None,
    units: Units = Units.INCH,
) -> FeedEntry:
    """Chip-load based feeds for *tool*, in *units* per minute."""
    rpm = float(rpm if rpm is not None else tool.default_rpm)
    feed = tool.recommended_feed_rate(rpm, units)
    plunge_factor = 0.3 if tool.tool_type is ToolType.DRILL else 0.5
    return FeedEntry(rpm, feed, feed * plunge_factor)


@dataclass
class FeedTable:
    """Feeds keyed by (material name, tool number)."""

    entries: dict[tuple[str, int], FeedEntry] = field(default_factory=dict)

    def set(self, material: str, tool_number: int, entry: FeedEntry) -> None:
        self.entries[(material, tool_number)] = entry

    def lookup(self, material: str, tool_number: int) -> Optional[FeedEntry]:
        entry = self.entries.get((material, tool_number))
        if entry is None:
            entry = self.entries.get((ANY_MATERIAL, tool_number))
        return entry

    def resolve(
        self,
        material: str,
        tool: Tool,
        rpm_override: Optional[float] = None,
        units: Units = Units.INCH,
    ) -> FeedEntry:
        """Feeds for *tool* cutting *material*.

        An *rpm_override* replaces the spindle speed and rescales the
        feed and plunge rates to keep the chip load.  Table entries are
        taken as written; *units* only applies to the chip-load fallback.
        """
        entry = self.lookup(material, tool.number)
        if entry is None:
            return default_entry(tool, rpm_override, units)
        if rpm_override is not None:
            return entry.at_rpm(float(rpm_override))
        return entry

    def to_list(self) -> list[dict]:
        return [
            {
                "material": material,
                "tool": tool_number,
                "rpm": e.rpm,
                "feed_rate": e.feed_rate,
                "plunge_rate": e.plunge_rate,
            }
            for (material, tool_number), e in sorted(self.entries.items())
        ]

    @classmethod
    def from_list(cls, rows: list[dict]) -> FeedTable:
        table = cls()
        for row in rows:
            table.set(
                row.get("material", ANY_MATERIAL),
                int(row["tool"]),
                FeedEntry(float(row["rpm"]), float(row["feed_rate"]), float(row["plunge_rate"])),
            )
        return table

    @classmethod
    def load(cls, path: Path) -> FeedTable:
        if not path.exists():
            raise FileNotFoundError(f"Feed table not found: {path}")
        return cls.from_list(json.loads(path.read_text()))
