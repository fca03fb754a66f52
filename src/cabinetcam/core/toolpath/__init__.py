"""Toolpath generation package."""

from .base import (
    AnnotatedToolpath,
    ArcCCW,
    ArcCW,
    DrillCycle,
    Linear,
    Motion,
    Rapid,
    Toolpath,
    ToolpathSegment,
)

__all__ = [
    "AnnotatedToolpath",
    "ArcCCW",
    "ArcCW",
    "DrillCycle",
    "Linear",
    "Motion",
    "Rapid",
    "Toolpath",
    "ToolpathSegment",
]
