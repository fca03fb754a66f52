"""Sheet nesting package."""

from .packer import (
    NestingConfig,
    NestingPart,
    NestingResult,
    PlacedPart,
    PlacementStrategy,
    RectangularStrategy,
    SheetLayout,
    expand_parts,
    nest,
)

__all__ = [
    "NestingConfig",
    "NestingPart",
    "NestingResult",
    "PlacedPart",
    "PlacementStrategy",
    "RectangularStrategy",
    "SheetLayout",
    "expand_parts",
    "nest",
]
