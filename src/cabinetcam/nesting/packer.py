"""Sheet nesting: pack rectangular parts of one material x thickness group
onto as few sheets as possible.

The default strategy is a deterministic maximal-rectangles bin packer.
Every part footprint is grown by the kerf on its trailing (right and top)
edges so neighbouring cuts never share material, and every sheet is
inset by the edge margin.  Parts that cannot fit an empty sheet in any
allowed orientation are reported in ``NestingResult.unplaced``; nesting
never raises for them.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, Optional, Protocol, Sequence

from shapely.geometry import Polygon

from ..core.geometry import EPS, Point2D, Rect
from ..core.material import TaggedPart
from ..core.part import GrainDirection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NestingConfig:
    """Sheet size and cutting allowances for one nesting run."""

    sheet_width: float = 48.0
    sheet_length: float = 96.0
    kerf: float = 0.25
    edge_margin: float = 0.5
    allow_rotation: bool = False

    def __post_init__(self) -> None:
        if self.sheet_width <= 0 or self.sheet_length <= 0:
            raise ValueError(
                f"Sheet size must be positive, got {self.sheet_width} x {self.sheet_length}"
            )
        if self.kerf < 0:
            raise ValueError(f"kerf must not be negative, got {self.kerf}")
        if self.edge_margin < 0:
            raise ValueError(f"edge_margin must not be negative, got {self.edge_margin}")
        if 2 * self.edge_margin >= min(self.sheet_width, self.sheet_length):
            raise ValueError(
                f"edge_margin {self.edge_margin} leaves no usable area on a "
                f"{self.sheet_width} x {self.sheet_length} sheet"
            )

    @property
    def sheet_rect(self) -> Rect:
        return Rect(Point2D(0.0, 0.0), self.sheet_width, self.sheet_length)

    @property
    def usable_rect(self) -> Rect:
        """Sheet area parts may occupy, inside the edge margin."""
        return self.sheet_rect.expanded(-self.edge_margin)

    @property
    def sheet_area(self) -> float:
        return self.sheet_width * self.sheet_length


@dataclass(frozen=True)
class NestingPart:
    """One physical piece to nest (quantities already expanded).

    ``outline`` is an optional true shape for non-rectangular parts; the
    rectangular strategy packs its bounding box.
    """

    id: str
    width: float
    height: float
    grain_direction: GrainDirection = GrainDirection.LENGTH_WISE
    outline: Optional[Polygon] = field(default=None, compare=False, repr=False)

    @property
    def area(self) -> float:
        return self.width * self.height

    def may_rotate(self, config: NestingConfig) -> bool:
        """Length-wise grain is never turned, even when rotation is allowed."""
        return config.allow_rotation and self.grain_direction is not GrainDirection.LENGTH_WISE


@dataclass(frozen=True)
class PlacedPart:
    id: str
    rect: Rect
    rotated: bool = False


@dataclass(frozen=True)
class SheetLayout:
    sheet_index: int
    sheet_rect: Rect
    parts: tuple[PlacedPart, ...]
    waste_area: float
    utilization: float   # percent

    @property
    def placed_area(self) -> float:
        return sum(p.rect.area for p in self.parts)

    @classmethod
    def build(cls, sheet_index: int, sheet_rect: Rect, parts: Sequence[PlacedPart]) -> SheetLayout:
        placed = sum(p.rect.area for p in parts)
        sheet_area = sheet_rect.area
        utilization = min(100.0, max(0.0, placed / sheet_area * 100.0))
        return cls(sheet_index, sheet_rect, tuple(parts), sheet_area - placed, utilization)


@dataclass(frozen=True)
class NestingResult:
    sheets: tuple[SheetLayout, ...]
    unplaced: tuple[str, ...]
    sheet_count: int
    overall_utilization: float   # percent

    @classmethod
    def build(cls, sheets: Sequence[SheetLayout], unplaced: Sequence[str]) -> NestingResult:
        total_sheet = sum(s.sheet_rect.area for s in sheets)
        total_placed = sum(s.placed_area for s in sheets)
        overall = total_placed / total_sheet * 100.0 if total_sheet > 0 else 0.0
        return cls(tuple(sheets), tuple(unplaced), len(sheets), overall)

    def placed_ids(self) -> list[str]:
        return [p.id for s in self.sheets for p in s.parts]


class PlacementStrategy(Protocol):
    """Places parts onto sheets.

    Implementations must honour the conservation contract: every input id
    ends up either placed exactly once or listed in ``unplaced``.
    """

    name: str

    def pack(self, parts: Sequence[NestingPart], config: NestingConfig) -> NestingResult:
        ...


class _SheetBin:
    """Free-space bookkeeping for one sheet (maximal rectangles).

    Coordinates are sheet coordinates.  The region spans the usable
    rectangle plus one kerf on the far edges so a part may sit flush with
    the margin while its trailing kerf falls into it.
    """

    def __init__(self, config: NestingConfig):
        usable = config.usable_rect
        self.free: list[Rect] = [usable.with_trailing(config.kerf)]
        self.placed: list[PlacedPart] = []

    def best_fit(self, w: float, h: float) -> Optional[tuple[tuple, Rect]]:
        """Best-short-side-fit free rectangle for a *w* x *h* footprint."""
        best: Optional[tuple[tuple, Rect]] = None
        for fr in self.free:
            if w <= fr.width + EPS and h <= fr.height + EPS:
                dw, dh = fr.width - w, fr.height - h
                score = (min(dw, dh), max(dw, dh), fr.min_y, fr.min_x)
                if best is None or score < best[0]:
                    best = (score, fr)
        return best

    def occupy(self, footprint: Rect) -> None:
        next_free: list[Rect] = []
        for fr in self.free:
            if not fr.intersects(footprint):
                next_free.append(fr)
                continue
            # Up to four maximal remainders around the footprint.
            if footprint.min_x > fr.min_x + EPS:
                next_free.append(Rect.from_bounds(fr.min_x, fr.min_y, footprint.min_x, fr.max_y))
            if footprint.max_x < fr.max_x - EPS:
                next_free.append(Rect.from_bounds(footprint.max_x, fr.min_y, fr.max_x, fr.max_y))
            if footprint.min_y > fr.min_y + EPS:
                next_free.append(Rect.from_bounds(fr.min_x, fr.min_y, fr.max_x, footprint.min_y))
            if footprint.max_y < fr.max_y - EPS:
                next_free.append(Rect.from_bounds(fr.min_x, footprint.max_y, fr.max_x, fr.max_y))
        self.free = _prune(next_free)


def _prune(rects: list[Rect]) -> list[Rect]:
    """Drop degenerate rectangles and any rectangle contained in another."""
    rects = [r for r in rects if r.width > EPS and r.height > EPS]
    kept: list[Rect] = []
    for i, r in enumerate(rects):
        contained = False
        for j, other in enumerate(rects):
            if i == j or not other.contains(r):
                continue
            # Equal within tolerance: keep only the first.
            if i < j and r.contains(other):
                continue
            contained = True
            break
        if not contained:
            kept.append(r)
    return kept


class RectangularStrategy:
    """Deterministic maximal-rectangles packing of part bounding boxes."""

    name = "rectangular"

    def _orientations(self, part: NestingPart, config: NestingConfig) -> list[tuple[float, float, bool]]:
        options = [(part.width, part.height, False)]
        if part.may_rotate(config) and abs(part.width - part.height) > EPS:
            options.append((part.height, part.width, True))
        return options

    def _fits_empty_sheet(self, part: NestingPart, config: NestingConfig) -> bool:
        usable = config.usable_rect
        return any(
            w <= usable.width + EPS and h <= usable.height + EPS
            for w, h, _ in self._orientations(part, config)
        )

    def _try_place(self, bin_: _SheetBin, part: NestingPart, config: NestingConfig) -> Optional[PlacedPart]:
        best = None
        for w, h, rotated in self._orientations(part, config):
            fit = bin_.best_fit(w + config.kerf, h + config.kerf)
            if fit is None:
                continue
            key = fit[0] + (rotated,)
            if best is None or key < best[0]:
                best = (key, fit[1], w, h, rotated)
        if best is None:
            return None
        _, fr, w, h, rotated = best
        placed = PlacedPart(part.id, Rect(fr.origin, w, h), rotated)
        bin_.occupy(placed.rect.with_trailing(config.kerf))
        bin_.placed.append(placed)
        return placed

    def pack(self, parts: Sequence[NestingPart], config: NestingConfig) -> NestingResult:
        ordered = sorted(parts, key=lambda p: (-p.area, -max(p.width, p.height)))
        bins: list[_SheetBin] = []
        unplaced: list[str] = []

        for part in ordered:
            if not self._fits_empty_sheet(part, config):
                logger.warning(
                    "Part %s (%.3f x %.3f) does not fit a %.1f x %.1f sheet",
                    part.id, part.width, part.height, config.sheet_width, config.sheet_length,
                )
                unplaced.append(part.id)
                continue
            if any(self._try_place(b, part, config) is not None for b in bins):
                continue
            bin_ = _SheetBin(config)
            if self._try_place(bin_, part, config) is None:
                unplaced.append(part.id)
                continue
            bins.append(bin_)
            logger.debug("Opened sheet %d for part %s", len(bins), part.id)

        sheets = [
            SheetLayout.build(i, config.sheet_rect, b.placed)
            for i, b in enumerate(bins)
        ]
        return NestingResult.build(sheets, unplaced)


def nest(
    parts: Sequence[NestingPart],
    config: NestingConfig,
    strategy: Optional[PlacementStrategy] = None,
) -> NestingResult:
    """Pack *parts* of a single material x thickness group.

    Raises
    ------
    ValueError:
        If two parts share an id.
    """
    dupes = sorted(i for i, n in Counter(p.id for p in parts).items() if n > 1)
    if dupes:
        raise ValueError(f"Duplicate nesting part ids: {', '.join(dupes)}")

    strategy = strategy or RectangularStrategy()
    result = strategy.pack(parts, config)
    logger.info(
        "Nested %d parts on %d sheet(s) with %s strategy, %.1f%% utilization, %d unplaced",
        len(parts) - len(result.unplaced),
        result.sheet_count,
        strategy.name,
        result.overall_utilization,
        len(result.unplaced),
    )
    return result


def nesting_id(label: str, index: int, quantity: int, cabinet: str = "") -> str:
    """Unique id for copy *index* (0-based) of a part."""
    base = label if quantity == 1 else f"{label}_{index + 1}"
    return f"{cabinet}/{base}" if cabinet else base


def expand_parts(
    parts: Iterable[TaggedPart],
    prefix_cabinet: bool = False,
) -> tuple[list[NestingPart], dict[str, TaggedPart]]:
    """One ``NestingPart`` per physical copy of each part, plus a map from
    each nesting id back to its source part.

    Ids are unique: when two parts would share one (repeated labels, or a
    label like ``shelf_1`` next to two copies of ``shelf``), later copies
    get a ``-2``, ``-3`` ... suffix.
    """
    expanded: list[NestingPart] = []
    sources: dict[str, TaggedPart] = {}
    for tp in parts:
        part = tp.part
        cabinet = tp.cabinet if prefix_cabinet else ""
        for i in range(part.quantity):
            base = nesting_id(part.label, i, part.quantity, cabinet)
            nid, n = base, 1
            while nid in sources:
                n += 1
                nid = f"{base}-{n}"
            sources[nid] = tp
            expanded.append(NestingPart(
                id=nid,
                width=part.width,
                height=part.height,
                grain_direction=part.grain_direction,
            ))
    return expanded, sources
