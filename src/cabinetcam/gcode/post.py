"""G-code post-processor driven by a machine profile.

Renders ordered toolpaths into one program for one sheet.  The renderer
only formats; it never moves geometry.  Identical input always yields
byte-identical text.

Program structure::

    %                               (profile header block)
    (program name)
    G20 / G21                       (units)
    G90 G17 G40 G49 G80 G94         (safe modal state)
    G54
    -- per toolpath --
    tool change when the tool differs from the loaded one
    G00 Z<safe>                     (retract between operations)
    motion lines
    -- end --
    M05, G00 Z<safe>, G00 X0 Y0, program end, %
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence, Union

from ..config.machine_profiles import MachineProfile
from ..core.toolpath.base import (
    AnnotatedToolpath,
    ArcCCW,
    ArcCW,
    DrillCycle,
    Linear,
    Rapid,
    Toolpath,
    ToolpathSegment,
)
from ..core.units import Units
from . import gcode_writer as gw
from .validate import GcodeBoundsExceeded, RapidIntoMaterial, validate_toolpaths

logger = logging.getLogger(__name__)

_TOL = 1e-9

SAFE_MODAL = "G90 G17 G40 G49 G80 G94"


class PostProcessorError(RuntimeError):
    """Raised when toolpaths cannot be rendered safely for the profile."""


def _unwrap(item: Union[Toolpath, AnnotatedToolpath]) -> tuple[Toolpath, Optional[AnnotatedToolpath]]:
    if isinstance(item, AnnotatedToolpath):
        return item.toolpath, item
    return item, None


class PostProcessor:
    """Converts toolpaths into G-code for one machine profile.

    Parameters
    ----------
    profile:
        Target machine; its ``post`` section controls formatting.
    units:
        Units of the toolpath coordinates.
    program_name:
        Optional name written as a comment after the header.
    """

    def __init__(
        self,
        profile: MachineProfile,
        units: Units = Units.INCH,
        program_name: Optional[str] = None,
    ) -> None:
        self.profile = profile
        self.units = units
        self.program_name = program_name

    @property
    def _decimals(self) -> int:
        return self.profile.post.decimal_places

    @property
    def _safe_z(self) -> float:
        """Retract height; profiles store it in inches."""
        return Units.INCH.convert(self.profile.post.safe_z, self.units)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def check(self, toolpaths: Sequence[Union[Toolpath, AnnotatedToolpath]]) -> None:
        """Refuse to render for a broken profile or out-of-envelope motion.

        Raises
        ------
        PostProcessorError:
            If the profile is inconsistent, any coordinate lies outside
            the machine travel, or a rapid move goes below Z0.
        """
        problems = self.profile.problems()
        if problems:
            raise PostProcessorError(
                f"Machine profile {self.profile.name!r} is invalid: " + "; ".join(problems)
            )
        result = validate_toolpaths(toolpaths, self.profile, units=self.units)
        blocking = result.errors_of(GcodeBoundsExceeded) + result.errors_of(RapidIntoMaterial)
        if blocking:
            raise PostProcessorError(
                "Refusing to emit G-code: " + "; ".join(e.message for e in blocking)
            )

    def get_lines(self, toolpaths: Sequence[Union[Toolpath, AnnotatedToolpath]]) -> list[str]:
        """Return the full program as a list of lines."""
        self.check(toolpaths)
        post = self.profile.post

        lines: list[str] = []
        lines.extend(self._preamble())

        state = _MotionState(z=self._safe_z)
        loaded: Optional[int] = None
        spindle: Optional[float] = None

        for item in toolpaths:
            tp, info = _unwrap(item)
            if tp.is_empty:
                continue
            if tp.tool_number != loaded:
                lines.extend(self._tool_change(tp))
                loaded, spindle = tp.tool_number, tp.rpm
                state.reset(self._safe_z)
            elif tp.rpm != spindle:
                lines.append(f"S{int(round(tp.rpm))} M03")
                spindle = tp.rpm

            if info is not None:
                lines.append(gw.comment(f"{info.operation_type.value} {info.placement_id}"))
            if state.z is None or abs(state.z - self._safe_z) > _TOL:
                lines.append(gw.rapid(z=self._safe_z, decimals=self._decimals))
                state.z = self._safe_z

            for seg in tp.segments:
                lines.extend(self._segment(seg, tp, state))

        lines.extend(self._postamble())

        if post.line_numbers:
            lines = gw.number_lines(lines)
        return lines

    def generate(
        self,
        toolpaths: Sequence[Union[Toolpath, AnnotatedToolpath]],
        output_path: Path,
    ) -> Path:
        """Write G-code to *output_path* and return the path."""
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(_join(self.get_lines(toolpaths)))
        logger.info("Wrote %s", output_path)
        return output_path

    # ------------------------------------------------------------------
    # Program sections
    # ------------------------------------------------------------------

    def _preamble(self) -> list[str]:
        post = self.profile.post
        lines = [ln for ln in post.program_header.splitlines() if ln.strip()]
        if self.program_name:
            lines.append(gw.comment(self.program_name))
        lines.append(gw.comment(f"Machine: {self.profile.name}"))
        lines.append(self.units.gcode_modal)
        lines.append(SAFE_MODAL)
        lines.append("G54")
        return lines

    def _tool_change(self, tp: Toolpath) -> list[str]:
        n = tp.tool_number
        return [
            gw.comment(f"Tool change: T{n}"),
            "M05",
            gw.rapid(z=self._safe_z, decimals=self._decimals),
            f"T{n} M06",
            f"G43 H{n}",
            f"S{int(round(tp.rpm))} M03",
        ]

    def _postamble(self) -> list[str]:
        post = self.profile.post
        lines = [
            "M05",
            gw.rapid(z=self._safe_z, decimals=self._decimals),
            gw.rapid(x=0.0, y=0.0, decimals=self._decimals),
        ]
        lines.extend(ln for ln in post.program_end.splitlines() if ln.strip())
        lines.append("%")
        return lines

    # ------------------------------------------------------------------
    # Motion
    # ------------------------------------------------------------------

    def _segment(self, seg: ToolpathSegment, tp: Toolpath, state: _MotionState) -> list[str]:
        d = self._decimals
        motion = seg.motion

        if isinstance(motion, Rapid):
            lines = []
            xy_moves = state.x is None or not state.at_xy(seg.x, seg.y)
            z_moves = state.z is None or abs(seg.z - state.z) > _TOL
            # Lift before travelling; travel before descending.
            if z_moves and xy_moves and state.z is not None and seg.z > state.z:
                lines.append(gw.rapid(z=seg.z, decimals=d))
                lines.append(gw.rapid(x=seg.x, y=seg.y, decimals=d))
            else:
                if xy_moves:
                    lines.append(gw.rapid(x=seg.x, y=seg.y, decimals=d))
                if z_moves:
                    lines.append(gw.rapid(z=seg.z, decimals=d))
            state.move(seg.x, seg.y, seg.z)
            return lines

        if isinstance(motion, Linear):
            plunging = state.z is not None and seg.z < state.z - _TOL and state.at_xy(seg.x, seg.y)
            rate = tp.plunge_rate if plunging else tp.feed_rate
            line = gw.linear(seg.x, seg.y, seg.z, f=state.feed_word(rate), decimals=d)
            state.move(seg.x, seg.y, seg.z)
            return [line]

        if isinstance(motion, (ArcCW, ArcCCW)):
            z = seg.z if state.z is None or abs(seg.z - state.z) > _TOL else None
            line = gw.arc(
                isinstance(motion, ArcCW), seg.x, seg.y, motion.i, motion.j,
                z=z, f=state.feed_word(tp.feed_rate), decimals=d,
            )
            state.move(seg.x, seg.y, seg.z)
            return [line]

        if isinstance(motion, DrillCycle):
            lines = []
            if state.x is None or not state.at_xy(seg.x, seg.y):
                lines.append(gw.rapid(x=seg.x, y=seg.y, decimals=d))
            if motion.peck_depth > 0:
                code, q = self.profile.post.peck_cycle, motion.peck_depth
            else:
                code, q = "G81", None
            lines.append(gw.drill_cycle(
                code, seg.x, seg.y, motion.final_z, motion.retract_z,
                tp.plunge_rate, q=q, decimals=d,
            ))
            lines.append("G80")
            # G98 returns to the starting height, so Z is unchanged
            state.move(seg.x, seg.y, state.z)
            state.feed = tp.plunge_rate
            return lines

        raise PostProcessorError(f"Unknown motion type: {type(motion).__name__}")


class _MotionState:
    """Last commanded position and feed inside one program."""

    def __init__(self, z: Optional[float] = None) -> None:
        self.x: Optional[float] = None
        self.y: Optional[float] = None
        self.z = z
        self.feed: Optional[float] = None

    def reset(self, z: float) -> None:
        self.x = self.y = None
        self.z = z
        self.feed = None

    def at_xy(self, x: float, y: float) -> bool:
        if self.x is None or self.y is None:
            return False
        return abs(self.x - x) <= _TOL and abs(self.y - y) <= _TOL

    def move(self, x: float, y: float, z: Optional[float]) -> None:
        self.x, self.y, self.z = x, y, z

    def feed_word(self, rate: float) -> Optional[float]:
        """Feed to emit, or None when *rate* is already modal."""
        if self.feed is not None and abs(self.feed - rate) <= _TOL:
            return None
        self.feed = rate
        return rate


def _join(lines: list[str]) -> str:
    return "\n".join(lines) + "\n"


def emit(
    toolpaths: Sequence[Union[Toolpath, AnnotatedToolpath]],
    profile: MachineProfile,
    units: Units = Units.INCH,
    program_name: Optional[str] = None,
) -> str:
    """Render *toolpaths* to G-code text for *profile*.

    Raises
    ------
    PostProcessorError:
        If the profile is invalid or the motion leaves the machine
        envelope.
    """
    return _join(PostProcessor(profile, units, program_name).get_lines(toolpaths))
