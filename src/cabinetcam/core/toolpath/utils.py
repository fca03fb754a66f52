"""Geometry helper utilities shared across toolpath operations."""

from __future__ import annotations

import math
from typing import Optional, Sequence

import numpy as np

from .base import ArcCCW, ArcCW, DrillCycle, Linear, Rapid, Toolpath, ToolpathSegment


def compute_z_levels(
    z_top: float,
    z_bottom: float,
    step_down: float,
) -> list[float]:
    """Generate Z levels from *z_top* downward by *step_down* increments.

    The first cut is at ``z_top - step_down``.  The final pass is always
    placed exactly at *z_bottom* (floor pass), so no pass removes more
    than *step_down*.

    Parameters
    ----------
    z_top:
        Top of the sheet (0.0 in the work coordinate system).
    z_bottom:
        Deepest cut depth (negative, e.g. -0.75 for a through cut).
    step_down:
        Positive axial depth-of-cut per pass.

    Returns
    -------
    List of Z values in descending order (most shallow first).
    """
    if step_down <= 0:
        raise ValueError("step_down must be positive")
    if z_bottom >= z_top:
        raise ValueError("z_bottom must be less than z_top")

    levels: list[float] = []
    z = z_top - step_down
    while z > z_bottom + 1e-9:
        levels.append(round(z, 10))
        z -= step_down

    levels.append(round(z_bottom, 10))
    return levels


def fit_circle(
    p1: tuple[float, float],
    p2: tuple[float, float],
    p3: tuple[float, float],
) -> Optional[tuple[float, float, float]]:
    """Circle ``(cx, cy, r)`` through three points, or None if collinear."""
    ax, ay = p1
    bx, by = p2
    cx, cy = p3
    d = 2.0 * (ax * (by - cy) + bx * (cy - ay) + cx * (ay - by))
    if abs(d) < 1e-12:
        return None
    a2, b2, c2 = ax * ax + ay * ay, bx * bx + by * by, cx * cx + cy * cy
    ux = (a2 * (by - cy) + b2 * (cy - ay) + c2 * (ay - by)) / d
    uy = (a2 * (cx - bx) + b2 * (ax - cx) + c2 * (bx - ax)) / d
    return ux, uy, math.hypot(ax - ux, ay - uy)


def _arc_through(
    pts: Sequence[tuple[float, float]],
    s: int,
    e: int,
    tolerance: float,
    max_radius: float,
) -> Optional[tuple[float, float, bool]]:
    """Center and direction (ccw?) of an arc through ``pts[s..e]``."""
    circle = fit_circle(pts[s], pts[(s + e) // 2], pts[e])
    if circle is None:
        return None
    cx, cy, r = circle
    if r > max_radius:
        return None
    run = np.asarray(pts[s:e + 1], dtype=float)
    radii = np.hypot(run[:, 0] - cx, run[:, 1] - cy)
    if np.any(np.abs(radii - r) > tolerance):
        return None

    chords = np.diff(run, axis=0)
    turns = chords[:-1, 0] * chords[1:, 1] - chords[:-1, 1] * chords[1:, 0]
    if np.any(np.abs(turns) < 1e-12):
        return None
    ccw = bool(turns[0] > 0)
    if np.any((turns > 0) != ccw):
        return None

    angles = np.unwrap(np.arctan2(run[:, 1] - cy, run[:, 0] - cx))
    if abs(angles[-1] - angles[0]) >= 2.0 * math.pi - 1e-6:
        return None
    return cx, cy, ccw


def arc_fit(
    toolpath: Toolpath,
    tolerance: float = 0.001,
    min_points: int = 4,
    max_radius: float = 100.0,
) -> Toolpath:
    """Replace runs of co-circular linear moves with G2/G3 arcs.

    A run needs at least *min_points* points (start plus three moves) at a
    constant Z, all within *tolerance* of one circle.  I/J are measured
    from the arc start point.  Straight runs are never converted.
    """
    if min_points < 3:
        raise ValueError("min_points must be at least 3")
    segs = list(toolpath.segments)
    out: list[ToolpathSegment] = []
    i = 0
    while i < len(segs):
        seg = segs[i]
        if i == 0 or not isinstance(seg.motion, Linear) or abs(seg.z - segs[i - 1].z) > 1e-9:
            out.append(seg)
            i += 1
            continue
        z = segs[i - 1].z
        j = i
        while j < len(segs) and isinstance(segs[j].motion, Linear) and abs(segs[j].z - z) <= 1e-9:
            j += 1
        run = segs[i:j]
        pts = [segs[i - 1].endpoint.as_tuple()] + [s.endpoint.as_tuple() for s in run]

        s = 0
        while s < len(pts) - 1:
            best: Optional[tuple[int, tuple[float, float, bool]]] = None
            e = s + min_points - 1
            while e < len(pts):
                arc = _arc_through(pts, s, e, tolerance, max_radius)
                if arc is None:
                    break
                best = (e, arc)
                e += 1
            if best is None:
                out.append(run[s])
                s += 1
                continue
            e, (cx, cy, ccw) = best
            sx, sy = pts[s]
            motion = ArcCCW(cx - sx, cy - sy) if ccw else ArcCW(cx - sx, cy - sy)
            end = run[e - 1]
            out.append(ToolpathSegment(motion, end.endpoint, end.z))
            s = e
        i = j

    return Toolpath(
        tool_number=toolpath.tool_number,
        rpm=toolpath.rpm,
        feed_rate=toolpath.feed_rate,
        plunge_rate=toolpath.plunge_rate,
        segments=tuple(out),
    )


def _arc_length(start: np.ndarray, seg: ToolpathSegment) -> float:
    cx, cy = start[0] + seg.motion.i, start[1] + seg.motion.j
    r = math.hypot(start[0] - cx, start[1] - cy)
    a0 = math.atan2(start[1] - cy, start[0] - cx)
    a1 = math.atan2(seg.y - cy, seg.x - cx)
    sweep = a1 - a0
    if isinstance(seg.motion, ArcCCW):
        sweep %= 2.0 * math.pi
    else:
        sweep = -sweep % (2.0 * math.pi)
    if sweep < 1e-12:
        sweep = 2.0 * math.pi
    planar = r * sweep
    return math.hypot(planar, seg.z - start[2])


def path_distances(toolpaths: Sequence[Toolpath]) -> tuple[float, float]:
    """Total (rapid, cutting) travel across *toolpaths*.

    Travel is measured from each segment's predecessor, starting at the
    first segment; drill cycles count their XY approach as rapid and the
    down/up stroke as cutting.
    """
    segments = [s for tp in toolpaths for s in tp.segments]
    if len(segments) < 2:
        return 0.0, 0.0
    pts = np.array([s.as_tuple() for s in segments], dtype=float)
    steps = np.linalg.norm(np.diff(pts, axis=0), axis=1)

    rapid_dist = 0.0
    cut_dist = 0.0
    for k, seg in enumerate(segments[1:]):
        motion = seg.motion
        if isinstance(motion, Rapid):
            rapid_dist += steps[k]
        elif isinstance(motion, Linear):
            cut_dist += steps[k]
        elif isinstance(motion, (ArcCW, ArcCCW)):
            cut_dist += _arc_length(pts[k], seg)
        elif isinstance(motion, DrillCycle):
            rapid_dist += float(np.linalg.norm(pts[k + 1, :2] - pts[k, :2]))
            cut_dist += 2.0 * abs(motion.retract_z - motion.final_z)
    return float(rapid_dist), float(cut_dist)
