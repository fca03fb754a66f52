"""Low-level G-code line formatting helpers."""

from __future__ import annotations

from typing import Iterable, Optional


def fmt(value: float, decimals: int = 4) -> str:
    """Format a float for G-code, stripping trailing zeros and never
    producing ``-0``."""
    text = f"{value:.{decimals}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    if text in ("-0", ""):
        text = "0"
    return text


def feed(f: float) -> str:
    return f"F{fmt(f, 1)}"


def _axes(
    x: Optional[float],
    y: Optional[float],
    z: Optional[float],
    decimals: int,
) -> list[str]:
    words = []
    if x is not None:
        words.append(f"X{fmt(x, decimals)}")
    if y is not None:
        words.append(f"Y{fmt(y, decimals)}")
    if z is not None:
        words.append(f"Z{fmt(z, decimals)}")
    return words


def rapid(
    x: Optional[float] = None,
    y: Optional[float] = None,
    z: Optional[float] = None,
    decimals: int = 4,
) -> str:
    """G00 rapid traverse."""
    return " ".join(["G00"] + _axes(x, y, z, decimals))


def linear(
    x: Optional[float] = None,
    y: Optional[float] = None,
    z: Optional[float] = None,
    f: Optional[float] = None,
    decimals: int = 4,
) -> str:
    """G01 linear interpolation."""
    parts = ["G01"] + _axes(x, y, z, decimals)
    if f is not None:
        parts.append(feed(f))
    return " ".join(parts)


def arc(
    clockwise: bool,
    x: float,
    y: float,
    i: float,
    j: float,
    z: Optional[float] = None,
    f: Optional[float] = None,
    decimals: int = 4,
) -> str:
    """G02/G03 arc in the XY plane; I/J are relative to the arc start."""
    parts = ["G02" if clockwise else "G03"] + _axes(x, y, z, decimals)
    parts.append(f"I{fmt(i, decimals)}")
    parts.append(f"J{fmt(j, decimals)}")
    if f is not None:
        parts.append(feed(f))
    return " ".join(parts)


def drill_cycle(
    code: str,
    x: float,
    y: float,
    z: float,
    r: float,
    f: float,
    q: Optional[float] = None,
    decimals: int = 4,
) -> str:
    """Canned drilling cycle (G81, or G73/G83 with a Q peck increment).

    G98 returns the tool to the height it started the cycle from.
    """
    parts = ["G98", code] + _axes(x, y, z, decimals)
    parts.append(f"R{fmt(r, decimals)}")
    if q is not None:
        parts.append(f"Q{fmt(q, decimals)}")
    parts.append(feed(f))
    return " ".join(parts)


def comment(text: str) -> str:
    """Wrap *text* in a parenthetical comment."""
    # Nested parens end the comment early on most controllers
    cleaned = text.replace("(", "").replace(")", "")
    return f"({cleaned})"


def number_lines(lines: Iterable[str], step: int = 10) -> list[str]:
    """Prefix executable lines with ``N`` words.

    Comment-only lines and ``%`` tape markers are left unnumbered.
    """
    out = []
    n = 0
    for line in lines:
        if not line or line.startswith("(") or line == "%":
            out.append(line)
            continue
        n += step
        out.append(f"N{n} {line}")
    return out
