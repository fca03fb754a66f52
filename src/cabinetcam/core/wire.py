"""JSON wire encoding of the variant types.

Variants are externally tagged: a variant without fields is a bare
string (``"Rapid"``) and a variant with fields is a one-key object
(``{"ArcCW": {"i": 0.5, "j": 0.0}}``).  The in-memory types know nothing
about this; encoding and decoding happen only at the JSON boundary.
"""

from __future__ import annotations

from dataclasses import asdict, fields, is_dataclass
from enum import Enum
from typing import Any, Mapping

from .geometry import Point2D
from .part import Dado, DadoOrientation, Drill, Edge, Operation, OperationType, PocketHole, Rabbet
from .toolpath.base import (
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

OPERATION_VARIANTS: dict[str, type] = {
    "Dado": Dado,
    "Rabbet": Rabbet,
    "Drill": Drill,
    "PocketHole": PocketHole,
}

MOTION_VARIANTS: dict[str, type] = {
    "Rapid": Rapid,
    "Linear": Linear,
    "ArcCW": ArcCW,
    "ArcCCW": ArcCCW,
    "DrillCycle": DrillCycle,
}

_ENUM_FIELDS: dict[str, type] = {
    "orientation": DadoOrientation,
    "edge": Edge,
}

# Older project files name the pocket-hole flag after the machining step.
_ALIASES = {"cnc_operation": "cnc_flag"}


def _plain(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
    return {k: v.value if isinstance(v, Enum) else v for k, v in pairs}


def encode_variant(value: Any) -> Any:
    """Externally tagged form of any dataclass variant."""
    if not is_dataclass(value):
        raise TypeError(f"Not a variant: {value!r}")
    name = type(value).__name__
    if not fields(value):
        return name
    return {name: asdict(value, dict_factory=_plain)}


def decode_variant(data: Any, variants: Mapping[str, type]) -> Any:
    """Inverse of ``encode_variant`` for the given variant registry.

    Raises
    ------
    ValueError:
        If *data* is not a known variant or its fields do not match.
    """
    if isinstance(data, str):
        name, body = data, {}
    elif isinstance(data, Mapping) and len(data) == 1:
        name, body = next(iter(data.items()))
    else:
        raise ValueError(f"Expected an externally tagged variant, got {data!r}")
    cls = variants.get(name)
    if cls is None:
        raise ValueError(f"Unknown variant {name!r}; expected one of {', '.join(variants)}")
    if not isinstance(body, Mapping):
        raise ValueError(f"Variant {name!r} body must be an object")
    kwargs = {}
    for key, value in body.items():
        key = _ALIASES.get(key, key)
        if key in _ENUM_FIELDS:
            value = _ENUM_FIELDS[key](value)
        kwargs[key] = value
    try:
        return cls(**kwargs)
    except TypeError as exc:
        raise ValueError(f"Bad fields for {name}: {exc}") from exc


def encode_operation(op: Operation) -> Any:
    return encode_variant(op)


def decode_operation(data: Any) -> Operation:
    return decode_variant(data, OPERATION_VARIANTS)


def encode_motion(motion: Motion) -> Any:
    return encode_variant(motion)


def decode_motion(data: Any) -> Motion:
    return decode_variant(data, MOTION_VARIANTS)


def encode_segment(seg: ToolpathSegment) -> dict:
    return {
        "motion": encode_motion(seg.motion),
        "endpoint": {"x": seg.endpoint.x, "y": seg.endpoint.y},
        "z": seg.z,
    }


def decode_segment(data: Mapping[str, Any]) -> ToolpathSegment:
    end = data["endpoint"]
    return ToolpathSegment(decode_motion(data["motion"]), Point2D(end["x"], end["y"]), data["z"])


def encode_toolpath(tp: Toolpath) -> dict:
    return {
        "tool_number": tp.tool_number,
        "rpm": tp.rpm,
        "feed_rate": tp.feed_rate,
        "plunge_rate": tp.plunge_rate,
        "segments": [encode_segment(s) for s in tp.segments],
    }


def decode_toolpath(data: Mapping[str, Any]) -> Toolpath:
    return Toolpath(
        tool_number=data["tool_number"],
        rpm=data["rpm"],
        feed_rate=data["feed_rate"],
        plunge_rate=data["plunge_rate"],
        segments=tuple(decode_segment(s) for s in data["segments"]),
    )


def encode_annotated(a: AnnotatedToolpath) -> dict:
    return {
        "toolpath": encode_toolpath(a.toolpath),
        "part_label": a.part_label,
        "placement_id": a.placement_id,
        "operation_type": a.operation_type.value,
    }


def decode_annotated(data: Mapping[str, Any]) -> AnnotatedToolpath:
    return AnnotatedToolpath(
        toolpath=decode_toolpath(data["toolpath"]),
        part_label=data["part_label"],
        placement_id=data["placement_id"],
        operation_type=OperationType(data["operation_type"]),
    )
