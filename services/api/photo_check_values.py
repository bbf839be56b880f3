from __future__ import annotations

import json
import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .photo_check_models import UNIT_PIXEL, UNIT_RATIO, BoundingBox

_log = logging.getLogger(__name__)

_AFFIRMATIVE = {"correct", "right", "yes", "true", "对", "正确", "是", "✓", "√"}
_NEGATIVE = {"incorrect", "wrong", "no", "false", "错", "错误", "否", "✗", "×"}

_RATIO_UNITS = {"ratio", "normalized", "normalised", "relative", "fraction"}
_PERCENT_UNITS = {"percent", "percentage", "%"}
_PIXEL_UNITS = {"pixel", "pixels", "px", "absolute"}

_BOX_LEFT_KEYS = ("left", "x", "x0", "x1", "xmin", "minX", "l")
_BOX_TOP_KEYS = ("top", "y", "y0", "y1", "ymin", "minY", "t")
_BOX_WIDTH_KEYS = ("width", "w")
_BOX_HEIGHT_KEYS = ("height", "h")
_BOX_RIGHT_KEYS = ("right", "x2", "xmax", "maxX", "r")
_BOX_BOTTOM_KEYS = ("bottom", "y2", "ymax", "maxY", "b")
_BOX_CONFIDENCE_KEYS = ("confidence", "conf", "score", "probability")

_FENCE_RE = re.compile(r"^\s*```[\w+-]*\s*$")
_REF_NUMBER_RE = re.compile(r"^(?:\(\d{1,3}\)|（\d{1,3}）|\d{1,3}[.)、．]?)$")
_INT_RE = re.compile(r"-?\d+(?:\.\d+)?")
_SPLIT_RE = re.compile(r"[\s,;]+")


def to_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


def created_timestamp(value: Any) -> float:
    """Epoch seconds of an ISO timestamp; naive values are read as UTC, unparseable ones sort last."""
    text = str(value or "").strip()
    if not text:
        return float("-inf")
    try:
        dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return float("-inf")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def first_present(raw: Mapping[str, Any], keys: Sequence[str]) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return None


def normalize_correctness(raw: Any) -> Optional[bool]:
    """Map a raw verdict to True, False or None (unknown)."""
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, (int, float)):
        if raw == 1:
            return True
        if raw == 0:
            return False
        return None
    if isinstance(raw, str):
        text = raw.strip().casefold()
        if text in _AFFIRMATIVE:
            return True
        if text in _NEGATIVE:
            return False
    return None


def normalize_count(raw: Any) -> Optional[int]:
    number = to_number(raw)
    if number is None:
        return None
    return max(0, _round_half_up(number))


def parse_ordinal(raw: Any) -> Optional[int]:
    """Positive integer ordinal from a number or the first integer in a string."""
    number = to_number(raw)
    if number is None and isinstance(raw, str):
        match = _INT_RE.search(raw)
        if match:
            number = to_number(match.group(0))
    if number is None:
        return None
    value = int(math.floor(number))
    return value if value >= 1 else None


def clean_text(raw: Any) -> Optional[str]:
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        if not math.isfinite(float(raw)):
            return None
        raw = str(raw)
    if not isinstance(raw, str):
        return None

    lines: List[str] = []
    for line in raw.replace("\r\n", "\n").replace("\r", "\n").split("\n"):
        if _FENCE_RE.match(line):
            continue
        lines.append(line.strip())

    merged: List[str] = []
    i = 0
    while i < len(lines):
        line = lines[i]
        nxt = lines[i + 1] if i + 1 < len(lines) else ""
        if line and nxt and _REF_NUMBER_RE.match(line) and not _REF_NUMBER_RE.match(nxt):
            merged.append(f"{line} {nxt}")
            i += 2
            continue
        if line or (merged and merged[-1]):
            merged.append(line)
        i += 1

    text = "\n".join(merged).strip()
    return text or None


def _parse_box_string(raw: str) -> Any:
    text = raw.strip()
    if not text:
        return None
    if text[0] in "[{":
        try:
            return json.loads(text)
        except ValueError:
            _log.debug("bounding box string is not valid JSON: %r", text[:80])
            text = text.strip("[]{}()")
    parts = [p for p in _SPLIT_RE.split(text.strip("()")) if p]
    numbers = [to_number(p) for p in parts]
    if len(numbers) < 4 or any(n is None for n in numbers[:4]):
        return None
    return numbers[:4]


def _box_from_sequence(raw: Sequence[Any]) -> Optional[Dict[str, Any]]:
    if len(raw) < 4:
        return None
    values = [to_number(v) for v in raw[:4]]
    if any(v is None for v in values):
        return None
    left, top, third, fourth = values  # type: ignore[misc]
    width = third - left if third > 1 and third > left else third
    height = fourth - top if fourth > 1 and fourth > top else fourth
    return {"left": left, "top": top, "width": width, "height": height}


def _box_from_mapping(raw: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    left = to_number(first_present(raw, _BOX_LEFT_KEYS))
    top = to_number(first_present(raw, _BOX_TOP_KEYS))
    width = to_number(first_present(raw, _BOX_WIDTH_KEYS))
    height = to_number(first_present(raw, _BOX_HEIGHT_KEYS))
    right = to_number(first_present(raw, _BOX_RIGHT_KEYS))
    bottom = to_number(first_present(raw, _BOX_BOTTOM_KEYS))
    # x0/y0 + x1/y1 pairs name the opposite corner with x1/y1
    if right is None and "x0" in raw and "x1" in raw:
        right = to_number(raw.get("x1"))
    if bottom is None and "y0" in raw and "y1" in raw:
        bottom = to_number(raw.get("y1"))

    if left is None and right is not None and width is not None:
        left = right - width
    if top is None and bottom is not None and height is not None:
        top = bottom - height
    left = left if left is not None else 0.0
    top = top if top is not None else 0.0
    if width is None and right is not None:
        width = right - left
    if height is None and bottom is not None:
        height = bottom - top
    if width is None or height is None:
        return None
    return {
        "left": left,
        "top": top,
        "width": width,
        "height": height,
        "unit": raw.get("unit") or raw.get("units"),
        "confidence": first_present(raw, _BOX_CONFIDENCE_KEYS),
    }


def _normalize_confidence(raw: Any) -> Optional[float]:
    value = to_number(raw)
    if value is None or value < 0:
        return None
    if value > 1 and value <= 100:
        value = value / 100.0
    return min(1.0, value)


def normalize_bounding_box(raw: Any, *, _depth: int = 0) -> Optional[BoundingBox]:
    """Normalize an array, aliased object or serialized string into a BoundingBox.

    Unit is taken from an explicit ``unit`` hint when present, otherwise it is
    ``ratio`` when all four values lie in [0, 1] and ``pixel`` otherwise.
    """
    if raw is None or _depth > 3:
        return None
    if isinstance(raw, str):
        return normalize_bounding_box(_parse_box_string(raw), _depth=_depth + 1)

    if isinstance(raw, Mapping):
        parts = _box_from_mapping(raw)
    elif isinstance(raw, (list, tuple)):
        parts = _box_from_sequence(raw)
    else:
        parts = None
    if parts is None:
        return None

    left = float(parts["left"])
    top = float(parts["top"])
    width = float(parts["width"])
    height = float(parts["height"])

    unit_hint = str(parts.get("unit") or "").strip().casefold()
    if unit_hint in _PERCENT_UNITS:
        left, top, width, height = (v / 100.0 for v in (left, top, width, height))
        unit = UNIT_RATIO
    elif unit_hint in _RATIO_UNITS:
        unit = UNIT_RATIO
    elif unit_hint in _PIXEL_UNITS:
        unit = UNIT_PIXEL
    elif all(0 <= v <= 1 for v in (left, top, width, height)):
        unit = UNIT_RATIO
    else:
        unit = UNIT_PIXEL

    # negative origin: clip the overflow off the size
    if left < 0:
        width += left
        left = 0.0
    if top < 0:
        height += top
        top = 0.0
    if unit == UNIT_RATIO:
        left = min(1.0, left)
        top = min(1.0, top)
        width = min(width, 1.0 - left)
        height = min(height, 1.0 - top)
    if width <= 0 or height <= 0:
        return None

    return BoundingBox(
        left=left,
        top=top,
        width=width,
        height=height,
        unit=unit,
        confidence=_normalize_confidence(parts.get("confidence")),
    )
