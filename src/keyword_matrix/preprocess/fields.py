from __future__ import annotations

import math
import re
from enum import Enum
from typing import Any, Mapping

WHITESPACE_RE = re.compile(r"\s+")


class Unrepresented(Enum):
    """Marker for a field that a record does not carry.

    Kept distinct from ``0`` and ``""`` so a missing metric never reads as a
    real zero. Renders as ``-`` wherever values are displayed or exported.
    """

    TOKEN = "-"

    def __str__(self) -> str:
        return self.value

    def __bool__(self) -> bool:
        return False


UNREPRESENTED = Unrepresented.TOKEN


def normalize_field_name(name: str) -> str:
    return WHITESPACE_RE.sub("", name.lower())


def resolve_field(record: Mapping[Any, Any], logical_field: str) -> Any:
    """Look up ``logical_field`` ignoring key case and whitespace.

    Keys are scanned in the record's own iteration order and the first key
    whose normalized form matches wins, so ``{"KD": 1, "kd ": 2}`` resolves
    to ``1`` only because ``"KD"`` is iterated first.
    """
    key = find_field_key(record, logical_field)
    if key is None:
        return UNREPRESENTED
    return record[key]


def find_field_key(record: Mapping[Any, Any], logical_field: str) -> Any | None:
    """Return the record key that ``resolve_field`` would read, or None."""
    target = normalize_field_name(logical_field)
    for key in record:
        if isinstance(key, str) and normalize_field_name(key) == target:
            return key

    lowered = logical_field.lower()
    for candidate in (logical_field, lowered, lowered.capitalize()):
        if candidate in record:
            return candidate
    return None


def is_blank(value: Any) -> bool:
    if value is None or value is UNREPRESENTED:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and value.strip() == ""


def resolve_value(record: Mapping[Any, Any], logical_field: str) -> Any:
    """Resolve a metric field, folding blank values into ``UNREPRESENTED``."""
    value = resolve_field(record, logical_field)
    if is_blank(value):
        return UNREPRESENTED
    return value


def resolve_text(record: Mapping[Any, Any], logical_field: str) -> str:
    value = resolve_field(record, logical_field)
    if is_blank(value):
        return ""
    return str(value).strip()


def coerce_number(value: Any) -> float | None:
    """Return ``value`` as a finite float, or None when it is not numeric."""
    if value is None or value is UNREPRESENTED or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number
