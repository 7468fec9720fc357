from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from keyword_matrix.features.matrix import KeywordMatrix, MatrixCell
from keyword_matrix.preprocess.fields import UNREPRESENTED, coerce_number, is_blank

ALL_SOURCES = "all"
OPEN_RANGE = (-math.inf, math.inf)


def parse_bound(value: Any, default: float) -> float:
    """Parse a range bound typed by a user.

    Blank bounds fall back to ``default``. Text that is not a number becomes
    NaN, which no value compares inside of, so the filter matches nothing.
    """
    if isinstance(value, bool):
        return math.nan
    if isinstance(value, (int, float)):
        return float(value)
    if is_blank(value):
        return default
    try:
        return float(str(value).strip())
    except ValueError:
        return math.nan


@dataclass(frozen=True)
class FilterCriteria:
    """Filters that took effect on the last apply action."""

    search_text: str = ""
    kd_range: tuple[float, float] = OPEN_RANGE
    sv_range: tuple[float, float] = OPEN_RANGE
    intents: tuple[str, ...] = ()
    source_tag: str = ALL_SOURCES
    has_changed_only: bool = False

    def __post_init__(self) -> None:
        # Bounds may arrive as None or raw text when built outside FilterInput.
        object.__setattr__(self, "kd_range", _parse_range(self.kd_range))
        object.__setattr__(self, "sv_range", _parse_range(self.sv_range))
        object.__setattr__(self, "intents", tuple(self.intents))


def _parse_range(bounds: Any) -> tuple[float, float]:
    if bounds is None:
        return OPEN_RANGE
    low, high = bounds
    return parse_bound(low, -math.inf), parse_bound(high, math.inf)


@dataclass
class FilterInput:
    """Filter values while they are being edited; nothing reads these directly."""

    search_text: str = ""
    kd_min: str = ""
    kd_max: str = ""
    sv_min: str = ""
    sv_max: str = ""
    intents: list[str] = field(default_factory=list)
    source_tag: str = ALL_SOURCES
    has_changed_only: bool = False

    def toggle_intent(self, intent: str) -> None:
        if intent in self.intents:
            self.intents.remove(intent)
        else:
            self.intents.append(intent)

    def commit(self) -> FilterCriteria:
        return FilterCriteria(
            search_text=self.search_text,
            kd_range=(
                parse_bound(self.kd_min, -math.inf),
                parse_bound(self.kd_max, math.inf),
            ),
            sv_range=(
                parse_bound(self.sv_min, -math.inf),
                parse_bound(self.sv_max, math.inf),
            ),
            intents=tuple(intent for intent in self.intents if intent.strip()),
            source_tag=self.source_tag.strip() or ALL_SOURCES,
            has_changed_only=self.has_changed_only,
        )


def _in_range(value: Any, bounds: tuple[float, float]) -> bool:
    number = coerce_number(value)
    if number is None:
        return False
    low, high = bounds
    return low <= number <= high


def _intent_matches(cell: MatrixCell, selected: tuple[str, ...]) -> bool:
    if cell.intent is UNREPRESENTED:
        return False
    intent_value = str(cell.intent).lower()
    if intent_value in ("", "-"):
        return False
    return any(intent.lower() in intent_value for intent in selected)


def _distinct_numbers(values: list[Any]) -> set[float]:
    return {number for number in map(coerce_number, values) if number is not None}


def has_changed(row: dict[str, MatrixCell]) -> bool:
    """True when a keyword's KD or SV takes more than one numeric value over time."""
    cells = list(row.values())
    if len(cells) < 2:
        return False
    return (
        len(_distinct_numbers([cell.kd for cell in cells])) > 1
        or len(_distinct_numbers([cell.sv for cell in cells])) > 1
    )


def apply_filters(matrix: KeywordMatrix, criteria: FilterCriteria) -> list[str]:
    """Return the matrix keywords that pass every filter stage, in matrix order."""
    keywords = matrix.keywords()

    if criteria.search_text.strip():
        query = criteria.search_text.lower()
        keywords = [keyword for keyword in keywords if query in keyword.lower()]

    if criteria.kd_range != OPEN_RANGE:
        keywords = [
            keyword
            for keyword in keywords
            if any(_in_range(cell.kd, criteria.kd_range) for cell in matrix.row(keyword).values())
        ]

    if criteria.sv_range != OPEN_RANGE:
        keywords = [
            keyword
            for keyword in keywords
            if any(_in_range(cell.sv, criteria.sv_range) for cell in matrix.row(keyword).values())
        ]

    if criteria.intents:
        keywords = [
            keyword
            for keyword in keywords
            if any(
                _intent_matches(cell, criteria.intents) for cell in matrix.row(keyword).values()
            )
        ]

    if criteria.has_changed_only:
        keywords = [keyword for keyword in keywords if has_changed(matrix.row(keyword))]

    return keywords
