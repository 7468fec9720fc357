from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Literal, Union

from keyword_matrix.features.matrix import KeywordMatrix, MatrixCell
from keyword_matrix.pipeline.filters import FilterCriteria, apply_filters
from keyword_matrix.preprocess.fields import coerce_number

LOGGER = logging.getLogger(__name__)

SORT_METRICS = ("kd", "sv", "intent", "sources")
METRIC_ALIASES = {"source": "sources"}
KEY_SEPARATOR = "||"

SortAxis = Union[Literal["keyword", "entryCount"], tuple[str, str]]


@dataclass(frozen=True)
class SortSpec:
    axis: SortAxis = "keyword"
    direction: Literal["asc", "desc"] = "asc"

    def __post_init__(self) -> None:
        if self.direction not in ("asc", "desc"):
            raise ValueError(f"Unsupported sort direction: {self.direction}")
        if isinstance(self.axis, tuple):
            if len(self.axis) != 2 or self.axis[1] not in SORT_METRICS:
                raise ValueError(f"Unsupported sort axis: {self.axis!r}")
        elif self.axis not in ("keyword", "entryCount"):
            raise ValueError(f"Unsupported sort axis: {self.axis!r}")

    @property
    def key(self) -> str:
        if isinstance(self.axis, tuple):
            return KEY_SEPARATOR.join(self.axis)
        return "entries" if self.axis == "entryCount" else self.axis

    @classmethod
    def from_key(cls, key: str, direction: Literal["asc", "desc"] = "asc") -> SortSpec:
        """Build a sort from a column key: ``keyword``, ``entries`` or ``MM-DD-YYYY||metric``."""
        if key == "keyword":
            return cls("keyword", direction)
        if key in ("entries", "entryCount"):
            return cls("entryCount", direction)
        if KEY_SEPARATOR in key:
            date_bucket, metric = key.split(KEY_SEPARATOR, 1)
            metric = METRIC_ALIASES.get(metric, metric)
            return cls((date_bucket, metric), direction)
        raise ValueError(f"Unsupported sort key: {key}")


def next_sort(current: SortSpec | None, axis: SortAxis) -> SortSpec | None:
    """Advance the sort when a column is clicked: asc, then desc, then cleared."""
    if current is not None and current.axis == axis:
        if current.direction == "asc":
            return SortSpec(axis, "desc")
        return None
    return SortSpec(axis, "asc")


@dataclass(frozen=True)
class QueryResult:
    page_items: list[str]
    total_count: int
    dates: list[str]
    matrix: KeywordMatrix
    keywords: list[str]
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.page_size)


def _cell_sort_value(cell: MatrixCell, metric: str) -> float | str:
    if metric in ("kd", "sv"):
        return coerce_number(getattr(cell, metric)) or 0.0
    if metric == "intent":
        return str(cell.intent).lower()
    return cell.joined_sources().lower()


def sort_keywords(
    matrix: KeywordMatrix,
    keywords: list[str],
    sort: SortSpec | None,
) -> list[str]:
    """Order keywords; ties keep their incoming order under both directions."""
    if sort is None:
        return sorted(keywords, key=str.lower)

    reverse = sort.direction == "desc"
    if sort.axis == "keyword":
        return sorted(keywords, key=str.lower, reverse=reverse)
    if sort.axis == "entryCount":
        return sorted(keywords, key=matrix.entry_count, reverse=reverse)

    date_bucket, metric = sort.axis
    present = [keyword for keyword in keywords if matrix.cell(keyword, date_bucket) is not None]
    missing = [keyword for keyword in keywords if matrix.cell(keyword, date_bucket) is None]
    ordered = sorted(
        present,
        key=lambda keyword: _cell_sort_value(matrix.cells[keyword][date_bucket], metric),
        reverse=reverse,
    )
    # Keywords without data at the sorted date stay last in either direction.
    return ordered + missing


def paginate(items: list[str], page: int, page_size: int) -> list[str]:
    if page_size < 1:
        raise ValueError("page_size must be >= 1")
    if page < 1:
        raise ValueError("page must be >= 1")
    start = (page - 1) * page_size
    return items[start : start + page_size]


def query_matrix(
    matrix: KeywordMatrix,
    criteria: FilterCriteria | None = None,
    sort: SortSpec | None = None,
    page: int = 1,
    page_size: int = 25,
) -> QueryResult:
    """Filter, sort and slice the keyword axis of ``matrix``.

    ``criteria.source_tag`` is not applied here: source selection changes the
    records the matrix is built from, see ``build_report``.
    """
    keywords = apply_filters(matrix, criteria or FilterCriteria())
    keywords = sort_keywords(matrix, keywords, sort)
    page_items = paginate(keywords, page=page, page_size=page_size)
    LOGGER.debug(
        "Query matched %s of %s keywords; page %s holds %s",
        len(keywords),
        len(matrix),
        page,
        len(page_items),
    )
    return QueryResult(
        page_items=page_items,
        total_count=len(keywords),
        dates=list(matrix.dates),
        matrix=matrix,
        keywords=keywords,
        page=page,
        page_size=page_size,
    )
