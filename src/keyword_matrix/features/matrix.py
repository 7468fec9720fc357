from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd

from keyword_matrix.preprocess.fields import UNREPRESENTED, coerce_number
from keyword_matrix.preprocess.normalize import NormalizedEntry, sort_buckets_desc

LOGGER = logging.getLogger(__name__)

MATRIX_FRAME_COLUMNS = [
    "keyword",
    "date",
    "kd",
    "sv",
    "intent",
    "sources",
    "kd_value",
    "sv_value",
]


@dataclass
class MatrixCell:
    kd: Any = UNREPRESENTED
    sv: Any = UNREPRESENTED
    intent: Any = UNREPRESENTED
    sources: list[str] = field(default_factory=list)

    @property
    def source_set(self) -> frozenset[str]:
        return frozenset(self.sources)

    def add_source(self, source_tag: str) -> None:
        if source_tag and source_tag not in self.sources:
            self.sources.append(source_tag)

    def joined_sources(self) -> str:
        return ", ".join(self.sources)


@dataclass
class KeywordMatrix:
    """Keyword by date-bucket pivot of normalized entries.

    ``cells`` keeps keywords in first-seen order; ``dates`` lists every bucket
    encountered, newest first.
    """

    cells: dict[str, dict[str, MatrixCell]] = field(default_factory=dict)
    dates: list[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.cells)

    def __contains__(self, keyword: object) -> bool:
        return keyword in self.cells

    def keywords(self) -> list[str]:
        return list(self.cells)

    def row(self, keyword: str) -> dict[str, MatrixCell]:
        return self.cells.get(keyword, {})

    def cell(self, keyword: str, date_bucket: str) -> MatrixCell | None:
        return self.cells.get(keyword, {}).get(date_bucket)

    def entry_count(self, keyword: str) -> int:
        return len(self.cells.get(keyword, {}))

    def history(self, keyword: str) -> Iterator[tuple[str, MatrixCell]]:
        """Yield ``(date_bucket, cell)`` pairs for one keyword, newest first."""
        row = self.cells.get(keyword, {})
        for bucket in sort_buckets_desc(row):
            yield bucket, row[bucket]

    def to_frame(self, keywords: Iterable[str] | None = None) -> pd.DataFrame:
        """Flatten to one row per cell; raw values kept next to numeric ones."""
        selected = self.keywords() if keywords is None else list(keywords)
        rows: list[dict[str, Any]] = []
        for keyword in selected:
            for bucket, cell in self.history(keyword):
                kd_value = coerce_number(cell.kd)
                sv_value = coerce_number(cell.sv)
                rows.append(
                    {
                        "keyword": keyword,
                        "date": bucket,
                        "kd": str(cell.kd),
                        "sv": str(cell.sv),
                        "intent": str(cell.intent),
                        "sources": cell.joined_sources(),
                        "kd_value": np.nan if kd_value is None else kd_value,
                        "sv_value": np.nan if sv_value is None else sv_value,
                    }
                )
        if not rows:
            return pd.DataFrame(columns=MATRIX_FRAME_COLUMNS)
        return pd.DataFrame(rows, columns=MATRIX_FRAME_COLUMNS)


def build_matrix(entries: Iterable[NormalizedEntry]) -> KeywordMatrix:
    """Fold entries into a fresh matrix.

    When several entries share a ``(keyword, date_bucket)`` pair the cell keeps
    the last entry's kd/sv/intent and the union of all their source tags.
    "Last" is input order; callers that need the newest import to win must
    order records before normalizing.
    """
    cells: dict[str, dict[str, MatrixCell]] = {}
    entry_count = 0
    for entry in entries:
        entry_count += 1
        row = cells.setdefault(entry.keyword, {})
        cell = row.get(entry.date_bucket)
        if cell is None:
            cell = MatrixCell(kd=entry.kd, sv=entry.sv, intent=entry.intent)
            row[entry.date_bucket] = cell
        cell.kd = entry.kd
        cell.sv = entry.sv
        cell.intent = entry.intent
        cell.add_source(entry.source_tag)

    dates = sort_buckets_desc({bucket for row in cells.values() for bucket in row})
    LOGGER.debug(
        "Built keyword matrix from %s entries: %s keywords x %s dates",
        entry_count,
        len(cells),
        len(dates),
    )
    return KeywordMatrix(cells=cells, dates=dates)
