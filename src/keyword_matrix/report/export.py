from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any

from keyword_matrix.features.matrix import KeywordMatrix
from keyword_matrix.pipeline.filters import ALL_SOURCES
from keyword_matrix.preprocess.fields import UNREPRESENTED, is_blank

MISSING_PLACEHOLDER = "-"
MATRIX_EXPORT_HEADER = ["Keyword", "Date", "KD", "SV", "Intent", "Data Sources"]
HISTORY_EXPORT_HEADER = ["Keyword", "Date", "KD", "SV", "Intent", "Present In"]
UNSAFE_NUMERIC_CHARS = (",", '"', "\n", "\r")


@dataclass(frozen=True)
class ExportRow:
    keyword: str
    date: str
    kd: Any
    sv: Any
    intent: Any
    sources: str


def quote_text(value: Any) -> str:
    text = str(value).replace('"', '""')
    return f'"{text}"'


def format_number(value: Any) -> str:
    """Render KD/SV unquoted, keeping the raw imported text.

    Raw text holding a comma, a double quote or a line break is quoted and
    escaped like the text columns instead, so such a value stays in one cell
    rather than being written bare.
    """
    if value is UNREPRESENTED or is_blank(value):
        return MISSING_PLACEHOLDER
    if isinstance(value, float) and value.is_integer():
        text = str(int(value))
    else:
        text = str(value)
    if any(char in text for char in UNSAFE_NUMERIC_CHARS):
        return quote_text(text)
    return text


def _format_text(value: Any) -> str:
    if value is UNREPRESENTED or is_blank(value):
        return quote_text(MISSING_PLACEHOLDER)
    return quote_text(value)


def iter_export_rows(
    matrix: KeywordMatrix,
    keywords: Iterable[str],
    source_filter: str | None = None,
) -> Iterator[ExportRow]:
    """Yield one row per cell, newest date first within each keyword.

    With a source filter, each cell's sources are narrowed to the filter and
    cells left without any source are skipped.
    """
    filtering = source_filter is not None and source_filter != ALL_SOURCES
    for keyword in keywords:
        if keyword not in matrix:
            continue
        for bucket, cell in matrix.history(keyword):
            sources = cell.sources
            if filtering:
                sources = [source for source in sources if source == source_filter]
                if not sources:
                    continue
            yield ExportRow(
                keyword=keyword,
                date=bucket,
                kd=cell.kd,
                sv=cell.sv,
                intent=cell.intent,
                sources=", ".join(sources) or MISSING_PLACEHOLDER,
            )


def _render(header: list[str], rows: Iterable[ExportRow]) -> str:
    lines = [",".join(header)]
    for row in rows:
        lines.append(
            ",".join(
                [
                    quote_text(row.keyword),
                    quote_text(row.date),
                    format_number(row.kd),
                    format_number(row.sv),
                    _format_text(row.intent),
                    quote_text(row.sources),
                ]
            )
        )
    return "\n".join(lines)


def serialize_matrix_csv(
    matrix: KeywordMatrix,
    keywords: Iterable[str],
    source_filter: str | None = None,
) -> str:
    """Flatten ``keywords`` (already filtered and sorted) into CSV text."""
    return _render(MATRIX_EXPORT_HEADER, iter_export_rows(matrix, keywords, source_filter))


def serialize_keyword_history(
    matrix: KeywordMatrix,
    keyword: str,
    source_filter: str | None = None,
) -> str:
    """CSV history of a single keyword across all its dates."""
    return _render(HISTORY_EXPORT_HEADER, iter_export_rows(matrix, [keyword], source_filter))
