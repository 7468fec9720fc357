from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping

from keyword_matrix.config import AppConfig, FieldsConfig
from keyword_matrix.features.matrix import build_matrix
from keyword_matrix.features.websites import filter_assigned, filter_by_website
from keyword_matrix.io.read import load_records
from keyword_matrix.io.write import write_export, write_summary, write_table
from keyword_matrix.paths import build_output_paths
from keyword_matrix.pipeline.filters import FilterCriteria
from keyword_matrix.pipeline.query import QueryResult, SortSpec, query_matrix
from keyword_matrix.preprocess.fields import resolve_text
from keyword_matrix.preprocess.normalize import normalize_records, select_source
from keyword_matrix.report.export import serialize_keyword_history, serialize_matrix_csv
from keyword_matrix.report.render import render_matrix_report

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReportOutputs:
    report_path: Path
    export_path: Path
    cells_path: Path
    summary_path: Path
    result: QueryResult


def available_sources(
    records: Iterable[Mapping[str, Any]],
    fields: FieldsConfig | None = None,
) -> list[str]:
    fields = fields or FieldsConfig()
    sources = {resolve_text(record, fields.source) for record in records}
    sources.discard("")
    return sorted(sources)


def select_records(
    records: Iterable[Mapping[str, Any]],
    config: AppConfig,
    *,
    website: str | None = None,
    assigned_only: bool = False,
) -> list[Mapping[str, Any]]:
    selected = list(records)
    if website:
        selected = filter_by_website(selected, website, config.fields)
    if assigned_only:
        selected = filter_assigned(selected, config.fields)
    return selected


def build_report(
    records: Iterable[Mapping[str, Any]],
    config: AppConfig,
    criteria: FilterCriteria | None = None,
    sort: SortSpec | None = None,
    *,
    page: int = 1,
    page_size: int | None = None,
    website: str | None = None,
    assigned_only: bool = False,
) -> QueryResult:
    """Rebuild the keyword matrix from a full record snapshot and query it."""
    criteria = criteria or FilterCriteria()
    selected = select_records(records, config, website=website, assigned_only=assigned_only)
    entries = normalize_records(
        selected,
        config.fields,
        timezone=config.time.timezone,
        default_source=config.sources.default_tag,
    )
    matrix = build_matrix(select_source(entries, criteria.source_tag))
    return query_matrix(
        matrix,
        criteria,
        sort,
        page=page,
        page_size=page_size or config.report.page_size,
    )


def export_report(result: QueryResult, criteria: FilterCriteria | None = None) -> str:
    """CSV text for every keyword the query matched, not just the current page."""
    source_filter = criteria.source_tag if criteria is not None else None
    return serialize_matrix_csv(result.matrix, result.keywords, source_filter)


def export_history(
    records: Iterable[Mapping[str, Any]],
    config: AppConfig,
    keyword: str,
    source_tag: str | None = None,
) -> str:
    entries = normalize_records(
        records,
        config.fields,
        timezone=config.time.timezone,
        default_source=config.sources.default_tag,
    )
    matrix = build_matrix(entry for entry in entries if entry.keyword == keyword.strip())
    return serialize_keyword_history(matrix, keyword.strip(), source_tag)


def run_report(
    csv_path: Path | None,
    out_dir: Path,
    config: AppConfig,
    criteria: FilterCriteria | None = None,
    sort: SortSpec | None = None,
    *,
    page: int = 1,
    page_size: int | None = None,
    website: str | None = None,
    assigned_only: bool = False,
) -> ReportOutputs:
    paths = build_output_paths(out_dir)
    records = load_records(csv_path=csv_path, config=config)
    result = build_report(
        records,
        config,
        criteria,
        sort,
        page=page,
        page_size=page_size,
        website=website,
        assigned_only=assigned_only,
    )

    generated_on = datetime.now(timezone.utc).date().isoformat()
    report_path = render_matrix_report(
        result,
        paths.root / "report.html",
        title=f"Keyword Report: {website}" if website else "Keyword Report",
        criteria=criteria,
        sort=sort,
    )
    export_path = write_export(
        export_report(result, criteria),
        paths.exports / f"keyword-report-matrix-{generated_on}.csv",
    )
    extension = "parquet" if config.outputs.tables_format == "parquet" else "csv"
    cells_path = write_table(
        result.matrix.to_frame(result.keywords),
        paths.artifacts / f"matrix_cells.{extension}",
        fmt=config.outputs.tables_format,
    )
    summary_path = write_summary(
        {
            "records": len(records),
            "keywords_total": len(result.matrix),
            "keywords_matched": result.total_count,
            "dates": result.dates,
            "page": result.page,
            "page_size": result.page_size,
            "total_pages": result.total_pages,
            "sources": available_sources(records, config.fields),
        },
        paths.summary / "report_summary.json",
    )
    LOGGER.info(
        "Report built from %s records: %s of %s keywords matched",
        len(records),
        result.total_count,
        len(result.matrix),
    )
    return ReportOutputs(
        report_path=report_path,
        export_path=export_path,
        cells_path=cells_path,
        summary_path=summary_path,
        result=result,
    )
