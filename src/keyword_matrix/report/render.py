from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

from keyword_matrix.pipeline.filters import ALL_SOURCES, FilterCriteria
from keyword_matrix.pipeline.query import SORT_METRICS, QueryResult, SortSpec
from keyword_matrix.preprocess.fields import UNREPRESENTED

LOGGER = logging.getLogger(__name__)

METRIC_LABELS = {
    "kd": "KD",
    "sv": "SV",
    "intent": "Intent",
    "sources": "Present In",
}


def _template_env() -> Environment:
    templates_path = Path(__file__).resolve().parent / "templates"
    return Environment(
        loader=FileSystemLoader(str(templates_path)),
        autoescape=select_autoescape(enabled_extensions=("html", "xml", "j2")),
        trim_blocks=True,
        lstrip_blocks=True,
    )


def _display(value: Any) -> str:
    if value is UNREPRESENTED or value is None:
        return "-"
    text = str(value).strip()
    return text or "-"


def _format_range(bounds: tuple[float, float]) -> str | None:
    low, high = bounds
    if math.isinf(low) and low < 0 and math.isinf(high) and high > 0:
        return None
    low_text = "" if math.isinf(low) else f"{low:g}"
    high_text = "" if math.isinf(high) else f"{high:g}"
    return f"{low_text}..{high_text}"


def describe_filters(criteria: FilterCriteria | None) -> list[str]:
    """Human-readable list of the filters behind a report."""
    if criteria is None:
        return []
    described: list[str] = []
    if criteria.search_text.strip():
        described.append(f"Search: {criteria.search_text}")
    kd_range = _format_range(criteria.kd_range)
    if kd_range:
        described.append(f"KD: {kd_range}")
    sv_range = _format_range(criteria.sv_range)
    if sv_range:
        described.append(f"SV: {sv_range}")
    if criteria.intents:
        described.append(f"Intent: {', '.join(criteria.intents)}")
    if criteria.source_tag != ALL_SOURCES:
        described.append(f"Data Source: {criteria.source_tag}")
    if criteria.has_changed_only:
        described.append("Has changes in KD or SV")
    return described


def build_matrix_rows(result: QueryResult) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    for keyword in result.page_items:
        cells: list[dict[str, str] | None] = []
        for bucket in result.dates:
            cell = result.matrix.cell(keyword, bucket)
            if cell is None:
                cells.append(None)
                continue
            cells.append(
                {
                    "kd": _display(cell.kd),
                    "sv": _display(cell.sv),
                    "intent": _display(cell.intent),
                    "sources": cell.joined_sources() or "-",
                }
            )
        rows.append(
            {
                "keyword": keyword,
                "entries": result.matrix.entry_count(keyword),
                "cells": cells,
            }
        )
    return rows


def render_matrix_report(
    result: QueryResult,
    out_path: Path,
    *,
    title: str = "Keyword Report",
    criteria: FilterCriteria | None = None,
    sort: SortSpec | None = None,
) -> Path:
    env = _template_env()
    template = env.get_template("matrix.html.j2")
    rendered = template.render(
        title=title,
        generated_at=datetime.now(timezone.utc).isoformat(),
        dates=result.dates,
        metrics=[(metric, METRIC_LABELS[metric]) for metric in SORT_METRICS],
        rows=build_matrix_rows(result),
        showing=len(result.page_items),
        total=result.total_count,
        page=result.page,
        total_pages=result.total_pages,
        filters=describe_filters(criteria),
        sort_key=sort.key if sort is not None else "keyword",
        sort_direction=sort.direction if sort is not None else "asc",
    )

    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(rendered, encoding="utf-8")
    LOGGER.info("Matrix report written to %s", out_path)
    return out_path
