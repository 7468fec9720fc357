from __future__ import annotations

from enum import Enum
from pathlib import Path

import typer

from keyword_matrix.config import DEFAULT_CONFIG_PATH, AppConfig, load_config
from keyword_matrix.io.read import load_records
from keyword_matrix.io.records_postgres import (
    delete_records,
    import_keyword_csv_to_postgres,
    list_data_sources,
)
from keyword_matrix.io.write import write_export
from keyword_matrix.logging import configure_logging
from keyword_matrix.pipeline.assign import assign_records, cancel_assignments
from keyword_matrix.pipeline.edit import EDITABLE_FIELDS, add_record, edit_records
from keyword_matrix.pipeline.filters import ALL_SOURCES, FilterCriteria, FilterInput
from keyword_matrix.pipeline.query import SortSpec
from keyword_matrix.pipeline.report import (
    available_sources,
    build_report,
    export_history,
    export_report,
    run_report,
)

app = typer.Typer(no_args_is_help=True, add_completion=False)


class SortDirection(str, Enum):
    asc = "asc"
    desc = "desc"


RECORDS_OPTION = typer.Option(
    None,
    exists=True,
    readable=True,
    resolve_path=True,
    help="CSV snapshot of keyword records. Required when input.mode='csv'.",
)
CONFIG_OPTION = typer.Option(
    DEFAULT_CONFIG_PATH, exists=True, readable=True, resolve_path=True
)
DB_URL_OPTION = typer.Option(
    None,
    envvar=["KEYWORD_MATRIX_DB_URL", "DATABASE_URL"],
    help="PostgreSQL connection string. Falls back to config.input.db_url.",
)
TABLE_OPTION = typer.Option(
    None,
    help="Records table name. Falls back to config.input.records_table.",
)
SEARCH_OPTION = typer.Option("", help="Keep keywords containing this text.")
KD_MIN_OPTION = typer.Option("", help="Minimum KD on at least one date.")
KD_MAX_OPTION = typer.Option("", help="Maximum KD on at least one date.")
SV_MIN_OPTION = typer.Option("", help="Minimum SV on at least one date.")
SV_MAX_OPTION = typer.Option("", help="Maximum SV on at least one date.")
INTENT_OPTION = typer.Option(
    None, "--intent", help="Intent to keep (substring match). Repeat for several."
)
SOURCE_OPTION = typer.Option(ALL_SOURCES, help="Data source to build the matrix from.")
HAS_CHANGED_OPTION = typer.Option(
    False, "--has-changed", help="Only keywords whose KD or SV changed between dates."
)
WEBSITE_OPTION = typer.Option(None, help="Only keywords assigned to this website.")
ASSIGNED_ONLY_OPTION = typer.Option(
    False, "--assigned-only", help="Only keywords assigned to any website."
)
SORT_OPTION = typer.Option(
    None, help="Sort key: keyword, entries, or MM-DD-YYYY||kd|sv|intent|sources."
)
DIRECTION_OPTION = typer.Option(SortDirection.asc)


def _load_app_config(config_path: Path) -> AppConfig:
    return load_config(config_path)


def _require_records_for_csv_mode(records: Path | None, cfg: AppConfig) -> Path | None:
    if cfg.input.mode == "csv" and records is None:
        raise typer.BadParameter(
            "Missing --records. Required when input.mode='csv'. "
            "Set input.mode='postgres' and configure input.db_url to read from PostgreSQL."
        )
    return records


def _require_db_url(db_url: str | None, cfg: AppConfig) -> str:
    effective_db_url = db_url or cfg.input.db_url
    if not effective_db_url:
        raise typer.BadParameter(
            "Missing database URL. "
            "Set --db-url or KEYWORD_MATRIX_DB_URL or input.db_url in config."
        )
    return effective_db_url


def _intents(intent: list[str] | None, cfg: AppConfig) -> list[str]:
    options = {option.strip().lower(): option for option in cfg.report.intent_options}
    chosen = []
    for value in intent or []:
        option = options.get(value.strip().lower())
        if option is None:
            raise typer.BadParameter(
                f"Unknown intent {value!r}. Expected one of: "
                + ", ".join(cfg.report.intent_options)
            )
        chosen.append(option)
    return chosen


def _criteria(
    search: str,
    kd_min: str,
    kd_max: str,
    sv_min: str,
    sv_max: str,
    intent: list[str] | None,
    source: str,
    has_changed: bool,
) -> FilterCriteria:
    filter_input = FilterInput(
        search_text=search,
        kd_min=kd_min,
        kd_max=kd_max,
        sv_min=sv_min,
        sv_max=sv_max,
        intents=list(intent or []),
        source_tag=source,
        has_changed_only=has_changed,
    )
    return filter_input.commit()


def _sort_spec(sort: str | None, direction: SortDirection) -> SortSpec | None:
    if not sort:
        return None
    try:
        return SortSpec.from_key(sort, direction.value)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


@app.command("import-csv")
def import_csv(
    csv: Path = typer.Option(..., exists=True, readable=True, resolve_path=True),
    source: str = typer.Option(..., help="Data source name stamped on every imported row."),
    config: Path = CONFIG_OPTION,
    db_url: str | None = DB_URL_OPTION,
    table_name: str | None = TABLE_OPTION,
    chunk_size: int = typer.Option(5_000, min=1),
) -> None:
    """Import a keyword CSV export (Keyword, KD, SV, Intent, ...) into PostgreSQL."""
    configure_logging()
    cfg = _load_app_config(config)
    effective_db_url = _require_db_url(db_url, cfg)
    if not source.strip():
        raise typer.BadParameter("Data source is required")

    try:
        result = import_keyword_csv_to_postgres(
            csv_path=csv,
            db_url=effective_db_url,
            data_source=source,
            table_name=table_name or cfg.input.records_table,
            chunk_size=int(chunk_size),
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    typer.echo("Keyword import complete")
    typer.echo(f"- source_file: {result.source_file}")
    typer.echo(f"- data_source: {result.data_source}")
    typer.echo(f"- table_name: {result.table_name}")
    typer.echo(f"- rows_processed: {result.rows_processed}")
    typer.echo(f"- rows_imported: {result.rows_imported}")
    typer.echo(f"- rows_blank: {result.rows_blank}")
    typer.echo(f"- created_at: {result.created_at}")


@app.command()
def report(
    records: Path | None = RECORDS_OPTION,
    out: Path = typer.Option(Path("out"), resolve_path=True),
    config: Path = CONFIG_OPTION,
    search: str = SEARCH_OPTION,
    kd_min: str = KD_MIN_OPTION,
    kd_max: str = KD_MAX_OPTION,
    sv_min: str = SV_MIN_OPTION,
    sv_max: str = SV_MAX_OPTION,
    intent: list[str] | None = INTENT_OPTION,
    source: str = SOURCE_OPTION,
    has_changed: bool = HAS_CHANGED_OPTION,
    website: str | None = WEBSITE_OPTION,
    assigned_only: bool = ASSIGNED_ONLY_OPTION,
    sort: str | None = SORT_OPTION,
    direction: SortDirection = DIRECTION_OPTION,
    page: int = typer.Option(1, min=1),
    page_size: int | None = typer.Option(None, min=1),
) -> None:
    """Build the keyword x date matrix report, its CSV export and summary tables."""
    configure_logging()
    cfg = _load_app_config(config)
    records = _require_records_for_csv_mode(records, cfg)
    criteria = _criteria(
        search, kd_min, kd_max, sv_min, sv_max, _intents(intent, cfg), source, has_changed
    )
    outputs = run_report(
        csv_path=records,
        out_dir=out,
        config=cfg,
        criteria=criteria,
        sort=_sort_spec(sort, direction),
        page=page,
        page_size=page_size,
        website=website,
        assigned_only=assigned_only,
    )
    result = outputs.result
    typer.echo(
        f"Showing {len(result.page_items)} of {result.total_count} keywords "
        f"across {len(result.dates)} dates (page {result.page} of {max(result.total_pages, 1)})"
    )
    typer.echo(f"Report written to: {outputs.report_path}")
    typer.echo(f"Export written to: {outputs.export_path}")


@app.command()
def export(
    output: Path = typer.Option(..., resolve_path=True, help="Destination CSV file."),
    records: Path | None = RECORDS_OPTION,
    config: Path = CONFIG_OPTION,
    search: str = SEARCH_OPTION,
    kd_min: str = KD_MIN_OPTION,
    kd_max: str = KD_MAX_OPTION,
    sv_min: str = SV_MIN_OPTION,
    sv_max: str = SV_MAX_OPTION,
    intent: list[str] | None = INTENT_OPTION,
    source: str = SOURCE_OPTION,
    has_changed: bool = HAS_CHANGED_OPTION,
    website: str | None = WEBSITE_OPTION,
    assigned_only: bool = ASSIGNED_ONLY_OPTION,
    sort: str | None = SORT_OPTION,
    direction: SortDirection = DIRECTION_OPTION,
) -> None:
    """Export every matching keyword, one row per keyword and date."""
    configure_logging()
    cfg = _load_app_config(config)
    records = _require_records_for_csv_mode(records, cfg)
    criteria = _criteria(
        search, kd_min, kd_max, sv_min, sv_max, _intents(intent, cfg), source, has_changed
    )
    snapshot = load_records(csv_path=records, config=cfg)
    result = build_report(
        snapshot,
        cfg,
        criteria,
        _sort_spec(sort, direction),
        website=website,
        assigned_only=assigned_only,
    )
    path = write_export(export_report(result, criteria), output)
    typer.echo(f"Exported {result.total_count} keywords to: {path}")


@app.command()
def history(
    keyword: str = typer.Option(..., help="Keyword to export across all dates."),
    output: Path = typer.Option(..., resolve_path=True, help="Destination CSV file."),
    records: Path | None = RECORDS_OPTION,
    config: Path = CONFIG_OPTION,
    source: str = SOURCE_OPTION,
) -> None:
    """Export the dated history of a single keyword."""
    configure_logging()
    cfg = _load_app_config(config)
    records = _require_records_for_csv_mode(records, cfg)
    snapshot = load_records(csv_path=records, config=cfg)
    path = write_export(export_history(snapshot, cfg, keyword, source), output)
    typer.echo(f"History for {keyword.strip()!r} written to: {path}")


@app.command()
def sources(
    records: Path | None = RECORDS_OPTION,
    config: Path = CONFIG_OPTION,
) -> None:
    """List the data sources present in the record snapshot."""
    configure_logging()
    cfg = _load_app_config(config)
    if cfg.input.mode == "postgres":
        names = list_data_sources(
            _require_db_url(None, cfg), table_name=cfg.input.records_table
        )
    else:
        records = _require_records_for_csv_mode(records, cfg)
        names = available_sources(load_records(csv_path=records, config=cfg), cfg.fields)
    if not names:
        typer.echo("No data sources found")
        return
    for name in names:
        typer.echo(f"- {name}")


@app.command()
def assign(
    record_id: list[str] = typer.Option(..., "--id", help="Record id. Repeat for bulk assign."),
    website: str = typer.Option(..., help="Website name to add to the keyword."),
    url_path: str | None = typer.Option(None, help="Website URL path for the keyword."),
    config: Path = CONFIG_OPTION,
    db_url: str | None = DB_URL_OPTION,
    table_name: str | None = TABLE_OPTION,
) -> None:
    """Assign keyword records to a website."""
    configure_logging()
    cfg = _load_app_config(config)
    effective_db_url = _require_db_url(db_url, cfg)
    try:
        result = assign_records(
            effective_db_url,
            record_id,
            website,
            url_path,
            fields=cfg.fields,
            table_name=table_name or cfg.input.records_table,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    typer.echo(f"Assigned {result.assigned} records to {result.website_name}")
    for current_id in result.missing:
        typer.echo(f"- not found: {current_id}")


@app.command()
def edit(
    record_id: list[str] = typer.Option(..., "--id", help="Record id. Repeat for bulk edit."),
    field: str = typer.Option(..., help="Field to set: " + ", ".join(EDITABLE_FIELDS) + "."),
    value: str = typer.Option(..., help="New value. Only website fields may be left empty."),
    config: Path = CONFIG_OPTION,
    db_url: str | None = DB_URL_OPTION,
    table_name: str | None = TABLE_OPTION,
) -> None:
    """Set one field to the same value on several keyword records."""
    configure_logging()
    cfg = _load_app_config(config)
    effective_db_url = _require_db_url(db_url, cfg)
    try:
        result = edit_records(
            effective_db_url,
            record_id,
            field,
            value,
            fields=cfg.fields,
            table_name=table_name or cfg.input.records_table,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    typer.echo(f"Updated {result.field_name} on {result.updated} records")
    for current_id in result.missing:
        typer.echo(f"- not found: {current_id}")


@app.command()
def add(
    keyword: str = typer.Option(..., help="Keyword text."),
    kd: str = typer.Option("", help="Keyword difficulty."),
    sv: str = typer.Option("", help="Search volume."),
    intent: str = typer.Option("", help="Search intent."),
    source: str = typer.Option("", help="Data source name."),
    website: str = typer.Option("", help="Website name to assign."),
    url_path: str = typer.Option("", help="Website URL path."),
    url: str = typer.Option("", help="Ranking URL."),
    config: Path = CONFIG_OPTION,
    db_url: str | None = DB_URL_OPTION,
    table_name: str | None = TABLE_OPTION,
) -> None:
    """Create a single keyword record stamped with the current time."""
    configure_logging()
    cfg = _load_app_config(config)
    effective_db_url = _require_db_url(db_url, cfg)
    try:
        record_id = add_record(
            effective_db_url,
            keyword,
            kd=kd,
            sv=sv,
            intent=intent,
            source=source,
            website=website,
            url_path=url_path,
            url=url,
            fields=cfg.fields,
            table_name=table_name or cfg.input.records_table,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    typer.echo(f"Created record {record_id}")


@app.command()
def unassign(
    record_id: list[str] = typer.Option(..., "--id", help="Record id. Repeat for bulk cancel."),
    config: Path = CONFIG_OPTION,
    db_url: str | None = DB_URL_OPTION,
    table_name: str | None = TABLE_OPTION,
) -> None:
    """Cancel website assignments; the keyword data itself is kept."""
    configure_logging()
    cfg = _load_app_config(config)
    effective_db_url = _require_db_url(db_url, cfg)
    updated = cancel_assignments(
        effective_db_url,
        record_id,
        fields=cfg.fields,
        table_name=table_name or cfg.input.records_table,
    )
    typer.echo(f"Canceled website assignment for {updated} records")


@app.command()
def delete(
    record_id: list[str] = typer.Option(..., "--id", help="Record id. Repeat for bulk delete."),
    config: Path = CONFIG_OPTION,
    db_url: str | None = DB_URL_OPTION,
    table_name: str | None = TABLE_OPTION,
) -> None:
    """Delete keyword records."""
    configure_logging()
    cfg = _load_app_config(config)
    effective_db_url = _require_db_url(db_url, cfg)
    deleted = delete_records(
        effective_db_url,
        record_id,
        table_name=table_name or cfg.input.records_table,
    )
    typer.echo(f"Deleted {deleted} records")


if __name__ == "__main__":
    app()
