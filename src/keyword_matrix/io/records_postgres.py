from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping

import pandas as pd

from keyword_matrix.io.csv_files import iter_keyword_csv_chunks, sanitize_csv_row

LOGGER = logging.getLogger(__name__)

DEFAULT_RECORDS_TABLE = "keyword_records"
PROTECTED_FIELDS = {"id", "createdAt", "updatedAt"}


@dataclass(frozen=True)
class KeywordImportResult:
    source_file: str
    data_source: str
    table_name: str
    rows_processed: int
    rows_imported: int
    rows_blank: int
    chunk_size: int
    created_at: str


def _load_psycopg():
    try:
        import psycopg
        from psycopg import sql
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError(
            "psycopg is required for PostgreSQL operations. "
            "Install with: pip install 'psycopg[binary]'"
        ) from exc
    return psycopg, sql


def _new_record_id() -> str:
    return uuid.uuid4().hex


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_records_schema(conn, table_name: str = DEFAULT_RECORDS_TABLE) -> None:
    _psycopg, sql = _load_psycopg()
    statement = sql.SQL(
        """
        CREATE TABLE IF NOT EXISTS {table_name} (
          record_id TEXT PRIMARY KEY,
          data_source TEXT NOT NULL DEFAULT '',
          data JSONB NOT NULL DEFAULT '{{}}'::jsonb,
          created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
          updated_at TIMESTAMPTZ
        );
        CREATE INDEX IF NOT EXISTS {idx_data_source} ON {table_name} (data_source);
        CREATE INDEX IF NOT EXISTS {idx_created_at} ON {table_name} (created_at DESC);
        """
    ).format(
        table_name=sql.Identifier(table_name),
        idx_data_source=sql.Identifier(f"{table_name}_data_source_idx"),
        idx_created_at=sql.Identifier(f"{table_name}_created_at_idx"),
    )
    with conn.cursor() as cursor:
        cursor.execute(statement)


def build_import_payload(
    chunk: pd.DataFrame,
    data_source: str,
    created_at: datetime,
) -> list[dict[str, Any]]:
    """Turn CSV rows into insert parameters; rows with no values are left out."""
    created_at_iso = created_at.isoformat()
    payload: list[dict[str, Any]] = []
    for row in chunk.to_dict(orient="records"):
        sanitized = sanitize_csv_row(row)
        if not sanitized:
            continue
        document = {**sanitized, "dataSource": data_source, "createdAt": created_at_iso}
        payload.append(
            {
                "record_id": _new_record_id(),
                "data_source": data_source,
                "data": json.dumps(document, sort_keys=True),
                "created_at": created_at,
            }
        )
    return payload


def _insert_record_rows(conn, table_name: str, payload: list[dict[str, Any]]) -> int:
    if not payload:
        return 0

    _psycopg, sql = _load_psycopg()
    query = sql.SQL(
        """
        INSERT INTO {table_name} (record_id, data_source, data, created_at)
        VALUES (%(record_id)s, %(data_source)s, %(data)s::jsonb, %(created_at)s)
        """
    ).format(table_name=sql.Identifier(table_name))
    with conn.cursor() as cursor:
        cursor.executemany(query, payload)
    return len(payload)


def import_keyword_csv_to_postgres(
    csv_path: Path,
    db_url: str,
    data_source: str,
    table_name: str = DEFAULT_RECORDS_TABLE,
    chunk_size: int = 5_000,
    source_file: str | None = None,
    created_at: datetime | None = None,
) -> KeywordImportResult:
    """Store every row of a keyword CSV export as one record of ``data_source``.

    All rows of one import share a single ``createdAt`` so they land in the
    same date bucket.
    """
    data_source_value = (data_source or "").strip()
    if not data_source_value:
        raise ValueError("Data source is required")
    if chunk_size < 1:
        raise ValueError("chunk_size must be >= 1")

    psycopg, _sql = _load_psycopg()
    source_file_value = source_file or csv_path.name
    import_time = created_at or _utc_now()
    rows_processed = 0
    rows_imported = 0

    try:
        chunks = iter_keyword_csv_chunks(csv_path, chunk_size=chunk_size)
    except pd.errors.EmptyDataError as exc:
        raise ValueError("CSV file is empty or has no valid data") from exc

    with psycopg.connect(db_url) as conn:
        ensure_records_schema(conn=conn, table_name=table_name)
        conn.commit()

        for chunk in chunks:
            rows_processed += len(chunk)
            payload = build_import_payload(
                chunk=chunk, data_source=data_source_value, created_at=import_time
            )
            rows_imported += _insert_record_rows(
                conn=conn, table_name=table_name, payload=payload
            )
            conn.commit()

    if rows_processed == 0:
        raise ValueError("CSV file is empty or has no valid data")

    LOGGER.info(
        "Imported %s of %s rows from %s into %s as data source %r",
        rows_imported,
        rows_processed,
        source_file_value,
        table_name,
        data_source_value,
    )
    return KeywordImportResult(
        source_file=source_file_value,
        data_source=data_source_value,
        table_name=table_name,
        rows_processed=rows_processed,
        rows_imported=rows_imported,
        rows_blank=rows_processed - rows_imported,
        chunk_size=chunk_size,
        created_at=import_time.isoformat(),
    )


def _row_to_record(row: tuple[Any, ...]) -> dict[str, Any]:
    record_id, data, created_at = row[0], row[1], row[2]
    document = data if isinstance(data, dict) else json.loads(data or "{}")
    record: dict[str, Any] = {"id": str(record_id), **document}
    if "createdAt" not in record and created_at is not None:
        record["createdAt"] = created_at.isoformat()
    return record


def load_records_from_postgres(
    db_url: str,
    table_name: str = DEFAULT_RECORDS_TABLE,
) -> list[dict[str, Any]]:
    """Return every stored record, newest first."""
    psycopg, sql = _load_psycopg()
    query = sql.SQL(
        """
        SELECT record_id, data, created_at
        FROM {table_name}
        ORDER BY created_at DESC, record_id
        """
    ).format(table_name=sql.Identifier(table_name))
    with psycopg.connect(db_url) as conn:
        with conn.cursor() as cursor:
            cursor.execute(query)
            rows = cursor.fetchall()
    return [_row_to_record(row) for row in rows]


def get_record(
    db_url: str,
    record_id: str,
    table_name: str = DEFAULT_RECORDS_TABLE,
) -> dict[str, Any] | None:
    psycopg, sql = _load_psycopg()
    query = sql.SQL(
        "SELECT record_id, data, created_at FROM {table_name} WHERE record_id = %s"
    ).format(table_name=sql.Identifier(table_name))
    with psycopg.connect(db_url) as conn:
        with conn.cursor() as cursor:
            cursor.execute(query, (record_id,))
            row = cursor.fetchone()
    return _row_to_record(row) if row else None


def create_record(
    db_url: str,
    data: Mapping[str, Any],
    table_name: str = DEFAULT_RECORDS_TABLE,
    created_at: datetime | None = None,
) -> str:
    psycopg, _sql = _load_psycopg()
    record_time = created_at or _utc_now()
    document = {key: value for key, value in data.items() if key not in PROTECTED_FIELDS}
    document["createdAt"] = record_time.isoformat()
    data_source = str(document.get("dataSource") or "").strip()
    record_id = _new_record_id()
    with psycopg.connect(db_url) as conn:
        ensure_records_schema(conn=conn, table_name=table_name)
        _insert_record_rows(
            conn=conn,
            table_name=table_name,
            payload=[
                {
                    "record_id": record_id,
                    "data_source": data_source,
                    "data": json.dumps(document, sort_keys=True),
                    "created_at": record_time,
                }
            ],
        )
        conn.commit()
    return record_id


def update_records(
    db_url: str,
    record_ids: Iterable[str],
    updates: Mapping[str, Any],
    table_name: str = DEFAULT_RECORDS_TABLE,
    updated_at: datetime | None = None,
) -> int:
    """Merge ``updates`` into each record; returns how many records existed."""
    psycopg, sql = _load_psycopg()
    update_time = updated_at or _utc_now()
    patch = {key: value for key, value in updates.items() if key not in PROTECTED_FIELDS}
    patch["updatedAt"] = update_time.isoformat()
    query = sql.SQL(
        """
        UPDATE {table_name}
        SET data = data || %s::jsonb, updated_at = %s
        WHERE record_id = %s
        """
    ).format(table_name=sql.Identifier(table_name))

    patch_json = json.dumps(patch, sort_keys=True)
    updated = 0
    with psycopg.connect(db_url) as conn:
        with conn.cursor() as cursor:
            for record_id in record_ids:
                cursor.execute(query, (patch_json, update_time, record_id))
                updated += max(int(cursor.rowcount or 0), 0)
        conn.commit()
    return updated


def update_record(
    db_url: str,
    record_id: str,
    updates: Mapping[str, Any],
    table_name: str = DEFAULT_RECORDS_TABLE,
) -> bool:
    return update_records(db_url, [record_id], updates, table_name=table_name) > 0


def delete_records(
    db_url: str,
    record_ids: Iterable[str],
    table_name: str = DEFAULT_RECORDS_TABLE,
) -> int:
    psycopg, sql = _load_psycopg()
    query = sql.SQL("DELETE FROM {table_name} WHERE record_id = %s").format(
        table_name=sql.Identifier(table_name)
    )
    deleted = 0
    with psycopg.connect(db_url) as conn:
        with conn.cursor() as cursor:
            for record_id in record_ids:
                cursor.execute(query, (record_id,))
                deleted += max(int(cursor.rowcount or 0), 0)
        conn.commit()
    return deleted


def delete_record(
    db_url: str,
    record_id: str,
    table_name: str = DEFAULT_RECORDS_TABLE,
) -> bool:
    return delete_records(db_url, [record_id], table_name=table_name) > 0


def list_data_sources(db_url: str, table_name: str = DEFAULT_RECORDS_TABLE) -> list[str]:
    psycopg, sql = _load_psycopg()
    query = sql.SQL(
        """
        SELECT DISTINCT data_source
        FROM {table_name}
        WHERE data_source <> ''
        ORDER BY data_source
        """
    ).format(table_name=sql.Identifier(table_name))
    with psycopg.connect(db_url) as conn:
        with conn.cursor() as cursor:
            cursor.execute(query)
            rows = cursor.fetchall()
    return [str(row[0]) for row in rows]
