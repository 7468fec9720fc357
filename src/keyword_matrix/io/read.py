from __future__ import annotations

from pathlib import Path
from typing import Any

from keyword_matrix.config import AppConfig
from keyword_matrix.io.csv_files import read_keyword_csv, records_from_frame
from keyword_matrix.io.records_postgres import load_records_from_postgres


def load_records(csv_path: Path | None, config: AppConfig) -> list[dict[str, Any]]:
    """Load a snapshot of keyword records from a CSV export or PostgreSQL."""
    if config.input.mode == "postgres":
        if not config.input.db_url:
            raise ValueError("input.db_url must be set when input.mode is 'postgres'")
        return load_records_from_postgres(
            db_url=config.input.db_url,
            table_name=config.input.records_table,
        )

    if csv_path is None:
        raise ValueError("csv_path is required when input.mode is 'csv'")
    return records_from_frame(read_keyword_csv(csv_path))
