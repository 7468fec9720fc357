from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pandas as pd

TABLE_FORMATS = ("csv", "parquet")


def write_table(df: pd.DataFrame, path: Path, fmt: str | None = None) -> Path:
    """Write ``df`` as csv or parquet; the format defaults to the file suffix."""
    table_format = fmt or path.suffix.lstrip(".").lower() or "csv"
    if table_format not in TABLE_FORMATS:
        raise ValueError(f"Unsupported table format: {table_format}")

    path.parent.mkdir(parents=True, exist_ok=True)
    if table_format == "parquet":
        df.to_parquet(path, index=False)
    else:
        df.to_csv(path, index=False)
    return path


def write_summary(data: dict[str, Any], path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    text = json.dumps(data, indent=2, sort_keys=True, ensure_ascii=False, default=str)
    path.write_text(text, encoding="utf-8")
    return path


def write_export(text: str, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    # newline="" keeps the "\n" row separators byte-exact on every platform.
    with path.open("w", encoding="utf-8", newline="") as handle:
        handle.write(text)
    return path
