from __future__ import annotations

import codecs
from pathlib import Path
from typing import Any, Iterable

import pandas as pd


def detect_csv_encoding(path: Path, sample_bytes: int = 1 << 20) -> str:
    with path.open("rb") as handle:
        prefix = handle.read(3)
        if prefix.startswith(codecs.BOM_UTF8):
            return "utf-8-sig"

    decoder = codecs.getincrementaldecoder("utf-8")()
    with path.open("rb") as handle:
        while True:
            block = handle.read(sample_bytes)
            if not block:
                break
            try:
                decoder.decode(block)
            except UnicodeDecodeError:
                return "cp1252"
    try:
        decoder.decode(b"", final=True)
    except UnicodeDecodeError:
        return "cp1252"
    return "utf-8"


def _read_csv_kwargs(path: Path) -> dict[str, Any]:
    # Every cell stays text so imported KD/SV values round-trip unchanged.
    return {
        "encoding": detect_csv_encoding(path),
        "dtype": str,
        "keep_default_na": False,
        "na_filter": False,
        "skip_blank_lines": True,
    }


def read_keyword_csv(path: Path) -> pd.DataFrame:
    return pd.read_csv(path, **_read_csv_kwargs(path))


def iter_keyword_csv_chunks(path: Path, chunk_size: int) -> Iterable[pd.DataFrame]:
    return pd.read_csv(path, chunksize=chunk_size, **_read_csv_kwargs(path))


def sanitize_csv_row(row: dict[Any, Any]) -> dict[str, str]:
    """Trim keys and values and drop blank cells, as rows are stored on import."""
    sanitized: dict[str, str] = {}
    for key, value in row.items():
        if value is None:
            continue
        text = str(value).strip()
        if not text:
            continue
        sanitized[str(key).strip()] = text
    return sanitized


def records_from_frame(frame: pd.DataFrame) -> list[dict[str, str]]:
    records = (sanitize_csv_row(row) for row in frame.to_dict(orient="records"))
    return [record for record in records if record]
