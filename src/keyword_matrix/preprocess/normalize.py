from __future__ import annotations

import logging
import numbers
import re
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

import pandas as pd

from keyword_matrix.config import FieldsConfig
from keyword_matrix.preprocess.fields import is_blank, resolve_field, resolve_text, resolve_value

LOGGER = logging.getLogger(__name__)

BUCKET_FORMAT = "%m-%d-%Y"
BUCKET_RE = re.compile(r"\d{2}-\d{2}-\d{4}")
DEFAULT_SOURCE_TAG = "default"
INVALID_KEYWORDS = {"", "undefined", "null"}


@dataclass(frozen=True)
class NormalizedEntry:
    keyword: str
    date_bucket: str
    kd: Any
    sv: Any
    intent: Any
    source_tag: str


def to_date_bucket(value: Any, timezone: str = "UTC") -> str | None:
    """Render a creation timestamp as an ``MM-DD-YYYY`` bucket, or None."""
    if is_blank(value):
        return None
    if isinstance(value, str):
        value = value.strip()
        if BUCKET_RE.fullmatch(value):
            try:
                return datetime.strptime(value, BUCKET_FORMAT).strftime(BUCKET_FORMAT)
            except ValueError:
                return None
    if isinstance(value, bool):
        return None
    try:
        if isinstance(value, numbers.Real):
            # Numeric stamps are epoch milliseconds.
            stamp = pd.Timestamp(value, unit="ms", tz="UTC")
        else:
            stamp = pd.Timestamp(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if pd.isna(stamp):
        return None
    if stamp.tzinfo is not None:
        stamp = stamp.tz_convert(timezone)
    return stamp.strftime(BUCKET_FORMAT)


def bucket_to_date(bucket: str) -> date:
    return datetime.strptime(bucket, BUCKET_FORMAT).date()


def sort_buckets_desc(buckets: Iterable[str]) -> list[str]:
    # MM-DD-YYYY does not order correctly as text across years.
    return sorted(buckets, key=bucket_to_date, reverse=True)


class NormalizedSnapshot:
    """Lazy, restartable view of records as ``NormalizedEntry`` values.

    Each iteration walks the underlying records again, so iterating twice
    over a list of records yields the same entries twice. Records without a
    usable keyword or timestamp are skipped.
    """

    def __init__(
        self,
        records: Iterable[Mapping[str, Any]],
        fields: FieldsConfig,
        timezone: str,
        default_source: str,
    ) -> None:
        self._records = records
        self._fields = fields
        self._timezone = timezone
        self._default_source = default_source

    def __iter__(self) -> Iterator[NormalizedEntry]:
        fields = self._fields
        dropped_keyword = 0
        dropped_timestamp = 0
        for record in self._records:
            if not isinstance(record, Mapping):
                raise TypeError(f"Expected a mapping record, got {type(record).__name__}")

            keyword = _resolve_keyword(record, fields.keyword)
            if keyword is None:
                dropped_keyword += 1
                continue

            bucket = to_date_bucket(resolve_field(record, fields.timestamp), self._timezone)
            if bucket is None:
                dropped_timestamp += 1
                continue

            yield NormalizedEntry(
                keyword=keyword,
                date_bucket=bucket,
                kd=resolve_value(record, fields.kd),
                sv=resolve_value(record, fields.sv),
                intent=resolve_value(record, fields.intent),
                source_tag=resolve_text(record, fields.source) or self._default_source,
            )

        if dropped_keyword or dropped_timestamp:
            LOGGER.debug(
                "Skipped %s records without keyword and %s without a usable timestamp",
                dropped_keyword,
                dropped_timestamp,
            )


def _resolve_keyword(record: Mapping[str, Any], field_name: str) -> str | None:
    value = resolve_field(record, field_name)
    if is_blank(value):
        return None
    keyword = str(value).strip()
    if keyword in INVALID_KEYWORDS:
        return None
    return keyword


def normalize_records(
    records: Iterable[Mapping[str, Any]],
    fields: FieldsConfig | None = None,
    *,
    timezone: str = "UTC",
    default_source: str = DEFAULT_SOURCE_TAG,
) -> NormalizedSnapshot:
    if isinstance(records, (str, bytes, Mapping)) or not isinstance(records, Iterable):
        raise TypeError(
            f"records must be an iterable of mappings, got {type(records).__name__}"
        )
    return NormalizedSnapshot(
        records=records,
        fields=fields or FieldsConfig(),
        timezone=timezone,
        default_source=default_source,
    )


def select_source(
    entries: Iterable[NormalizedEntry],
    source_tag: str | None,
) -> Iterator[NormalizedEntry]:
    """Keep entries from one import batch; ``None`` or ``"all"`` keeps everything."""
    if source_tag is None or source_tag == "all":
        yield from entries
        return
    for entry in entries:
        if entry.source_tag == source_tag:
            yield entry
