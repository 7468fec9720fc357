from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from keyword_matrix.config import FieldsConfig
from keyword_matrix.features.websites import assignment_update, cancellation_update
from keyword_matrix.io.records_postgres import (
    DEFAULT_RECORDS_TABLE,
    get_record,
    update_record,
    update_records,
)

LOGGER = logging.getLogger(__name__)


@dataclass
class AssignmentResult:
    website_name: str
    assigned: int = 0
    missing: list[str] = field(default_factory=list)


def assign_records(
    db_url: str,
    record_ids: Iterable[str],
    website_name: str,
    url_path: str | None = None,
    *,
    fields: FieldsConfig | None = None,
    table_name: str = DEFAULT_RECORDS_TABLE,
) -> AssignmentResult:
    """Add ``website_name`` to each stored record, keeping websites already assigned."""
    fields = fields or FieldsConfig()
    name = website_name.strip()
    if not name:
        raise ValueError("Website name is required")

    result = AssignmentResult(website_name=name)
    for record_id in record_ids:
        record = get_record(db_url, record_id, table_name=table_name)
        if record is None:
            result.missing.append(record_id)
            continue
        updates = assignment_update(record, name, url_path, fields)
        if update_record(db_url, record_id, updates, table_name=table_name):
            result.assigned += 1

    LOGGER.info(
        "Assigned %s records to %s (%s not found)",
        result.assigned,
        name,
        len(result.missing),
    )
    return result


def cancel_assignments(
    db_url: str,
    record_ids: Iterable[str],
    *,
    fields: FieldsConfig | None = None,
    table_name: str = DEFAULT_RECORDS_TABLE,
) -> int:
    canceled = update_records(
        db_url,
        list(record_ids),
        cancellation_update(fields),
        table_name=table_name,
    )
    LOGGER.info("Canceled website assignment for %s records", canceled)
    return canceled
