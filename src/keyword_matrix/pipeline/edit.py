from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from keyword_matrix.config import FieldsConfig
from keyword_matrix.io.records_postgres import (
    DEFAULT_RECORDS_TABLE,
    create_record,
    get_record,
    update_record,
)
from keyword_matrix.preprocess.fields import find_field_key, normalize_field_name

LOGGER = logging.getLogger(__name__)

# Label shown to users -> FieldsConfig attribute holding the stored key.
EDITABLE_FIELDS = {
    "Keyword": "keyword",
    "KD": "kd",
    "SV": "sv",
    "Intent": "intent",
    "URL": "url",
    "Website Name": "website_name",
    "Website URL Path": "website_url_path",
}
CLEARABLE_FIELDS = frozenset({"website_name", "website_url_path"})


@dataclass
class EditResult:
    field_name: str
    value: str
    updated: int = 0
    missing: list[str] = field(default_factory=list)


def resolve_editable_field(label: str) -> str:
    """Map a field label such as ``"website name"`` to its FieldsConfig attribute."""
    target = normalize_field_name(label)
    for name, attribute in EDITABLE_FIELDS.items():
        if normalize_field_name(name) == target or normalize_field_name(attribute) == target:
            return attribute
    options = ", ".join(EDITABLE_FIELDS)
    raise ValueError(f"Unknown field {label!r}. Expected one of: {options}")


def edit_records(
    db_url: str,
    record_ids: Iterable[str],
    field_label: str,
    value: str,
    *,
    fields: FieldsConfig | None = None,
    table_name: str = DEFAULT_RECORDS_TABLE,
) -> EditResult:
    """Set one field to the same value on every record in ``record_ids``.

    The value is trimmed. Only the website name and URL path may be cleared.
    Each record is written under the key it already uses for the field, so an
    imported ``Keyword`` column is replaced rather than shadowed by ``keyword``.
    """
    fields = fields or FieldsConfig()
    attribute = resolve_editable_field(field_label)
    trimmed = value.strip()
    if not trimmed and attribute not in CLEARABLE_FIELDS:
        raise ValueError("Value is required")

    logical_field = getattr(fields, attribute)
    result = EditResult(field_name=logical_field, value=trimmed)
    for record_id in record_ids:
        record = get_record(db_url, record_id, table_name=table_name)
        if record is None:
            result.missing.append(record_id)
            continue
        key = find_field_key(record, logical_field) or logical_field
        if update_record(db_url, record_id, {key: trimmed}, table_name=table_name):
            result.updated += 1

    LOGGER.info(
        "Set %s on %s records (%s not found)",
        logical_field,
        result.updated,
        len(result.missing),
    )
    return result


def add_record(
    db_url: str,
    keyword: str,
    *,
    kd: str = "",
    sv: str = "",
    intent: str = "",
    source: str = "",
    website: str = "",
    url_path: str = "",
    url: str = "",
    fields: FieldsConfig | None = None,
    table_name: str = DEFAULT_RECORDS_TABLE,
) -> str:
    fields = fields or FieldsConfig()
    text = keyword.strip()
    if not text:
        raise ValueError("Keyword is required")

    values: dict[str, Any] = {
        fields.kd: kd,
        fields.sv: sv,
        fields.intent: intent,
        fields.source: source,
        fields.website_name: website,
        fields.website_url_path: url_path,
        fields.url: url,
    }
    data = {key: item.strip() for key, item in values.items() if item.strip()}
    data[fields.keyword] = text
    record_id = create_record(db_url, data, table_name=table_name)
    LOGGER.info("Created record %s for keyword %r", record_id, text)
    return record_id
