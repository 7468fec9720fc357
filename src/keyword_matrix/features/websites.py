from __future__ import annotations

from typing import Any, Iterable, Mapping

from keyword_matrix.config import FieldsConfig
from keyword_matrix.preprocess.fields import resolve_text

WEBSITE_SEPARATOR = ","


def website_names(record: Mapping[str, Any], fields: FieldsConfig | None = None) -> list[str]:
    fields = fields or FieldsConfig()
    raw = resolve_text(record, fields.website_name)
    return [name.strip() for name in raw.split(WEBSITE_SEPARATOR) if name.strip()]


def is_assigned(record: Mapping[str, Any], fields: FieldsConfig | None = None) -> bool:
    """A keyword counts as assigned once it has a website, URL path or URL."""
    fields = fields or FieldsConfig()
    return any(
        resolve_text(record, field_name)
        for field_name in (fields.website_name, fields.website_url_path, fields.url)
    )


def filter_by_website(
    records: Iterable[Mapping[str, Any]],
    website_name: str,
    fields: FieldsConfig | None = None,
) -> list[Mapping[str, Any]]:
    target = website_name.strip()
    return [record for record in records if target in website_names(record, fields)]


def filter_assigned(
    records: Iterable[Mapping[str, Any]],
    fields: FieldsConfig | None = None,
) -> list[Mapping[str, Any]]:
    return [record for record in records if is_assigned(record, fields)]


def assignment_update(
    record: Mapping[str, Any],
    website_name: str,
    url_path: str | None = None,
    fields: FieldsConfig | None = None,
) -> dict[str, str]:
    """Field updates that add ``website_name`` to the record's websites."""
    fields = fields or FieldsConfig()
    name = website_name.strip()
    if not name:
        raise ValueError("website_name must be a non-empty string")

    names = website_names(record, fields)
    if name not in names:
        names.append(name)
    updates = {fields.website_name: ", ".join(names)}
    if url_path is not None and url_path.strip():
        updates[fields.website_url_path] = url_path.strip()
    return updates


def cancellation_update(fields: FieldsConfig | None = None) -> dict[str, str]:
    """Clear the website assignment while leaving the keyword's metrics alone."""
    fields = fields or FieldsConfig()
    return {fields.website_name: "", fields.website_url_path: ""}
