from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field

DEFAULT_INTENT_OPTIONS = ["Navigational", "Informational", "Commercial", "Transactional"]


class FieldsConfig(BaseModel):
    keyword: str = "keyword"
    kd: str = "KD"
    sv: str = "SV"
    intent: str = "Intent"
    timestamp: str = "createdAt"
    source: str = "dataSource"
    website_name: str = "websiteName"
    website_url_path: str = "websiteUrlPath"
    url: str = "url"


class TimeConfig(BaseModel):
    timezone: str = "UTC"


class SourcesConfig(BaseModel):
    default_tag: str = Field(default="default", min_length=1)


class ReportConfig(BaseModel):
    page_size: int = Field(default=25, ge=1)
    intent_options: list[str] = Field(default_factory=lambda: list(DEFAULT_INTENT_OPTIONS))


class InputConfig(BaseModel):
    mode: Literal["csv", "postgres"] = "csv"
    db_url: str | None = None
    records_table: str = "keyword_records"


class OutputsConfig(BaseModel):
    tables_format: Literal["csv", "parquet"] = "csv"


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    fields: FieldsConfig = Field(default_factory=FieldsConfig)
    time: TimeConfig = Field(default_factory=TimeConfig)
    sources: SourcesConfig = Field(default_factory=SourcesConfig)
    report: ReportConfig = Field(default_factory=ReportConfig)
    input: InputConfig = Field(default_factory=InputConfig)
    outputs: OutputsConfig = Field(default_factory=OutputsConfig)


DEFAULT_CONFIG_PATH = Path("configs/default.yaml")


def load_config(path: Path) -> AppConfig:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    config = AppConfig.model_validate(data)
    config.input.db_url = (
        config.input.db_url or os.getenv("KEYWORD_MATRIX_DB_URL") or os.getenv("DATABASE_URL")
    )
    return config
