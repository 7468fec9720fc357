from __future__ import annotations

import logging
import os

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
LOG_LEVEL_ENV = "KEYWORD_MATRIX_LOG_LEVEL"
QUIET_LOGGERS = ("psycopg",)


def resolve_log_level(level: str | None = None) -> str:
    return (level or os.getenv(LOG_LEVEL_ENV) or "INFO").strip().upper()


def configure_logging(level: str | None = None) -> None:
    resolved = resolve_log_level(level)
    logging.basicConfig(level=resolved, format=LOG_FORMAT)
    # Driver chatter stays at WARNING unless debugging the whole run.
    if resolved != "DEBUG":
        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
