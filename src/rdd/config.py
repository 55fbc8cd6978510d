"""
Runtime settings, read from the environment (and a ``.env`` file if present).

    RDD_DATABASE_URL    SQLAlchemy URL            (default sqlite:///rdd.db)
    RDD_ECHO_SQL        echo statements            (default false)
    RDD_LOG_LEVEL       level for the rdd logger   (default WARNING)
    RDD_CREATE_TABLES   create registered tables   (default true)
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

DEFAULT_DATABASE_URL = "sqlite:///rdd.db"


def _flag(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    database_url: str = DEFAULT_DATABASE_URL
    echo_sql: bool = False
    log_level: str = "WARNING"
    create_tables: bool = True

    model_config = {"frozen": True}

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, v: str) -> str:
        level = v.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"unknown log level {v!r}")
        return level

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> Settings:
        """Build settings from ``RDD_*`` variables after loading ``.env``."""
        load_dotenv(dotenv_path)
        return cls(
            database_url=os.getenv("RDD_DATABASE_URL", DEFAULT_DATABASE_URL),
            echo_sql=_flag(os.getenv("RDD_ECHO_SQL"), False),
            log_level=os.getenv("RDD_LOG_LEVEL", "WARNING"),
            create_tables=_flag(os.getenv("RDD_CREATE_TABLES"), True),
        )


def configure_logging(level: str = "WARNING") -> None:
    """Attach a stream handler to the ``rdd`` logger (once) and set its level."""
    logger = logging.getLogger("rdd")
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
        logger.addHandler(handler)
