"""
Runtime settings — read from the environment (and .env) once at startup.

Nothing in the core engine reads the environment directly; the CLI and the
persistence bootstrap build a Settings object and pass it down.
"""

import os
import logging
from typing import Optional, Set

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger("Config")

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class Settings(BaseModel):
    """Process-wide configuration for a tomekeeper session."""

    data_dir: str = "save_data"
    content_path: Optional[str] = None
    disabled_expansions: Set[str] = Field(default_factory=set)
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        if v.upper() not in VALID_LOG_LEVELS:
            return "INFO"
        return v.upper()


def parse_expansion_list(raw: str) -> Set[str]:
    """Parse 'a, b ,c' into {'a', 'b', 'c'}; blank entries are ignored."""
    disabled = set()
    for part in raw.split(","):
        part = part.strip().lower()
        if part:
            disabled.add(part)
    return disabled


def load_settings(env_file: Optional[str] = None) -> Settings:
    """Load .env (if present) and build Settings from the environment."""
    load_dotenv(env_file)
    settings = Settings(
        data_dir=os.getenv("TOMEKEEPER_DATA_DIR", "save_data"),
        content_path=os.getenv("TOMEKEEPER_CONTENT_PATH") or None,
        disabled_expansions=parse_expansion_list(os.getenv("TOMEKEEPER_DISABLED_EXPANSIONS", "")),
        log_level=os.getenv("TOMEKEEPER_LOG_LEVEL", "INFO"),
    )
    logger.debug(f"Settings loaded: {settings.model_dump()}")
    return settings
