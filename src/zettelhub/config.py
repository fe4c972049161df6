"""Configuration module for the Zettelhub index."""

import logging
import os
import re
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config: lives alongside the user's other zettelhub state
_USER_ENV = Path.home() / ".zettelhub" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)

# Directory inside the notebook holding the index and local state.
# Never scanned for notes.
ZH_DIRNAME = ".zh"

# Body tags that look like numbers or CSS hex colours (#fff, #a1b2c3) are noise.
DEFAULT_TAG_EXCLUDE_PATTERNS = [
    r"^\d+$",
    r"^(?=.*\d)[0-9a-f]{3}$",
    r"^(?=.*\d)[0-9a-f]{6}$",
]


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


def _env_patterns(name: str) -> List[str]:
    raw = os.getenv(name)
    if raw is None:
        return list(DEFAULT_TAG_EXCLUDE_PATTERNS)
    return [p.strip() for p in raw.split(",") if p.strip()]


class ZettelhubConfig(BaseModel):
    """Configuration for the notebook index."""

    # Root directory of the notebook; every note path is stored relative to it
    notebook_path: Path = Field(
        default_factory=lambda: Path(os.getenv("ZETTELHUB_NOTEBOOK_PATH", "."))
    )
    # Database configuration. None means <notebook>/.zh/index.db
    database_path: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("ZETTELHUB_DATABASE_PATH"))
            if os.getenv("ZETTELHUB_DATABASE_PATH")
            else None
        )
    )
    # Query configuration
    search_limit: int = Field(
        default_factory=lambda: int(os.getenv("ZETTELHUB_SEARCH_LIMIT", "100"))
    )
    # Tag extraction
    tag_lowercase: bool = Field(
        default_factory=lambda: _env_bool("ZETTELHUB_TAG_LOWERCASE", "true")
    )
    tag_min_length: int = Field(
        default_factory=lambda: int(os.getenv("ZETTELHUB_TAG_MIN_LENGTH", "1"))
    )
    tag_max_length: int = Field(
        default_factory=lambda: int(os.getenv("ZETTELHUB_TAG_MAX_LENGTH", "50"))
    )
    tag_exclude_patterns: List[str] = Field(
        default_factory=lambda: _env_patterns("ZETTELHUB_TAG_EXCLUDE_PATTERNS")
    )
    # Logging configuration
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("ZETTELHUB_LOG_DIR"))
            if os.getenv("ZETTELHUB_LOG_DIR")
            else None
        )
    )
    log_level: str = Field(
        default_factory=lambda: os.getenv("ZETTELHUB_LOG_LEVEL", "INFO").upper()
    )

    @field_validator("tag_exclude_patterns")
    @classmethod
    def validate_patterns(cls, v: List[str]) -> List[str]:
        """Reject exclusion patterns that are not valid regular expressions."""
        for pattern in v:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"Invalid tag exclude pattern '{pattern}': {e}")
        return v

    @model_validator(mode="after")
    def _validate_limits(self) -> "ZettelhubConfig":
        """Validate numeric settings."""
        if self.search_limit < 1:
            raise ValueError("search_limit must be >= 1")
        if self.tag_min_length < 1:
            raise ValueError("tag_min_length must be >= 1")
        if self.tag_max_length < self.tag_min_length:
            raise ValueError("tag_max_length must be >= tag_min_length")
        if self.tag_max_length > 50:
            logger.warning(
                "tag_max_length=%d exceeds the 50 characters the body tag "
                "pattern can match; longer body tags are never extracted",
                self.tag_max_length,
            )
        return self

    def get_notebook_path(self) -> Path:
        """Get the absolute, normalised notebook root."""
        return Path(os.path.abspath(self.notebook_path.expanduser()))

    def get_database_path(self) -> Path:
        """Get the absolute path of the index database."""
        if self.database_path is None:
            return self.get_notebook_path() / ZH_DIRNAME / "index.db"
        if self.database_path.is_absolute():
            return self.database_path
        return self.get_notebook_path() / self.database_path

    def get_db_url(self) -> str:
        """Get the database URL for SQLite."""
        return f"sqlite:///{self.get_database_path()}"


# Create a global config instance
config = ZettelhubConfig()
