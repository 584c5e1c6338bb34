"""Configuration using pydantic-settings.

Values come from ``EXTRAGRID_*`` environment variables or a ``.env`` file.
"""

from __future__ import annotations

import re
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from extragrid.cache import RESOLUTION_TTL, SEARCH_TTL, SUGGESTION_TTL
from extragrid.matchers import DEFAULT_FUZZY_THRESHOLD
from extragrid.replace import DEFAULT_HIGHLIGHT
from extragrid.resolver import DEFAULT_SUGGESTION_DEPTH
from extragrid.transport import DEFAULT_TIMEOUT, GRAPH_BASE, MAX_BATCH_REQUESTS
from extragrid.walker import DEFAULT_MAX_DEPTH

LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseSettings):
    """Settings loaded from the environment.

    Only ``access_token`` is needed to talk to Microsoft Graph; everything
    else has a working default.
    """

    model_config = SettingsConfigDict(
        env_prefix="EXTRAGRID_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Microsoft Graph
    graph_base_url: str = GRAPH_BASE
    site_id: str | None = None
    access_token: str = ""
    request_timeout: float = DEFAULT_TIMEOUT

    # Logging
    log_level: str = "INFO"
    json_logs: bool = False

    # Caches (seconds)
    resolution_cache_ttl: float = RESOLUTION_TTL
    suggestion_cache_ttl: float = SUGGESTION_TTL
    search_cache_ttl: float = SEARCH_TTL
    cache_max_entries: int | None = None

    # Traversal
    max_search_depth: int = DEFAULT_MAX_DEPTH
    suggestion_max_depth: int = DEFAULT_SUGGESTION_DEPTH

    # Find / replace
    replace_batch_size: int = MAX_BATCH_REQUESTS
    highlight_color: str = DEFAULT_HIGHLIGHT
    fuzzy_threshold: float = DEFAULT_FUZZY_THRESHOLD

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of: {', '.join(LOG_LEVELS)}")
        return level

    @field_validator("graph_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator(
        "request_timeout", "resolution_cache_ttl", "suggestion_cache_ttl", "search_cache_ttl"
    )
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator("max_search_depth", "suggestion_max_depth")
    @classmethod
    def validate_depth(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @field_validator("cache_max_entries")
    @classmethod
    def validate_max_entries(cls, v: int | None) -> int | None:
        if v is not None and v < 1:
            raise ValueError("must be at least 1")
        return v

    @field_validator("replace_batch_size")
    @classmethod
    def validate_batch_size(cls, v: int) -> int:
        if not 1 <= v <= MAX_BATCH_REQUESTS:
            raise ValueError(f"must be between 1 and {MAX_BATCH_REQUESTS}")
        return v

    @field_validator("highlight_color")
    @classmethod
    def validate_color(cls, v: str) -> str:
        if not re.match(r"^#[0-9A-Fa-f]{6}$", v):
            raise ValueError("must look like #RRGGBB")
        return v.upper()

    @field_validator("fuzzy_threshold")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("must be between 0 and 1")
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
