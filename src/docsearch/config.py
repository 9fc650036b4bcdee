"""Centralized configuration for docsearch using Pydantic Settings."""

import logging
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Strictly typed configuration loaded from ``DOCSEARCH_*`` environment variables.

    Every value is validated when the settings object is built, so a bad
    environment fails at startup rather than on the first query.
    """

    model_config = SettingsConfigDict(
        env_prefix="DOCSEARCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    # Index artifact
    index_path: Path = Field(default=Path("index.sqlite"), description="SQLite file holding the index")
    analyzer: Literal["standard", "english"] = Field(
        default="standard",
        description="Analyzer used when a new index is created; existing indexes keep their own",
    )

    # Query defaults
    default_limit: int = Field(default=10, ge=0, description="Results returned per query (0 = all)")
    snippet_length: int = Field(default=150, ge=0, description="Maximum rendered snippet length")
    snippet_style: Literal["plain", "html"] = Field(default="plain", description="Highlight markup style")
    snippet_marker: str = Field(default="...", description="Appended to snippets cut short")

    # Ranking
    bm25_k1: float = Field(default=1.2, ge=0.5, le=3.0, description="BM25 term frequency saturation")
    bm25_b: float = Field(default=0.75, ge=0.0, le=1.0, description="BM25 length normalization")
    title_boost: float = Field(default=2.0, ge=1.0, le=10.0, description="Weight of a title occurrence")
    enable_phrase_bonus: bool = Field(default=False, description="Boost documents where query terms are adjacent")

    # Logging
    log_level: str = Field(default="info", description="Root log level")
    log_json: bool = Field(default=True, description="Emit structured JSON logs")

    @field_validator("analyzer", "snippet_style", mode="before")
    @classmethod
    def _lowercase(cls, value: object) -> object:
        return value.lower() if isinstance(value, str) else value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if not isinstance(logging.getLevelName(normalized), int):
            raise ValueError(f"Unknown log level: {value}")
        return normalized.lower()

    def get_log_level(self) -> int:
        return logging.getLevelName(self.log_level.upper())

    def resolve_limit(self, limit: int | None) -> int | None:
        """Apply the default limit; ``0`` means no limit."""
        if limit is None:
            limit = self.default_limit
        return limit or None
