"""Application settings and configuration management."""

from functools import lru_cache
from typing import Dict, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Application
    app_name: str = Field(default="Record Search Engine")
    app_version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    workers: int = Field(default=1)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    # CORS
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080", "http://localhost:8000"]
    )

    # Query parser
    default_operator: str = Field(default="AND")
    min_term_length: int = Field(default=1, ge=1)
    max_terms: int = Field(default=50, ge=1)
    support_wildcards: bool = Field(default=True)
    field_mapping: Dict[str, str] = Field(default_factory=dict)

    # Fuzzy matching
    fuzzy_threshold: int = Field(default=60, ge=0, le=100)
    fuzzy_max_distance: int = Field(default=2, ge=0)
    fuzzy_min_length: int = Field(default=2, ge=1)
    fuzzy_transpositions: bool = Field(default=True)
    fuzzy_prefix_matching: bool = Field(default=True)
    case_sensitive: bool = Field(default=False)

    # Relevance scoring
    max_score: float = Field(default=100.0, gt=0)
    normalize_scores: bool = Field(default=True)
    identifier_field: str = Field(default="userId")

    # Pagination
    default_page_size: int = Field(default=20, ge=1)
    max_page_size: int = Field(default=100, ge=1)
    cursor_field: str = Field(default="userId")
    cursor_ttl: int = Field(default=300)  # 5 minutes

    # Search engine
    search_fields: List[str] = Field(default=["userId"])
    max_results: int = Field(default=1000, ge=1)
    max_query_length: int = Field(default=1000, ge=1)
    max_dataset_size: int = Field(default=100_000, ge=1)
    enable_fuzzy: bool = Field(default=True)
    enable_relevance_scoring: bool = Field(default=True)
    cache_enabled: bool = Field(default=True)
    cache_max_entries: int = Field(default=100, ge=1)
    cache_ttl: int = Field(default=300)  # 5 minutes
    performance_tracking: bool = Field(default=True)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra environment variables
    )

    @field_validator("default_operator")
    @classmethod
    def validate_default_operator(cls, v: str) -> str:
        if v.upper() not in ("AND", "OR"):
            raise ValueError("default_operator must be 'AND' or 'OR'")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        if v.lower() not in ("json", "console"):
            raise ValueError("log_format must be 'json' or 'console'")
        return v.lower()


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
