"""Application settings with Pydantic validation and environment loading."""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache
from typing import Annotated, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = "Finora API"
    app_version: str = "1.0.0"
    debug: bool = Field(
        default=False, description="Enable debug mode (disable in production)"
    )
    root_path: str = Field(default="", description="Root path for reverse proxy")
    environment: str = Field(
        default="production",
        description="Environment: development, staging, production",
    )

    # Security
    auth_secret: str = Field(
        default="dev-secret-please-change-in-production-min-32-chars",
        description="Secret key for JWT signing (min 32 chars in production)",
    )
    access_token_expire_minutes: int = Field(
        default=60 * 24 * 7, ge=1, description="JWT expiration in minutes"
    )

    # CORS
    # Comma-separated in the environment
    cors_origins: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["http://localhost:5173", "http://localhost:3000"],
        description="Allowed CORS origins (no wildcards with credentials)",
    )

    # Storage (Valkey is Redis-compatible)
    store_backend: str = Field(
        default="valkey", description="Record store backend: valkey or memory"
    )
    valkey_url: str = Field(
        default="redis://valkey:6379/0", description="Valkey connection URL"
    )
    valkey_max_connections: int = Field(default=10, ge=1, le=100)

    # Market data provider (Alpha Vantage)
    alpha_vantage_api_key: str = Field(
        default="", alias="ALPHA_VANTAGE_KEY", description="Alpha Vantage API key"
    )
    alpha_vantage_base_url: str = Field(
        default="https://www.alphavantage.co/query",
        description="Alpha Vantage query endpoint",
    )
    alpha_vantage_timeout: float = Field(
        default=15.0, ge=1, le=120, description="Provider request timeout in seconds"
    )
    provider_max_retries: int = Field(
        default=3, ge=1, le=5, description="Attempts per provider request on network errors"
    )

    # LLM (any OpenAI-compatible chat completions endpoint)
    llm_api_key: str = Field(default="", description="LLM API key")
    llm_base_url: str | None = Field(
        default=None, description="Override for OpenAI-compatible endpoints (e.g. Groq)"
    )
    llm_model: str = Field(default="gpt-4o-mini", description="Completion model")
    llm_timeout: float = Field(default=20.0, ge=1, le=300)

    # Web search
    web_search_region: str = Field(default="wt-wt", description="DuckDuckGo region code")
    web_search_timeout: float = Field(default=10.0, ge=1, le=60)

    # Cache TTLs - staleness is computed at read time, never stored
    company_data_ttl_seconds: int = Field(default=60 * 60 * 24, ge=1)
    analysis_ttl_seconds: int = Field(default=60 * 60 * 24 * 7, ge=1)
    market_movers_ttl_seconds: int = Field(default=60 * 5, ge=1)
    chat_session_ttl_days: int = Field(default=30, ge=1)

    # Bounds
    max_chart_points: int = Field(default=365, ge=1)
    historical_trend_years: int = Field(default=5, ge=1)
    document_max_text_chars: int = Field(default=15_000, ge=100)
    chat_history_window: int = Field(default=10, ge=0)
    web_search_max_results: int = Field(default=5, ge=1, le=20)
    portfolio_holdings_limit: int = Field(default=20, ge=1)
    document_context_limit: int = Field(default=10, ge=1)
    chat_chart_tail: int = Field(default=30, ge=0)
    market_movers_limit: int = Field(default=10, ge=1)

    # Documents
    upload_dir: str = Field(default="uploads", description="Directory for uploaded files")
    max_upload_bytes: int = Field(default=25 * 1024 * 1024, ge=1)
    document_workers: int = Field(default=1, ge=1, le=16)

    # Logging
    log_level: str = Field(
        default="INFO", description="Log level: DEBUG, INFO, WARNING, ERROR"
    )
    log_format: str = Field(default="json", description="Log format: json or text")

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator("store_backend")
    @classmethod
    def validate_store_backend(cls, v: str) -> str:
        lower = v.lower()
        if lower not in {"valkey", "memory"}:
            raise ValueError("store_backend must be 'valkey' or 'memory'")
        return lower

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid:
            raise ValueError(f"log_level must be one of {valid}")
        return upper

    @property
    def company_data_ttl(self) -> timedelta:
        return timedelta(seconds=self.company_data_ttl_seconds)

    @property
    def analysis_ttl(self) -> timedelta:
        return timedelta(seconds=self.analysis_ttl_seconds)

    @property
    def market_movers_ttl(self) -> timedelta:
        return timedelta(seconds=self.market_movers_ttl_seconds)

    @property
    def chat_session_ttl(self) -> timedelta:
        return timedelta(days=self.chat_session_ttl_days)


@lru_cache
def get_settings() -> Settings:
    """Cached settings factory."""
    return Settings()


settings = get_settings()
