"""Configuration helpers for the risk screening service."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_TRUSTED_DOMAINS: List[str] = [
    "reuters.com",
    "apnews.com",
    "bloomberg.com",
    "wsj.com",
    "ft.com",
    "bbc.co.uk",
    "cnbc.com",
    "theverge.com",
    "techcrunch.com",
    "nytimes.com",
    "sec.gov",
    "nhtsa.gov",
    "ftc.gov",
    "justice.gov",
    "law360.com",
    "courtlistener.com",
]

LOG_FORMAT = "[%(asctime)s] %(levelname)s - %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", populate_by_name=True, extra="ignore"
    )

    openai_api_key: str | None = Field(None, alias="OPENAI_API_KEY")
    judgment_model: str = Field(
        "gpt-4o-mini", description="Model used for verdicts, briefs and context lookups."
    )
    judgment_max_tokens: int = Field(
        400, description="Max output tokens for a single verdict response."
    )
    news_api_key: str | None = Field(None, alias="NEWS_API_KEY")
    news_api_url: str = Field("https://newsapi.org/v2/everything")
    trusted_domains: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_TRUSTED_DOMAINS),
        description="Comma-separated allow-list passed to the retrieval provider.",
    )
    page_size: int = Field(20, ge=1, le=100)
    max_classified_documents: int = Field(
        10, ge=1, description="Documents judged per scan; the rest are dropped."
    )
    brief_top_n: int = Field(5, ge=1)
    retrieval_timeout_seconds: float = Field(5.0, gt=0)
    judgment_timeout_seconds: float = Field(4.0, gt=0)
    brief_timeout_seconds: float = Field(6.0, gt=0)
    lookup_timeout_seconds: float = Field(5.0, gt=0)
    fixtures_path: str | None = Field(
        None,
        alias="RISK_INTEL_FIXTURES",
        description="Curated fixture file for demo/test configurations.",
    )
    demo_mode: bool = Field(
        False,
        alias="RISK_INTEL_DEMO_MODE",
        description="Load the packaged demo fixtures when no fixture file is given.",
    )
    audit_log_path: str | None = Field(
        None,
        alias="AUDIT_LOG_PATH",
        description="JSONL file for audit decisions; in-memory when unset.",
    )
    log_level: str = Field("INFO")

    @field_validator("trusted_domains", mode="before")
    @classmethod
    def _split_domains(cls, value):
        if isinstance(value, str):
            return [part.strip().lower() for part in value.split(",") if part.strip()]
        return value

    @field_validator("log_level")
    @classmethod
    def _check_level(cls, value: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if value.upper() not in valid:
            raise ValueError(f"Invalid log_level: {value}. Must be one of {sorted(valid)}")
        return value.upper()

    def resolved_fixtures_path(self) -> Path | None:
        """Fixture file in effect, if any (explicit path wins over demo mode)."""
        if self.fixtures_path:
            return Path(self.fixtures_path).expanduser()
        if self.demo_mode:
            return Path(__file__).resolve().parent / "data" / "demo_fixtures.json"
        return None


def get_settings() -> Settings:
    """Return a fresh settings instance (reads env and .env each call)."""
    return Settings()


def configure_logging(level: str = "INFO") -> None:
    """Install one stream handler on the package logger."""
    logger = logging.getLogger("risk_intel")
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT))
        logger.addHandler(handler)
    logger.setLevel(level.upper())
