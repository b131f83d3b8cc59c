"""
Configuration management using Pydantic Settings.
All parameters are loaded from environment variables with sensible defaults.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


APP_BASE_PATH = Path(os.environ.get("BANKREC_BASE_PATH", Path.cwd()))
ENV_FILE_PATH = APP_BASE_PATH / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE_PATH),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: str = Field(default="development")
    app_debug: bool = Field(default=False)
    app_log_level: str = Field(default="INFO")
    log_dir: Optional[Path] = Field(default=None)

    # Server
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000)

    # Remote matcher
    matcher_url: str = Field(
        default="http://localhost:54321/functions/v1/reconcile-bank-statement"
    )
    matcher_api_key: str = Field(default="")
    matcher_timeout_seconds: float = Field(default=120.0)

    # Ledger persistence (PostgREST-style API)
    ledger_api_url: str = Field(default="http://localhost:54321")
    ledger_api_key: str = Field(default="")
    ledger_table: str = Field(default="financial_transactions")
    ledger_timeout_seconds: float = Field(default=30.0)

    # Session parameters
    auto_approve_confidence: int = Field(default=80, ge=0, le=100)
    max_statement_lines: int = Field(default=2000, gt=0)

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
