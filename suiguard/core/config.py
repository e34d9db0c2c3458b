"""Core configuration for the suiguard engine."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Only the orchestrator and the CLI read these; the analysis functions
    take every tunable as an argument.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SUIGUARD_",
        case_sensitive=False,
        extra="ignore",
    )

    # ── App ──────────────────────────────────────────────────────────────
    app_name: str = "suiguard"
    app_env: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # ── Analysis fan-out ─────────────────────────────────────────────────
    parallel_workers: int = Field(default=4, ge=1)

    # ── Model-facing code view ───────────────────────────────────────────
    max_module_chars: int = Field(default=50_000, ge=1)
    max_disassembled_chars: int = Field(default=300_000, ge=1)

    # ── Risk scoring ─────────────────────────────────────────────────────
    default_risk_score: float = Field(default=50.0, ge=0, le=100)
    no_findings_risk_score: float = Field(default=5.0, ge=0, le=100)


@lru_cache
def get_settings() -> Settings:
    """Return cached settings singleton."""
    return Settings()
