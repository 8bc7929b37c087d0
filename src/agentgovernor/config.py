"""Runtime configuration loaded from the environment and an optional .env file."""

from __future__ import annotations

from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class GovernorSettings(BaseSettings):
    # Storage
    ledger_path: Path = Field(
        default=Path("audit.db"), validation_alias=AliasChoices("GOVERNOR_LEDGER_PATH", "ledger_path")
    )
    policy_path: Path = Field(
        default=Path("policy.json"),
        validation_alias=AliasChoices("GOVERNOR_POLICY_PATH", "policy_path"),
    )

    # Evaluation context
    daily_spend_window_hours: float = Field(
        default=24,
        gt=0,
        validation_alias=AliasChoices("GOVERNOR_DAILY_SPEND_WINDOW_HOURS", "daily_spend_window_hours"),
    )
    summary_limit: int = Field(
        default=10, ge=1, validation_alias=AliasChoices("GOVERNOR_SUMMARY_LIMIT", "summary_limit")
    )

    # Recommendation provider
    gemini_api_key: str | None = Field(
        default=None, validation_alias=AliasChoices("GEMINI_API_KEY", "gemini_api_key")
    )
    gemini_model: str = Field(
        default="gemini-1.5-flash", validation_alias=AliasChoices("GEMINI_MODEL", "gemini_model")
    )
    gemini_mock: bool = Field(
        default=False, validation_alias=AliasChoices("GEMINI_MOCK", "gemini_mock")
    )
    provider_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        validation_alias=AliasChoices("GOVERNOR_PROVIDER_TIMEOUT_SECONDS", "provider_timeout_seconds"),
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )
