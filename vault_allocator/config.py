"""Runtime configuration for the allocation core."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .fixed_point import TOLERANCE_PRECISION


class Settings(BaseSettings):
    """Environment-backed settings."""

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    deposit_tolerance_bps: int = Field(
        default=25,
        alias="DEPOSIT_TOLERANCE_BPS",
        description="Relative deposit ratio tolerance, in basis points of the ideal ratio.",
    )
    log_level: str = Field(default="info", alias="LOG_LEVEL")
    log_json: bool = Field(default=True, alias="LOG_JSON")
    metrics_enabled: bool = Field(default=True, alias="METRICS_ENABLED")

    @field_validator("deposit_tolerance_bps")
    @classmethod
    def _check_tolerance(cls, value: int) -> int:
        if value < 0 or value > TOLERANCE_PRECISION:
            raise ValueError(f"DEPOSIT_TOLERANCE_BPS must be within 0..{TOLERANCE_PRECISION}")
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_level(cls, value: object) -> str:
        return str(value or "info").strip().lower()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance so values are loaded once."""

    return Settings()  # type: ignore[call-arg]
