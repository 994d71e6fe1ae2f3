from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic.aliases import AliasChoices
from pydantic_settings import BaseSettings, SettingsConfigDict


BACKEND_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=BACKEND_DIR / ".env", env_file_encoding="utf-8", extra="ignore")

    database_url: str = Field(
        default="sqlite:///./staffing.db",
        validation_alias=AliasChoices("database_url", "DATABASE_URL"),
    )

    # Runtime
    environment: str = Field(default="development", validation_alias=AliasChoices("environment", "ENVIRONMENT"))
    log_level: str | None = Field(default=None, validation_alias=AliasChoices("log_level", "LOG_LEVEL"))
    frontend_origin: str = Field(
        default="http://localhost:5173",
        validation_alias=AliasChoices("frontend_origin", "FRONTEND_ORIGIN"),
    )

    # Staffing counts
    # - fixed: every floater contributes floater_weight (0.5 = split across two rooms)
    # - proportional: a floater contributes 1 / rooms they float across in that day/slot
    floater_weight: float = Field(
        default=0.5,
        gt=0,
        le=1,
        validation_alias=AliasChoices("floater_weight", "FLOATER_WEIGHT"),
    )
    floater_weight_mode: str = Field(
        default="fixed",
        validation_alias=AliasChoices("floater_weight_mode", "FLOATER_WEIGHT_MODE"),
    )

    # Rosters re-read right after a save may lag the write.
    refetch_delay_seconds: float = Field(
        default=0.25,
        ge=0,
        validation_alias=AliasChoices("refetch_delay_seconds", "REFETCH_DELAY_SECONDS"),
    )
    stale_roster_grace_seconds: float = Field(
        default=5.0,
        ge=0,
        validation_alias=AliasChoices("stale_roster_grace_seconds", "STALE_ROSTER_GRACE_SECONDS"),
    )

    @field_validator("frontend_origin")
    @classmethod
    def _normalize_frontend_origin(cls, v: str) -> str:
        # Starlette CORS expects the Origin to match exactly (no trailing slash).
        return v.strip().rstrip("/")

    @field_validator("environment")
    @classmethod
    def _normalize_environment(cls, v: str) -> str:
        return (v or "development").strip().lower()

    @field_validator("floater_weight_mode")
    @classmethod
    def _normalize_floater_weight_mode(cls, v: str) -> str:
        v = (v or "fixed").strip().lower()
        if v not in {"fixed", "proportional"}:
            raise ValueError("FLOATER_WEIGHT_MODE must be 'fixed' or 'proportional'")
        return v


settings = Settings()
