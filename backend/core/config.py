from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic.aliases import AliasChoices
from pydantic_settings import BaseSettings, SettingsConfigDict


BACKEND_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=BACKEND_DIR / ".env", env_file_encoding="utf-8")

    database_url: str = Field(validation_alias=AliasChoices("database_url", "DATABASE_URL"))

    # Runtime
    environment: str = Field(default="development", validation_alias=AliasChoices("environment", "ENVIRONMENT"))
    frontend_origin: str = Field(
        default="http://localhost:5173",
        validation_alias=AliasChoices("frontend_origin", "FRONTEND_ORIGIN"),
    )

    # Solver
    solver_max_retries: int = Field(
        default=100,
        validation_alias=AliasChoices("solver_max_retries", "SOLVER_MAX_RETRIES"),
    )
    # Full generation and targeted regeneration historically used different caps.
    solver_session_cap_full: int = Field(
        default=4,
        validation_alias=AliasChoices("solver_session_cap_full", "SOLVER_SESSION_CAP_FULL"),
    )
    solver_session_cap_reschedule: int = Field(
        default=30,
        validation_alias=AliasChoices("solver_session_cap_reschedule", "SOLVER_SESSION_CAP_RESCHEDULE"),
    )
    solver_max_nodes_per_attempt: int = Field(
        default=20000,
        validation_alias=AliasChoices("solver_max_nodes_per_attempt", "SOLVER_MAX_NODES_PER_ATTEMPT"),
    )
    default_expected_enrollment: int = Field(
        default=50,
        validation_alias=AliasChoices("default_expected_enrollment", "DEFAULT_EXPECTED_ENROLLMENT"),
    )

    # Worker
    worker_max_runtime_seconds: float = Field(
        default=300.0,
        validation_alias=AliasChoices("worker_max_runtime_seconds", "WORKER_MAX_RUNTIME_SECONDS"),
    )
    worker_watchdog_interval_seconds: float = Field(
        default=5.0,
        validation_alias=AliasChoices("worker_watchdog_interval_seconds", "WORKER_WATCHDOG_INTERVAL_SECONDS"),
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

    @field_validator(
        "solver_max_retries",
        "solver_session_cap_full",
        "solver_session_cap_reschedule",
        "solver_max_nodes_per_attempt",
        "default_expected_enrollment",
    )
    @classmethod
    def _require_positive_int(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    @field_validator("worker_max_runtime_seconds", "worker_watchdog_interval_seconds")
    @classmethod
    def _require_positive_runtime(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be > 0")
        return v


settings = Settings()
