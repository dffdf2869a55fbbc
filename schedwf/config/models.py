"""Configuration models for schedwf."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class NextRunPolicy(str, Enum):
    """How a recurring schedule's next run is computed after a dispatch."""

    SKIP_MISSED = "skip_missed"
    CATCH_UP = "catch_up"


class DatabaseConfig(BaseModel):
    """Database connection configuration."""

    url: str = Field(default="", description="PostgreSQL URL; falls back to SCHEDWF_DATABASE_URL.")
    pool_size: int = Field(default=10, ge=1)
    max_overflow: int = Field(default=5, ge=0)
    pool_timeout: float = Field(default=30.0, gt=0)
    echo: bool = Field(default=False)


class PollerConfig(BaseModel):
    """Poll loop, lease and dispatch tuning."""

    task_name: str = Field(default="schedule-executor", min_length=1, max_length=64)
    poll_interval_seconds: float = Field(default=30.0, gt=0)
    page_size: int = Field(default=50, ge=1, le=1000)
    max_pages_per_cycle: int = Field(default=20, ge=1)
    lease_ttl_seconds: float = Field(default=120.0, gt=0)
    lease_safety_margin_seconds: float = Field(default=10.0, ge=0)
    lease_min_hold_seconds: float = Field(default=1.0, ge=0)
    worker_concurrency: int = Field(default=1, ge=1, le=64)
    next_run_policy: NextRunPolicy = Field(default=NextRunPolicy.SKIP_MISSED)
    oracle_timeout_seconds: float = Field(default=10.0, gt=0)

    @model_validator(mode="after")
    def _check_margin(self) -> PollerConfig:
        if self.lease_safety_margin_seconds >= self.lease_ttl_seconds:
            raise ValueError("lease_safety_margin_seconds must be smaller than lease_ttl_seconds")
        return self

    @property
    def cycle_budget_seconds(self) -> float:
        return self.lease_ttl_seconds - self.lease_safety_margin_seconds


class ConductorEngineConfig(BaseModel):
    """Conductor REST engine configuration."""

    base_url: str = Field(default="http://localhost:8080/api")
    api_token: str = Field(default="")
    timeout_seconds: float = Field(default=10.0, gt=0)


class HatchetEngineConfig(BaseModel):
    """Hatchet engine configuration."""

    server_url: str = Field(default="")
    namespace: str = Field(default="default")
    api_token: str = Field(default="")
    grpc_host_port: str = Field(default="")
    grpc_tls_strategy: str = Field(default="tls")
    active_lookback_hours: int = Field(default=24, ge=1)


class EngineConfig(BaseModel):
    """Workflow engine selection."""

    backend: str = Field(default="conductor", pattern="^(conductor|hatchet)$")
    conductor: ConductorEngineConfig = Field(default_factory=ConductorEngineConfig)
    hatchet: HatchetEngineConfig = Field(default_factory=HatchetEngineConfig)


class LoggingConfig(BaseModel):
    """Root logging configuration."""

    level: str = Field(default="INFO")
    format: str = Field(default="%(asctime)s %(levelname)s %(name)s %(message)s")
    rich: bool = Field(default=False, description="Use rich.logging.RichHandler for console output.")

    @field_validator("level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {value}")
        return level


class SchedwfConfig(BaseSettings):
    """Root configuration model for schedwf."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    poller: PollerConfig = Field(default_factory=PollerConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="SCHEDWF_",
        env_nested_delimiter="__",
        extra="ignore",
    )
