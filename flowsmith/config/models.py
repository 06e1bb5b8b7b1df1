"""Configuration models for Flowsmith."""

from __future__ import annotations

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RetryConfig(BaseModel):
    """Retry policy for transient action failures."""

    max_retries: int = Field(default=3, ge=0, le=20)
    backoff_base_ms: int = Field(default=500, ge=0)
    backoff_factor: float = Field(default=2.0, ge=1.0)
    backoff_max_ms: int = Field(default=8000, ge=0)


class ExecutionConfig(BaseModel):
    """Execution coordinator configuration."""

    default_timeout_seconds: float = Field(default=30.0, gt=0)
    action_timeouts: dict[str, float] = Field(
        default_factory=dict,
        description="Per action type timeout overrides in seconds.",
    )
    retry: RetryConfig = Field(default_factory=RetryConfig)
    lease_grace_seconds: float = Field(default=5.0, ge=0)

    def timeout_for(self, action_type: str) -> float:
        value = self.action_timeouts.get(action_type)
        if value is None or value <= 0:
            return self.default_timeout_seconds
        return float(value)


class DispatcherConfig(BaseModel):
    """Trigger dispatcher configuration."""

    dedupe_window_seconds: int = Field(default=86400, ge=1)
    allow_unsigned: bool = Field(default=False)
    webhook_secrets: dict[str, str] = Field(
        default_factory=dict,
        description="HMAC secret per provider name.",
    )
    stripe_tolerance_seconds: int = Field(default=300, ge=1)
    owner_required_providers: list[str] = Field(
        default_factory=lambda: ["stripe"],
        description="Providers shared across owners; their events must name an owner.",
    )


class SchedulerConfig(BaseModel):
    """Schedule planner configuration.

    Fire precision is bounded by ``tick_interval_seconds``.
    """

    enabled: bool = Field(default=True)
    tick_interval_seconds: float = Field(default=60.0, gt=0)


class MetricsConfig(BaseModel):
    """Metrics aggregator configuration."""

    recent_executions_limit: int = Field(default=10, ge=1, le=500)
    minutes_saved_per_success: float = Field(
        default=5.0,
        ge=0.0,
        description="Estimated minutes of manual work replaced by one successful execution.",
    )


class DatabaseConfig(BaseModel):
    """Database configuration; empty url selects in-memory stores."""

    url: str = Field(default="")
    echo: bool = Field(default=False)


class HttpConfig(BaseModel):
    """Webhook ingestion HTTP configuration."""

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8080, ge=1, le=65535)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])


class FlowsmithConfig(BaseSettings):
    """Root configuration model for Flowsmith."""

    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    dispatcher: DispatcherConfig = Field(default_factory=DispatcherConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)

    model_config = SettingsConfigDict(
        env_prefix="FLOWSMITH_",
        env_nested_delimiter="__",
        extra="ignore",
    )
