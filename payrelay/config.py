"""
Settings — environment-driven configuration (prefix PAYRELAY_).

    PAYRELAY_DATABASE_URL=postgresql+asyncpg://... payrelay serve
    PAYRELAY_CLIENT_RETRY_DELAYS='[1, 3, 5]'
"""

from __future__ import annotations

from datetime import timedelta

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from payrelay.coordinator import CoordinatorPolicy
from payrelay.retry import RetryPolicy


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PAYRELAY_",
        env_file=".env",
        extra="ignore",
    )

    database_url: str = "sqlite+aiosqlite:///./payrelay.db"

    # Coordinator
    record_ttl_days: int = Field(default=30, ge=0)
    gateway_timeout_seconds: float = Field(default=10.0, gt=0)
    max_restarts: int = Field(default=3, ge=0)
    store_retry_attempts: int = Field(default=3, ge=1)
    store_retry_delays: tuple[float, ...] = (0.05, 0.1, 0.2)

    # Client-facing retry advice
    client_retry_delays: tuple[float, ...] = (1.0, 3.0, 5.0)
    client_retry_max_delay: float = Field(default=30.0, gt=0)
    client_max_auto_attempts: int = Field(default=5, ge=1)

    # Reconciliation
    abandonment_threshold_minutes: float = Field(default=15.0, gt=0)
    scan_interval_seconds: float = Field(default=60.0, gt=0)

    # "module:factory" returning a Gateway, or "simulated"
    gateway: str | None = None

    # Logging
    log_level: str = "INFO"
    json_logs: bool = False

    @field_validator("store_retry_delays", "client_retry_delays")
    @classmethod
    def _non_empty(cls, v: tuple[float, ...]) -> tuple[float, ...]:
        if not v:
            raise ValueError("at least one delay is required")
        return v

    @field_validator("log_level")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.upper()

    def coordinator_policy(self) -> CoordinatorPolicy:
        return (
            CoordinatorPolicy()
            .with_record_ttl(days=self.record_ttl_days)
            .with_gateway_timeout(seconds=self.gateway_timeout_seconds)
            .with_max_restarts(self.max_restarts)
            .with_store_retry(
                RetryPolicy()
                .with_initial_delays(*self.store_retry_delays)
                .with_max_delay(max(self.store_retry_delays))
                .with_max_attempts(self.store_retry_attempts)
            )
        )

    def client_retry_policy(self) -> RetryPolicy:
        return (
            RetryPolicy()
            .with_initial_delays(*self.client_retry_delays)
            .with_max_delay(self.client_retry_max_delay)
            .with_max_attempts(self.client_max_auto_attempts)
        )

    def abandonment_threshold(self) -> timedelta:
        return timedelta(minutes=self.abandonment_threshold_minutes)

    def scan_interval(self) -> timedelta:
        return timedelta(seconds=self.scan_interval_seconds)


__all__ = ("Settings",)
