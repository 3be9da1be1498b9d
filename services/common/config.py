from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_APP_NAME = "vbms-service"


class ServiceSettings(BaseSettings):
    """Base settings shared by all FastAPI services."""

    app_name: str = Field(default=DEFAULT_APP_NAME)
    environment: Literal["local", "dev", "staging", "prod"] = Field(default="local")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")
    service_host: str = Field(default="0.0.0.0")
    service_port: int = Field(default=8000)
    enable_metrics: bool = Field(default=True)
    enable_tracing: bool = Field(default=False)
    tracing_endpoint: str | None = Field(default=None)
    tracing_protocol: Literal["http/protobuf", "grpc"] = Field(default="http/protobuf")
    tracing_insecure: bool = Field(default=True)
    tracing_sample_rate: float = Field(default=1.0, ge=0.0, le=1.0)
    database_url: str | None = Field(default=None)
    database_auto_create: bool = Field(default=False)
    frontend_url: str | None = Field(default=None)

    inventory_negative_policy: Literal["clamp", "reject"] = Field(default="clamp")
    inventory_turnover_basis: Literal["reference_period", "window"] = Field(default="reference_period")
    inventory_turnover_reference_days: int = Field(default=30, ge=1)
    inventory_top_moving_limit: int = Field(default=10, ge=1, le=100)
    inventory_expiring_window_days: int = Field(default=7, ge=1)
    inventory_allow_repeat_reversal: bool = Field(default=False)
    inventory_enforce_location_totals: bool = Field(default=False)
    inventory_persistence_timeout_seconds: float = Field(default=5.0, gt=0.0)

    notification_provider: Literal["memory", "smtp"] = Field(default="memory")
    smtp_host: str | None = Field(default=None)
    smtp_port: int = Field(default=587)
    smtp_username: str | None = Field(default=None)
    smtp_password: str | None = Field(default=None)
    smtp_use_tls: bool = Field(default=True)
    smtp_sender: str = Field(default="inventory@vbms.local")
    smtp_timeout_seconds: float = Field(default=10.0, gt=0.0)

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"), env_prefix="SERVICE_", extra="ignore"
    )


@lru_cache
def get_settings() -> ServiceSettings:
    """Return cached service settings."""

    return ServiceSettings()
