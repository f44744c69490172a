"""Configuration models using Pydantic."""

from typing import Literal

from pydantic import BaseModel, Field, SecretStr, field_validator


class RegistryConfig(BaseModel):
    """How the registry treats repeated component ids.

    "supersede" replaces the live registration that shares an id;
    "concurrent" keeps every instance, keyed only by instance token.
    """

    instance_policy: Literal["supersede", "concurrent"] = "supersede"


class GatewayConfig(BaseModel):
    """Configuration for request correlation and connection handling."""

    request_timeout_seconds: float = Field(default=30.0, gt=0)
    # "fail" fails pending requests on disconnect; "durable" keeps them
    # pending for transports that redeliver after reconnecting
    disconnect_policy: Literal["fail", "durable"] = "fail"
    settled_memory: int = Field(default=256, ge=1)


class ExecutorConfig(BaseModel):
    """Configuration for command execution."""

    # None = wait for confirmation indefinitely
    confirmation_timeout_seconds: float | None = Field(default=None, gt=0)
    report_results: bool = True
    history_size: int = Field(default=100, ge=1)


class ManifestConfig(BaseModel):
    """Configuration for capability manifest publication."""

    method: str = "capabilities.update"
    publish_before_request: bool = True
    publish_on_change: bool = False

    @field_validator("method")
    @classmethod
    def _method_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("manifest method is required")
        return value


class LoggingConfig(BaseModel):
    """Configuration for log output."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    to_file: bool = False
    retention_days: int = Field(default=7, ge=1)


class SentryConfig(BaseModel):
    """Configuration for Sentry error reporting."""

    dsn: SecretStr | None = None
    environment: str = "production"
    release: str | None = None
    traces_sample_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    send_default_pii: bool = False
    debug: bool = False


class SwitchboardConfig(BaseModel):
    """Root configuration model."""

    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    executor: ExecutorConfig = Field(default_factory=ExecutorConfig)
    manifest: ManifestConfig = Field(default_factory=ManifestConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    sentry: SentryConfig | None = None
