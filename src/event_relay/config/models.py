"""Pydantic configuration models for the event relay."""

from __future__ import annotations

from datetime import timedelta
from enum import StrEnum
from typing import Self
from urllib.parse import urlparse

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator


class PayloadEncoding(StrEnum):
    """Content types the converter can encode event payloads as."""

    JSON = "application/json"
    XML = "application/xml"


class StoreType(StrEnum):
    """Supported checkpoint store backends."""

    FILE = "file"
    MEMORY = "memory"


class RetryConfig(BaseModel):
    """Retry / backoff configuration for sink delivery."""

    max_attempts: int = Field(default=3, ge=1)
    initial_wait_seconds: float = Field(default=0.5, gt=0)
    max_wait_seconds: float = Field(default=10.0, gt=0)
    multiplier: float = Field(default=2.0, ge=1.0)
    jitter: bool = True


class SourceConfig(BaseModel):
    """Remote event-history endpoint."""

    url: str
    username: str | None = None
    password: SecretStr | None = None
    insecure: bool = False
    timeout_seconds: float = Field(default=30.0, gt=0)
    connect_max_attempts: int = Field(default=5, ge=1)

    @field_validator("url")
    @classmethod
    def validate_host(cls, v: str) -> str:
        """The URL host doubles as the source identity, so it must be present."""
        if not urlparse(v).hostname:
            msg = f"source url '{v}' has no host"
            raise ValueError(msg)
        return v


class SinkConfig(BaseModel):
    """Downstream envelope sink (HTTP endpoint)."""

    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    timeout_seconds: float = Field(default=30.0, gt=0)
    auth_token: SecretStr | None = None
    retry: RetryConfig = RetryConfig()


class CheckpointConfig(BaseModel, frozen=True):
    """Replay window and flush period.

    ``max_age_seconds = 0`` disables replay: every restart begins at the
    current remote time.
    """

    max_age_seconds: float = Field(default=300.0, ge=0)
    period_seconds: float = Field(default=10.0, gt=0)

    @property
    def max_age(self) -> timedelta:
        return timedelta(seconds=self.max_age_seconds)

    @property
    def period(self) -> timedelta:
        return timedelta(seconds=self.period_seconds)


class StoreConfig(BaseModel):
    """Durable checkpoint store location."""

    store_type: StoreType = StoreType.FILE
    path: str | None = None
    key: str = Field(default="checkpoint", min_length=1)

    @model_validator(mode="after")
    def check_path(self) -> Self:
        if self.store_type == StoreType.FILE and not self.path:
            msg = "path is required when store_type is 'file'"
            raise ValueError(msg)
        return self


class RelayConfig(BaseModel, extra="forbid"):
    """Top-level relay configuration: one source, one sink, one checkpoint."""

    relay_id: str = "event-relay"
    source: SourceConfig
    sink: SinkConfig
    checkpoint: CheckpointConfig = CheckpointConfig()
    store: StoreConfig = StoreConfig(store_type=StoreType.MEMORY)
    payload_encoding: PayloadEncoding = PayloadEncoding.JSON
    log_level: str = "info"
    json_logs: bool = False

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.lower()
        if level not in {"debug", "info", "warning", "error", "critical"}:
            msg = f"Unknown log level '{v}'"
            raise ValueError(msg)
        return level
