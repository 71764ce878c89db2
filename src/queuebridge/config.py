"""Typed transport settings, validated once at construction."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .backoff import PollBackoff
from .exceptions import TransportConfigError

_SettingsT = TypeVar("_SettingsT", bound="TransportSettings")


class TransportSettings(BaseModel):
    """Base for adapter settings: immutable, unknown keys rejected."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    @classmethod
    def coerce(
        cls: type[_SettingsT],
        value: _SettingsT | Mapping[str, Any] | None,
    ) -> _SettingsT:
        """Return *value* as a validated settings instance.

        Accepts an instance, a plain mapping, or ``None`` for defaults.

        Raises:
            TransportConfigError: on any validation failure.
        """
        if value is None:
            return cls()
        if isinstance(value, cls):
            return value
        if isinstance(value, TransportSettings):
            raise TransportConfigError(
                f"Expected {cls.__name__}, got {type(value).__name__}"
            )
        if not isinstance(value, Mapping):
            raise TransportConfigError(
                f"Settings must be a mapping or {cls.__name__}, "
                f"got {type(value).__name__}"
            )
        try:
            return cls.model_validate(dict(value))
        except ValidationError as e:
            raise TransportConfigError.from_validation_errors(e.errors()) from e


class BrokerSettings(TransportSettings):
    """Settings for the AMQP broker adapter."""

    robust: bool = Field(
        default=False,
        description="Use aio_pika.connect_robust (reconnects and restores consumers)",
    )
    publisher_confirms: bool = True
    connect_kwargs: dict[str, Any] = Field(default_factory=dict)


class PollingSettings(TransportSettings):
    """Settings for the SQS polling adapter.

    Polling cadence, batch size and poll timeout live here and are never
    visible to callers of the transport contract.
    """

    region_name: str = Field(default="us-east-1", min_length=1)
    wait_time_seconds: int = Field(default=20, ge=0, le=20)
    max_messages: int = Field(default=10, ge=1, le=10)
    visibility_timeout: int = Field(default=30, ge=0, le=43200)
    poll_interval: float = Field(default=0.0, ge=0)
    create_missing_queues: bool = True
    verify_connection: bool = True
    max_poll_failures: int = Field(default=5, ge=1)
    retry_base_delay: float = Field(default=1.0, ge=0)
    retry_max_delay: float = Field(default=30.0, ge=0)
    max_tracked_receipts: int = Field(
        default=10_000,
        ge=1,
        description="Receipt handles remembered for delete; oldest evicted first",
    )
    client_kwargs: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_delays(self) -> PollingSettings:
        if self.retry_base_delay > self.retry_max_delay:
            raise ValueError("retry_base_delay must be <= retry_max_delay")
        return self

    def poll_backoff(self) -> PollBackoff:
        """Backoff applied between consecutive failed poll calls."""
        return PollBackoff(
            max_failures=self.max_poll_failures,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
        )


class MemorySettings(TransportSettings):
    """Settings for the in-memory transport."""

    max_queue_size: int = Field(default=0, ge=0, description="0 means unbounded")
