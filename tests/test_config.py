"""Tests for transport settings validation."""

from __future__ import annotations

import pydantic
import pytest

from queuebridge.config import BrokerSettings, MemorySettings, PollingSettings
from queuebridge.exceptions import TransportConfigError


def test_defaults() -> None:
    settings = PollingSettings()
    assert settings.wait_time_seconds == 20
    assert settings.max_messages == 10
    assert settings.visibility_timeout == 30
    assert BrokerSettings().robust is False
    assert BrokerSettings().publisher_confirms is True


def test_coerce_none_returns_defaults() -> None:
    assert PollingSettings.coerce(None) == PollingSettings()


def test_coerce_instance_is_returned_as_is() -> None:
    settings = BrokerSettings(robust=True)
    assert BrokerSettings.coerce(settings) is settings


def test_coerce_mapping_validates() -> None:
    settings = PollingSettings.coerce({"max_messages": 5, "wait_time_seconds": 1})
    assert settings.max_messages == 5
    assert settings.wait_time_seconds == 1


def test_coerce_reports_every_bad_field() -> None:
    with pytest.raises(TransportConfigError) as exc_info:
        PollingSettings.coerce({"max_messages": 11, "wait_time_seconds": 21})
    assert set(exc_info.value.errors) == {"max_messages", "wait_time_seconds"}
    assert exc_info.value.__cause__ is not None


def test_unknown_keys_are_rejected() -> None:
    with pytest.raises(TransportConfigError) as exc_info:
        BrokerSettings.coerce({"durable": True})
    assert "durable" in exc_info.value.errors


def test_wrong_settings_type_is_rejected() -> None:
    with pytest.raises(TransportConfigError, match="Expected PollingSettings"):
        PollingSettings.coerce(BrokerSettings())
    with pytest.raises(TransportConfigError, match="must be a mapping"):
        MemorySettings.coerce("max_queue_size=1")  # type: ignore[arg-type]


def test_retry_delays_cross_checked() -> None:
    with pytest.raises(TransportConfigError):
        PollingSettings.coerce({"retry_base_delay": 10, "retry_max_delay": 1})


def test_poll_backoff_mirrors_settings() -> None:
    settings = PollingSettings(max_poll_failures=3, retry_base_delay=0.5)
    backoff = settings.poll_backoff()
    assert backoff.max_failures == 3
    assert backoff.base_delay == 0.5
    assert backoff.failures == 0


def test_settings_are_frozen() -> None:
    settings = PollingSettings()
    with pytest.raises(pydantic.ValidationError):
        settings.max_messages = 1  # type: ignore[misc]


def test_max_tracked_receipts_must_be_positive() -> None:
    assert PollingSettings().max_tracked_receipts == 10_000
    with pytest.raises(TransportConfigError):
        PollingSettings.coerce({"max_tracked_receipts": 0})
