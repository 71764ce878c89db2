"""create_transport: the one place that maps tags to adapters."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .amqp import AMQPTransport
from .exceptions import UnknownTransportError
from .memory import InMemoryTransport
from .sqs import SQSTransport

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from .config import TransportSettings
    from .ports import Transport

logger = logging.getLogger("queuebridge.factory")

_TRANSPORTS: dict[str, Callable[[Any], Transport]] = {
    "amqp": AMQPTransport,
    "sqs": SQSTransport,
    "memory": InMemoryTransport,
}


def available_transports() -> list[str]:
    """Return the tags create_transport() accepts."""
    return sorted(_TRANSPORTS)


def create_transport(
    tag: str,
    settings: TransportSettings | Mapping[str, Any] | None = None,
) -> Transport:
    """Build an unconnected transport for *tag*.

    Construction only validates *settings*; nothing is dialed until the
    caller awaits ``connect()``.

    Raises:
        UnknownTransportError: *tag* is not an exact match for a known backend.
        TransportConfigError: *settings* do not validate for that backend.
    """
    factory = _TRANSPORTS.get(tag)
    if factory is None:
        raise UnknownTransportError(tag)
    transport = factory(settings)
    logger.debug("Created %s transport", tag)
    return transport
