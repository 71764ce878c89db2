"""Unified send/receive/delete over interchangeable queueing backends."""

from __future__ import annotations

from .config import BrokerSettings, MemorySettings, PollingSettings, TransportSettings
from .exceptions import (
    DeleteError,
    MessagingConnectionError,
    MessagingError,
    PublishError,
    QueueDeclarationError,
    SubscriptionClosedError,
    SubscriptionError,
    TransportConfigError,
    UnknownTransportError,
    VisibilityError,
)
from .factory import available_transports, create_transport
from .message import Message
from .ports import Transport
from .stream import MessageStream

__all__ = [
    "BrokerSettings",
    "DeleteError",
    "MemorySettings",
    "Message",
    "MessageStream",
    "MessagingConnectionError",
    "MessagingError",
    "PollingSettings",
    "PublishError",
    "QueueDeclarationError",
    "SubscriptionClosedError",
    "SubscriptionError",
    "Transport",
    "TransportConfigError",
    "TransportSettings",
    "UnknownTransportError",
    "VisibilityError",
    "available_transports",
    "create_transport",
]
