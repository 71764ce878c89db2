"""AMQP broker adapter (aio-pika)."""

from __future__ import annotations

from .connection import AMQPConnectionManager
from .transport import AMQPTransport

__all__ = [
    "AMQPConnectionManager",
    "AMQPTransport",
]
