"""In-memory transport for tests and local development."""

from __future__ import annotations

from .broker import InMemoryBroker
from .transport import InMemoryTransport

__all__ = [
    "InMemoryBroker",
    "InMemoryTransport",
]
