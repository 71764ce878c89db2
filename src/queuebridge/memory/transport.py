"""InMemoryTransport: push-style Transport backed by InMemoryBroker."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from ..config import MemorySettings
from ..exceptions import MessagingConnectionError
from ..stream import MessageStream
from .broker import InMemoryBroker

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from ..message import Message

logger = logging.getLogger("queuebridge.memory")


class InMemoryTransport:
    """In-memory adapter with the same contract as the AMQP broker adapter.

    Delivery acknowledges a message, so delete_message() is a no-op. Any
    non-empty address works; transports connected to the same address share
    a broker.
    """

    def __init__(
        self,
        settings: MemorySettings | Mapping[str, Any] | None = None,
    ) -> None:
        self._settings = MemorySettings.coerce(settings)
        self._broker: InMemoryBroker | None = None

    @property
    def broker(self) -> InMemoryBroker:
        """Return the connected broker (e.g. for test assertions)."""
        if self._broker is None or self._broker.is_closed:
            raise MessagingConnectionError("Not connected; call connect() first")
        return self._broker

    async def connect(self, address: str) -> None:
        if not address.strip():
            raise MessagingConnectionError("In-memory address must not be empty")
        if self._broker is not None and not self._broker.is_closed:
            return
        self._broker = InMemoryBroker.named(
            address,
            max_queue_size=self._settings.max_queue_size,
        )
        logger.info("Connected to in-memory broker %s", address)

    async def send_message(self, queue: str, message: Message) -> None:
        await self.broker.publish(queue, message)

    async def delete_message(self, message_id: str) -> None:
        """No-op: delivery already consumed the message."""

    async def receive_messages(self, queue: str) -> MessageStream:
        broker = self.broker
        broker.declare(queue)
        return MessageStream(queue, self._deliveries(broker, queue))

    async def _deliveries(
        self,
        broker: InMemoryBroker,
        queue: str,
    ) -> AsyncIterator[Message]:
        while True:
            yield await broker.get(queue)

    async def close(self) -> None:
        self._broker = None

    async def health_check(self) -> bool:
        return self._broker is not None and not self._broker.is_closed
