"""AMQPTransport: push-style Transport over a single aio-pika channel."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import aio_pika
from aio_pika.exceptions import AMQPError, ChannelInvalidStateError

from ..config import BrokerSettings
from ..exceptions import (
    PublishError,
    QueueDeclarationError,
    SubscriptionError,
)
from ..message import Message
from ..stream import MessageStream
from .connection import AMQPConnectionManager

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from aio_pika.abc import (
        AbstractChannel,
        AbstractIncomingMessage,
        AbstractQueue,
        AbstractQueueIterator,
    )

logger = logging.getLogger("queuebridge.amqp")

CONTENT_TYPE = "application/json"

_BACKEND_ERRORS = (
    AMQPError,
    ChannelInvalidStateError,
    ConnectionError,
    OSError,
    asyncio.TimeoutError,
)


def _to_message(incoming: AbstractIncomingMessage) -> Message:
    return Message(
        id=incoming.message_id or "",
        correlation_id=incoming.correlation_id or "",
        body=incoming.body,
    )


class AMQPTransport:
    """Broker adapter implementing Transport.

    Queues are declared on demand as non-durable, non-exclusive and never
    auto-deleted: messages do not survive a broker restart. Publishing goes
    to the default exchange with the queue name as routing key.

    The broker closes the channel on channel-level errors such as a
    conflicting queue declaration. That call fails with the wrapped error and
    the next operation opens a fresh channel on the same connection.

    Consumption uses auto-acknowledge. A message counts as processed the
    moment it is handed to the subscription, before application code sees
    it, so a consumer crash after delivery loses that message (at-most-once).
    For the same reason delete_message() is a no-op.
    """

    def __init__(
        self,
        settings: BrokerSettings | Mapping[str, Any] | None = None,
        *,
        connection: AMQPConnectionManager | None = None,
    ) -> None:
        self._settings = BrokerSettings.coerce(settings)
        self._connection = connection or AMQPConnectionManager(self._settings)
        # Declarations and publishes share one channel.
        self._lock = asyncio.Lock()

    async def connect(self, address: str) -> None:
        await self._connection.connect(address)

    async def _declare(self, channel: AbstractChannel, queue: str) -> AbstractQueue:
        try:
            return await channel.declare_queue(
                queue,
                durable=False,
                exclusive=False,
                passive=False,
                auto_delete=False,
                arguments=None,
            )
        except _BACKEND_ERRORS as e:
            raise QueueDeclarationError(queue, e) from e

    async def send_message(self, queue: str, message: Message) -> None:
        """Declare *queue* and publish the message body to it."""
        async with self._lock:
            channel = await self._connection.get_channel()
            declared = await self._declare(channel, queue)
            try:
                await channel.default_exchange.publish(
                    aio_pika.Message(
                        body=message.body,
                        content_type=CONTENT_TYPE,
                        correlation_id=message.correlation_id or None,
                    ),
                    routing_key=declared.name,
                )
            except _BACKEND_ERRORS as e:
                raise PublishError(queue, e) from e
        logger.debug("Published %d bytes to %s", len(message.body), queue)

    async def delete_message(self, message_id: str) -> None:
        """No-op: an auto-acknowledged delivery cannot be deleted afterwards."""

    async def receive_messages(self, queue: str) -> MessageStream:
        """Start an auto-ack consumer on *queue* and stream its deliveries."""
        async with self._lock:
            channel = await self._connection.get_channel()
            declared = await self._declare(channel, queue)
        iterator = declared.iterator(no_ack=True)
        try:
            await iterator.consume()
        except _BACKEND_ERRORS as e:
            raise SubscriptionError(queue, e) from e
        logger.info("Consuming from %s (auto-ack)", queue)
        return MessageStream(queue, self._deliveries(queue, iterator))

    async def _deliveries(
        self,
        queue: str,
        iterator: AbstractQueueIterator,
    ) -> AsyncIterator[Message]:
        try:
            async for incoming in iterator:
                try:
                    message = _to_message(incoming)
                except (TypeError, ValueError):
                    logger.exception("Dropping undecodable delivery on %s", queue)
                    continue
                yield message
        finally:
            try:
                await iterator.close()
            except _BACKEND_ERRORS:
                logger.debug("Error closing consumer on %s", queue, exc_info=True)

    async def close(self) -> None:
        await self._connection.close()

    async def health_check(self) -> bool:
        return await self._connection.health_check()
