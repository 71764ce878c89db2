"""AMQP connection/channel ownership and health check."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import aio_pika
from aio_pika.exceptions import AMQPError, ChannelInvalidStateError

from ..config import BrokerSettings
from ..exceptions import MessagingConnectionError

if TYPE_CHECKING:
    from aio_pika.abc import AbstractChannel, AbstractConnection

logger = logging.getLogger("queuebridge.amqp")

_CHANNEL_ERRORS = (AMQPError, ChannelInvalidStateError, ConnectionError, OSError)


class AMQPConnectionManager:
    """Owns exactly one connection and one channel to an AMQP broker.

    Call connect() before use and close() on shutdown. Nothing is shared
    between manager instances.
    """

    def __init__(self, settings: BrokerSettings | None = None) -> None:
        self._settings = settings or BrokerSettings()
        self._connection: AbstractConnection | None = None
        self._channel: AbstractChannel | None = None

    @property
    def is_connected(self) -> bool:
        return (
            self._connection is not None
            and self._channel is not None
            and not self._connection.is_closed
            and not self._channel.is_closed
        )

    async def connect(self, url: str) -> None:
        """Dial *url* and open one channel. Idempotent if already connected.

        If only the channel was closed (the broker closes a channel on any
        channel-level error) a fresh channel is opened on the live connection.
        On failure nothing is retained: a connection dialed before a failing
        channel open is closed again.
        """
        if self.is_connected:
            return
        if self._connection is not None and not self._connection.is_closed:
            await self.reopen_channel()
            return
        dial = aio_pika.connect_robust if self._settings.robust else aio_pika.connect
        try:
            connection = await dial(url, **self._settings.connect_kwargs)
        except (AMQPError, ConnectionError, OSError, ValueError) as e:
            raise MessagingConnectionError(
                f"Failed to connect to broker: {e}"
            ) from e
        try:
            channel = await self._open_channel(connection)
        except MessagingConnectionError:
            await _discard(connection)
            raise
        self._connection = connection
        self._channel = channel
        logger.info("Connected to AMQP broker")

    async def _open_channel(self, connection: AbstractConnection) -> AbstractChannel:
        try:
            return await connection.channel(
                publisher_confirms=self._settings.publisher_confirms,
            )
        except _CHANNEL_ERRORS as e:
            raise MessagingConnectionError(f"Failed to open channel: {e}") from e

    async def reopen_channel(self) -> AbstractChannel:
        """Replace a channel the broker closed with a fresh one.

        Raises MessagingConnectionError when not connected or when the
        connection itself is gone.
        """
        if self._connection is None:
            raise MessagingConnectionError("Not connected; call connect() first")
        if self._connection.is_closed:
            raise MessagingConnectionError("Connection to broker is closed")
        self._channel = await self._open_channel(self._connection)
        logger.info("Reopened AMQP channel")
        return self._channel

    async def get_channel(self) -> AbstractChannel:
        """Return an open channel, reopening it if only the channel died."""
        if self._channel is not None and not self._channel.is_closed:
            return self._channel
        return await self.reopen_channel()

    async def close(self) -> None:
        """Close channel and connection."""
        channel, self._channel = self._channel, None
        connection, self._connection = self._connection, None
        if channel is not None and not channel.is_closed:
            await channel.close()
        if connection is not None:
            await connection.close()

    @property
    def channel(self) -> AbstractChannel:
        """Return the open channel; raises if not connected or closed."""
        if self._channel is None:
            raise MessagingConnectionError("Not connected; call connect() first")
        if self._channel.is_closed:
            raise MessagingConnectionError("Channel is closed")
        return self._channel

    async def health_check(self) -> bool:
        """Return True if connection and channel are open."""
        if self._connection is None or self._channel is None:
            return False
        return not (self._connection.is_closed or self._channel.is_closed)


async def _discard(connection: AbstractConnection) -> None:
    try:
        await connection.close()
    except _CHANNEL_ERRORS:
        logger.debug("Error closing half-open AMQP connection", exc_info=True)
