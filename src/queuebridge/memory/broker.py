"""In-memory broker for testing: named queues inside the current process."""

from __future__ import annotations

import asyncio
import contextlib
import uuid
from typing import ClassVar

from ..exceptions import MessagingConnectionError
from ..message import Message


class InMemoryBroker:
    """Process-local broker with one FIFO per queue name.

    Brokers are looked up by address with :meth:`named`, so two transports
    that connect to the same address share queues. :meth:`disconnect`
    simulates the broker going away: live consumers are woken with
    MessagingConnectionError and further publishes fail.
    """

    _registry: ClassVar[dict[str, InMemoryBroker]] = {}

    def __init__(self, max_queue_size: int = 0) -> None:
        self._max_queue_size = max_queue_size
        self._queues: dict[str, asyncio.Queue[Message]] = {}
        self._published: list[tuple[str, Message]] = []
        self._closed = asyncio.Event()

    @classmethod
    def named(cls, address: str, max_queue_size: int = 0) -> InMemoryBroker:
        """Return the live broker for *address*, creating a fresh one if needed."""
        broker = cls._registry.get(address)
        if broker is None or broker.is_closed:
            broker = cls(max_queue_size=max_queue_size)
            cls._registry[address] = broker
        return broker

    @classmethod
    def reset(cls) -> None:
        """Forget every named broker (for test teardown)."""
        cls._registry.clear()

    @property
    def is_closed(self) -> bool:
        return self._closed.is_set()

    def declare(self, name: str) -> asyncio.Queue[Message]:
        """Return the queue for *name*; declaring twice is harmless."""
        queue = self._queues.get(name)
        if queue is None:
            queue = asyncio.Queue(maxsize=self._max_queue_size)
            self._queues[name] = queue
        return queue

    async def publish(self, name: str, message: Message) -> Message:
        """Enqueue a copy of *message* stamped with a broker-assigned id."""
        if self.is_closed:
            raise MessagingConnectionError("In-memory broker is disconnected")
        stamped = message.model_copy(update={"id": uuid.uuid4().hex})
        await self.declare(name).put(stamped)
        self._published.append((name, stamped))
        return stamped

    async def get(self, name: str) -> Message:
        """Wait for the next message on *name* or for the broker to disconnect."""
        if self.is_closed:
            raise MessagingConnectionError("In-memory broker is disconnected")
        getter = asyncio.ensure_future(self.declare(name).get())
        closed = asyncio.ensure_future(self._closed.wait())
        try:
            done, _ = await asyncio.wait(
                {getter, closed},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for pending in (getter, closed):
                if not pending.done():
                    pending.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await pending
        if getter in done:
            return getter.result()
        raise MessagingConnectionError("In-memory broker is disconnected")

    def disconnect(self) -> None:
        self._closed.set()

    def get_published(self) -> list[tuple[str, Message]]:
        """Return all (queue, message) pairs published so far, in order."""
        return list(self._published)

    def pending(self, name: str) -> int:
        """Number of messages waiting on *name*."""
        queue = self._queues.get(name)
        return queue.qsize() if queue is not None else 0
