"""Pytest fixtures shared by the queuebridge test suite."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Iterator
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from queuebridge.memory import InMemoryBroker

pytest_plugins = ["pytest_asyncio"]


@pytest.fixture(autouse=True)
def _reset_memory_brokers() -> Iterator[None]:
    InMemoryBroker.reset()
    yield
    InMemoryBroker.reset()


# ── Fake aio-pika objects ────────────────────────────────────────────


class FakeQueueIterator:
    """Stands in for aio_pika.queue.QueueIterator over a FakeChannel."""

    def __init__(self, queue: FakeQueue, **kwargs: Any) -> None:
        self._queue = queue
        self.kwargs = kwargs
        self.consumed = False
        self.closed = False

    async def consume(self) -> None:
        if self._queue.channel.consume_error is not None:
            raise self._queue.channel.consume_error
        self.consumed = True

    def __aiter__(self) -> FakeQueueIterator:
        return self

    async def __anext__(self) -> Any:
        channel = self._queue.channel
        if channel.is_closed:
            raise StopAsyncIteration
        getter = asyncio.ensure_future(channel.broker_queue(self._queue.name).get())
        dropped = asyncio.ensure_future(channel.dropped.wait())
        try:
            done, _ = await asyncio.wait(
                {getter, dropped}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for pending in (getter, dropped):
                if not pending.done():
                    pending.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await pending
        if getter in done:
            return getter.result()
        if channel.drop_error is not None:
            raise channel.drop_error
        raise StopAsyncIteration

    async def close(self) -> None:
        self.closed = True


class FakeQueue:
    def __init__(self, channel: FakeChannel, name: str) -> None:
        self.channel = channel
        self.name = name
        self.iterators: list[FakeQueueIterator] = []

    def iterator(self, **kwargs: Any) -> FakeQueueIterator:
        it = FakeQueueIterator(self, **kwargs)
        self.iterators.append(it)
        return it


class FakeExchange:
    def __init__(self, channel: FakeChannel) -> None:
        self._channel = channel
        self.published: list[tuple[Any, str]] = []

    async def publish(self, message: Any, routing_key: str) -> None:
        if self._channel.publish_error is not None:
            raise self._channel.publish_error
        self.published.append((message, routing_key))
        await self._channel.broker_queue(routing_key).put(message)


class FakeChannel:
    """Minimal in-process AMQP channel: default exchange routes by queue name."""

    def __init__(self) -> None:
        self._queues: dict[str, asyncio.Queue[Any]] = {}
        self.declared: list[tuple[str, dict[str, Any]]] = []
        self.default_exchange = FakeExchange(self)
        self.dropped = asyncio.Event()
        self.is_closed = False
        self.declare_error: BaseException | None = None
        self.publish_error: BaseException | None = None
        self.consume_error: BaseException | None = None
        self.drop_error: BaseException | None = None
        # The broker closes a channel on channel-level errors.
        self.close_on_error = False

    def broker_queue(self, name: str) -> asyncio.Queue[Any]:
        return self._queues.setdefault(name, asyncio.Queue())

    async def declare_queue(self, name: str, **kwargs: Any) -> FakeQueue:
        if self.declare_error is not None:
            if self.close_on_error:
                self.is_closed = True
            raise self.declare_error
        self.declared.append((name, kwargs))
        self.broker_queue(name)
        return FakeQueue(self, name)

    def drop(self, error: BaseException | None = None) -> None:
        """Simulate the broker closing the channel under live consumers."""
        self.drop_error = error
        self.is_closed = True
        self.dropped.set()

    async def close(self) -> None:
        self.is_closed = True


@pytest.fixture
def fake_channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def fake_connection(fake_channel: FakeChannel) -> MagicMock:
    conn = MagicMock()
    conn.is_closed = False
    conn.channel = AsyncMock(return_value=fake_channel)
    conn.close = AsyncMock()
    return conn


@pytest.fixture
def patch_aio_pika_connect(
    monkeypatch: pytest.MonkeyPatch, fake_connection: MagicMock
) -> AsyncMock:
    """Route aio_pika.connect / connect_robust to the fake connection."""
    import aio_pika

    dial = AsyncMock(return_value=fake_connection)
    monkeypatch.setattr(aio_pika, "connect", dial)
    monkeypatch.setattr(aio_pika, "connect_robust", dial)
    return dial


# ── Mocked aiobotocore session ───────────────────────────────────────


@pytest.fixture
def sqs_client() -> MagicMock:
    client = MagicMock()
    client.get_queue_url = AsyncMock(
        return_value={"QueueUrl": "https://sqs.us-east-1.amazonaws.com/123/q1"}
    )
    client.create_queue = AsyncMock(
        return_value={"QueueUrl": "https://sqs.us-east-1.amazonaws.com/123/new-queue"}
    )
    client.list_queues = AsyncMock(return_value={"QueueUrls": []})
    client.send_message = AsyncMock(return_value={"MessageId": "m-1"})
    client.delete_message = AsyncMock(return_value={})
    client.change_message_visibility = AsyncMock(return_value={})
    client.receive_message = AsyncMock(return_value={"Messages": []})
    return client


@pytest.fixture
def sqs_session(sqs_client: MagicMock) -> MagicMock:
    session = MagicMock()
    client_cm = MagicMock()
    client_cm.__aenter__ = AsyncMock(return_value=sqs_client)
    client_cm.__aexit__ = AsyncMock(return_value=None)
    session.create_client = MagicMock(return_value=client_cm)
    return session
