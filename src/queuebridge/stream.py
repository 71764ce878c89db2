"""MessageStream: live subscription fed by one background forwarding task."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING, Any

from .exceptions import SubscriptionClosedError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from types import TracebackType

    from .message import Message

logger = logging.getLogger("queuebridge.stream")


class _End:
    """Terminal marker pushed by the forwarding task."""

    __slots__ = ("error",)

    def __init__(self, error: SubscriptionClosedError | None) -> None:
        self.error = error


class MessageStream:
    """Unbounded, non-restartable async iterator of :class:`Message`.

    A single background task drains *source* and hands each message over a
    one-slot queue, so the task blocks until the caller takes the previous
    message. The stream never ends on its own: when the backend subscription
    stops, iteration raises :class:`SubscriptionClosedError` once and then
    ``StopAsyncIteration``.

    Call ``aclose()`` (or use ``async with``) to stop the forwarding task.

    Usage::

        async with await transport.receive_messages("orders") as stream:
            async for message in stream:
                ...
    """

    def __init__(self, queue: str, source: AsyncIterator[Message]) -> None:
        self._queue = queue
        self._source = source
        self._handoff: asyncio.Queue[Message | _End] = asyncio.Queue(maxsize=1)
        self._finished = False
        self._task: asyncio.Task[None] = asyncio.get_running_loop().create_task(
            self._forward(),
            name=f"queuebridge-forward:{queue}",
        )

    @property
    def queue(self) -> str:
        return self._queue

    @property
    def closed(self) -> bool:
        """True once the stream was closed or reported its terminal error."""
        return self._finished

    async def _forward(self) -> None:
        error: SubscriptionClosedError
        try:
            async for message in self._source:
                await self._handoff.put(message)
        except asyncio.CancelledError:
            raise
        except SubscriptionClosedError as e:
            error = e
        except Exception as e:  # noqa: BLE001
            logger.warning("Subscription to %s failed: %s", self._queue, e)
            error = SubscriptionClosedError(
                f"Subscription to queue {self._queue!r} lost: {e}",
                queue=self._queue,
            )
            error.__cause__ = e
        else:
            error = SubscriptionClosedError(
                f"Subscription to queue {self._queue!r} was closed by the backend",
                queue=self._queue,
            )
        finally:
            await _close_source(self._source)
        logger.info("Subscription to %s ended", self._queue)
        await self._handoff.put(_End(error))

    def __aiter__(self) -> MessageStream:
        return self

    async def __anext__(self) -> Message:
        if self._finished:
            raise StopAsyncIteration
        item = await self._handoff.get()
        if isinstance(item, _End):
            self._finished = True
            if item.error is None:
                raise StopAsyncIteration
            raise item.error
        return item

    async def aclose(self) -> None:
        """Stop the forwarding task and release the backend subscription."""
        self._finished = True
        if not self._task.done():
            self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        # Wake a reader still parked in __anext__.
        with contextlib.suppress(asyncio.QueueFull):
            self._handoff.put_nowait(_End(None))

    async def __aenter__(self) -> MessageStream:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()


async def _close_source(source: Any) -> None:
    aclose = getattr(source, "aclose", None)
    if aclose is None:
        return
    try:
        await aclose()
    except Exception:  # noqa: BLE001
        logger.debug("Error while closing subscription source", exc_info=True)
