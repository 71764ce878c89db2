"""SQSTransport: pull-style Transport with long-polling and explicit delete."""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from collections import OrderedDict
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, NamedTuple

from aiobotocore.session import AioSession

from ..config import PollingSettings
from ..exceptions import (
    DeleteError,
    PublishError,
    SubscriptionClosedError,
    VisibilityError,
)
from ..message import Message
from ..stream import MessageStream
from .connection import BACKEND_ERRORS, SQSConnectionManager

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger("queuebridge.sqs")

CONTENT_TYPE = "application/json"
CORRELATION_ATTRIBUTE = "CorrelationId"
CONTENT_TYPE_ATTRIBUTE = "ContentType"
ENCODING_ATTRIBUTE = "BodyEncoding"


def _string_attribute(value: str) -> dict[str, str]:
    return {"DataType": "String", "StringValue": value}


def encode_body(body: bytes) -> tuple[str, dict[str, dict[str, str]]]:
    """Return the SQS MessageBody for *body* plus any framing attributes.

    SQS only carries text; bytes that are not valid UTF-8 travel base64
    encoded and are flagged with a ``BodyEncoding`` attribute.
    """
    try:
        return body.decode("utf-8"), {}
    except UnicodeDecodeError:
        encoded = base64.b64encode(body).decode("ascii")
        return encoded, {ENCODING_ATTRIBUTE: _string_attribute("base64")}


def decode_body(raw: dict[str, Any]) -> bytes:
    body = raw.get("Body", "")
    attributes = raw.get("MessageAttributes") or {}
    encoding = attributes.get(ENCODING_ATTRIBUTE, {}).get("StringValue")
    if encoding == "base64":
        return base64.b64decode(body, validate=True)
    return body.encode("utf-8")


class _Receipt(NamedTuple):
    queue_url: str
    message_id: str


class SQSTransport:
    """Polling adapter implementing Transport.

    receive_messages() long-polls in a background task and yields each
    message with its receipt handle as ``Message.id``. SQS redelivers any
    message whose visibility timeout expires, so callers must pass that id to
    delete_message() once the message is durably processed.

    Receipt handles stay deletable after their stream is closed. A redelivery
    of the same SQS message replaces its older handle, which SQS no longer
    honours, and at most ``max_tracked_receipts`` handles are remembered.
    """

    def __init__(
        self,
        settings: PollingSettings | Mapping[str, Any] | None = None,
        *,
        session: AioSession | None = None,
        connection: SQSConnectionManager | None = None,
    ) -> None:
        self._settings = PollingSettings.coerce(settings)
        self._connection = connection or SQSConnectionManager(
            self._settings,
            session=session,
        )
        # receipt handle -> where it came from, oldest first
        self._receipts: OrderedDict[str, _Receipt] = OrderedDict()
        # SQS MessageId -> its most recent receipt handle
        self._handles: dict[str, str] = {}

    async def connect(self, address: str) -> None:
        await self._connection.connect(address)

    async def send_message(self, queue: str, message: Message) -> None:
        client = self._connection.client
        queue_url = await self._connection.get_queue_url(queue)
        body, attributes = encode_body(message.body)
        attributes[CONTENT_TYPE_ATTRIBUTE] = _string_attribute(CONTENT_TYPE)
        if message.correlation_id:
            attributes[CORRELATION_ATTRIBUTE] = _string_attribute(
                message.correlation_id
            )
        send_kwargs: dict[str, Any] = {
            "QueueUrl": queue_url,
            "MessageBody": body,
            "MessageAttributes": attributes,
        }
        if queue_url.endswith(".fifo"):
            send_kwargs["MessageGroupId"] = message.correlation_id or "default"
            if message.id:
                send_kwargs["MessageDeduplicationId"] = message.id
        try:
            await client.send_message(**send_kwargs)
        except BACKEND_ERRORS as e:
            raise PublishError(queue, e) from e
        logger.debug("Sent %d bytes to %s", len(message.body), queue)

    async def delete_message(self, message_id: str) -> None:
        """Delete a received message by its receipt handle.

        Raises:
            DeleteError: the id was never handed out by this transport, or
                SQS rejected the delete.
        """
        client = self._connection.client
        receipt = self._receipts.get(message_id)
        if receipt is None:
            raise DeleteError(message_id, "unknown receipt handle")
        try:
            await client.delete_message(
                QueueUrl=receipt.queue_url, ReceiptHandle=message_id
            )
        except BACKEND_ERRORS as e:
            raise DeleteError(message_id, e) from e
        self._forget(message_id)

    async def change_visibility(self, message_id: str, timeout: int) -> None:
        """Extend (or end, with 0) the invisibility of a received message."""
        client = self._connection.client
        receipt = self._receipts.get(message_id)
        if receipt is None:
            raise VisibilityError(message_id, "unknown receipt handle")
        try:
            await client.change_message_visibility(
                QueueUrl=receipt.queue_url,
                ReceiptHandle=message_id,
                VisibilityTimeout=timeout,
            )
        except BACKEND_ERRORS as e:
            raise VisibilityError(message_id, e) from e
        if timeout == 0:
            # Made visible again; a redelivery brings a fresh receipt handle.
            self._forget(message_id)

    async def receive_messages(self, queue: str) -> MessageStream:
        client = self._connection.client
        queue_url = await self._connection.get_queue_url(queue)
        logger.info("Polling %s", queue)
        return MessageStream(queue, self._poll(queue, client, queue_url))

    def _to_message(self, raw: dict[str, Any], queue_url: str) -> Message:
        receipt = str(raw["ReceiptHandle"])
        attributes = raw.get("MessageAttributes") or {}
        correlation = attributes.get(CORRELATION_ATTRIBUTE, {}).get("StringValue", "")
        message = Message(id=receipt, correlation_id=correlation, body=decode_body(raw))
        self._remember(receipt, queue_url, str(raw.get("MessageId", "")))
        return message

    def _remember(self, receipt: str, queue_url: str, message_id: str) -> None:
        if message_id:
            stale = self._handles.get(message_id)
            if stale is not None and stale != receipt:
                self._forget(stale)
            self._handles[message_id] = receipt
        self._receipts[receipt] = _Receipt(queue_url, message_id)
        self._receipts.move_to_end(receipt)
        while len(self._receipts) > self._settings.max_tracked_receipts:
            oldest = next(iter(self._receipts))
            self._forget(oldest)

    def _forget(self, receipt: str) -> None:
        entry = self._receipts.pop(receipt, None)
        if entry is not None and self._handles.get(entry.message_id) == receipt:
            del self._handles[entry.message_id]

    async def _poll(
        self,
        queue: str,
        client: Any,
        queue_url: str,
    ) -> AsyncIterator[Message]:
        backoff = self._settings.poll_backoff()
        while True:
            try:
                out = await client.receive_message(
                    QueueUrl=queue_url,
                    MaxNumberOfMessages=self._settings.max_messages,
                    WaitTimeSeconds=self._settings.wait_time_seconds,
                    VisibilityTimeout=self._settings.visibility_timeout,
                    MessageAttributeNames=["All"],
                )
            except BACKEND_ERRORS as e:
                if not backoff.record_failure():
                    raise SubscriptionClosedError(
                        f"Polling {queue!r} failed {backoff.failures} times"
                        f" in a row: {e}",
                        queue=queue,
                    ) from e
                logger.warning(
                    "Poll %d on %s failed, retrying: %s", backoff.failures, queue, e
                )
                await backoff.sleep()
                continue
            backoff.reset()
            batch = out.get("Messages", [])
            for raw in batch:
                try:
                    message = self._to_message(raw, queue_url)
                except (KeyError, binascii.Error, UnicodeEncodeError):
                    logger.exception("Dropping malformed message on %s", queue)
                    continue
                yield message
            if not batch and self._settings.poll_interval:
                await asyncio.sleep(self._settings.poll_interval)

    async def close(self) -> None:
        await self._connection.close()
        self._receipts.clear()
        self._handles.clear()

    async def health_check(self) -> bool:
        return await self._connection.health_check()
