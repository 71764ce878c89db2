"""SQS client management and queue URL resolution."""

from __future__ import annotations

import logging
import re
from typing import Any
from urllib.parse import urlsplit

from aiobotocore.session import AioSession
from botocore.exceptions import BotoCoreError, ClientError

from ..config import PollingSettings
from ..exceptions import MessagingConnectionError, QueueDeclarationError

logger = logging.getLogger("queuebridge.sqs")

_REGION_RE = re.compile(r"^[a-z]{2}(-[a-z]+)+-\d+$")
_NON_EXISTENT_QUEUE = (
    "AWS.SimpleQueueService.NonExistentQueue",
    "QueueDoesNotExist",
)

BACKEND_ERRORS = (BotoCoreError, ClientError, OSError)


def parse_address(address: str) -> dict[str, str]:
    """Map a connect address to client kwargs.

    ``http(s)://host[:port]`` becomes ``endpoint_url``; a bare AWS region
    name becomes ``region_name``.
    """
    address = address.strip()
    if _REGION_RE.match(address):
        return {"region_name": address}
    parts = urlsplit(address)
    if parts.scheme in ("http", "https") and parts.hostname:
        return {"endpoint_url": address}
    raise MessagingConnectionError(f"Malformed SQS address {address!r}")


def _error_code(exc: BaseException) -> str | None:
    response = getattr(exc, "response", None) or {}
    return response.get("Error", {}).get("Code")


class SQSConnectionManager:
    """Manages one aiobotocore SQS client and caches queue URLs."""

    def __init__(
        self,
        settings: PollingSettings | None = None,
        *,
        session: AioSession | None = None,
    ) -> None:
        self._settings = settings or PollingSettings()
        self._session = session or AioSession()
        self._client: Any = None
        self._client_cm: Any = None
        self._queue_urls: dict[str, str] = {}

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def connect(self, address: str) -> None:
        """Create the SQS client for *address*. Idempotent if already connected."""
        if self._client is not None:
            return
        client_kwargs: dict[str, Any] = {
            "region_name": self._settings.region_name,
            **self._settings.client_kwargs,
            **parse_address(address),
        }
        client_cm = self._session.create_client("sqs", **client_kwargs)
        try:
            client = await client_cm.__aenter__()
        except BACKEND_ERRORS as e:
            raise MessagingConnectionError(f"Failed to create SQS client: {e}") from e
        if self._settings.verify_connection:
            try:
                await client.list_queues(MaxResults=1)
            except BACKEND_ERRORS as e:
                await client_cm.__aexit__(None, None, None)
                raise MessagingConnectionError(f"SQS is unreachable: {e}") from e
        self._client_cm = client_cm
        self._client = client
        logger.info(
            "Connected to SQS (%s)",
            client_kwargs.get("endpoint_url") or client_kwargs["region_name"],
        )

    @property
    def client(self) -> Any:
        """Return the client; raises if not connected."""
        if self._client is None:
            raise MessagingConnectionError("Not connected; call connect() first")
        return self._client

    async def get_queue_url(self, queue_name: str) -> str:
        """Resolve queue name to URL, creating the queue when allowed."""
        cached = self._queue_urls.get(queue_name)
        if cached is not None:
            return cached
        client = self.client
        try:
            out = await client.get_queue_url(QueueName=queue_name)
        except BACKEND_ERRORS as e:
            if (
                _error_code(e) not in _NON_EXISTENT_QUEUE
                or not self._settings.create_missing_queues
            ):
                raise QueueDeclarationError(queue_name, e) from e
            try:
                out = await client.create_queue(QueueName=queue_name)
            except BACKEND_ERRORS as create_error:
                raise QueueDeclarationError(queue_name, create_error) from create_error
            logger.info("Created SQS queue %s", queue_name)
        url = str(out["QueueUrl"])
        self._queue_urls[queue_name] = url
        return url

    async def close(self) -> None:
        """Close the client if open."""
        if self._client_cm is not None:
            await self._client_cm.__aexit__(None, None, None)
        self._client_cm = None
        self._client = None
        self._queue_urls.clear()

    async def health_check(self) -> bool:
        """Return True if we can list queues (lightweight check)."""
        if self._client is None:
            return False
        try:
            await self._client.list_queues(MaxResults=1)
            return True
        except BACKEND_ERRORS:
            return False
