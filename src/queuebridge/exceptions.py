"""Messaging exceptions for queuebridge."""

from __future__ import annotations

from typing import Any


class MessagingError(Exception):
    """Root exception for every queuebridge error."""


class MessagingConnectionError(MessagingError):
    """Raised when a connection, channel, or client session cannot be used.

    Fatal to the adapter instance until a fresh ``connect()`` succeeds.
    """


class SubscriptionClosedError(MessagingConnectionError):
    """Raised from a live stream when its underlying subscription ends."""

    def __init__(self, message: str, queue: str | None = None) -> None:
        self.queue = queue
        super().__init__(message)


class _QueueOperationError(MessagingError):
    """Backend failure wrapped with the queue name and the operation."""

    operation = "operation"

    def __init__(self, queue: str, cause: BaseException | str) -> None:
        self.queue = queue
        self.cause = cause
        super().__init__(f"Failed to {self.operation} queue {queue!r}: {cause}")


class QueueDeclarationError(_QueueOperationError):
    """Raised when a queue cannot be declared or resolved."""

    operation = "declare"


class PublishError(_QueueOperationError):
    """Raised when publishing fails. Safe for the caller to retry."""

    operation = "publish to"


class SubscriptionError(_QueueOperationError):
    """Raised when a receive subscription cannot be established."""

    operation = "subscribe to"


class _MessageOperationError(MessagingError):
    """Failure acting on an already received message."""

    operation = "handle"

    def __init__(self, message_id: str, cause: BaseException | str) -> None:
        self.message_id = message_id
        self.cause = cause
        super().__init__(f"Failed to {self.operation} message {message_id!r}: {cause}")


class DeleteError(_MessageOperationError):
    """Raised when a pull-style backend fails to delete a message."""

    operation = "delete"


class VisibilityError(_MessageOperationError):
    """Raised when a pull-style backend cannot change message visibility."""

    operation = "change visibility of"


class UnknownTransportError(MessagingError):
    """Raised by the factory for a tag it does not know."""

    def __init__(self, tag: str) -> None:
        self.tag = tag
        super().__init__(f"Unknown transport type '{tag}'")


class TransportConfigError(MessagingError):
    """Raised when transport settings fail validation.

    Carries structured errors: ``{field: [messages]}``.
    """

    def __init__(self, errors: dict[str, list[str]] | str) -> None:
        if isinstance(errors, str):
            self.errors: dict[str, list[str]] = {"__root__": [errors]}
        else:
            self.errors = errors
        super().__init__(f"Invalid transport settings: {self.errors}")

    @classmethod
    def from_validation_errors(
        cls, errors: list[dict[str, Any]]
    ) -> TransportConfigError:
        """Build from ``pydantic.ValidationError.errors()`` output."""
        grouped: dict[str, list[str]] = {}
        for err in errors:
            field = ".".join(str(part) for part in err.get("loc", ())) or "__root__"
            grouped.setdefault(field, []).append(str(err.get("msg", "invalid")))
        return cls(grouped)
