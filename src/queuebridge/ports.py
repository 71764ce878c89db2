from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .message import Message
    from .stream import MessageStream


@runtime_checkable
class Transport(Protocol):
    """
    Port every queueing backend implements (AMQP broker, SQS, in-memory, …).

    Call ``connect()`` once, then ``send_message()`` / ``receive_messages()``
    freely; pull-style backends additionally require ``delete_message()`` once
    a received message is durably processed.
    """

    async def connect(self, address: str) -> None:
        """
        Establish the session the backend needs.

        Raises:
            MessagingConnectionError: malformed address or unreachable backend.
        """
        ...

    async def send_message(self, queue: str, message: Message) -> None:
        """
        Publish ``message.body`` (and its correlation id) to *queue*.

        The queue is declared on demand when the backend requires it.

        Raises:
            MessagingConnectionError: not connected.
            QueueDeclarationError: the queue could not be declared.
            PublishError: the publish itself failed.
        """
        ...

    async def delete_message(self, message_id: str) -> None:
        """
        Permanently remove a received message.

        A documented no-op for push-style backends where delivery already
        acknowledged the message.
        """
        ...

    async def receive_messages(self, queue: str) -> MessageStream:
        """
        Open a live, unbounded subscription to *queue*.

        Raises:
            MessagingConnectionError: not connected.
            SubscriptionError: the subscription could not be established.
        """
        ...

    async def close(self) -> None:
        """Release the backend connection."""
        ...
