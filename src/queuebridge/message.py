"""Message: backend-agnostic envelope handed across every transport."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class Message(BaseModel):
    """Immutable envelope: delivery id, correlation id, opaque payload.

    ``body`` is passed through unchanged by every transport. Content-type or
    encoding framing lives in backend metadata, never in the body.
    """

    model_config = ConfigDict(frozen=True)

    id: str = ""
    correlation_id: str = ""
    body: bytes

    def text(self, encoding: str = "utf-8") -> str:
        """Decode the body for callers that know it is text."""
        return self.body.decode(encoding)
