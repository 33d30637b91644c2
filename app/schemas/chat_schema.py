"""Chat exchange request and streaming schemas."""

from typing import Literal

from pydantic import BaseModel, Field

MAX_CONTENT_LENGTH = 32000


class Turn(BaseModel):
    """One ``{role, content}`` entry of a conversation's ordered history."""

    role: Literal["user", "assistant"]
    content: str = Field(..., max_length=MAX_CONTENT_LENGTH)


class ExchangeRequest(BaseModel):
    """Submit the latest user turn together with the history the model should see.

    ``conversation_id`` is optional at the schema level so that a missing id
    is reported as a 400 after rate-limit admission rather than a 422.
    """

    conversation_id: str | None = None
    messages: list[Turn] = Field(default_factory=list, max_length=500)


class RegenerateRequest(BaseModel):
    """Request to regenerate the assistant reply at the end of a conversation."""

    conversation_id: str = Field(..., min_length=1)


class EditMessageRequest(BaseModel):
    """Request to edit a user message and regenerate the reply that follows it."""

    message_id: int = Field(..., description="User message ID to edit")
    content: str = Field(..., min_length=1, max_length=MAX_CONTENT_LENGTH)


class StreamEvent(BaseModel):
    """Server-Sent Event for streaming responses."""

    event: Literal["token", "done", "error"]
    data: str
