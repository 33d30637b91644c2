"""Message edit and delete schemas."""

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.chat_schema import MAX_CONTENT_LENGTH
from app.schemas.conversation_schema import MessageResponse


class UpdateMessageRequest(BaseModel):
    """Replace the content of a user message."""

    content: str = Field(..., min_length=1, max_length=MAX_CONTENT_LENGTH)


class EditMessageResponse(BaseModel):
    """Edited message plus the stale tail that was discarded after it."""

    model_config = ConfigDict(frozen=True)

    message: MessageResponse
    discarded_message_ids: list[int]


class DeleteMessageResponse(BaseModel):
    """Ids removed by a delete, including a paired assistant reply."""

    model_config = ConfigDict(frozen=True)

    deleted_message_ids: list[int]
