"""Conversation API schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ConversationSummary(BaseModel):
    """Single conversation entry in the list response."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    title: str | None = None
    description: str | None = None
    is_shared: bool = False
    last_message_preview: str | None = None
    created_at: datetime
    updated_at: datetime


class ConversationListResponse(BaseModel):
    """Paginated conversation list with cursor metadata."""

    model_config = ConfigDict(frozen=True)

    conversations: list[ConversationSummary]
    next_cursor: str | None = None
    has_next: bool = False


class CreateConversationRequest(BaseModel):
    """Request to start a new conversation."""

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)


class UpdateConversationRequest(BaseModel):
    """Partial metadata update; omitted fields are left untouched."""

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)


class ConversationResponse(BaseModel):
    """Conversation metadata."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    title: str | None = None
    description: str | None = None
    is_shared: bool
    share_token: str | None = None
    created_at: datetime
    updated_at: datetime


class MessageResponse(BaseModel):
    """Single message within a conversation."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    conversation_id: str
    role: str
    content: str
    is_edited: bool
    created_at: datetime
    updated_at: datetime


class ConversationMessagesResponse(BaseModel):
    """All messages for a conversation."""

    model_config = ConfigDict(frozen=True)

    conversation_id: str
    messages: list[MessageResponse]


class ShareResponse(BaseModel):
    """Share link for a conversation."""

    model_config = ConfigDict(frozen=True)

    share_token: str
    share_url: str


class SharedConversationResponse(BaseModel):
    """Read-only public view of a shared conversation."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str | None = None
    description: str | None = None
    created_at: datetime
    messages: list[MessageResponse]
