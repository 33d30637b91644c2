"""Message search schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class SearchMessageHit(BaseModel):
    """A single matching message."""

    model_config = ConfigDict(frozen=True)

    id: int
    role: str
    content: str
    created_at: datetime


class SearchConversationGroup(BaseModel):
    """Matches grouped under their conversation."""

    model_config = ConfigDict(frozen=True)

    conversation_id: str
    conversation_title: str | None = None
    conversation_created_at: datetime
    messages: list[SearchMessageHit]


class SearchResponse(BaseModel):
    """Grouped search results."""

    model_config = ConfigDict(frozen=True)

    query: str
    results: list[SearchConversationGroup]
    total_messages: int
