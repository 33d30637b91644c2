"""Conversation repository for conversation and message database operations."""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.conversation import Conversation, utcnow
from app.models.message import USER_ROLE, Message


@dataclass(frozen=True)
class ConversationWithPreview:
    """Immutable result object for conversation list queries."""

    id: str
    title: str | None
    description: str | None
    is_shared: bool
    last_message_preview: str | None
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class MessageSearchRow:
    """A matched message together with its conversation header."""

    message_id: int
    role: str
    content: str
    created_at: datetime
    conversation_id: str
    conversation_title: str | None
    conversation_created_at: datetime


def _escape_like(value: str) -> str:
    """Escape LIKE wildcards so the query matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _after(message: Message) -> Any:
    """Filter clause for messages strictly after ``message`` in history order."""
    return or_(
        Message.created_at > message.created_at,
        and_(
            Message.created_at == message.created_at,
            Message.id > message.id,
        ),
    )


class ConversationRepository:
    """Encapsulates conversation and message database queries.

    Methods do not check ownership; callers resolve the owning conversation
    first and only then mutate.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @property
    def session(self) -> AsyncSession:
        """The bound session, for callers that own the transaction boundary."""
        return self._session

    # --- Conversations ---

    async def find_conversation_by_id(self, conversation_id: str) -> Conversation | None:
        """Find a conversation by its UUID."""
        result = await self._session.execute(
            select(Conversation).where(Conversation.id == conversation_id)
        )
        return result.scalar_one_or_none()

    async def find_shared_conversation(self, share_token: str) -> Conversation | None:
        """Find a conversation that is currently shared under ``share_token``."""
        result = await self._session.execute(
            select(Conversation).where(
                and_(
                    Conversation.share_token == share_token,
                    Conversation.is_shared.is_(True),
                )
            )
        )
        return result.scalar_one_or_none()

    async def create_conversation(
        self,
        owner_id: int,
        title: str | None = None,
        description: str | None = None,
    ) -> Conversation:
        """Create a new conversation."""
        now = utcnow()
        conversation = Conversation(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            title=title,
            description=description,
            is_shared=False,
            created_at=now,
            updated_at=now,
        )
        self._session.add(conversation)
        await self._session.flush()
        await self._session.refresh(conversation)
        return conversation

    async def find_conversations_by_owner(
        self,
        owner_id: int,
        limit: int,
        cursor_updated_at: datetime | None = None,
        cursor_id: str | None = None,
    ) -> list[ConversationWithPreview]:
        """Fetch owner conversations with keyset pagination (updated_at DESC, id DESC).

        Returns ``limit`` rows. The caller should request ``limit + 1`` to
        detect whether a next page exists.
        """
        # Correlated scalar subquery: latest user message content per conversation
        preview_subq = (
            select(Message.content)
            .where(
                and_(
                    Message.conversation_id == Conversation.id,
                    Message.role == USER_ROLE,
                )
            )
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(1)
            .correlate(Conversation)
            .scalar_subquery()
        )

        stmt = select(
            Conversation.id,
            Conversation.title,
            Conversation.description,
            Conversation.is_shared,
            preview_subq.label("last_message_preview"),
            Conversation.created_at,
            Conversation.updated_at,
        ).where(Conversation.owner_id == owner_id)

        if cursor_updated_at is not None and cursor_id is not None:
            stmt = stmt.where(
                or_(
                    Conversation.updated_at < cursor_updated_at,
                    and_(
                        Conversation.updated_at == cursor_updated_at,
                        Conversation.id < cursor_id,
                    ),
                )
            )

        stmt = stmt.order_by(
            Conversation.updated_at.desc(),
            Conversation.id.desc(),
        ).limit(limit)

        result = await self._session.execute(stmt)
        return [
            ConversationWithPreview(
                id=row.id,
                title=row.title,
                description=row.description,
                is_shared=row.is_shared,
                last_message_preview=row.last_message_preview,
                created_at=row.created_at,
                updated_at=row.updated_at,
            )
            for row in result
        ]

    async def update_conversation(self, conversation_id: str, **values: Any) -> None:
        """Update columns of an existing conversation."""
        await self._session.execute(
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(**values)
        )

    async def touch_conversation(self, conversation_id: str) -> datetime:
        """Advance ``updated_at`` to now and return the new value."""
        now = utcnow()
        await self.update_conversation(conversation_id, updated_at=now)
        return now

    async def delete_conversation(self, conversation_id: str) -> None:
        """Hard-delete a conversation and all of its messages."""
        await self._session.execute(
            delete(Message).where(Message.conversation_id == conversation_id)
        )
        await self._session.execute(
            delete(Conversation).where(Conversation.id == conversation_id)
        )

    # --- Messages ---

    async def count_messages(self, conversation_id: str) -> int:
        """Count messages stored for a conversation."""
        result = await self._session.execute(
            select(func.count(Message.id)).where(
                Message.conversation_id == conversation_id
            )
        )
        return int(result.scalar_one())

    async def find_message_by_id(self, message_id: int) -> Message | None:
        """Find a message by its primary key."""
        result = await self._session.execute(
            select(Message).where(Message.id == message_id)
        )
        return result.scalar_one_or_none()

    async def find_messages_by_conversation_id(
        self, conversation_id: str
    ) -> list[Message]:
        """Retrieve all messages for a conversation in history order."""
        result = await self._session.execute(
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.asc(), Message.id.asc())
        )
        return list(result.scalars().all())

    async def find_messages_after(self, message: Message) -> list[Message]:
        """Retrieve every message that follows ``message`` in its conversation."""
        result = await self._session.execute(
            select(Message)
            .where(
                and_(
                    Message.conversation_id == message.conversation_id,
                    _after(message),
                )
            )
            .order_by(Message.created_at.asc(), Message.id.asc())
        )
        return list(result.scalars().all())

    async def find_next_message(self, message: Message) -> Message | None:
        """Find the message immediately following ``message``."""
        result = await self._session.execute(
            select(Message)
            .where(
                and_(
                    Message.conversation_id == message.conversation_id,
                    _after(message),
                )
            )
            .order_by(Message.created_at.asc(), Message.id.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def create_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
    ) -> Message:
        """Create a single message."""
        now = utcnow()
        message = Message(
            conversation_id=conversation_id,
            role=role,
            content=content,
            is_edited=False,
            created_at=now,
            updated_at=now,
        )
        self._session.add(message)
        await self._session.flush()
        await self._session.refresh(message)
        return message

    async def update_message_content(self, message_id: int, content: str) -> None:
        """Replace message content and mark it edited."""
        await self._session.execute(
            update(Message)
            .where(Message.id == message_id)
            .values(content=content, is_edited=True, updated_at=utcnow())
        )

    async def delete_messages_by_ids(self, message_ids: list[int]) -> None:
        """Hard-delete the given messages."""
        if not message_ids:
            return
        await self._session.execute(delete(Message).where(Message.id.in_(message_ids)))

    async def search_messages(
        self,
        owner_id: int,
        query: str,
        limit: int,
    ) -> list[MessageSearchRow]:
        """Case-insensitive substring search over an owner's messages, newest first."""
        pattern = f"%{_escape_like(query)}%"
        stmt = (
            select(
                Message.id,
                Message.role,
                Message.content,
                Message.created_at,
                Conversation.id.label("conversation_id"),
                Conversation.title.label("conversation_title"),
                Conversation.created_at.label("conversation_created_at"),
            )
            .join(Conversation, Conversation.id == Message.conversation_id)
            .where(
                and_(
                    Conversation.owner_id == owner_id,
                    Message.content.ilike(pattern, escape="\\"),
                )
            )
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [
            MessageSearchRow(
                message_id=row.id,
                role=row.role,
                content=row.content,
                created_at=row.created_at,
                conversation_id=row.conversation_id,
                conversation_title=row.conversation_title,
                conversation_created_at=row.conversation_created_at,
            )
            for row in result
        ]
