"""Ownership-scoped conversation and message operations."""

import base64
import json
import secrets
from datetime import UTC, datetime

from app.core.exceptions import (
    AppException,
    AuthorizationError,
    ConversationNotFoundError,
    MessageNotFoundError,
)
from app.models.conversation import Conversation
from app.models.message import Message
from app.repositories.conversation_repo import ConversationRepository
from app.schemas.conversation_schema import (
    ConversationListResponse,
    ConversationMessagesResponse,
    ConversationResponse,
    ConversationSummary,
    MessageResponse,
    ShareResponse,
    SharedConversationResponse,
)

TITLE_MAX_LENGTH = 50
TITLE_ELLIPSIS = "…"


def derive_title(content: str) -> str:
    """Title from the first user message: 50 characters, ellipsis when cut."""
    if len(content) <= TITLE_MAX_LENGTH:
        return content
    return content[:TITLE_MAX_LENGTH] + TITLE_ELLIPSIS


def encode_cursor(updated_at: datetime, conversation_id: str) -> str:
    """Encode pagination cursor as base64url JSON."""
    payload = {"u": updated_at.isoformat(), "i": conversation_id}
    return base64.urlsafe_b64encode(json.dumps(payload).encode()).decode()


def decode_cursor(cursor: str) -> tuple[datetime, str]:
    """Decode pagination cursor. Raises AppException on invalid input."""
    try:
        raw = base64.urlsafe_b64decode(cursor.encode())
        data = json.loads(raw)
        updated_at = datetime.fromisoformat(data["u"])
        if updated_at.tzinfo is None:
            updated_at = updated_at.replace(tzinfo=UTC)
        conversation_id = str(data["i"])
        return updated_at, conversation_id
    except Exception as exc:
        raise AppException(
            message=f"Invalid cursor: {exc}",
            code="INVALID_CURSOR",
            status_code=400,
        ) from exc


class ConversationService:
    """Conversation store bound to one identity.

    Every lookup resolves the owning conversation first: a missing id raises
    a not-found error, a row owned by someone else raises
    ``AuthorizationError``. Mutations only run after that check.
    """

    def __init__(self, repo: ConversationRepository, user_id: int) -> None:
        self._repo = repo
        self._user_id = user_id

    @property
    def user_id(self) -> int:
        return self._user_id

    async def commit(self) -> None:
        """Commit the request transaction."""
        await self._repo.session.commit()

    # --- Ownership resolution ---

    async def find_owned_conversation(
        self, conversation_id: str, conceal: bool = False
    ) -> Conversation:
        """Resolve a conversation owned by the current identity.

        With ``conceal`` a foreign conversation is reported as missing so that
        its existence is not leaked.
        """
        conversation = await self._repo.find_conversation_by_id(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError
        if conversation.owner_id != self._user_id:
            if conceal:
                raise ConversationNotFoundError
            raise AuthorizationError(message="Not authorized to access this conversation")
        return conversation

    async def get_message(self, message_id: int) -> Message:
        """Resolve a message whose conversation is owned by the current identity."""
        message = await self._repo.find_message_by_id(message_id)
        if message is None:
            raise MessageNotFoundError
        conversation = await self._repo.find_conversation_by_id(message.conversation_id)
        if conversation is None or conversation.owner_id != self._user_id:
            raise AuthorizationError(message="Not authorized to access this message")
        return message

    # --- Message history ---

    async def append_message(self, conversation_id: str, role: str, content: str) -> Message:
        """Append a message to an owned conversation."""
        await self.find_owned_conversation(conversation_id)
        return await self._repo.create_message(conversation_id, role, content)

    async def update_conversation_timestamp(self, conversation_id: str) -> datetime:
        """Advance ``updated_at``; safe to repeat."""
        return await self._repo.touch_conversation(conversation_id)

    async def set_title_if_first_message(
        self, conversation: Conversation, derived_title: str
    ) -> bool:
        """Apply the derived title when the conversation has exactly one message.

        A title set explicitly (at creation or by a metadata edit) is kept.
        """
        if conversation.title is not None:
            return False
        if await self._repo.count_messages(conversation.id) != 1:
            return False
        await self._repo.update_conversation(conversation.id, title=derived_title)
        conversation.title = derived_title
        return True

    async def update_message_content(self, message_id: int, content: str) -> Message:
        """Replace an owned message's content and return the fresh row."""
        message = await self.get_message(message_id)
        await self._repo.update_message_content(message.id, content)
        await self._repo.session.refresh(message)
        return message

    async def delete_messages(self, conversation_id: str, message_ids: list[int]) -> None:
        """Delete owned messages of one conversation in a single statement."""
        await self.find_owned_conversation(conversation_id)
        messages = await self._repo.find_messages_by_conversation_id(conversation_id)
        owned_ids = {m.id for m in messages}
        await self._repo.delete_messages_by_ids(
            [message_id for message_id in message_ids if message_id in owned_ids]
        )

    async def list_messages(self, conversation_id: str) -> list[Message]:
        """Full history of an owned conversation."""
        await self.find_owned_conversation(conversation_id)
        return await self._repo.find_messages_by_conversation_id(conversation_id)

    async def list_messages_after(self, message: Message) -> list[Message]:
        """Every message following ``message`` in its conversation."""
        return await self._repo.find_messages_after(message)

    async def next_message(self, message: Message) -> Message | None:
        """The message directly after ``message``, if any."""
        return await self._repo.find_next_message(message)

    # --- Conversation CRUD ---

    async def create_conversation(
        self, title: str | None = None, description: str | None = None
    ) -> ConversationResponse:
        """Start a new, empty conversation."""
        conversation = await self._repo.create_conversation(
            owner_id=self._user_id,
            title=title,
            description=description,
        )
        return ConversationResponse.model_validate(conversation)

    async def get_messages(self, conversation_id: str) -> ConversationMessagesResponse:
        """Retrieve all messages for a conversation owned by the current user."""
        messages = await self.list_messages(conversation_id)
        return ConversationMessagesResponse(
            conversation_id=conversation_id,
            messages=[MessageResponse.model_validate(msg) for msg in messages],
        )

    async def update_metadata(
        self, conversation_id: str, changes: dict[str, str | None]
    ) -> ConversationResponse:
        """Update title and/or description; only supplied fields change."""
        conversation = await self.find_owned_conversation(conversation_id)
        values = {k: v for k, v in changes.items() if k in ("title", "description")}
        if values:
            await self._repo.update_conversation(conversation.id, **values)
        await self._repo.touch_conversation(conversation.id)
        await self._repo.session.refresh(conversation)
        return ConversationResponse.model_validate(conversation)

    async def delete_conversation(self, conversation_id: str) -> None:
        """Delete a conversation and, by cascade, its messages."""
        conversation = await self.find_owned_conversation(conversation_id)
        await self._repo.delete_conversation(conversation.id)

    async def share(self, conversation_id: str, base_url: str) -> ShareResponse:
        """Publish a conversation, reusing its token when one exists."""
        conversation = await self.find_owned_conversation(conversation_id)
        share_token = conversation.share_token or secrets.token_hex(16)
        await self._repo.update_conversation(
            conversation.id, is_shared=True, share_token=share_token
        )
        return ShareResponse(
            share_token=share_token,
            share_url=f"{base_url.rstrip('/')}/share/{share_token}",
        )

    async def unshare(self, conversation_id: str) -> None:
        """Stop sharing; the token is kept so re-sharing restores the same link."""
        conversation = await self.find_owned_conversation(conversation_id)
        await self._repo.update_conversation(conversation.id, is_shared=False)

    async def list_conversations(
        self,
        limit: int = 20,
        cursor: str | None = None,
    ) -> ConversationListResponse:
        """Return a paginated list of the user's conversations."""
        cursor_updated_at: datetime | None = None
        cursor_id: str | None = None

        if cursor is not None:
            cursor_updated_at, cursor_id = decode_cursor(cursor)

        rows = await self._repo.find_conversations_by_owner(
            owner_id=self._user_id,
            limit=limit + 1,
            cursor_updated_at=cursor_updated_at,
            cursor_id=cursor_id,
        )

        has_next = len(rows) > limit
        page_rows = rows[:limit]

        next_cursor: str | None = None
        if has_next and page_rows:
            last = page_rows[-1]
            next_cursor = encode_cursor(last.updated_at, last.id)

        conversations = [
            ConversationSummary(
                id=r.id,
                title=r.title,
                description=r.description,
                is_shared=r.is_shared,
                last_message_preview=r.last_message_preview,
                created_at=r.created_at,
                updated_at=r.updated_at,
            )
            for r in page_rows
        ]

        return ConversationListResponse(
            conversations=conversations,
            next_cursor=next_cursor,
            has_next=has_next,
        )


class SharedConversationService:
    """Public, read-only access to shared conversations."""

    def __init__(self, repo: ConversationRepository) -> None:
        self._repo = repo

    async def get_shared(self, share_token: str) -> SharedConversationResponse:
        conversation = await self._repo.find_shared_conversation(share_token)
        if conversation is None:
            raise ConversationNotFoundError
        messages = await self._repo.find_messages_by_conversation_id(conversation.id)
        return SharedConversationResponse(
            id=conversation.id,
            title=conversation.title,
            description=conversation.description,
            created_at=conversation.created_at,
            messages=[MessageResponse.model_validate(msg) for msg in messages],
        )
