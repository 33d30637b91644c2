"""History consistency rules for editing and deleting messages."""

from dataclasses import dataclass

import structlog

from app.core.exceptions import InvalidMessageRoleError
from app.models.message import ASSISTANT_ROLE, USER_ROLE, Message
from app.services.conversation_service import ConversationService

logger = structlog.get_logger()


@dataclass(frozen=True)
class EditOutcome:
    """Edited message and the messages after it that no longer apply."""

    message: Message
    stale_messages: list[Message]


class MessageSequencer:
    """Keeps a conversation free of replies whose prompt changed or vanished."""

    def __init__(self, store: ConversationService) -> None:
        self._store = store

    async def edit(self, message_id: int, new_content: str) -> EditOutcome:
        """Rewrite a user message and report the tail that it invalidates.

        The tail is returned, not deleted; callers discard it before
        regenerating.
        """
        message = await self._store.get_message(message_id)
        if message.role != USER_ROLE:
            raise InvalidMessageRoleError

        updated = await self._store.update_message_content(message.id, new_content)
        await self._store.update_conversation_timestamp(updated.conversation_id)
        stale = await self._store.list_messages_after(updated)
        logger.info(
            "Message edited",
            message_id=updated.id,
            conversation_id=updated.conversation_id,
            stale_count=len(stale),
        )
        return EditOutcome(message=updated, stale_messages=stale)

    async def discard(self, conversation_id: str, stale_messages: list[Message]) -> list[int]:
        """Delete a stale tail produced by ``edit``."""
        stale_ids = [m.id for m in stale_messages]
        await self._store.delete_messages(conversation_id, stale_ids)
        return stale_ids

    async def delete(self, message_id: int) -> list[int]:
        """Delete a message; a user prompt takes its direct assistant reply with it."""
        message = await self._store.get_message(message_id)
        doomed = [message.id]

        if message.role == USER_ROLE:
            following = await self._store.next_message(message)
            if following is not None and following.role == ASSISTANT_ROLE:
                doomed.append(following.id)

        await self._store.delete_messages(message.conversation_id, doomed)
        logger.info(
            "Messages deleted",
            conversation_id=message.conversation_id,
            message_ids=doomed,
        )
        return doomed
