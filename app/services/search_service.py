"""Substring search over the current identity's messages."""

import structlog

from app.core.exceptions import BadRequestError
from app.repositories.conversation_repo import ConversationRepository, MessageSearchRow
from app.schemas.search_schema import (
    SearchConversationGroup,
    SearchMessageHit,
    SearchResponse,
)

logger = structlog.get_logger()

MIN_QUERY_LENGTH = 2
DEFAULT_SEARCH_LIMIT = 50


class SearchService:
    """Search messages across the user's own conversations."""

    def __init__(self, repo: ConversationRepository, user_id: int) -> None:
        self._repo = repo
        self._user_id = user_id

    async def search(self, query: str, limit: int = DEFAULT_SEARCH_LIMIT) -> SearchResponse:
        """Return matches grouped by conversation.

        Groups appear in the order of their newest matching message, and
        messages keep newest-first order within a group.
        """
        if len(query) < MIN_QUERY_LENGTH:
            raise BadRequestError(
                f"Search query must be at least {MIN_QUERY_LENGTH} characters",
                code="QUERY_TOO_SHORT",
            )

        rows = await self._repo.search_messages(self._user_id, query, limit)

        heads: dict[str, MessageSearchRow] = {}
        hits: dict[str, list[SearchMessageHit]] = {}
        for row in rows:
            if row.conversation_id not in hits:
                heads[row.conversation_id] = row
                hits[row.conversation_id] = []
            hits[row.conversation_id].append(
                SearchMessageHit(
                    id=row.message_id,
                    role=row.role,
                    content=row.content,
                    created_at=row.created_at,
                )
            )

        results = [
            SearchConversationGroup(
                conversation_id=conversation_id,
                conversation_title=heads[conversation_id].conversation_title,
                conversation_created_at=heads[conversation_id].conversation_created_at,
                messages=messages,
            )
            for conversation_id, messages in hits.items()
        ]

        logger.debug(
            "Message search",
            user_id=self._user_id,
            matches=len(rows),
            conversations=len(results),
        )
        return SearchResponse(query=query, results=results, total_messages=len(rows))
