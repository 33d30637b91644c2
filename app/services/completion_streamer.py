"""Relay a provider completion stream and persist the finished reply."""

import asyncio
from collections.abc import AsyncGenerator, AsyncIterator, Callable, Sequence
from functools import partial

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import PersistenceFailureError, ProviderFailureError
from app.models.message import ASSISTANT_ROLE, Message
from app.repositories.conversation_repo import ConversationRepository
from app.schemas.chat_schema import Turn
from app.services.completion_provider import CompletionProvider

logger = structlog.get_logger()


class CompletionStream:
    """Single-use async iterator of fragments for one completion.

    ``message`` is set once the full reply has been persisted. Iterating a
    second time yields nothing.
    """

    def __init__(
        self, run: Callable[["CompletionStream"], AsyncGenerator[str, None]]
    ) -> None:
        self.message: Message | None = None
        self._fragments = run(self)

    def __aiter__(self) -> AsyncIterator[str]:
        return self._fragments

    async def aclose(self) -> None:
        """Abandon the stream; nothing is persisted unless it already finished."""
        await self._fragments.aclose()


class CompletionStreamer:
    """Streams a completion to the caller and commits it only when it finishes.

    Fragments are forwarded in provider order as soon as they arrive. The
    assistant message is written after the provider stream ends cleanly and
    holds exactly the concatenation of the forwarded fragments. A provider
    error, a read timeout or an abandoned consumer leaves no assistant row.
    Persistence uses its own session because the request session may be
    closed while the response body is still streaming.
    """

    def __init__(
        self,
        provider: CompletionProvider,
        session_factory: async_sessionmaker[AsyncSession],
        read_timeout: float,
    ) -> None:
        self._provider = provider
        self._session_factory = session_factory
        self._read_timeout = read_timeout

    def stream(self, conversation_id: str, turns: Sequence[Turn]) -> CompletionStream:
        """Start a completion for ``turns``; nothing runs until iteration begins."""
        return CompletionStream(
            partial(self._fragments, conversation_id=conversation_id, turns=list(turns))
        )

    async def _fragments(
        self, completion: CompletionStream, conversation_id: str, turns: list[Turn]
    ) -> AsyncGenerator[str, None]:
        parts: list[str] = []
        provider_stream = self._provider.stream(turns)
        try:
            while True:
                try:
                    async with asyncio.timeout(self._read_timeout):
                        fragment = await anext(provider_stream)
                except StopAsyncIteration:
                    break
                except TimeoutError as exc:
                    logger.warning(
                        "Completion stream timed out",
                        conversation_id=conversation_id,
                        timeout=self._read_timeout,
                    )
                    raise ProviderFailureError("Completion provider timed out") from exc
                except Exception as exc:
                    logger.exception(
                        "Completion stream failed",
                        conversation_id=conversation_id,
                    )
                    raise ProviderFailureError from exc

                if not fragment:
                    continue
                parts.append(fragment)
                yield fragment
        except GeneratorExit:
            logger.info(
                "Completion stream abandoned by consumer",
                conversation_id=conversation_id,
                fragments=len(parts),
            )
            raise
        finally:
            aclose = getattr(provider_stream, "aclose", None)
            if aclose is not None:
                await aclose()

        completion.message = await self._persist(conversation_id, "".join(parts))
        logger.info(
            "Completion stream finished",
            conversation_id=conversation_id,
            fragments=len(parts),
            length=len(completion.message.content),
        )

    async def _persist(self, conversation_id: str, content: str) -> Message:
        """Write the assistant message, then advance the conversation timestamp."""
        async with self._session_factory() as session:
            repo = ConversationRepository(session)
            try:
                message = await repo.create_message(conversation_id, ASSISTANT_ROLE, content)
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.exception(
                    "Failed to persist assistant message",
                    conversation_id=conversation_id,
                )
                raise PersistenceFailureError from exc

            try:
                await repo.touch_conversation(conversation_id)
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.exception(
                    "Failed to advance conversation timestamp",
                    conversation_id=conversation_id,
                    message_id=message.id,
                )
                raise PersistenceFailureError(
                    "Reply saved but conversation timestamp was not updated"
                ) from exc
        return message
