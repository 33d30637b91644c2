"""End-to-end message exchange: admit, persist the prompt, stream the reply."""

import asyncio
import json
from collections.abc import AsyncGenerator, Awaitable, Callable, Sequence
from functools import partial

import structlog

from app.core.exceptions import AppException, BadRequestError, RateLimitedError
from app.models.message import ASSISTANT_ROLE, USER_ROLE, Message
from app.schemas.chat_schema import (
    EditMessageRequest,
    ExchangeRequest,
    RegenerateRequest,
    StreamEvent,
    Turn,
)
from app.schemas.conversation_schema import MessageResponse
from app.schemas.message_schema import DeleteMessageResponse, EditMessageResponse
from app.services.completion_streamer import CompletionStreamer
from app.services.conversation_lock import ConversationLease, ConversationLock
from app.services.conversation_service import ConversationService, derive_title
from app.services.message_sequencer import MessageSequencer
from app.services.rate_limit_service import RateLimiter, RateLimitPolicy

logger = structlog.get_logger()


def to_turns(messages: Sequence[Message]) -> list[Turn]:
    """Stored history as model turns."""
    return [Turn(role=m.role, content=m.content) for m in messages]  # type: ignore[arg-type]


class ExchangeService:
    """Request-level protocol around the completion streamer.

    Everything that can fail with a status code (admission, validation,
    ownership, the conversation lock, persisting the prompt) happens before
    the returned stream is handed to the response. From then on failures
    are reported as a terminal ``error`` event. The conversation lock is held
    from before the prompt is written until the stream ends, so a
    conversation never has two replies generating at once.
    """

    def __init__(
        self,
        store: ConversationService,
        sequencer: MessageSequencer,
        streamer: CompletionStreamer,
        rate_limiter: RateLimiter,
        lock: ConversationLock,
        policy: RateLimitPolicy,
    ) -> None:
        self._store = store
        self._sequencer = sequencer
        self._streamer = streamer
        self._rate_limiter = rate_limiter
        self._lock = lock
        self._policy = policy

    # --- Streaming operations ---

    async def submit_exchange(
        self, request: ExchangeRequest
    ) -> "ExchangeStream":
        """Persist the trailing user turn and stream the assistant reply."""
        await self._admit()

        if not request.conversation_id:
            raise BadRequestError(
                "Conversation ID required", code="CONVERSATION_ID_REQUIRED"
            )
        conversation = await self._store.find_owned_conversation(
            request.conversation_id, conceal=True
        )
        if not request.messages or request.messages[-1].role != USER_ROLE:
            raise BadRequestError(
                "The last message must be a user message", code="INVALID_TURNS"
            )

        lease = await self._lock.acquire(conversation.id)
        try:
            prompt = request.messages[-1].content
            user_message = await self._store.append_message(
                conversation.id, USER_ROLE, prompt
            )
            await self._store.set_title_if_first_message(
                conversation, derive_title(prompt)
            )
            await self._store.update_conversation_timestamp(conversation.id)
            await self._store.commit()
        except Exception:
            await self._lock.release(lease)
            raise

        logger.info(
            "Exchange admitted",
            conversation_id=conversation.id,
            user_id=self._store.user_id,
            turns=len(request.messages),
        )
        return self._open(lease, request.messages, user_message.id)

    async def stream_edit(
        self, request: EditMessageRequest
    ) -> "ExchangeStream":
        """Edit a user message, drop everything after it, and regenerate the reply."""
        await self._admit()
        target = await self._store.get_message(request.message_id)
        conversation_id = target.conversation_id

        lease = await self._lock.acquire(conversation_id)
        try:
            outcome = await self._sequencer.edit(target.id, request.content)
            await self._sequencer.discard(conversation_id, outcome.stale_messages)
            history = await self._store.list_messages(conversation_id)
            await self._store.commit()
        except Exception:
            await self._lock.release(lease)
            raise

        return self._open(lease, to_turns(history), outcome.message.id)

    async def stream_regenerate(
        self, request: RegenerateRequest
    ) -> "ExchangeStream":
        """Replace the trailing assistant reply, or answer a dangling user turn."""
        await self._admit()
        conversation = await self._store.find_owned_conversation(request.conversation_id)

        lease = await self._lock.acquire(conversation.id)
        try:
            history = await self._store.list_messages(conversation.id)
            if history and history[-1].role == ASSISTANT_ROLE:
                await self._store.delete_messages(conversation.id, [history[-1].id])
                history = history[:-1]
            if not history or history[-1].role != USER_ROLE:
                raise BadRequestError(
                    "No user message to regenerate from", code="NO_MESSAGES"
                )
            await self._store.commit()
        except Exception:
            await self._lock.release(lease)
            raise

        return self._open(lease, to_turns(history), history[-1].id)

    # --- Non-streaming history mutations ---

    async def edit_message(self, message_id: int, content: str) -> EditMessageResponse:
        """Edit a user message and eagerly delete the replies it invalidated."""
        target = await self._store.get_message(message_id)
        async with self._lock.hold(target.conversation_id):
            outcome = await self._sequencer.edit(target.id, content)
            discarded = await self._sequencer.discard(
                target.conversation_id, outcome.stale_messages
            )
            await self._store.commit()
        return EditMessageResponse(
            message=MessageResponse.model_validate(outcome.message),
            discarded_message_ids=discarded,
        )

    async def delete_message(self, message_id: int) -> DeleteMessageResponse:
        """Delete a message, pairing a user prompt with its direct reply."""
        target = await self._store.get_message(message_id)
        async with self._lock.hold(target.conversation_id):
            deleted = await self._sequencer.delete(target.id)
            await self._store.commit()
        return DeleteMessageResponse(deleted_message_ids=deleted)

    async def delete_conversation(self, conversation_id: str) -> None:
        """Delete a conversation unless a reply is still streaming into it."""
        conversation = await self._store.find_owned_conversation(conversation_id)
        async with self._lock.hold(conversation.id):
            await self._store.delete_conversation(conversation.id)
            await self._store.commit()

    # --- Internals ---

    async def _admit(self) -> None:
        """Apply the per-identity exchange rate limit."""
        result = await self._rate_limiter.check(self._store.user_id, self._policy)
        if not result.allowed:
            raise RateLimitedError(reset_time=result.reset_time)

    def _open(
        self,
        lease: ConversationLease,
        turns: Sequence[Turn],
        user_message_id: int,
    ) -> "ExchangeStream":
        return ExchangeStream(
            self._relay(lease, turns, user_message_id),
            partial(self._lock.release, lease),
        )

    async def _relay(
        self,
        lease: ConversationLease,
        turns: Sequence[Turn],
        user_message_id: int,
    ) -> AsyncGenerator[StreamEvent, None]:
        """Forward fragments as events, keeping the lease alive while they arrive."""
        conversation_id = lease.conversation_id
        completion = self._streamer.stream(conversation_id, turns)
        try:
            async for fragment in completion:
                await self._lock.renew(lease)
                yield StreamEvent(event="token", data=fragment)

            assistant_message_id = completion.message.id if completion.message else None
            yield StreamEvent(
                event="done",
                data=json.dumps(
                    {
                        "conversation_id": conversation_id,
                        "user_message_id": user_message_id,
                        "assistant_message_id": assistant_message_id,
                    }
                ),
            )
        except AppException as exc:
            yield StreamEvent(event="error", data=json.dumps(exc.to_dict()))
        except Exception:
            logger.exception("Exchange stream failed", conversation_id=conversation_id)
            yield StreamEvent(
                event="error",
                data=json.dumps(
                    {
                        "status": 500,
                        "message": "Failed to process chat request",
                        "code": "INTERNAL_ERROR",
                    }
                ),
            )
        finally:
            await completion.aclose()


class ExchangeStream:
    """Events of one exchange, owning the conversation lease until closed.

    The lease is released when iteration finishes or when ``aclose`` is
    called, including when the response is torn down before the first
    event was requested.
    """

    def __init__(
        self,
        events: AsyncGenerator[StreamEvent, None],
        release: Callable[[], Awaitable[None]],
    ) -> None:
        self._events = events
        self._release = release
        self._closed = False

    def __aiter__(self) -> "ExchangeStream":
        return self

    async def __anext__(self) -> StreamEvent:
        try:
            return await anext(self._events)
        except StopAsyncIteration:
            await self.aclose()
            raise

    async def aclose(self) -> None:
        """Stop the relay and release the lease; safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        try:
            await self._events.aclose()
        finally:
            await asyncio.shield(self._release())
