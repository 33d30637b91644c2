"""Per-conversation lease guaranteeing a single in-flight completion."""

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import redis.asyncio as redis
import structlog
from redis.asyncio.lock import Lock
from redis.exceptions import LockError

from app.core.exceptions import ConversationBusyError

logger = structlog.get_logger()

CONVERSATION_LOCK_PREFIX = "conversation_lock:"


class ConversationLease:
    """A held conversation lock and when its TTL was last reset."""

    def __init__(self, conversation_id: str, lock: Lock) -> None:
        self.conversation_id = conversation_id
        self.lock = lock
        self.renewed_at = time.monotonic()


class ConversationLock:
    """Redis lease held while a conversation's history is being mutated or streamed.

    A second request against a held conversation is rejected with
    ``ConversationBusyError`` rather than queued. The TTL releases a lease
    whose holder died without cleaning up; a live holder keeps it with
    ``renew``. Release and renewal are token-checked scripts on the server,
    so a lease that already passed to another request is never touched.
    """

    def __init__(self, redis_client: redis.Redis, ttl_ms: int) -> None:  # type: ignore[type-arg]
        self._redis = redis_client
        self._ttl_ms = ttl_ms

    async def acquire(self, conversation_id: str) -> ConversationLease:
        """Take the lease, or raise if another request holds it."""
        lock = self._redis.lock(
            f"{CONVERSATION_LOCK_PREFIX}{conversation_id}",
            timeout=self._ttl_ms / 1000,
            blocking=False,
            thread_local=False,
        )
        if not await lock.acquire():
            logger.info("Conversation busy", conversation_id=conversation_id)
            raise ConversationBusyError
        return ConversationLease(conversation_id, lock)

    async def release(self, lease: ConversationLease) -> None:
        """Drop the lease if it is still ours."""
        try:
            await lease.lock.release()
        except LockError:
            logger.warning(
                "Conversation lease lost before release",
                conversation_id=lease.conversation_id,
            )

    async def renew(self, lease: ConversationLease) -> None:
        """Reset the TTL once a third of it has elapsed since the last reset.

        Raises ``ConversationBusyError`` when the lease has already expired.
        """
        if (time.monotonic() - lease.renewed_at) * 1000 < self._ttl_ms / 3:
            return
        try:
            await lease.lock.reacquire()
        except LockError as exc:
            logger.warning(
                "Conversation lease expired while held",
                conversation_id=lease.conversation_id,
            )
            raise ConversationBusyError from exc
        lease.renewed_at = time.monotonic()

    async def is_held(self, conversation_id: str) -> bool:
        """Check whether any request currently holds the lease."""
        return bool(await self._redis.exists(f"{CONVERSATION_LOCK_PREFIX}{conversation_id}"))

    @asynccontextmanager
    async def hold(self, conversation_id: str) -> AsyncGenerator[None, None]:
        """Hold the lease for the duration of the block."""
        lease = await self.acquire(conversation_id)
        try:
            yield
        finally:
            await self.release(lease)
