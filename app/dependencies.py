"""Global dependencies for the application."""

from collections.abc import Callable
from functools import lru_cache

import redis.asyncio as redis
from fastapi import Depends, Request
from fastapi.security import HTTPBearer
from langchain_anthropic import ChatAnthropic
from langchain_core.language_models import BaseChatModel
from langchain_openai import ChatOpenAI
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.database import get_async_session, get_session_factory
from app.core.exceptions import AuthenticationError, AuthorizationError
from app.core.redis import get_redis
from app.repositories.conversation_repo import ConversationRepository
from app.services.completion_provider import (
    CompletionProvider,
    LangChainCompletionProvider,
)
from app.services.completion_streamer import CompletionStreamer
from app.services.conversation_lock import ConversationLock
from app.services.conversation_service import (
    ConversationService,
    SharedConversationService,
)
from app.services.exchange_service import ExchangeService
from app.services.message_sequencer import MessageSequencer
from app.services.rate_limit_service import RateLimiter, RateLimitPolicy
from app.services.search_service import SearchService

bearer_scheme = HTTPBearer(auto_error=False)


# --- Model dependencies ---


@lru_cache
def get_llm() -> BaseChatModel:
    """Get the LLM instance based on the configured provider."""
    llm_config = settings.llm
    match llm_config.provider:
        case "openai":
            return ChatOpenAI(
                model=llm_config.openai_model,
                api_key=llm_config.openai_api_key,
                temperature=llm_config.temperature,
                streaming=True,
            )
        case "anthropic":
            return ChatAnthropic(  # type: ignore[call-arg]
                model_name=llm_config.anthropic_model,
                api_key=llm_config.anthropic_api_key,
                temperature=llm_config.temperature,
                streaming=True,
            )
        case _:
            raise ValueError(f"Unsupported LLM provider: {llm_config.provider}")


@lru_cache
def get_completion_provider() -> CompletionProvider:
    """Get the process-wide completion provider."""
    return LangChainCompletionProvider(
        llm=get_llm(),
        system_prompt=settings.completion.system_prompt,
    )


# --- Auth dependencies ---


class CurrentUser(BaseModel):
    """Authenticated user extracted from request state."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    role: str


def get_current_user(request: Request) -> CurrentUser:
    """Extract the authenticated user from middleware-populated state."""
    state = getattr(request, "state", None)
    user_id = getattr(state, "user_id", None) if state else None
    if user_id is None:
        raise AuthenticationError(message="Not authenticated")
    return CurrentUser(
        id=state.user_id,
        email=state.email,
        role=state.role,
    )


def require_role(*allowed_roles: str) -> Callable[..., CurrentUser]:
    """Dependency factory that enforces role-based access control."""

    def _check(
        current_user: CurrentUser = Depends(get_current_user),
    ) -> CurrentUser:
        if current_user.role not in allowed_roles:
            raise AuthorizationError(
                message=f"Role '{current_user.role}' is not permitted"
            )
        return current_user

    return _check


# --- Store dependencies ---


def get_conversation_repository(
    session: AsyncSession = Depends(get_async_session),
) -> ConversationRepository:
    """Get ConversationRepository bound to the current session."""
    return ConversationRepository(session)


def get_conversation_service(
    repo: ConversationRepository = Depends(get_conversation_repository),
    current_user: CurrentUser = Depends(get_current_user),
) -> ConversationService:
    """Get ConversationService for the authenticated user."""
    return ConversationService(repo=repo, user_id=current_user.id)


def get_shared_conversation_service(
    repo: ConversationRepository = Depends(get_conversation_repository),
) -> SharedConversationService:
    """Get SharedConversationService for anonymous readers."""
    return SharedConversationService(repo=repo)


def get_search_service(
    repo: ConversationRepository = Depends(get_conversation_repository),
    current_user: CurrentUser = Depends(get_current_user),
) -> SearchService:
    """Get SearchService for the authenticated user."""
    return SearchService(repo=repo, user_id=current_user.id)


# --- Exchange dependencies ---


def get_redis_client() -> redis.Redis:  # type: ignore[type-arg]
    """Get the active Redis client."""
    return get_redis()


def get_rate_limiter(
    redis_client: redis.Redis = Depends(get_redis_client),  # type: ignore[type-arg]
) -> RateLimiter:
    """Get RateLimiter backed by the active Redis client."""
    return RateLimiter(redis_client)


def get_conversation_lock(
    redis_client: redis.Redis = Depends(get_redis_client),  # type: ignore[type-arg]
) -> ConversationLock:
    """Get ConversationLock backed by the active Redis client."""
    return ConversationLock(redis_client, ttl_ms=settings.completion.lock_ttl_ms)


def get_completion_streamer(
    provider: CompletionProvider = Depends(get_completion_provider),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> CompletionStreamer:
    """Get CompletionStreamer persisting through its own sessions."""
    return CompletionStreamer(
        provider=provider,
        session_factory=session_factory,
        read_timeout=settings.completion.read_timeout_seconds,
    )


def get_message_sequencer(
    service: ConversationService = Depends(get_conversation_service),
) -> MessageSequencer:
    """Get MessageSequencer over the user's conversation store."""
    return MessageSequencer(service)


def get_exchange_service(
    service: ConversationService = Depends(get_conversation_service),
    sequencer: MessageSequencer = Depends(get_message_sequencer),
    streamer: CompletionStreamer = Depends(get_completion_streamer),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
    lock: ConversationLock = Depends(get_conversation_lock),
) -> ExchangeService:
    """Get ExchangeService with all dependencies."""
    policy = RateLimitPolicy(
        name="exchange",
        max_requests=settings.rate_limit.exchange_max_requests,
        window_ms=settings.rate_limit.exchange_window_ms,
    )
    return ExchangeService(
        store=service,
        sequencer=sequencer,
        streamer=streamer,
        rate_limiter=rate_limiter,
        lock=lock,
        policy=policy,
    )
