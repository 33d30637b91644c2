"""Conversation management API router."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, status

from app.core.config import settings
from app.dependencies import (
    bearer_scheme,
    get_conversation_service,
    get_exchange_service,
    require_role,
)
from app.schemas.conversation_schema import (
    ConversationListResponse,
    ConversationMessagesResponse,
    ConversationResponse,
    CreateConversationRequest,
    ShareResponse,
    UpdateConversationRequest,
)
from app.schemas.response_schema import ERROR_RESPONSES, ApiResponse, success_response
from app.services.conversation_service import ConversationService
from app.services.exchange_service import ExchangeService

router = APIRouter(
    prefix="/api/v1/conversations",
    tags=["conversations"],
    dependencies=[Depends(bearer_scheme), Depends(require_role("user", "admin"))],
    responses=ERROR_RESPONSES,
)

ConversationServiceDep = Annotated[
    ConversationService, Depends(get_conversation_service)
]
ExchangeServiceDep = Annotated[ExchangeService, Depends(get_exchange_service)]


@router.post(
    "",
    response_model=ApiResponse[ConversationResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_conversation(
    request: CreateConversationRequest,
    service: ConversationServiceDep,
) -> dict:
    """Start a new conversation."""
    result = await service.create_conversation(
        title=request.title,
        description=request.description,
    )
    return success_response(result, status=201, message="Conversation created")


@router.get("", response_model=ApiResponse[ConversationListResponse])
async def list_conversations(
    service: ConversationServiceDep,
    cursor: str | None = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
) -> dict:
    """List the current user's conversations with cursor-based pagination."""
    result = await service.list_conversations(limit=limit, cursor=cursor)
    return success_response(result)


@router.get(
    "/{conversation_id}/messages",
    response_model=ApiResponse[ConversationMessagesResponse],
)
async def get_conversation_messages(
    conversation_id: str,
    service: ConversationServiceDep,
) -> dict:
    """Retrieve the message history of a conversation."""
    result = await service.get_messages(conversation_id)
    return success_response(result)


@router.patch(
    "/{conversation_id}",
    response_model=ApiResponse[ConversationResponse],
)
async def update_conversation(
    conversation_id: str,
    request: UpdateConversationRequest,
    service: ConversationServiceDep,
) -> dict:
    """Update the title and/or description of a conversation."""
    result = await service.update_metadata(
        conversation_id,
        request.model_dump(exclude_unset=True),
    )
    return success_response(result, message="Conversation updated")


@router.delete("/{conversation_id}", response_model=ApiResponse[None])
async def delete_conversation(
    conversation_id: str,
    exchange_service: ExchangeServiceDep,
) -> dict:
    """Delete a conversation and all of its messages."""
    await exchange_service.delete_conversation(conversation_id)
    return success_response(None, message="Conversation deleted")


@router.post(
    "/{conversation_id}/share",
    response_model=ApiResponse[ShareResponse],
)
async def share_conversation(
    conversation_id: str,
    request: Request,
    service: ConversationServiceDep,
) -> dict:
    """Publish a conversation under a share link."""
    base_url = settings.completion.public_base_url or str(request.base_url)
    result = await service.share(conversation_id, base_url)
    return success_response(result, message="Conversation shared")


@router.delete("/{conversation_id}/share", response_model=ApiResponse[None])
async def unshare_conversation(
    conversation_id: str,
    service: ConversationServiceDep,
) -> dict:
    """Stop sharing a conversation."""
    await service.unshare(conversation_id)
    return success_response(None, message="Conversation unshared")
