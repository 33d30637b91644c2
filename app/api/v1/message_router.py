"""Message history API router."""

from typing import Annotated

from fastapi import APIRouter, Depends

from app.dependencies import bearer_scheme, get_exchange_service, require_role
from app.schemas.message_schema import (
    DeleteMessageResponse,
    EditMessageResponse,
    UpdateMessageRequest,
)
from app.schemas.response_schema import ERROR_RESPONSES, ApiResponse, success_response
from app.services.exchange_service import ExchangeService

router = APIRouter(
    prefix="/api/v1/messages",
    tags=["messages"],
    dependencies=[Depends(bearer_scheme), Depends(require_role("user", "admin"))],
    responses=ERROR_RESPONSES,
)

ExchangeServiceDep = Annotated[ExchangeService, Depends(get_exchange_service)]


@router.patch("/{message_id}", response_model=ApiResponse[EditMessageResponse])
async def edit_message(
    message_id: int,
    request: UpdateMessageRequest,
    exchange_service: ExchangeServiceDep,
) -> dict:
    """Edit a user message; replies after it are discarded."""
    result = await exchange_service.edit_message(message_id, request.content)
    return success_response(result, message="Message updated")


@router.delete("/{message_id}", response_model=ApiResponse[DeleteMessageResponse])
async def delete_message(
    message_id: int,
    exchange_service: ExchangeServiceDep,
) -> dict:
    """Delete a message together with the reply it prompted."""
    result = await exchange_service.delete_message(message_id)
    return success_response(result, message="Message deleted")
