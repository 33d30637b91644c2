"""Public read-only access to shared conversations."""

from typing import Annotated

from fastapi import APIRouter, Depends

from app.dependencies import get_shared_conversation_service
from app.schemas.conversation_schema import SharedConversationResponse
from app.schemas.response_schema import ERROR_RESPONSES, ApiResponse, success_response
from app.services.conversation_service import SharedConversationService

router = APIRouter(
    prefix="/api/v1/shared",
    tags=["shared"],
    responses=ERROR_RESPONSES,
)

SharedServiceDep = Annotated[
    SharedConversationService, Depends(get_shared_conversation_service)
]


@router.get("/{share_token}", response_model=ApiResponse[SharedConversationResponse])
async def get_shared_conversation(
    share_token: str,
    service: SharedServiceDep,
) -> dict:
    """Read a shared conversation without authentication."""
    result = await service.get_shared(share_token)
    return success_response(result)
