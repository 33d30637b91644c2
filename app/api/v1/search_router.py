"""Message search API router."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request

from app.core.config import settings
from app.core.limiter import limiter
from app.dependencies import bearer_scheme, get_search_service, require_role
from app.schemas.response_schema import ERROR_RESPONSES, ApiResponse, success_response
from app.schemas.search_schema import SearchResponse
from app.services.search_service import DEFAULT_SEARCH_LIMIT, SearchService

router = APIRouter(
    prefix="/api/v1/search",
    tags=["search"],
    dependencies=[Depends(bearer_scheme), Depends(require_role("user", "admin"))],
    responses=ERROR_RESPONSES,
)

SearchServiceDep = Annotated[SearchService, Depends(get_search_service)]


@router.get("", response_model=ApiResponse[SearchResponse])
@limiter.limit(settings.rate_limit.search_rate_limit)
async def search_messages(
    request: Request,
    service: SearchServiceDep,
    q: str = Query(..., max_length=200),
    limit: int = Query(default=DEFAULT_SEARCH_LIMIT, ge=1, le=100),
) -> dict:
    """Search the current user's messages, grouped by conversation."""
    result = await service.search(q, limit=limit)
    return success_response(result)
