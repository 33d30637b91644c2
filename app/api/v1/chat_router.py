"""Chat API router for streamed message exchanges."""

import json
from collections.abc import AsyncGenerator, AsyncIterator
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from app.dependencies import bearer_scheme, get_exchange_service, require_role
from app.schemas.chat_schema import (
    EditMessageRequest,
    ExchangeRequest,
    RegenerateRequest,
    StreamEvent,
)
from app.schemas.response_schema import ERROR_RESPONSES
from app.services.exchange_service import ExchangeService, ExchangeStream

router = APIRouter(
    prefix="/api/v1/chat",
    tags=["chat"],
    dependencies=[Depends(bearer_scheme), Depends(require_role("user", "admin"))],
    responses=ERROR_RESPONSES,
)

ExchangeServiceDep = Annotated[ExchangeService, Depends(get_exchange_service)]

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


async def event_generator(
    events: AsyncIterator[StreamEvent],
) -> AsyncGenerator[str, None]:
    """Serialize stream events as Server-Sent Events."""
    async for event in events:
        event_data = event.model_dump()
        yield f"data: {json.dumps(event_data)}\n\n"


class EventStreamResponse(StreamingResponse):
    """SSE response that closes its exchange however the response ends.

    Covers a client that disconnects before the body is iterated, where the
    body generator never starts and its own cleanup would never run.
    """

    def __init__(self, events: ExchangeStream) -> None:
        super().__init__(
            event_generator(events),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )
        self.events = events

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self.events.aclose()


def sse_response(events: ExchangeStream) -> StreamingResponse:
    return EventStreamResponse(events)


@router.post("/stream")
async def stream_chat(
    request: ExchangeRequest,
    exchange_service: ExchangeServiceDep,
) -> StreamingResponse:
    """Submit the latest user turn and stream the reply as Server-Sent Events."""
    events = await exchange_service.submit_exchange(request)
    return sse_response(events)


@router.post("/edit")
async def edit_and_stream(
    request: EditMessageRequest,
    exchange_service: ExchangeServiceDep,
) -> StreamingResponse:
    """Edit a user message and stream the regenerated reply."""
    events = await exchange_service.stream_edit(request)
    return sse_response(events)


@router.post("/regenerate")
async def regenerate(
    request: RegenerateRequest,
    exchange_service: ExchangeServiceDep,
) -> StreamingResponse:
    """Regenerate the last assistant reply of a conversation."""
    events = await exchange_service.stream_regenerate(request)
    return sse_response(events)
