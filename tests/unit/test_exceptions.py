"""Tests for application exceptions and their handlers."""

import json
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

from app.core.exceptions import (
    AppException,
    AuthorizationError,
    BadRequestError,
    ConversationBusyError,
    ConversationNotFoundError,
    InvalidMessageRoleError,
    MessageNotFoundError,
    PersistenceFailureError,
    ProviderFailureError,
    RateLimitedError,
    app_exception_handler,
)


class TestTaxonomy:
    """Status codes and error codes."""

    def test_status_and_codes(self) -> None:
        cases: list[tuple[AppException, int, str]] = [
            (BadRequestError("bad"), 400, "BAD_REQUEST"),
            (InvalidMessageRoleError(), 400, "INVALID_ROLE"),
            (AuthorizationError(), 403, "AUTHORIZATION_ERROR"),
            (ConversationNotFoundError(), 404, "CONVERSATION_NOT_FOUND"),
            (MessageNotFoundError(), 404, "MESSAGE_NOT_FOUND"),
            (ConversationBusyError(), 409, "CONVERSATION_BUSY"),
            (RateLimitedError(datetime.now(UTC)), 429, "RATE_LIMITED"),
            (ProviderFailureError(), 502, "PROVIDER_FAILURE"),
            (PersistenceFailureError(), 503, "PERSISTENCE_FAILURE"),
        ]
        for exc, status, code in cases:
            assert exc.status_code == status
            assert exc.code == code

    def test_bad_request_custom_code(self) -> None:
        exc = BadRequestError("Conversation ID required", code="CONVERSATION_ID_REQUIRED")
        assert exc.to_dict() == {
            "status": 400,
            "message": "Conversation ID required",
            "code": "CONVERSATION_ID_REQUIRED",
        }

    def test_rate_limited_carries_reset_time(self) -> None:
        reset = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)
        body = RateLimitedError(reset).to_dict()
        assert body["reset_time"] == reset.isoformat()


class TestHandler:
    """Central JSON rendering."""

    async def test_renders_body(self) -> None:
        response = await app_exception_handler(MagicMock(), ConversationNotFoundError())

        assert response.status_code == 404
        assert json.loads(response.body) == {
            "status": 404,
            "message": "Conversation not found",
            "code": "CONVERSATION_NOT_FOUND",
        }
        assert "retry-after" not in response.headers

    async def test_rate_limit_sets_retry_after(self) -> None:
        reset = datetime.now(UTC) + timedelta(seconds=120)

        response = await app_exception_handler(MagicMock(), RateLimitedError(reset))

        assert response.status_code == 429
        assert 0 < int(response.headers["retry-after"]) <= 120
        assert json.loads(response.body)["reset_time"] == reset.isoformat()
