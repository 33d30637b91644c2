"""Integration tests for AuthMiddleware."""

from datetime import UTC, datetime, timedelta

import fakeredis.aioredis
import jwt
from httpx import AsyncClient

from app.core.config import settings
from app.services.token_service import BLACKLIST_PREFIX, TokenService
from tests.conftest import make_auth_headers


def encode(payload: dict) -> str:
    return jwt.encode(
        payload,
        settings.auth.secret_key.get_secret_value(),
        algorithm=settings.auth.algorithm,
    )


class TestPublicPaths:
    """Tests that public paths are accessible without auth."""

    async def test_health_check(self, async_client: AsyncClient) -> None:
        resp = await async_client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["data"] == {"status": "healthy"}

    async def test_root(self, async_client: AsyncClient) -> None:
        resp = await async_client.get("/")
        assert resp.status_code == 200

    async def test_docs(self, async_client: AsyncClient) -> None:
        resp = await async_client.get("/docs")
        assert resp.status_code == 200

    async def test_shared_view_needs_no_token(self, async_client: AsyncClient) -> None:
        resp = await async_client.get("/api/v1/shared/unknown-token")
        assert resp.status_code == 404


class TestProtectedPaths:
    """Tests that protected paths require auth."""

    async def test_without_token(self, async_client: AsyncClient) -> None:
        resp = await async_client.post(
            "/api/v1/chat/stream",
            json={"conversation_id": "c", "messages": [{"role": "user", "content": "hi"}]},
        )
        assert resp.status_code == 401
        data = resp.json()
        assert data["status"] == 401
        assert data["code"] == "MISSING_TOKEN"

    async def test_with_invalid_token(self, async_client: AsyncClient) -> None:
        resp = await async_client.get(
            "/api/v1/conversations",
            headers={"Authorization": "Bearer invalid.token.here"},
        )
        assert resp.status_code == 401
        assert resp.json()["code"] == "INVALID_TOKEN"

    async def test_with_expired_token(self, async_client: AsyncClient) -> None:
        now = datetime.now(UTC)
        token = encode(
            {
                "sub": "1",
                "type": "access",
                "jti": "expired",
                "iat": now - timedelta(hours=2),
                "exp": now - timedelta(hours=1),
            }
        )
        resp = await async_client.get(
            "/api/v1/conversations", headers={"Authorization": f"Bearer {token}"}
        )
        assert resp.status_code == 401
        assert resp.json()["code"] == "TOKEN_EXPIRED"

    async def test_with_wrong_token_type(self, async_client: AsyncClient) -> None:
        now = datetime.now(UTC)
        token = encode(
            {"sub": "1", "type": "refresh", "jti": "r", "exp": now + timedelta(hours=1)}
        )
        resp = await async_client.get(
            "/api/v1/conversations", headers={"Authorization": f"Bearer {token}"}
        )
        assert resp.status_code == 401
        assert resp.json()["code"] == "INVALID_TOKEN"

    async def test_with_non_numeric_subject(self, async_client: AsyncClient) -> None:
        now = datetime.now(UTC)
        token = encode(
            {"sub": "alice", "type": "access", "jti": "s", "exp": now + timedelta(hours=1)}
        )
        resp = await async_client.get(
            "/api/v1/conversations", headers={"Authorization": f"Bearer {token}"}
        )
        assert resp.status_code == 401
        assert resp.json()["code"] == "INVALID_TOKEN"

    async def test_with_revoked_token(
        self,
        async_client: AsyncClient,
        fake_redis: fakeredis.aioredis.FakeRedis,
    ) -> None:
        ts = TokenService(fake_redis)
        token = ts.create_access_token(user_id=1)
        payload = jwt.decode(
            token,
            settings.auth.secret_key.get_secret_value(),
            algorithms=[settings.auth.algorithm],
        )
        await fake_redis.setex(f"{BLACKLIST_PREFIX}{payload['jti']}", 60, "1")

        resp = await async_client.get(
            "/api/v1/conversations", headers={"Authorization": f"Bearer {token}"}
        )
        assert resp.status_code == 401
        assert resp.json()["code"] == "TOKEN_BLACKLISTED"

    async def test_with_valid_token(
        self,
        async_client: AsyncClient,
        fake_redis: fakeredis.aioredis.FakeRedis,
    ) -> None:
        resp = await async_client.get(
            "/api/v1/conversations", headers=make_auth_headers(fake_redis)
        )
        assert resp.status_code == 200

    async def test_unknown_role_is_forbidden(
        self,
        async_client: AsyncClient,
        fake_redis: fakeredis.aioredis.FakeRedis,
    ) -> None:
        resp = await async_client.get(
            "/api/v1/conversations",
            headers=make_auth_headers(fake_redis, role="guest"),
        )
        assert resp.status_code == 403
        assert resp.json()["code"] == "AUTHORIZATION_ERROR"
