"""JWT access token minting and revocation lookups.

Tokens are normally issued by the external identity provider; this service
mints compatible tokens for local tooling and checks the shared revocation
list kept in Redis.
"""

import uuid
from datetime import UTC, datetime, timedelta

import jwt
import redis.asyncio as redis

from app.core.config import settings

BLACKLIST_PREFIX = "token_blacklist:"


class TokenService:
    """Mint JWT access tokens and consult the Redis-backed revocation list."""

    def __init__(self, redis_client: redis.Redis) -> None:  # type: ignore[type-arg]
        self._redis = redis_client
        self._secret = settings.auth.secret_key.get_secret_value()
        self._algorithm = settings.auth.algorithm

    def create_access_token(
        self, user_id: int, email: str = "", role: str = "user"
    ) -> str:
        """Create a signed JWT access token."""
        now = datetime.now(UTC)
        expire = now + timedelta(minutes=settings.auth.access_token_expire_minutes)
        payload = {
            "sub": str(user_id),
            "email": email,
            "role": role,
            "type": "access",
            "jti": str(uuid.uuid4()),
            "iat": now,
            "exp": expire,
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    async def is_revoked(self, jti: str) -> bool:
        """Check if a token has been revoked."""
        result = await self._redis.get(f"{BLACKLIST_PREFIX}{jti}")
        return result is not None
