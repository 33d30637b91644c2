"""Mint an access token for local development.

Usage:
    python -m scripts.issue_token --user-id 1 --email dev@test.com
"""

import argparse
import asyncio

from app.core.redis import close_redis, init_redis
from app.services.token_service import TokenService


async def issue_token(user_id: int, email: str, role: str) -> None:
    """Print a signed access token for the given identity."""
    redis_client = await init_redis()
    try:
        token = TokenService(redis_client).create_access_token(
            user_id=user_id, email=email, role=role
        )
        print(token)
    finally:
        await close_redis()


def main() -> None:
    parser = argparse.ArgumentParser(description="Issue a development access token")
    parser.add_argument("--user-id", type=int, required=True, help="Identity id")
    parser.add_argument("--email", default="", help="Email claim")
    parser.add_argument("--role", default="user", choices=["user", "admin"])
    args = parser.parse_args()

    asyncio.run(issue_token(args.user_id, args.email, args.role))


if __name__ == "__main__":
    main()
