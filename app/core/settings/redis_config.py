"""Redis connection configuration."""

from pydantic import BaseModel


class RedisConfig(BaseModel, frozen=True):
    """Redis connection settings."""

    url: str
    socket_timeout_seconds: float = 5.0
