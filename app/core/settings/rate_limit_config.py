"""Rate limiting configuration."""

from pydantic import BaseModel


class RateLimitConfig(BaseModel, frozen=True):
    """Per-identity exchange admission and IP-level throttling settings."""

    exchange_max_requests: int
    exchange_window_ms: int
    search_rate_limit: str
