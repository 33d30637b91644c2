"""Domain-specific configuration models."""

from app.core.settings.app_config import AppConfig
from app.core.settings.auth_config import AuthConfig
from app.core.settings.completion_config import CompletionConfig
from app.core.settings.database_config import DatabaseConfig
from app.core.settings.llm_config import LLMConfig
from app.core.settings.rate_limit_config import RateLimitConfig
from app.core.settings.redis_config import RedisConfig
from app.core.settings.server_config import ServerConfig

__all__ = [
    "AppConfig",
    "AuthConfig",
    "CompletionConfig",
    "DatabaseConfig",
    "LLMConfig",
    "RateLimitConfig",
    "RedisConfig",
    "ServerConfig",
]
