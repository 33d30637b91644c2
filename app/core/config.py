"""Application configuration using Pydantic Settings V2."""

from functools import cached_property
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.core.settings import (
    AppConfig,
    AuthConfig,
    CompletionConfig,
    DatabaseConfig,
    LLMConfig,
    RateLimitConfig,
    RedisConfig,
    ServerConfig,
)

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant.\n\n"
    "Current date and time: {system_time}"
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Flat fields are loaded directly from environment variables.
    Domain properties provide grouped access (e.g. settings.llm.provider).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # LLM Provider
    llm_provider: Literal["openai", "anthropic"] = Field(
        default="openai",
        description="LLM provider to use",
    )

    # OpenAI
    openai_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="OpenAI API key",
    )
    openai_model: str = Field(
        default="gpt-4o-mini",
        description="OpenAI model name",
    )

    # Anthropic
    anthropic_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="Anthropic API key",
    )
    anthropic_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Anthropic model name",
    )
    llm_temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Sampling temperature",
    )

    # App
    app_name: str = Field(
        default="chat-exchange",
        description="Application name",
    )
    app_env: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )
    debug: bool = Field(
        default=True,
        description="Debug mode",
    )

    # Server
    host: str = Field(
        default="0.0.0.0",
        description="Server host",
    )
    port: int = Field(
        default=8004,
        ge=1,
        le=65535,
        description="Server port",
    )

    # JWT Auth
    jwt_secret_key: SecretStr = Field(
        description="JWT secret key for token signing",
    )
    jwt_algorithm: str = Field(
        default="HS256",
        description="JWT signing algorithm",
    )
    jwt_access_token_expire_minutes: int = Field(
        default=30,
        ge=1,
        le=1440,
        description="Access token expiration in minutes",
    )

    # Rate limits
    exchange_rate_limit_max_requests: int = Field(
        default=20,
        ge=1,
        description="Exchanges admitted per identity per window",
    )
    exchange_rate_limit_window_ms: int = Field(
        default=60 * 60 * 1000,
        ge=1000,
        description="Exchange admission window in milliseconds",
    )
    search_rate_limit: str = Field(
        default="30/minute",
        description="Search endpoint rate limit",
    )

    # Completion
    completion_read_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Maximum wait for the next fragment from the provider",
    )
    conversation_lock_ttl_seconds: int = Field(
        default=300,
        ge=1,
        description="Expiry of a per-conversation stream lock",
    )
    system_prompt: str = Field(
        default=DEFAULT_SYSTEM_PROMPT,
        description="System prompt template; {system_time} is substituted",
    )
    public_base_url: str = Field(
        default="",
        description="Origin used in share links (request origin when empty)",
    )

    # Database
    database_url: SecretStr = Field(
        description="Async database URL (mysql+aiomysql://...)",
    )

    # Redis
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )
    redis_socket_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Redis socket read/connect timeout",
    )

    # --- Domain properties ---

    @cached_property
    def llm(self) -> LLMConfig:
        """LLM provider configuration."""
        return LLMConfig(
            provider=self.llm_provider,
            openai_api_key=self.openai_api_key,
            openai_model=self.openai_model,
            anthropic_api_key=self.anthropic_api_key,
            anthropic_model=self.anthropic_model,
            temperature=self.llm_temperature,
        )

    @cached_property
    def app(self) -> AppConfig:
        """Application environment configuration."""
        return AppConfig(
            name=self.app_name,
            env=self.app_env,
            debug=self.debug,
        )

    @cached_property
    def server(self) -> ServerConfig:
        """Server configuration."""
        return ServerConfig(
            host=self.host,
            port=self.port,
        )

    @cached_property
    def auth(self) -> AuthConfig:
        """JWT authentication configuration."""
        return AuthConfig(
            secret_key=self.jwt_secret_key,
            algorithm=self.jwt_algorithm,
            access_token_expire_minutes=self.jwt_access_token_expire_minutes,
        )

    @cached_property
    def rate_limit(self) -> RateLimitConfig:
        """Rate limiting configuration."""
        return RateLimitConfig(
            exchange_max_requests=self.exchange_rate_limit_max_requests,
            exchange_window_ms=self.exchange_rate_limit_window_ms,
            search_rate_limit=self.search_rate_limit,
        )

    @cached_property
    def completion(self) -> CompletionConfig:
        """Completion streaming configuration."""
        return CompletionConfig(
            read_timeout_seconds=self.completion_read_timeout_seconds,
            lock_ttl_seconds=self.conversation_lock_ttl_seconds,
            system_prompt=self.system_prompt,
            public_base_url=self.public_base_url,
        )

    @cached_property
    def database(self) -> DatabaseConfig:
        """Database connection configuration."""
        return DatabaseConfig(url=self.database_url)

    @cached_property
    def redis(self) -> RedisConfig:
        """Redis connection configuration."""
        return RedisConfig(
            url=self.redis_url,
            socket_timeout_seconds=self.redis_socket_timeout_seconds,
        )


# Global settings instance
settings = Settings()
