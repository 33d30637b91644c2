"""Completion streaming configuration."""

from pydantic import BaseModel, model_validator


class CompletionConfig(BaseModel, frozen=True):
    """Completion stream and conversation lock settings."""

    read_timeout_seconds: float
    lock_ttl_seconds: int
    system_prompt: str
    public_base_url: str

    @model_validator(mode="after")
    def check_lock_outlives_read_gap(self) -> "CompletionConfig":
        # The lock is renewed on fragment arrival once a third of its TTL has passed.
        if self.read_timeout_seconds >= self.lock_ttl_seconds * 2 / 3:
            raise ValueError(
                "completion read timeout must be under two thirds of the lock TTL"
            )
        return self

    @property
    def lock_ttl_ms(self) -> int:
        """Lock TTL in milliseconds."""
        return self.lock_ttl_seconds * 1000
