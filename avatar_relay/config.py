"""Relay configuration via pydantic-settings."""

from __future__ import annotations

import os
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_port() -> int:
    # Hosting platforms inject a bare PORT variable
    return int(os.environ.get("PORT", "5000"))


class Settings(BaseSettings):
    """Relay settings loaded from environment variables.

    All variables are prefixed with ``AVATAR_RELAY_`` (e.g. ``AVATAR_RELAY_PORT``).
    """

    # Server
    host: str = "0.0.0.0"  # nosec B104 - relay is meant to be reachable on the LAN
    port: int = Field(default_factory=_default_port, ge=1, le=65535)
    static_dir: str = "public"

    # Runtime
    env: str = "development"
    log_level: str = "INFO"

    # Limits
    max_message_bytes: int = 65536
    outbox_limit: int = 256
    max_messages_per_second: int = 50
    max_label_length: int = 40

    # CORS
    cors_origins: list[str] = ["*"]

    model_config = SettingsConfigDict(
        env_prefix="AVATAR_RELAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.env.lower() in ("production", "prod", "staging")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached ``Settings`` instance."""
    return Settings()
