"""Configuration for safe-quorum.

Settings are read from the environment with prefix SAFE_QUORUM_ (and from a
local .env file), then overridden by CLI options.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SafeQuorumSettings(BaseSettings):
    """Main safe-quorum configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SAFE_QUORUM_",
        env_file=".env",
        extra="ignore",
    )

    # Network
    rpc_url: str = ""
    chain_id: Optional[int] = Field(
        default=None,
        description="Expected chain id; the node's chain id is checked against it",
    )
    http_timeout_seconds: float = 30.0
    receipt_timeout_seconds: float = 120.0

    # Signing key of the owner running the command (hex)
    private_key: str = Field(default="", repr=False)

    # Proposal cache directory
    cache_dir: str = "cli_cache"

    # Batch helper override (defaults to the canonical MultiSend)
    multi_send_address: str = ""

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"
    log_json: bool = False

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper() if isinstance(value, str) else value


@lru_cache
def get_settings() -> SafeQuorumSettings:
    """Get the cached settings instance."""
    return SafeQuorumSettings()
