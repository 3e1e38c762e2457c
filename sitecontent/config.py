"""
Configuration and settings for the content store.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# sha256("password"); replaced as soon as the admin sets a password.
DEFAULT_PASSWORD_HASH = (
    "5e884898da28047151d0e56f8dc6292773603d0d6aabbdd62a11ef721d1542d8"
)


class Settings(BaseSettings):
    """Environment-backed settings, injected into the stores at construction."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_prefix: str = Field(default="/api")

    # Blob storage
    blob_provider: Literal["vercel", "s3"] = Field(default="vercel")
    blob_read_write_token: Optional[str] = Field(default=None)
    blob_api_url: str = Field(default="https://blob.vercel-storage.com")
    blob_api_version: str = Field(default="7")
    blob_cache_max_age: int = Field(default=60)
    blob_request_timeout: float = Field(default=30.0)

    # S3-compatible storage
    s3_bucket: Optional[str] = Field(default=None)
    s3_region: Optional[str] = Field(default=None)
    s3_endpoint: Optional[str] = Field(default=None)
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[str] = Field(default=None)

    # Key-value store (Redis protocol) for sessions
    kv_url: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("kv_url", "redis_url")
    )

    # Sessions and auth
    session_ttl_seconds: int = Field(default=24 * 60 * 60)
    session_prefix: str = Field(default="session:")
    min_password_length: int = Field(default=6)
    default_password_hash: str = Field(default=DEFAULT_PASSWORD_HASH)

    # Visitor log
    max_visitor_logs: int = Field(default=100)
    visit_dedupe_seconds: int = Field(default=5 * 60)

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False,
        validation_alias=AliasChoices(
            "use_in_memory_backends", "sitecontent_use_in_memory_backends"
        ),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
