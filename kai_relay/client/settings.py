from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientSettings(BaseSettings):
    """Configuration for the relay client and its durable local cache."""

    model_config = SettingsConfigDict(
        env_prefix="KAI_CLIENT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    base_url: str = Field(default="http://localhost:3000")
    timeout_seconds: float = Field(default=120.0)
    blob_store: Literal["file", "redis", "memory"] = Field(default="file")
    storage_dir: str = Field(default=".kai-client")
    redis_url: str = Field(default="redis://localhost:6379/0")
    key_prefix: str = Field(default="kai:client")
