from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_CONVERSATION_TITLE = "New conversation"


class Settings(BaseSettings):
    """Runtime configuration loaded from env vars and local env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_env: str = Field(default="local", alias="APP_ENV")
    log_level: str | None = Field(default=None, alias="LOG_LEVEL")

    chat_model: str = Field(default="kai", alias="CHAT_MODEL")
    model_provider_base_url: str = Field(default="http://localhost:11434/v1", alias="MODEL_PROVIDER_BASE_URL")
    model_provider_api_key: str = Field(default="ollama", alias="MODEL_PROVIDER_API_KEY")
    chat_use_mock: bool = Field(default=False, alias="CHAT_USE_MOCK")
    chat_mock_messages_file: str = Field(
        default="mock-data/chat-messages.md",
        alias="CHAT_MOCK_MESSAGES_FILE",
    )

    chat_temperature: float = Field(default=0.8, alias="CHAT_TEMPERATURE")
    chat_max_tokens: int = Field(default=4000, alias="CHAT_MAX_TOKENS")
    title_temperature: float = Field(default=0.7, alias="TITLE_TEMPERATURE")
    title_max_tokens: int = Field(default=50, alias="TITLE_MAX_TOKENS")
    title_max_length: int = Field(default=50, alias="TITLE_MAX_LENGTH")
    default_conversation_title: str = Field(
        default=DEFAULT_CONVERSATION_TITLE,
        alias="DEFAULT_CONVERSATION_TITLE",
    )

    cors_allow_origins: list[str] = Field(default=["*"], alias="CORS_ALLOW_ORIGINS")

    @property
    def enable_swagger(self) -> bool:
        return self.app_env.lower() == "local"

    @property
    def effective_log_level(self) -> str:
        if self.log_level:
            return self.log_level.upper()
        return "DEBUG" if self.app_env.lower() == "local" else "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
