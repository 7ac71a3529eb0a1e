"""
Configuration Management for Expense Tracker

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _parse_id_list(raw: Optional[str]) -> list[int]:
    """Parse a comma-separated list of integer ids, skipping junk entries."""
    if not raw:
        return []
    ids = []
    for part in raw.split(","):
        part = part.strip()
        try:
            ids.append(int(part))
        except ValueError:
            continue
    return ids


class DatabaseSettings(BaseSettings):
    """Relational storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    url: str = Field(
        default="sqlite+aiosqlite:///expenses.db",
        description="Database URL (PostgreSQL or SQLite)"
    )
    echo: bool = Field(
        default=False,
        description="Echo SQL statements to the log"
    )

    @field_validator('url')
    @classmethod
    def use_async_driver(cls, v: str) -> str:
        """Rewrite plain URLs to their async driver equivalents."""
        v = v.strip()
        if v.startswith("postgres://"):
            return "postgresql+asyncpg://" + v[len("postgres://"):]
        if v.startswith("postgresql://"):
            return "postgresql+asyncpg://" + v[len("postgresql://"):]
        if v.startswith("sqlite://"):
            return "sqlite+aiosqlite://" + v[len("sqlite://"):]
        return v


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration for the AI assistant."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-1.5-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=1024,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Model temperature"
    )
    # Retry policy
    max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum generation attempts before falling back"
    )


class TelegramSettings(BaseSettings):
    """Telegram transport configuration."""

    model_config = SettingsConfigDict(
        env_prefix="TELEGRAM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    bot_token: str = Field(
        ...,
        description="Telegram bot token from BotFather"
    )


class BotSettings(BaseSettings):
    """
    Chat behaviour settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    send_confirmations: bool = Field(
        default=True,
        description="Reply after every stored expense"
    )
    allowed_chat_ids: str = Field(
        default="",
        description="Comma-separated chat ids allowed to use the bot (empty = all)"
    )
    allowed_topic_ids: str = Field(
        default="",
        description="Comma-separated forum topic ids allowed (empty = all)"
    )
    confirmation_ttl_seconds: int = Field(
        default=120,
        ge=5,
        le=3600,
        description="How long a destructive action waits for a yes/no reply"
    )
    currency_symbol: str = Field(
        default="$",
        max_length=5,
        description="Currency symbol used when rendering amounts"
    )
    log_level: str = Field(
        default="INFO",
        description="Root log level"
    )

    @property
    def allowed_chat_id_list(self) -> list[int]:
        """Get allowed chat ids as a list."""
        return _parse_id_list(self.allowed_chat_ids)

    @property
    def allowed_topic_id_list(self) -> list[int]:
        """Get allowed topic ids as a list."""
        return _parse_id_list(self.allowed_topic_ids)

    def is_chat_allowed(self, chat_id: int) -> bool:
        allowed = self.allowed_chat_id_list
        return not allowed or chat_id in allowed

    def is_topic_allowed(self, topic_id: Optional[int]) -> bool:
        if topic_id is None:
            return True
        allowed = self.allowed_topic_id_list
        return not allowed or topic_id in allowed


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Note: These are loaded lazily to allow partial configuration

    @property
    def database(self) -> DatabaseSettings:
        return DatabaseSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def telegram(self) -> TelegramSettings:
        return TelegramSettings()

    @property
    def bot(self) -> BotSettings:
        return BotSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    sections = {
        "database": lambda: settings.database,
        "gemini": lambda: settings.gemini,
        "telegram": lambda: settings.telegram,
        "bot": lambda: settings.bot,
    }

    for name, load in sections.items():
        try:
            load()
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
