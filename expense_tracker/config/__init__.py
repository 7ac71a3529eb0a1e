"""Configuration package."""

from expense_tracker.config.settings import (
    BotSettings,
    DatabaseSettings,
    GeminiSettings,
    Settings,
    TelegramSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "BotSettings",
    "DatabaseSettings",
    "GeminiSettings",
    "Settings",
    "TelegramSettings",
    "get_settings",
    "validate_all_settings",
]
