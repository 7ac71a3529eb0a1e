"""
Telegram Entry Point for Expense Tracker

Runs the bot with long polling. Every text message, commands included,
is turned into a ChatMessage and handed to the ChatDispatcher; whatever
it returns is sent back to the same chat (and forum topic).

Run with:
    python -m app.main

Required environment:
    TELEGRAM_BOT_TOKEN

Optional:
    DATABASE_URL (default: SQLite file expenses.db)
    GEMINI_API_KEY (enables the AI assistant)
    SEND_CONFIRMATIONS, ALLOWED_CHAT_IDS, ALLOWED_TOPIC_IDS, LOG_LEVEL
"""

import structlog
from pydantic import ValidationError
from telegram import Update
from telegram.constants import ParseMode
from telegram.error import BadRequest
from telegram.ext import Application, ApplicationBuilder, ContextTypes, MessageHandler, filters

from expense_tracker.audit import configure_logging
from expense_tracker.config import get_settings
from expense_tracker.orchestrator import ChatDispatcher, ChatMessage, create_app_components

logger = structlog.get_logger(__name__)

DISPATCHER_KEY = "dispatcher"
ENGINE_KEY = "engine"


async def _send(update: Update, text: str) -> None:
    """Reply as Markdown, falling back to plain text if Telegram rejects it."""
    message = update.effective_message
    try:
        await message.reply_text(text, parse_mode=ParseMode.MARKDOWN)
    except BadRequest as e:
        # Usually an unbalanced "*" or "_" in a user-typed category
        logger.warning("markdown_rejected", error=str(e))
        await message.reply_text(text)


async def handle_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    message = update.effective_message
    user = update.effective_user
    if message is None or user is None or not message.text:
        return

    dispatcher: ChatDispatcher = context.application.bot_data[DISPATCHER_KEY]
    inbound = ChatMessage(
        text=message.text,
        user_id=user.id,
        chat_id=message.chat_id,
        message_id=message.message_id,
        topic_id=message.message_thread_id if message.is_topic_message else None,
    )

    for reply in await dispatcher.handle(inbound):
        await _send(update, reply)


async def _post_init(application: Application) -> None:
    dispatcher, engine = await create_app_components()
    application.bot_data[DISPATCHER_KEY] = dispatcher
    application.bot_data[ENGINE_KEY] = engine
    logger.info("bot_ready")


async def _post_shutdown(application: Application) -> None:
    engine = application.bot_data.get(ENGINE_KEY)
    if engine is not None:
        await engine.dispose()
    logger.info("bot_stopped")


def build_application(token: str) -> Application:
    application = (
        ApplicationBuilder()
        .token(token)
        .post_init(_post_init)
        .post_shutdown(_post_shutdown)
        .build()
    )
    application.add_handler(MessageHandler(filters.TEXT, handle_text))
    return application


def main() -> None:
    settings = get_settings()
    configure_logging(settings.bot.log_level)

    try:
        telegram_settings = settings.telegram
    except ValidationError as e:
        raise SystemExit(f"TELEGRAM_BOT_TOKEN is required: {e}") from e

    logger.info("bot_starting")
    build_application(telegram_settings.bot_token).run_polling(drop_pending_updates=True)


if __name__ == "__main__":
    main()
