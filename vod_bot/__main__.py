# vod_bot/__main__.py

import re

# Ensure PTB env flags are set before importing python-telegram-bot
from vod_bot import _ptb_env  # noqa: F401
from telegram import Update
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CallbackQueryHandler,
    MessageHandler,
    MessageReactionHandler,
    filters,
)

from vod_bot.config import get_configuration, logger
from vod_bot.handlers.callback_handlers import button_handler
from vod_bot.handlers.command_handlers import (
    cache_command,
    cached_command,
    disconnect_command,
    help_command,
    link_command,
    movie_command,
    show_command,
    status_command,
    timeout_command,
    vod_command,
)
from vod_bot.handlers.error_handler import global_error_handler
from vod_bot.handlers.message_handlers import handle_reaction, handle_text_message
from vod_bot.state import post_init, post_shutdown

COMMANDS = (
    ("link", link_command),
    ("vod", vod_command),
    ("movie", movie_command),
    ("show", show_command),
    ("cache", cache_command),
    ("cached", cached_command),
    ("status", status_command),
    ("disconnect", disconnect_command),
    ("timeout", timeout_command),
    ("help", help_command),
    ("start", help_command),
)


def command_filter(name: str) -> filters.BaseFilter:
    """Matches `name` with or without a leading slash, then arguments or nothing."""
    return filters.Regex(re.compile(rf"^/?{name}(?:@\w+)?(?:\s|$)", re.IGNORECASE))


def register_handlers(application: Application) -> None:
    """
    Registers all the command, message, reaction and callback handlers.
    """
    for name, callback in COMMANDS:
        application.add_handler(MessageHandler(command_filter(name), callback))

    # Callback Query Handler for all button presses
    application.add_handler(CallbackQueryHandler(button_handler))

    # Digit reactions on numbered listings
    application.add_handler(MessageReactionHandler(handle_reaction))

    # Digit replies to numbered listings; other text is ignored
    application.add_handler(
        MessageHandler(filters.TEXT & filters.REPLY, handle_text_message)
    )

    application.add_error_handler(global_error_handler)

    logger.info("All handlers have been registered.")


def main() -> None:
    """
    Main function to initialize and run the Telegram bot.
    """
    logger.info("Starting bot...")

    config = get_configuration()

    # Updates are processed concurrently; shared state lives in the
    # lock-guarded context store created in post_init.
    application = (
        ApplicationBuilder()
        .token(config.token)
        .concurrent_updates(True)
        .post_init(post_init)
        .post_shutdown(post_shutdown)
        .build()
    )

    application.bot_data["API_CONFIG"] = config.api
    application.bot_data["ADMIN_USER_IDS"] = config.admin_user_ids

    register_handlers(application)

    logger.info("Bot startup complete. Starting polling...")
    application.run_polling(allowed_updates=Update.ALL_TYPES)


if __name__ == "__main__":
    main()
