# vod_bot/handlers/error_handler.py

import json
import traceback

from telegram import Update
from telegram.constants import ParseMode
from telegram.error import TelegramError
from telegram.ext import ContextTypes

from ..config import logger


async def global_error_handler(
    update: object, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """
    Logs every exception a handler let escape, together with the update
    that caused it, and tells the user something went wrong.
    """
    if not context.error:
        logger.warning("Error handler was called but context.error is None.")
        return

    logger.error("An unhandled exception occurred:", exc_info=context.error)

    tb_string = "".join(
        traceback.format_exception(
            type(context.error), context.error, context.error.__traceback__
        )
    )
    update_str = update.to_dict() if isinstance(update, Update) else str(update)
    report = (
        "An exception was raised while handling an update\n"
        f"update = {json.dumps(update_str, indent=2, ensure_ascii=False, default=str)}\n\n"
        f"bot_data keys = {sorted(context.bot_data)}\n\n"
        f"Traceback:\n{tb_string}"
    )
    logger.error(f"DETAILED EXCEPTION REPORT:\n{report}")

    if isinstance(update, Update) and update.effective_message:
        error_text = (
            "❌ *An unexpected error occurred\\.*\n\n"
            "The issue has been logged for review\\. Please try again later\\."
        )
        try:
            await update.effective_message.reply_text(
                text=error_text, parse_mode=ParseMode.MARKDOWN_V2
            )
        except TelegramError as e:
            logger.error(f"Failed to send the user-facing error message: {e}")
