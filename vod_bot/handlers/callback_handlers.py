# vod_bot/handlers/callback_handlers.py

from telegram import Update
from telegram.error import TelegramError
from telegram.ext import ContextTypes

from ..config import logger
from ..ui.views import CB_PREFIX
from ..workflows.selection_workflow import handle_selection_buttons


async def button_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handles all callback queries from inline buttons. Acts as a central router.

    Every press is answered straight away so Telegram stops showing the
    loading spinner, whether or not the press leads anywhere.
    """
    query = update.callback_query
    if not query or not query.data:
        return

    try:
        await query.answer()
    except TelegramError as e:
        # Answering is cosmetic; an expired query must not block the action.
        logger.debug(f"Could not answer callback query: {e}")

    action = query.data
    if action.startswith(CB_PREFIX):
        await handle_selection_buttons(update, context)
    else:
        logger.warning(f"Received an unhandled callback query action: {action}")
