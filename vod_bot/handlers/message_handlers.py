# vod_bot/handlers/message_handlers.py

from telegram import Update
from telegram.ext import ContextTypes

from ..config import logger
from ..workflows.selection_workflow import handle_digit_reaction, handle_digit_reply


async def handle_reaction(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Forwards reaction changes to the numbered-list picker."""
    if update.message_reaction is None:
        return
    await handle_digit_reaction(update, context)


async def handle_text_message(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """
    Plain text is only meaningful as a digit reply to a numbered listing;
    everything else is ignored to keep the bot quiet in group chats.
    """
    if await handle_digit_reply(update, context):
        return
    user = update.effective_user
    if user:
        logger.debug(f"Ignoring text message from user {user.id}.")
