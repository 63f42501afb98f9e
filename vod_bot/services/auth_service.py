# vod_bot/services/auth_service.py

from telegram import Update
from telegram.ext import ContextTypes


def is_admin(update: Update, context: ContextTypes.DEFAULT_TYPE) -> bool:
    """
    Checks whether the user behind an update is a configured admin.

    Admin IDs come from `ADMIN_USER_IDS` in bot_data. Updates without an
    effective user (e.g. channel posts) are never admin.
    """
    user = update.effective_user
    if not user:
        return False
    return user.id in context.bot_data.get("ADMIN_USER_IDS", [])
