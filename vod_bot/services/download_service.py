# vod_bot/services/download_service.py

from __future__ import annotations

from telegram import Bot
from telegram.constants import ParseMode
from telegram.error import TelegramError
from telegram.helpers import escape_markdown

from ..config import logger
from ..ui.messages import format_download_ready, format_link_required, format_notice
from ..ui.views import download_keyboard
from ..utils import safe_send_message
from ..workflows.results import VODResult
from .api_client import ApiError, InternalApiClient


async def start_download(
    bot: Bot,
    api: InternalApiClient,
    chat_id: int,
    user_id: int,
    result: VODResult,
) -> bool:
    """
    Requests a temporary download link for `result` and posts it to the chat.

    Every failure is reported to the user in the chat and logged; nothing is
    raised. Returns True when a link was delivered.
    """
    try:
        username = await api.resolve_identity(user_id)
    except ApiError as e:
        logger.error(f"[DOWNLOAD] Identity lookup failed for user {user_id}: {e}")
        await _send_failure(
            bot,
            chat_id,
            "Failed to retrieve your user information. Please try again later.",
        )
        return False

    if not username:
        await _send(bot, chat_id, format_link_required())
        return False

    logger.info(
        f"[DOWNLOAD] {username} requested '{result.display_title}' "
        f"(stream {result.stream_id})."
    )
    try:
        data = await api.request_download(
            username,
            {
                "stream_id": result.stream_id,
                "title": result.title,
                "type": result.stream_type,
            },
        )
    except ApiError as e:
        await _send_failure(bot, chat_id, f"Failed to create download: {e}")
        return False

    url = data.get("download_url")
    if not isinstance(url, str) or not url.strip():
        await _send_failure(bot, chat_id, "Failed to get download URL.")
        return False

    expires_at = data.get("expires_at")
    text = format_download_ready(
        result, expires_at if isinstance(expires_at, str) else ""
    )
    try:
        await safe_send_message(
            bot,
            chat_id,
            text,
            parse_mode=ParseMode.MARKDOWN_V2,
            reply_markup=download_keyboard(url),
        )
    except TelegramError as e:
        # Telegram rejects some URLs as button targets; fall back to an inline link.
        logger.error(f"[DOWNLOAD] Failed to send download message with button: {e}")
        link = escape_markdown(url, version=2, entity_type="text_link")
        fallback = f"{text}\n\n[Click here to download]({link})"
        if not await _send(bot, chat_id, fallback):
            return False
    return True


async def _send(bot: Bot, chat_id: int, text: str) -> bool:
    try:
        await safe_send_message(bot, chat_id, text, parse_mode=ParseMode.MARKDOWN_V2)
    except TelegramError as e:
        logger.error(f"[DOWNLOAD] Could not send message to chat {chat_id}: {e}")
        return False
    return True


async def _send_failure(bot: Bot, chat_id: int, body: str) -> None:
    await _send(bot, chat_id, format_notice("❌", "Download Failed", body))
