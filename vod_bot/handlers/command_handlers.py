# vod_bot/handlers/command_handlers.py

from telegram import Message, Update
from telegram.constants import ParseMode
from telegram.error import TelegramError
from telegram.ext import ContextTypes

from ..config import LEGACY_RESULT_LIMIT, logger
from ..services.api_client import ApiError, InternalApiClient
from ..services.auth_service import is_admin
from ..services.cache_service import ValidationError, validate_days
from ..ui.messages import format_cached_lines, format_link_required, format_notice, md
from ..utils import coerce_int, get_str, safe_edit_message
from ..workflows.results import VODResult
from ..workflows.selection_session import CacheIntent, MessageKey
from ..workflows.selection_workflow import (
    prepare_results,
    start_flat_selection,
    start_reaction_selection,
    start_show_selection,
)

CACHED_ITEMS_PER_MESSAGE = 10


def get_help_message_text(admin: bool = False) -> str:
    """Returns the formatted help message string."""
    text = r"""*User Commands*
`link <username>` \- Link your Telegram account\.
`vod <query>` \- Search movies and shows, then pick from a list\.
`movie <title>` \- Top 10 matches; reply with a number to pick\.
`show <series>` \- Pick a show, then season and episode\.
`cache <query> <days>` \- Keep a title cached for 1\-14 days\.
`cached` \- List cached titles and when they expire\.
`status` \- Show active streams and users\.
`help` \- Display this message\.
"""
    if admin:
        text += r"""
*Admin Commands*
`disconnect <username>` \- Forcibly disconnect a user\.
`timeout <username> <minutes>` \- Temporarily block a user\.
"""
    return text


def _command_args(message: Message) -> list[str]:
    """Whitespace-separated words after the command word itself."""
    return (message.text or "").split()[1:]


def _api(context: ContextTypes.DEFAULT_TYPE) -> InternalApiClient:
    return context.bot_data["API_CLIENT"]


async def _reply(message: Message, text: str) -> Message | None:
    try:
        return await message.reply_text(text=text, parse_mode=ParseMode.MARKDOWN_V2)
    except TelegramError as e:
        logger.error(f"Failed to reply in chat {message.chat_id}: {e}")
        return None


async def _deny(update: Update, message: Message) -> None:
    user = update.effective_user
    logger.warning(
        f"Non-admin user {user.id if user else None} tried an admin command: "
        f"{message.text}"
    )
    await _reply(
        message,
        format_notice("⛔", "Not Allowed", "This command is for admins only."),
    )


async def _edit(context: ContextTypes.DEFAULT_TYPE, key: MessageKey, text: str) -> None:
    try:
        await safe_edit_message(
            context.bot, key[0], key[1], text, parse_mode=ParseMode.MARKDOWN_V2
        )
    except TelegramError as e:
        logger.error(f"Failed to update message {key}: {e}")


async def _search(
    update: Update, context: ContextTypes.DEFAULT_TYPE, query: str
) -> tuple[MessageKey, list[VODResult]] | None:
    """
    Posts a placeholder, resolves the user's account and runs the search.

    Returns the placeholder's key and the prepared results, or None after
    having told the user why nothing can be shown.
    """
    message = update.message
    user = update.effective_user
    if not isinstance(message, Message) or not user:
        return None

    loading = await _reply(
        message, f"🔎 *Searching…*\n\nLooking for `{md(query)}`"
    )
    if loading is None:
        return None
    key: MessageKey = (loading.chat_id, loading.message_id)

    api = _api(context)
    try:
        username = await api.resolve_identity(user.id)
    except ApiError:
        username = None
    if not username:
        await _edit(context, key, format_link_required())
        return None

    try:
        records = await api.search_vod(username, query)
    except ApiError:
        await _edit(
            context,
            key,
            format_notice("❌", "Search Failed", "Couldn't complete search."),
        )
        return None

    results = prepare_results(records, query)
    logger.info(
        f"[SELECT] User {user.id} searched '{query}': {len(records)} raw, "
        f"{len(results)} kept."
    )
    if not results:
        await _edit(
            context,
            key,
            format_notice("🔎", "No Results", f"No results for '{query}'."),
        )
        return None
    return key, results


async def link_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Links the caller's Telegram account to a backend username."""
    message = update.message
    user = update.effective_user
    if not isinstance(message, Message) or not user:
        return

    args = _command_args(message)
    if len(args) != 1:
        await _reply(
            message,
            format_notice(
                "🔗",
                "Link Your Account",
                "Usage: link <username>\n\n"
                "This links your Telegram account to your IPTV account.",
            ),
        )
        return

    try:
        confirmed = await _api(context).link_account(
            user.id, user.username or user.full_name, args[0]
        )
    except ApiError as e:
        await _reply(
            message,
            format_notice(
                "❌",
                "Link Failed",
                f"We couldn't link your account right now.\n\nError: {e}",
            ),
        )
        return

    logger.info(f"User {user.id} linked to backend user '{confirmed}'.")
    await _reply(
        message,
        format_notice(
            "✅",
            "Linked Successfully",
            f"Your Telegram account is now linked to {confirmed}. "
            "You're all set to use other commands.",
        ),
    )


async def vod_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Searches movies and series and shows a paginated picker."""
    message = update.message
    user = update.effective_user
    if not isinstance(message, Message) or not user:
        return

    query = " ".join(_command_args(message)).strip()
    if not query:
        await _reply(
            message,
            format_notice(
                "🎬", "VOD Search", "Usage: vod <query>\n\nSearches movies and shows."
            ),
        )
        return

    found = await _search(update, context, query)
    if found is None:
        return
    key, results = found
    await start_flat_selection(context, key, user.id, query, results)


async def movie_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Lists the top matches as a numbered list answered with a digit."""
    message = update.message
    user = update.effective_user
    if not isinstance(message, Message) or not user:
        return

    query = " ".join(_command_args(message)).strip()
    if not query:
        await _reply(
            message,
            format_notice("🎬", "Movie Search", "Usage: movie <title>"),
        )
        return

    found = await _search(update, context, query)
    if found is None:
        return
    key, results = found
    await start_reaction_selection(
        context, key, user.id, query, results[:LEGACY_RESULT_LIMIT]
    )


async def show_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Starts the show, season, episode picker."""
    message = update.message
    user = update.effective_user
    if not isinstance(message, Message) or not user:
        return

    query = " ".join(_command_args(message)).strip()
    if not query:
        await _reply(
            message,
            format_notice("📺", "Show Search", "Usage: show <series>"),
        )
        return

    found = await _search(update, context, query)
    if found is None:
        return
    key, results = found
    await start_show_selection(context, key, user.id, query, results)


async def cache_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """`cache <query> <days>`: picks a title to keep cached for a number of days."""
    message = update.message
    user = update.effective_user
    if not isinstance(message, Message) or not user:
        return

    args = _command_args(message)
    if len(args) < 2:
        await _reply(
            message,
            format_notice(
                "💾",
                "Cache VOD",
                "Usage: cache <query> <days>\n"
                "Example: cache The Matrix 3\n"
                "Note: days must be between 1 and 14.",
            ),
        )
        return

    try:
        days = validate_days(args[-1])
    except ValidationError as e:
        await _reply(message, format_notice("⏳", "Invalid Days", e.user_message))
        return

    query = " ".join(args[:-1]).strip()
    found = await _search(update, context, query)
    if found is None:
        return
    key, results = found
    await start_flat_selection(
        context, key, user.id, query, results, cache_intent=CacheIntent(days=days)
    )


async def cached_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Lists cached items, ten per message."""
    message = update.message
    if not isinstance(message, Message):
        return

    try:
        items = await _api(context).list_cached()
    except ApiError:
        await _reply(
            message,
            format_notice("❌", "Cache List Failed", "Couldn't fetch cached items."),
        )
        return

    items = [item for item in items if isinstance(item, dict)]
    if not items:
        await _reply(
            message, format_notice("💾", "Cached Items", "No active cached items.")
        )
        return

    pages = (len(items) + CACHED_ITEMS_PER_MESSAGE - 1) // CACHED_ITEMS_PER_MESSAGE
    for page in range(pages):
        chunk = items[
            page * CACHED_ITEMS_PER_MESSAGE : (page + 1) * CACHED_ITEMS_PER_MESSAGE
        ]
        lines = ["💾 *Cached Items*", ""]
        lines.extend(format_cached_lines(chunk))
        if pages > 1:
            lines.append("")
            lines.append(f"Page {page + 1}/{pages}")
        await _reply(message, "\n".join(lines))


async def status_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Reports active streams and users from the proxy."""
    message = update.message
    if not isinstance(message, Message):
        return

    try:
        data = await _api(context).get_status()
    except ApiError as e:
        await _reply(
            message,
            format_notice("❌", "Status Failed", f"Failed to get status: {e}"),
        )
        return

    streams = coerce_int(data.get("streams_count"))
    users = coerce_int(data.get("users_count_active"))
    extra = get_str(data, "text").strip()

    lines = [
        "📊 *IPTV Proxy Status*",
        "",
        f"Active Streams: *{streams}*",
        f"Active Users: *{users}*",
    ]
    if extra:
        lines.extend(["", md(extra)])
    elif streams == 0:
        lines.extend(["", md("No active streams.")])
    await _reply(message, "\n".join(lines))


async def disconnect_command(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """Admin: forcibly disconnects a user from the proxy."""
    message = update.message
    if not isinstance(message, Message):
        return
    if not is_admin(update, context):
        await _deny(update, message)
        return

    args = _command_args(message)
    if len(args) != 1:
        await _reply(
            message,
            format_notice("🔌", "Disconnect User", "Usage: disconnect <username>"),
        )
        return

    username = args[0]
    try:
        await _api(context).disconnect_user(username)
    except ApiError as e:
        await _reply(
            message,
            format_notice(
                "❌",
                "Disconnect Failed",
                f"We couldn't disconnect this user.\n\nError: {e}",
            ),
        )
        return

    logger.info(f"Admin disconnected user '{username}'.")
    await _reply(
        message,
        format_notice(
            "✅", "User Disconnected", f"User {username} has been disconnected."
        ),
    )


async def timeout_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Admin: blocks a user for a number of minutes."""
    message = update.message
    if not isinstance(message, Message):
        return
    if not is_admin(update, context):
        await _deny(update, message)
        return

    args = _command_args(message)
    if len(args) != 2:
        await _reply(
            message,
            format_notice("⏳", "Timeout User", "Usage: timeout <username> <minutes>"),
        )
        return

    username = args[0]
    try:
        minutes = int(args[1])
    except ValueError:
        minutes = 0
    if minutes <= 0:
        await _reply(
            message,
            format_notice(
                "⏳", "Invalid Timeout", "Timeout minutes must be a positive number."
            ),
        )
        return

    try:
        await _api(context).timeout_user(username, minutes)
    except ApiError as e:
        await _reply(
            message,
            format_notice(
                "❌",
                "Timeout Failed",
                f"We couldn't set a timeout for this user.\n\nError: {e}",
            ),
        )
        return

    logger.info(f"Admin timed out user '{username}' for {minutes} minute(s).")
    await _reply(
        message,
        format_notice(
            "✅",
            "Timeout Applied",
            f"User {username} has been timed out for {minutes} minutes.",
        ),
    )


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Sends a formatted list of available commands."""
    message = update.message
    if not isinstance(message, Message):
        return
    await _reply(message, get_help_message_text(admin=is_admin(update, context)))
