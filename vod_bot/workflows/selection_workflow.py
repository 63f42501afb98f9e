# vod_bot/workflows/selection_workflow.py

from __future__ import annotations

from typing import Any, Callable, NamedTuple, Sequence

from telegram import InlineKeyboardMarkup, Message, MessageReactionUpdated, Update
from telegram.constants import ParseMode
from telegram.error import TelegramError
from telegram.ext import ContextTypes

from ..config import LEGACY_RESULT_LIMIT, logger
from ..services.api_client import ApiError, InternalApiClient
from ..services.cache_service import CachePoller, PollerRegistry
from ..services.download_service import start_download
from ..ui import views
from ..ui.messages import format_notice
from ..ui.pagination import compute_window
from ..utils import safe_edit_message
from .identity import filter_results, parse_query_filters
from .results import (
    VODResult,
    apply_enrichment,
    group_by_show,
    sort_vod_results,
    to_vod_results,
)
from .selection_session import (
    CacheIntent,
    ContextStore,
    FlatSelection,
    HierarchicalSelection,
    MessageKey,
    SelectionContext,
    SelectionContextError,
    SelectionStep,
)

DIGIT_POSITIONS: dict[str, int] = {
    emoji: position for position, emoji in enumerate(views.DIGIT_EMOJIS, start=1)
}


class TerminalPick(NamedTuple):
    """What a consumed context hands to the download or cache flow."""

    result: VODResult
    chat_id: int
    cache_intent: CacheIntent | None


# --- bot_data accessors ---


def _store(context: ContextTypes.DEFAULT_TYPE) -> ContextStore:
    return context.bot_data["CONTEXT_STORE"]


def _api(context: ContextTypes.DEFAULT_TYPE) -> InternalApiClient:
    return context.bot_data["API_CLIENT"]


def _registry(context: ContextTypes.DEFAULT_TYPE) -> PollerRegistry:
    return context.bot_data["POLLER_REGISTRY"]


# --- Result preparation ---


def prepare_results(
    records: Sequence[Any], query: str, *, limit: int | None = None
) -> list[VODResult]:
    """
    Normalizes raw search records, sorts them and narrows them with the
    filters found in `query`. When the filters match nothing the sorted
    list is kept as is.
    """
    results = sort_vod_results(to_vod_results(records))
    filters = parse_query_filters(query)
    results = filter_results(results, filters)
    if limit is not None:
        results = results[:limit]
    return results


def digit_position(value: str) -> int | None:
    """Maps a keycap emoji or a typed digit to a 1-based list position."""
    value = value.strip()
    if value in DIGIT_POSITIONS:
        return DIGIT_POSITIONS[value]
    if value.isdigit():
        number = int(value)
        if number == 0:
            return 10
        if 1 <= number <= LEGACY_RESULT_LIMIT:
            return number
    return None


# --- Rendering ---


async def _render(
    context: ContextTypes.DEFAULT_TYPE,
    key: MessageKey,
    text: str,
    reply_markup: InlineKeyboardMarkup | None = None,
) -> bool:
    """Edits the picker message in place. Failures are logged, never retried."""
    chat_id, message_id = key
    try:
        await safe_edit_message(
            context.bot,
            chat_id,
            message_id,
            text,
            parse_mode=ParseMode.MARKDOWN_V2,
            reply_markup=reply_markup,
        )
    except TelegramError as e:
        logger.error(f"[SELECT] Failed to render picker {key}: {e}")
        return False
    return True


# --- Entry points ---


async def start_flat_selection(
    context: ContextTypes.DEFAULT_TYPE,
    key: MessageKey,
    user_id: int,
    query: str,
    results: list[VODResult],
    cache_intent: CacheIntent | None = None,
) -> SelectionContext | None:
    """
    Turns the placeholder message at `key` into a paginated picker over
    `results` and registers its context.
    """
    selection_context = SelectionContext(
        owner_id=user_id,
        chat_id=key[0],
        query=query,
        selection=FlatSelection(results=results),
        cache_intent=cache_intent,
    )
    await _enrich_page(context, selection_context, 0)

    text, keyboard = views.build_flat_view(selection_context)
    if not await _render(context, key, text, keyboard):
        return None
    await _store(context).put(key, selection_context)
    logger.info(
        f"[SELECT] Flat picker {key} for user {user_id}: {len(results)} result(s)"
        f"{' (cache)' if cache_intent else ''}."
    )
    return selection_context


async def start_show_selection(
    context: ContextTypes.DEFAULT_TYPE,
    key: MessageKey,
    user_id: int,
    query: str,
    results: list[VODResult],
) -> SelectionContext | None:
    """Starts the show -> season -> episode picker."""
    hierarchy = group_by_show([r for r in results if r.is_series])
    if not hierarchy.order:
        await _render(
            context,
            key,
            format_notice("🔎", "No Shows", f"No series matched '{query}'."),
        )
        return None

    selection_context = SelectionContext(
        owner_id=user_id,
        chat_id=key[0],
        query=query,
        selection=HierarchicalSelection(hierarchy=hierarchy),
    )
    text, keyboard = views.build_show_view(selection_context)
    if not await _render(context, key, text, keyboard):
        return None
    await _store(context).put(key, selection_context)
    logger.info(
        f"[SELECT] Show picker {key} for user {user_id}: "
        f"{len(hierarchy.order)} show(s)."
    )
    return selection_context


async def start_reaction_selection(
    context: ContextTypes.DEFAULT_TYPE,
    key: MessageKey,
    user_id: int,
    query: str,
    results: list[VODResult],
) -> SelectionContext | None:
    """Legacy picker: a numbered top-ten list answered with a digit."""
    selection_context = SelectionContext(
        owner_id=user_id,
        chat_id=key[0],
        query=query,
        selection=FlatSelection(results=results[:LEGACY_RESULT_LIMIT]),
        kind="reaction",
    )
    text = views.build_reaction_listing(query, selection_context.results)
    if not await _render(context, key, text):
        return None
    await _store(context).put(key, selection_context)
    return selection_context


# --- Page enrichment ---


async def _enrich_page(
    context: ContextTypes.DEFAULT_TYPE,
    selection_context: SelectionContext,
    page: int,
) -> None:
    """Fetches sizes for one page; any failure leaves the results untouched."""
    if page in selection_context.enriched_pages or not selection_context.results:
        return
    records = await _fetch_enrichment(
        context,
        selection_context.query,
        selection_context.results,
        page,
        selection_context.per_page,
    )
    if records is not None:
        _merge_enrichment(selection_context, page, records)


async def _fetch_enrichment(
    context: ContextTypes.DEFAULT_TYPE,
    query: str,
    results: Sequence[VODResult],
    page: int,
    per_page: int,
) -> list[Any] | None:
    try:
        return await _api(context).enrich_page(
            query, [r.to_payload() for r in results], page, per_page
        )
    except ApiError as e:
        logger.debug(f"[SELECT] Enrichment for page {page} skipped: {e}")
        return None


def _merge_enrichment(
    selection_context: SelectionContext, page: int, records: list[Any]
) -> None:
    selection = selection_context.selection
    if not isinstance(selection, FlatSelection):
        return
    if len(records) != len(selection.results):
        return
    selection.results = apply_enrichment(selection.results, records)
    selection_context.enriched_pages.add(page)


# --- Button dispatch ---


def _parse_index(action: str, prefix: str) -> int | None:
    try:
        return int(action[len(prefix) :])
    except ValueError:
        return None


async def handle_selection_buttons(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """
    Routes every `sel_` callback to the picker stored under the pressed
    message. Presses from anyone but the owner, and presses on pickers that
    no longer exist, are dropped without a reply.
    """
    query = update.callback_query
    if not query or not isinstance(query.message, Message):
        return
    action = query.data or ""
    key: MessageKey = (query.message.chat_id, query.message.message_id)
    user_id = query.from_user.id

    if action == views.CB_NOOP:
        return

    try:
        if action in (views.CB_PREV, views.CB_NEXT):
            await _turn_flat_page(
                context, key, user_id, -1 if action == views.CB_PREV else 1
            )
        elif action in (views.CB_EP_PREV, views.CB_EP_NEXT):
            await _turn_episode_page(
                context, key, user_id, -1 if action == views.CB_EP_PREV else 1
            )
        elif action.startswith(views.CB_PICK):
            index = _parse_index(action, views.CB_PICK)
            if index is not None:
                await _consume_and_act(
                    context, key, user_id, lambda c: _pick_flat(c, index)
                )
        elif action.startswith(views.CB_SHOW):
            index = _parse_index(action, views.CB_SHOW)
            if index is not None:
                await _advance(context, key, user_id, lambda c: _pick_show(c, index))
        elif action.startswith(views.CB_SEASON):
            season = _parse_index(action, views.CB_SEASON)
            if season is not None:
                await _advance(
                    context, key, user_id, lambda c: _pick_season(c, season)
                )
        elif action.startswith(views.CB_EPISODE):
            index = _parse_index(action, views.CB_EPISODE)
            if index is not None:
                await _consume_and_act(
                    context, key, user_id, lambda c: _pick_episode(c, index)
                )
        else:
            logger.warning(f"[SELECT] Unhandled selection callback: {action}")
    except SelectionContextError as exc:
        await _store(context).remove(key)
        await _render(
            context, key, format_notice("❓", "Selection Expired", exc.user_message)
        )


async def _advance(
    context: ContextTypes.DEFAULT_TYPE,
    key: MessageKey,
    user_id: int,
    step: Callable[[SelectionContext], views.View | None],
) -> None:
    """Applies a non-terminal step under the store lock, then re-renders."""
    view = await _store(context).mutate(key, user_id, step)
    if view is None:
        return
    text, keyboard = view
    await _render(context, key, text, keyboard)


async def _turn_flat_page(
    context: ContextTypes.DEFAULT_TYPE, key: MessageKey, user_id: int, delta: int
) -> None:
    store = _store(context)

    def turn(c: SelectionContext) -> tuple[SelectionContext, int, bool] | None:
        if not isinstance(c.selection, FlatSelection):
            return None
        c.page = compute_window(len(c.results), c.page + delta, c.per_page).page
        return c, c.page, c.page in c.enriched_pages

    turned = await store.mutate(key, user_id, turn)
    if turned is None:
        return
    snapshot, page, enriched = turned

    if not enriched:
        # Results are immutable, so the list can be read outside the lock.
        records = await _fetch_enrichment(
            context, snapshot.query, list(snapshot.results), page, snapshot.per_page
        )
        if records is not None:
            await store.mutate(
                key, user_id, lambda c: _merge_enrichment(c, page, records)
            )

    await _advance(context, key, user_id, _flat_view_if_flat)


def _flat_view_if_flat(c: SelectionContext) -> views.View | None:
    if not isinstance(c.selection, FlatSelection):
        return None
    return views.build_flat_view(c)


async def _turn_episode_page(
    context: ContextTypes.DEFAULT_TYPE, key: MessageKey, user_id: int, delta: int
) -> None:
    def turn(c: SelectionContext) -> views.View | None:
        selection = c.selection
        if (
            not isinstance(selection, HierarchicalSelection)
            or selection.step != SelectionStep.AWAITING_EPISODE
        ):
            return None
        selection.page = compute_window(
            len(selection.current_episodes()), selection.page + delta, c.per_page
        ).page
        return views.build_episode_view(c)

    await _advance(context, key, user_id, turn)


def _pick_show(c: SelectionContext, index: int) -> views.View | None:
    selection = c.selection
    if (
        not isinstance(selection, HierarchicalSelection)
        or selection.step != SelectionStep.AWAITING_SHOW
    ):
        return None
    order = selection.hierarchy.order
    if not 0 <= index < len(order):
        return None
    selection.show = order[index]
    selection.season = None
    selection.page = 0
    selection.step = SelectionStep.AWAITING_SEASON
    return views.build_season_view(c)


def _pick_season(c: SelectionContext, season: int) -> views.View | None:
    selection = c.selection
    if (
        not isinstance(selection, HierarchicalSelection)
        or selection.step != SelectionStep.AWAITING_SEASON
    ):
        return None
    if season not in selection.hierarchy.seasons(selection.require_show()):
        return None
    selection.season = season
    selection.page = 0
    selection.step = SelectionStep.AWAITING_EPISODE
    return views.build_episode_view(c)


# --- Terminal picks ---


def _pick_flat(c: SelectionContext, index: int) -> TerminalPick | None:
    if not isinstance(c.selection, FlatSelection) or c.kind != "component":
        return None
    results = c.results
    if not 0 <= index < len(results) or not results[index].is_actionable:
        return None
    return TerminalPick(results[index], c.chat_id, c.cache_intent)


def _pick_episode(c: SelectionContext, index: int) -> TerminalPick | None:
    selection = c.selection
    if (
        not isinstance(selection, HierarchicalSelection)
        or selection.step != SelectionStep.AWAITING_EPISODE
    ):
        return None
    episodes = selection.current_episodes()
    if not 0 <= index < len(episodes) or not episodes[index].is_actionable:
        return None
    selection.step = SelectionStep.TERMINAL
    return TerminalPick(episodes[index], c.chat_id, c.cache_intent)


def _pick_by_position(c: SelectionContext, position: int) -> TerminalPick | None:
    if c.kind != "reaction":
        return None
    results = c.results
    if not 1 <= position <= len(results) or not results[position - 1].is_actionable:
        return None
    return TerminalPick(results[position - 1], c.chat_id, c.cache_intent)


async def _consume_and_act(
    context: ContextTypes.DEFAULT_TYPE,
    key: MessageKey,
    user_id: int,
    pick: Callable[[SelectionContext], TerminalPick | None],
) -> None:
    """
    Removes the context and hands its pick to the download or cache flow.
    A duplicate or late event finds no context and does nothing.
    """
    picked = await _store(context).consume(key, user_id, pick)
    if picked is None:
        return

    result = picked.result
    if picked.cache_intent is not None:
        notice = format_notice(
            "💾",
            "Caching",
            f"Caching {result.display_title} for "
            f"{picked.cache_intent.days} day(s)...",
        )
    else:
        notice = format_notice(
            "⏳", "Starting Download", f"Starting download for: {result.display_title}"
        )
    if not await _render(context, key, notice):
        return

    logger.info(
        f"[SELECT] User {user_id} picked '{result.display_title}' from {key}."
    )
    if picked.cache_intent is not None:
        poller = CachePoller(context.bot, _api(context))
        _registry(context).spawn(
            poller.run(picked.chat_id, user_id, result, picked.cache_intent.days),
            name=f"cache-{result.stream_id}",
        )
    else:
        await start_download(
            context.bot, _api(context), picked.chat_id, user_id, result
        )


# --- Legacy digit picks ---


def _added_emojis(reaction: MessageReactionUpdated) -> list[str]:
    old = {getattr(r, "emoji", None) for r in reaction.old_reaction}
    return [
        emoji
        for emoji in (getattr(r, "emoji", None) for r in reaction.new_reaction)
        if emoji and emoji not in old
    ]


async def handle_digit_reaction(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """Resolves a keycap reaction on a numbered listing into a pick."""
    reaction = update.message_reaction
    if reaction is None or reaction.user is None:
        return
    key: MessageKey = (reaction.chat.id, reaction.message_id)
    for emoji in _added_emojis(reaction):
        position = digit_position(emoji)
        if position is None:
            continue
        await _consume_and_act(
            context,
            key,
            reaction.user.id,
            lambda c, p=position: _pick_by_position(c, p),
        )
        return


async def handle_digit_reply(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> bool:
    """
    Resolves a digit sent as a reply to a numbered listing. Returns False
    when the message is not such a reply so other handlers can take it.
    """
    message = update.message
    if (
        message is None
        or not message.text
        or message.reply_to_message is None
        or message.from_user is None
    ):
        return False
    position = digit_position(message.text)
    if position is None:
        return False
    key: MessageKey = (message.chat_id, message.reply_to_message.message_id)
    if await _store(context).get(key) is None:
        return False
    await _consume_and_act(
        context,
        key,
        message.from_user.id,
        lambda c: _pick_by_position(c, position),
    )
    return True
