# vod_bot/ui/views.py

from __future__ import annotations

from typing import Sequence

from telegram import InlineKeyboardButton, InlineKeyboardMarkup

from ..config import LABEL_MAX_CHARS, PAGE_SIZE
from ..utils import truncate
from ..workflows.results import VODResult
from ..workflows.selection_session import (
    FlatSelection,
    HierarchicalSelection,
    SelectionContext,
)
from .messages import md
from .pagination import (
    PageWindow,
    build_episode_label,
    build_label,
    build_options,
    compute_window,
    nav_state,
)

# --- Callback data ---
CB_PREFIX = "sel_"
CB_PICK = "sel_pick_"
CB_PREV = "sel_prev"
CB_NEXT = "sel_next"
CB_SHOW = "sel_show_"
CB_SEASON = "sel_season_"
CB_EPISODE = "sel_ep_"
CB_EP_PREV = "sel_ep_prev"
CB_EP_NEXT = "sel_ep_next"
CB_NOOP = "sel_noop"

DIGIT_EMOJIS: tuple[str, ...] = (
    "1️⃣",
    "2️⃣",
    "3️⃣",
    "4️⃣",
    "5️⃣",
    "6️⃣",
    "7️⃣",
    "8️⃣",
    "9️⃣",
    "0️⃣",
)

View = tuple[str, InlineKeyboardMarkup]


def _nav_row(
    window: PageWindow, prev_data: str, next_data: str
) -> list[InlineKeyboardButton] | None:
    """
    Prev/Next row. Telegram buttons cannot be greyed out, so a disabled
    direction renders as a dimmed label that does nothing when pressed.
    """
    state = nav_state(window)
    if state is None:
        return None
    prev_enabled, next_enabled = state
    return [
        InlineKeyboardButton(
            "< Prev" if prev_enabled else "·",
            callback_data=prev_data if prev_enabled else CB_NOOP,
        ),
        InlineKeyboardButton(
            f"{window.page + 1}/{window.pages}", callback_data=CB_NOOP
        ),
        InlineKeyboardButton(
            "Next >" if next_enabled else "·",
            callback_data=next_data if next_enabled else CB_NOOP,
        ),
    ]


def flat_window(context: SelectionContext) -> PageWindow:
    return compute_window(len(context.results), context.page, context.per_page)


def build_flat_view(context: SelectionContext) -> View:
    """Search results picker for a flat (movie/episode) selection."""
    if not isinstance(context.selection, FlatSelection):
        raise TypeError("build_flat_view requires a flat selection")

    results = context.results
    window = flat_window(context)
    options = build_options(results, window)

    if context.cache_intent is not None:
        header = (
            f"💾 *Cache — Select Item*\n\n"
            f"{len(results)} result\\(s\\)\\. Days: {context.cache_intent.days}\\."
        )
    else:
        header = (
            f"🎬 *VOD Search Results*\n\n"
            f"Query: `{md(context.query)}` — {len(results)} result\\(s\\)"
        )
    if window.pages > 1:
        header += f" — Page {window.page + 1}/{window.pages}"

    lines = [header, ""]
    for number, option in enumerate(options, start=window.start + 1):
        if option.description:
            lines.append(f"{number}\\. {md(option.description)}")
    lines.append("")
    lines.append("Pick a title below\\.")

    keyboard = [
        [
            InlineKeyboardButton(
                truncate(f"{number}. {option.label}", LABEL_MAX_CHARS),
                callback_data=f"{CB_PICK}{option.value}",
            )
        ]
        for number, option in enumerate(options, start=window.start + 1)
    ]
    nav = _nav_row(window, CB_PREV, CB_NEXT)
    if nav:
        keyboard.append(nav)
    return "\n".join(lines), InlineKeyboardMarkup(keyboard)


def build_show_view(context: SelectionContext) -> View:
    selection = _require_hierarchy(context)
    order = selection.hierarchy.order
    keyboard = [
        [InlineKeyboardButton(show, callback_data=f"{CB_SHOW}{index}")]
        for index, show in enumerate(order[:PAGE_SIZE])
    ]
    text = (
        f"📺 *Pick a Show*\n\n"
        f"Query: `{md(context.query)}` — {len(order)} show\\(s\\)"
    )
    if len(order) > PAGE_SIZE:
        text += (
            f"\n\nOnly the first {PAGE_SIZE} are listed\\. "
            "Narrow your query to see the rest\\."
        )
    return text, InlineKeyboardMarkup(keyboard)


def build_season_view(context: SelectionContext) -> View:
    selection = _require_hierarchy(context)
    show = selection.require_show()
    seasons = selection.hierarchy.seasons(show)
    keyboard = [
        [
            InlineKeyboardButton(
                f"Season {season}" if season else "Unknown season",
                callback_data=f"{CB_SEASON}{season}",
            )
        ]
        for season in seasons
    ]
    text = f"📺 *Pick a Season*\n\nShow: *{md(show)}*"
    return text, InlineKeyboardMarkup(keyboard)


def episode_window(context: SelectionContext) -> PageWindow:
    selection = _require_hierarchy(context)
    return compute_window(
        len(selection.current_episodes()), selection.page, context.per_page
    )


def build_episode_view(context: SelectionContext) -> View:
    selection = _require_hierarchy(context)
    show = selection.require_show()
    season = selection.require_season()
    episodes = selection.current_episodes()
    window = episode_window(context)

    keyboard = [
        [
            InlineKeyboardButton(
                build_episode_label(episodes[i], season),
                callback_data=f"{CB_EPISODE}{i}",
            )
        ]
        for i in range(window.start, window.end)
    ]
    nav = _nav_row(window, CB_EP_PREV, CB_EP_NEXT)
    if nav:
        keyboard.append(nav)
    text = (
        f"📺 *Pick an Episode*\n\n"
        f"Show: *{md(show)}* — Season {season} — Page {window.page + 1}/{window.pages}"
    )
    return text, InlineKeyboardMarkup(keyboard)


def build_reaction_listing(query: str, results: Sequence[VODResult]) -> str:
    """Numbered list for the digit-reaction picker (at most ten entries)."""
    lines = [f"🎬 *Search Results* for `{md(query)}`", ""]
    for emoji, result in zip(DIGIT_EMOJIS, results):
        lines.append(f"{emoji} {md(build_label(result))}")
    lines.append("")
    lines.append("Reply with the number, or react with it, to pick\\.")
    return "\n".join(lines)


def download_keyboard(url: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([[InlineKeyboardButton("Open Download", url=url)]])


def _require_hierarchy(context: SelectionContext) -> HierarchicalSelection:
    if not isinstance(context.selection, HierarchicalSelection):
        raise TypeError("expected a hierarchical selection")
    return context.selection
