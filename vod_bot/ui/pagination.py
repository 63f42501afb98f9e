# vod_bot/ui/pagination.py

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import NamedTuple, Sequence

from ..config import LABEL_MAX_CHARS, PAGE_SIZE
from ..utils import truncate
from ..workflows.results import VODResult


@dataclass(frozen=True)
class PageWindow:
    """Visible slice [start, end) of a paginated list."""

    page: int
    pages: int
    start: int
    end: int

    @property
    def size(self) -> int:
        return self.end - self.start

    @property
    def has_prev(self) -> bool:
        return self.page > 0

    @property
    def has_next(self) -> bool:
        return self.page < self.pages - 1


class Option(NamedTuple):
    label: str
    value: str
    description: str


def page_count(total: int, per_page: int) -> int:
    return max(1, math.ceil(max(total, 0) / per_page))


def clamp_page(page: int, pages: int) -> int:
    return min(max(page, 0), pages - 1)


def compute_window(total: int, page: int, per_page: int = PAGE_SIZE) -> PageWindow:
    """
    Clamps `page` into range and returns the slice it covers.

    `per_page` is capped at PAGE_SIZE; an empty list still has one page.
    """
    per_page = max(1, min(per_page, PAGE_SIZE))
    pages = page_count(total, per_page)
    page = clamp_page(page, pages)
    start = page * per_page
    end = min(max(total, 0), start + per_page)
    return PageWindow(page=page, pages=pages, start=min(start, end), end=end)


def nav_state(window: PageWindow) -> tuple[bool, bool] | None:
    """(prev_enabled, next_enabled), or None when there is a single page."""
    if window.pages <= 1:
        return None
    return window.has_prev, window.has_next


def build_label(result: VODResult) -> str:
    if result.is_series and result.series_title and result.episode > 0:
        label = f"{result.series_title} S{result.season:02d}E{result.episode:02d}"
        if result.episode_title:
            label += f" — {result.episode_title}"
    else:
        label = result.title
    if result.year:
        label += f" ({result.year})"
    if result.size:
        label += f" — {result.size}"
    return truncate(label, LABEL_MAX_CHARS)


def build_description(result: VODResult) -> str:
    parts: list[str] = []
    if result.stream_type:
        parts.append(result.stream_type.title())
    if result.category:
        parts.append(result.category)
    if result.size:
        parts.append(result.size)
    if result.rating:
        parts.append(f"⭐ {result.rating}")
    return truncate("  •  ".join(parts), LABEL_MAX_CHARS)


def build_options(results: Sequence[VODResult], window: PageWindow) -> list[Option]:
    """Options for exactly the window; values are absolute list indexes."""
    return [
        Option(build_label(results[i]), str(i), build_description(results[i]))
        for i in range(window.start, window.end)
    ]


def build_episode_label(result: VODResult, season: int) -> str:
    name = result.episode_title.strip() or result.title
    return truncate(f"S{season:02d}E{result.episode:02d} — {name}", LABEL_MAX_CHARS)
