# vod_bot/ui/messages.py

from __future__ import annotations

from typing import Sequence

from telegram.helpers import escape_markdown

from ..config import PROGRESS_BAR_WIDTH
from ..utils import coerce_int, format_bytes, get_str
from ..workflows.results import VODResult


def md(text: object) -> str:
    """Escapes arbitrary text for MarkdownV2."""
    return escape_markdown(str(text), version=2)


def format_notice(icon: str, title: str, body: str = "") -> str:
    """
    Builds a MarkdownV2 notice: a bold title line and an optional body.

    `body` is escaped here; callers pass plain text.
    """
    lines = [f"{icon} *{md(title)}*"]
    if body:
        lines.append("")
        lines.append(md(body))
    return "\n".join(lines)


def progress_percent(done: int, total: int, reported: int = 0) -> int:
    """Percent from byte counters when both are known, else the reported value."""
    if total > 0 and done >= 0:
        pct = (done * 100) // total
    else:
        pct = reported
    return min(max(pct, 0), 100)


def render_bar(done: int, total: int, reported_percent: int = 0) -> str:
    """Textual progress bar plus a bytes summary, MarkdownV2-ready."""
    pct = progress_percent(done, total, reported_percent)
    filled = min((pct * PROGRESS_BAR_WIDTH) // 100, PROGRESS_BAR_WIDTH)
    bar = "█" * filled + "░" * (PROGRESS_BAR_WIDTH - filled)
    if total > 0:
        size = f"{format_bytes(done)}/{format_bytes(total)}"
    elif done > 0:
        size = format_bytes(done)
    else:
        size = "starting…"
    return f"`[{bar}]` {pct}% — {md(size)}"


def format_download_ready(result: VODResult, expires_at: str = "") -> str:
    lines = [f"✅ *Download Ready — {md(result.display_title)}*", ""]
    lines.append("Your download is ready\\.")
    if expires_at.strip():
        lines.append(f"This link will expire after {md(expires_at.strip())}")
    details: list[str] = []
    if result.year:
        details.append(f"*Year:* {md(result.year)}")
    if result.rating:
        details.append(f"*Rating:* ⭐ {md(result.rating)}")
    if result.size:
        details.append(f"*Size:* {md(result.size)}")
    if result.duration:
        details.append(f"*Duration:* {md(result.duration)}")
    if details:
        lines.append("")
        lines.extend(details)
    return "\n".join(lines)


def humanize_time_left(seconds: int) -> str:
    """Days when at least one is left, otherwise hours rounded up."""
    if seconds <= 0:
        return "expired"
    days = seconds // 86400
    if days >= 1:
        return "1 day" if days == 1 else f"{days} days"
    hours = (seconds + 3599) // 3600
    return "1 hour" if hours <= 1 else f"{hours} hours"


def format_cached_lines(items: Sequence[dict]) -> list[str]:
    """One MarkdownV2 bullet per cached item."""
    lines: list[str] = []
    for item in items:
        title = get_str(item, "title").strip()
        if get_str(item, "type") == "series":
            series_title = get_str(item, "series_title").strip()
            title = series_title or title or "Series"
            season = coerce_int(item.get("season"))
            episode = coerce_int(item.get("episode"))
            if season > 0 or episode > 0:
                title = f"{title} S{season:02d}E{episode:02d}"
        elif not title:
            title = "Unknown title"
        line = f"• {title}"
        requested_by = get_str(item, "requested_by").strip()
        if requested_by:
            line += f" — by {requested_by}"
        left = humanize_time_left(coerce_int(item.get("time_left_seconds")))
        line += f" — expires in {left}"
        lines.append(md(line))
    return lines


def format_link_required() -> str:
    return format_notice(
        "🔗",
        "Linking Required",
        "Your Telegram account is not linked to an IPTV user. "
        "Link it first with: link <username>",
    )
