# vod_bot/services/cache_service.py

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Coroutine, Mapping

from telegram import Bot
from telegram.constants import ParseMode
from telegram.error import TelegramError

from ..config import (
    CACHE_POLL_DEADLINE_SECONDS,
    CACHE_POLL_INTERVAL_SECONDS,
    MAX_CACHE_DAYS,
    MIN_CACHE_DAYS,
    logger,
)
from ..ui.messages import format_link_required, format_notice, md, render_bar
from ..utils import coerce_int, get_str, safe_edit_message, safe_send_message
from ..workflows.results import VODResult
from .api_client import ApiError, InternalApiClient

__all__ = [
    "CacheJob",
    "CachePoller",
    "PollerRegistry",
    "ValidationError",
    "render_bar",
    "validate_days",
]


class ValidationError(Exception):
    """User input was rejected; `user_message` says how to fix it."""

    def __init__(self, user_message: str):
        super().__init__(user_message)
        self.user_message = user_message


def validate_days(raw: Any) -> int:
    """Parses a retention day count, accepting only whole numbers in 1-14."""
    message = (
        f"Please provide a valid number of days between "
        f"{MIN_CACHE_DAYS} and {MAX_CACHE_DAYS}."
    )
    if isinstance(raw, bool):
        raise ValidationError(message)
    if isinstance(raw, int):
        days = raw
    else:
        try:
            days = int(str(raw).strip())
        except ValueError:
            raise ValidationError(message) from None
    if not MIN_CACHE_DAYS <= days <= MAX_CACHE_DAYS:
        raise ValidationError(message)
    return days


@dataclass
class CacheJob:
    """Last known state of one background caching operation."""

    stream_id: str
    title: str
    expires_at: str = ""
    status: str = "downloading"
    downloaded: int = 0
    total: int = 0
    percent: int = 0

    @property
    def is_ready(self) -> bool:
        return self.status == "ready" or self.percent >= 100

    @property
    def is_failed(self) -> bool:
        return self.status == "failed"

    def update(self, data: Mapping[str, Any]) -> None:
        """Applies one /cache/progress answer."""
        self.status = get_str(data, "status").strip().lower() or self.status
        self.downloaded = coerce_int(data.get("downloaded_bytes"))
        self.total = coerce_int(data.get("total_bytes"))
        self.percent = coerce_int(data.get("percent"))


def _job_text(job: CacheJob, icon: str, heading: str, footer: str) -> str:
    lines = [f"{icon} *{md(heading)}*", "", md(job.title)]
    if job.expires_at:
        lines.append(f"Expires: {md(job.expires_at)}")
    lines.append("")
    lines.append(footer)
    return "\n".join(lines)


def format_job_progress(job: CacheJob) -> str:
    return _job_text(
        job, "💾", "Caching", render_bar(job.downloaded, job.total, job.percent)
    )


def format_job_ready(job: CacheJob) -> str:
    # A finished job is shown full even when the counters lag behind.
    total = job.total or job.downloaded
    return _job_text(job, "✅", "Cache Ready", render_bar(total, total, 100))


def format_job_failed(job: CacheJob) -> str:
    return _job_text(job, "❌", "Cache Failed", md("Please retry later."))


def format_job_timed_out(job: CacheJob, deadline: float) -> str:
    hours = max(int(deadline // 3600), 1)
    return _job_text(
        job,
        "⌛",
        "Stopped Tracking",
        md(
            f"No final status after {hours} hour(s). The cache may still "
            f"complete; check with the cached command."
        ),
    )


class CachePoller:
    """
    Runs one cache request end to end: identity lookup, job start, then
    polling until the job is ready, failed, or the deadline passes.

    The progress message is sent once and edited in place on every tick.
    """

    def __init__(
        self,
        bot: Bot,
        api: InternalApiClient,
        *,
        interval: float = CACHE_POLL_INTERVAL_SECONDS,
        deadline: float = CACHE_POLL_DEADLINE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.bot = bot
        self.api = api
        self.interval = interval
        self.deadline = deadline
        self._clock = clock

    async def run(
        self, chat_id: int, user_id: int, result: VODResult, days: int
    ) -> CacheJob | None:
        """Returns the final job state, or None when the job never started."""
        job = await self._start(chat_id, user_id, result, days)
        if job is None:
            return None

        try:
            message = await safe_send_message(
                self.bot,
                chat_id,
                format_job_progress(job),
                parse_mode=ParseMode.MARKDOWN_V2,
            )
        except TelegramError as e:
            logger.error(f"[CACHE] Could not send progress message: {e}")
            return job

        if not job.stream_id:
            logger.warning(
                f"[CACHE] Backend returned no stream id for '{job.title}'; "
                "progress cannot be tracked."
            )
            return job

        await self._poll(job, chat_id, message.message_id)
        return job

    async def _start(
        self, chat_id: int, user_id: int, result: VODResult, days: int
    ) -> CacheJob | None:
        try:
            username = await self.api.resolve_identity(user_id)
        except ApiError as e:
            logger.error(f"[CACHE] Identity lookup failed for user {user_id}: {e}")
            await self._notify(
                chat_id,
                format_notice("❌", "Cache Failed", "Couldn't resolve your account."),
            )
            return None
        if not username:
            await self._notify(chat_id, format_link_required())
            return None

        payload = {
            "stream_id": result.stream_id,
            "type": result.stream_type,
            "title": result.title,
            "series_title": result.series_title,
            "season": result.season,
            "episode": result.episode,
            "days": days,
        }
        try:
            data = await self.api.start_cache(username, payload)
        except ApiError as e:
            await self._notify(
                chat_id,
                format_notice("❌", "Cache Failed", f"Couldn't start caching: {e}"),
            )
            return None

        logger.info(
            f"[CACHE] {username} started caching '{result.display_title}' "
            f"for {days} day(s)."
        )
        return CacheJob(
            stream_id=get_str(data, "stream_id"),
            title=result.display_title,
            expires_at=get_str(data, "expires_at"),
        )

    async def _poll(self, job: CacheJob, chat_id: int, message_id: int) -> None:
        stop_at = self._clock() + self.deadline
        while self._clock() < stop_at:
            await asyncio.sleep(self.interval)
            try:
                data = await self.api.cache_progress(job.stream_id)
            except ApiError:
                # Transient; the next tick asks again.
                continue

            job.update(data)
            if job.is_ready:
                text = format_job_ready(job)
            elif job.is_failed:
                text = format_job_failed(job)
            else:
                text = format_job_progress(job)

            if not await self._edit(chat_id, message_id, text):
                return
            if job.is_ready or job.is_failed:
                logger.info(f"[CACHE] Job {job.stream_id} finished: {job.status}.")
                return

        logger.warning(
            f"[CACHE] Gave up tracking job {job.stream_id} after {self.deadline}s."
        )
        await self._edit(chat_id, message_id, format_job_timed_out(job, self.deadline))

    async def _edit(self, chat_id: int, message_id: int, text: str) -> bool:
        try:
            await safe_edit_message(
                self.bot,
                chat_id,
                message_id,
                text,
                parse_mode=ParseMode.MARKDOWN_V2,
            )
        except TelegramError as e:
            logger.error(f"[CACHE] Progress message edit failed, stopping: {e}")
            return False
        return True

    async def _notify(self, chat_id: int, text: str) -> None:
        try:
            await safe_send_message(
                self.bot, chat_id, text, parse_mode=ParseMode.MARKDOWN_V2
            )
        except TelegramError as e:
            logger.error(f"[CACHE] Could not notify chat {chat_id}: {e}")


class PollerRegistry:
    """
    Owns the detached poller tasks so they can be cancelled on shutdown.

    Finished tasks remove themselves; their failures are logged here and
    never reach the code that spawned them.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(
        self, coro: Coroutine[Any, Any, Any], name: str | None = None
    ) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"[CACHE] Poller task {task.get_name()} crashed: {exc}",
                exc_info=exc,
            )

    async def cancel_all(self) -> None:
        tasks = [task for task in self._tasks if not task.done()]
        if not tasks:
            return
        logger.info(f"[CACHE] Cancelling {len(tasks)} cache poller(s)...")
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
