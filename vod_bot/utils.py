# vod_bot/utils.py

import asyncio
import math
from datetime import timedelta
from typing import Any, Mapping

from telegram import Bot, Message
from telegram.error import BadRequest, NetworkError, RetryAfter, TimedOut


def format_bytes(size_bytes: int) -> str:
    """Converts bytes into a human-readable string (e.g., KB, MB, GB)."""
    if size_bytes <= 0:
        return "0 B"
    size_name = ("B", "KB", "MB", "GB", "TB")
    i = min(int(math.floor(math.log(size_bytes, 1024))), len(size_name) - 1)
    p = math.pow(1024, i)
    s = round(size_bytes / p, 2)
    return f"{s} {size_name[i]}"


def truncate(text: str, limit: int, marker: str = "...") -> str:
    """Cuts text to at most `limit` characters, ending with `marker` when cut."""
    if len(text) <= limit:
        return text
    return text[: max(limit - len(marker), 0)] + marker


def get_str(record: Mapping[str, Any], key: str) -> str:
    """Returns record[key] if it is a string, otherwise an empty string."""
    value = record.get(key)
    return value if isinstance(value, str) else ""


def coerce_int(value: Any) -> int:
    """
    Best-effort integer conversion for loosely typed JSON values.

    Accepts ints, floats (JSON numbers) and numeric strings. Anything else,
    including booleans, yields 0.
    """
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            try:
                return int(float(value.strip()))
            except ValueError:
                return 0
    return 0


def _retry_after_seconds(exc: RetryAfter, default: float) -> float:
    ra = getattr(exc, "retry_after", None)
    if isinstance(ra, timedelta):
        return ra.total_seconds()
    try:
        return float(ra) if ra is not None else default
    except (TypeError, ValueError):
        return default


async def safe_edit_message(
    bot: Bot,
    chat_id: int,
    message_id: int,
    text: str,
    *,
    max_attempts: int = 3,
    base_delay: float = 0.6,
    **kwargs: Any,
) -> None:
    """
    Edits a message in place, retrying on flood control and transient
    network errors.

    'Message is not modified' is treated as success. Any other BadRequest is
    raised so the calling flow can log it and stop.
    """
    attempt = 0
    delay = base_delay
    last_exc: Exception | None = None

    while attempt < max_attempts:
        try:
            await bot.edit_message_text(
                text=text, chat_id=chat_id, message_id=message_id, **kwargs
            )
            return
        except BadRequest as e:
            if "message is not modified" in str(e).lower():
                return
            raise
        except RetryAfter as e:
            await asyncio.sleep(_retry_after_seconds(e, delay) + 0.1)
            last_exc = e
        except (TimedOut, NetworkError) as e:
            await asyncio.sleep(delay)
            delay *= 2
            last_exc = e
        attempt += 1

    assert last_exc is not None
    raise last_exc


async def safe_send_message(
    bot: Bot,
    chat_id: int,
    text: str,
    *,
    max_attempts: int = 3,
    base_delay: float = 0.6,
    **kwargs: Any,
) -> Message:
    """
    Sends a message with retries on transient Telegram/network errors.

    Returns the sent Message on success, or raises the last exception.
    """
    attempt = 0
    delay = base_delay
    last_exc: Exception | None = None

    while attempt < max_attempts:
        try:
            return await bot.send_message(chat_id=chat_id, text=text, **kwargs)
        except BadRequest:
            # Rejected content fails the same way on every attempt.
            raise
        except RetryAfter as e:
            await asyncio.sleep(_retry_after_seconds(e, delay) + 0.1)
            last_exc = e
        except (TimedOut, NetworkError) as e:
            await asyncio.sleep(delay)
            delay *= 2
            last_exc = e
        attempt += 1

    assert last_exc is not None
    raise last_exc
