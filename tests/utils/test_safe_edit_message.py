from unittest.mock import AsyncMock

import pytest
from telegram.error import BadRequest, RetryAfter, TimedOut

from vod_bot.utils import safe_edit_message


@pytest.mark.asyncio
async def test_safe_edit_message_retries_on_retry_after(mocker, bot):
    bot.edit_message_text = AsyncMock(side_effect=[RetryAfter(1), None])
    sleep_mock = mocker.patch("asyncio.sleep", new=AsyncMock())

    await safe_edit_message(bot, 456, 42, "hello", base_delay=0)

    assert bot.edit_message_text.await_count == 2
    assert sleep_mock.await_args.args[0] >= 1.0
    bot.edit_message_text.assert_awaited_with(
        text="hello", chat_id=456, message_id=42
    )


@pytest.mark.asyncio
async def test_safe_edit_message_treats_not_modified_as_success(bot):
    bot.edit_message_text = AsyncMock(
        side_effect=BadRequest("Message is not modified: specified new content is the same")
    )

    await safe_edit_message(bot, 456, 42, "same")

    bot.edit_message_text.assert_awaited_once()


@pytest.mark.asyncio
async def test_safe_edit_message_raises_other_bad_requests(bot):
    bot.edit_message_text = AsyncMock(side_effect=BadRequest("Message to edit not found"))

    with pytest.raises(BadRequest):
        await safe_edit_message(bot, 456, 42, "gone")

    bot.edit_message_text.assert_awaited_once()


@pytest.mark.asyncio
async def test_safe_edit_message_backs_off_on_timeouts(mocker, bot):
    bot.edit_message_text = AsyncMock(side_effect=TimedOut())
    sleep_mock = mocker.patch("asyncio.sleep", new=AsyncMock())

    with pytest.raises(TimedOut):
        await safe_edit_message(bot, 456, 42, "slow", base_delay=0.5)

    assert bot.edit_message_text.await_count == 3
    assert [c.args[0] for c in sleep_mock.await_args_list] == [0.5, 1.0, 2.0]
