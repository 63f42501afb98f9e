from unittest.mock import AsyncMock

import pytest
from telegram import CallbackQuery
from telegram.error import BadRequest

from vod_bot.handlers.callback_handlers import button_handler


@pytest.mark.asyncio
async def test_selection_buttons_are_routed(
    mocker, context, make_callback_query, make_update
):
    answer = mocker.patch.object(CallbackQuery, "answer", AsyncMock())
    route = mocker.patch(
        "vod_bot.handlers.callback_handlers.handle_selection_buttons", AsyncMock()
    )
    update = make_update(callback_query=make_callback_query("sel_pick_3"))

    await button_handler(update, context)

    answer.assert_awaited_once()
    route.assert_awaited_once_with(update, context)


@pytest.mark.asyncio
async def test_unknown_actions_are_only_answered(
    mocker, context, make_callback_query, make_update
):
    answer = mocker.patch.object(CallbackQuery, "answer", AsyncMock())
    route = mocker.patch(
        "vod_bot.handlers.callback_handlers.handle_selection_buttons", AsyncMock()
    )
    warn = mocker.patch("vod_bot.handlers.callback_handlers.logger.warning")

    await button_handler(
        make_update(callback_query=make_callback_query("legacy_action")), context
    )

    answer.assert_awaited_once()
    route.assert_not_awaited()
    warn.assert_called_once()


@pytest.mark.asyncio
async def test_expired_query_still_routes(
    mocker, context, make_callback_query, make_update
):
    mocker.patch.object(
        CallbackQuery, "answer", AsyncMock(side_effect=BadRequest("Query is too old"))
    )
    route = mocker.patch(
        "vod_bot.handlers.callback_handlers.handle_selection_buttons", AsyncMock()
    )

    await button_handler(
        make_update(callback_query=make_callback_query("sel_next")), context
    )

    route.assert_awaited_once()
