import os
import sys
from datetime import datetime
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import pytest

# Set PTB timedelta before importing telegram types; keep imports at top via noqa
os.environ.setdefault("PTB_TIMEDELTA", "1")
from telegram import Bot, CallbackQuery, Chat, Message, Update, User  # noqa: E402

# Ensure root path is available for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from vod_bot.services.api_client import InternalApiClient  # noqa: E402
from vod_bot.services.cache_service import PollerRegistry  # noqa: E402
from vod_bot.workflows.results import VODResult  # noqa: E402
from vod_bot.workflows.selection_session import InMemoryContextStore  # noqa: E402

API_METHODS = (
    "resolve_identity",
    "link_account",
    "search_vod",
    "enrich_page",
    "request_download",
    "start_cache",
    "cache_progress",
    "list_cached",
    "get_status",
    "disconnect_user",
    "timeout_user",
    "aclose",
)


@pytest.fixture
def user():
    return User(id=123, first_name="Test", is_bot=False, username="tester")


@pytest.fixture
def chat():
    return Chat(id=456, type="private")


@pytest.fixture
def make_message(user, chat):
    def _make(
        text: str = "",
        message_id: int = 1,
        reply_to: Message | None = None,
        from_user: User | None = None,
    ):
        msg = Message(
            message_id=message_id,
            date=datetime.now(),
            chat=chat,
            from_user=from_user or user,
            text=text,
            reply_to_message=reply_to,
        )
        bot = Mock(spec=Bot)
        bot.delete_message = AsyncMock()
        bot.edit_message_text = AsyncMock()
        msg.set_bot(bot)
        return msg

    return _make


@pytest.fixture
def make_callback_query(user, make_message):
    def _make(data: str, message: Message | None = None, from_user: User | None = None):
        if message is None:
            message = make_message()
        return CallbackQuery(
            id="1",
            from_user=from_user or user,
            chat_instance="1",
            data=data,
            message=message,
        )

    return _make


@pytest.fixture
def make_update():
    def _make(
        message: Message | None = None,
        callback_query: CallbackQuery | None = None,
        message_reaction=None,
        update_id: int = 1,
    ):
        return Update(
            update_id=update_id,
            message=message,
            callback_query=callback_query,
            message_reaction=message_reaction,
        )

    return _make


@pytest.fixture
def make_result():
    def _make(index: int = 0, **overrides) -> VODResult:
        fields = {
            "id": f"id{index}",
            "title": f"Movie {index:02d}",
            "stream_id": f"s{index}",
            "year": "2020",
        }
        fields.update(overrides)
        return VODResult(**fields)

    return _make


@pytest.fixture
def api():
    client = Mock(spec=InternalApiClient)
    for name in API_METHODS:
        setattr(client, name, AsyncMock())
    client.resolve_identity.return_value = "alice"
    client.enrich_page.return_value = []
    client.search_vod.return_value = []
    return client


@pytest.fixture
def bot():
    bot = Mock(spec=Bot)
    bot.send_message = AsyncMock(return_value=SimpleNamespace(message_id=900))
    bot.edit_message_text = AsyncMock()
    return bot


@pytest.fixture
def context(bot, api):
    return SimpleNamespace(
        bot=bot,
        user_data={},
        bot_data={
            "API_CLIENT": api,
            "CONTEXT_STORE": InMemoryContextStore(),
            "POLLER_REGISTRY": PollerRegistry(),
            "ADMIN_USER_IDS": [999],
        },
    )
