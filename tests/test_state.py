import asyncio
from types import SimpleNamespace

import pytest

from vod_bot.config import ApiConfig
from vod_bot.services.api_client import InternalApiClient
from vod_bot.services.cache_service import PollerRegistry
from vod_bot.state import post_init, post_shutdown
from vod_bot.workflows.selection_session import InMemoryContextStore


@pytest.mark.asyncio
async def test_post_init_creates_runtime_objects_and_shutdown_stops_them():
    application = SimpleNamespace(
        bot_data={"API_CONFIG": ApiConfig(base_url="http://api.test", api_key="k")}
    )

    await post_init(application)

    assert isinstance(application.bot_data["API_CLIENT"], InternalApiClient)
    assert isinstance(application.bot_data["CONTEXT_STORE"], InMemoryContextStore)
    registry = application.bot_data["POLLER_REGISTRY"]
    assert isinstance(registry, PollerRegistry)
    sweeper = application.bot_data["SWEEPER_TASK"]
    assert not sweeper.done()

    poller = registry.spawn(asyncio.sleep(3600), name="cache-test")
    client = application.bot_data["API_CLIENT"]

    await post_shutdown(application)

    assert sweeper.cancelled()
    assert poller.cancelled()
    assert "SWEEPER_TASK" not in application.bot_data
    assert client._client.is_closed


@pytest.mark.asyncio
async def test_post_shutdown_tolerates_missing_state():
    application = SimpleNamespace(bot_data={})
    await post_shutdown(application)
