# vod_bot/state.py

import asyncio

from telegram.ext import Application

from .config import ApiConfig, logger
from .services.api_client import InternalApiClient
from .services.cache_service import PollerRegistry
from .workflows.selection_session import InMemoryContextStore, run_sweeper


async def post_init(application: Application) -> None:
    """
    Creates the shared runtime objects once the bot is initialized and
    starts the background sweeper. Called by the ApplicationBuilder.
    """
    logger.info("--- Initializing runtime state ---")
    api_config: ApiConfig = application.bot_data["API_CONFIG"]

    store = InMemoryContextStore()
    application.bot_data["API_CLIENT"] = InternalApiClient(api_config)
    application.bot_data["CONTEXT_STORE"] = store
    application.bot_data["POLLER_REGISTRY"] = PollerRegistry()
    application.bot_data["SWEEPER_TASK"] = asyncio.create_task(
        run_sweeper(store), name="selection-sweeper"
    )
    logger.info("--- Runtime state ready ---")


async def post_shutdown(application: Application) -> None:
    """
    Stops the sweeper and every cache poller, then closes the HTTP client.
    Called by the ApplicationBuilder on graceful shutdown.
    """
    logger.info("--- Shutting down: stopping background tasks ---")

    sweeper = application.bot_data.pop("SWEEPER_TASK", None)
    if sweeper is not None and not sweeper.done():
        sweeper.cancel()
        await asyncio.gather(sweeper, return_exceptions=True)

    registry = application.bot_data.get("POLLER_REGISTRY")
    if registry is not None:
        await registry.cancel_all()

    client = application.bot_data.get("API_CLIENT")
    if client is not None:
        await client.aclose()

    logger.info("--- All background tasks stopped. Shutdown complete. ---")
