# vod_bot/config.py

import configparser
import logging
import os
import sys
from dataclasses import dataclass, field

# --- Constants ---
PAGE_SIZE = 25  # Hard ceiling on options shown per picker page
LABEL_MAX_CHARS = 100
LEGACY_RESULT_LIMIT = 10
SELECTION_TTL_SECONDS = 60 * 60
SWEEP_INTERVAL_SECONDS = 30 * 60
MIN_CACHE_DAYS = 1
MAX_CACHE_DAYS = 14
CACHE_POLL_INTERVAL_SECONDS = 2.0
CACHE_POLL_DEADLINE_SECONDS = 12 * 60 * 60
PROGRESS_BAR_WIDTH = 20
DEFAULT_API_TIMEOUT_SECONDS = 10.0
CONFIG_PATH = "config.ini"

# Setup basic logging
logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)
logging.getLogger("httpx").setLevel(logging.WARNING)


@dataclass(frozen=True)
class ApiConfig:
    """Connection details for the internal stream-sharing API."""

    base_url: str
    api_key: str
    timeout: float = DEFAULT_API_TIMEOUT_SECONDS


@dataclass(frozen=True)
class BotConfig:
    token: str
    api: ApiConfig
    admin_user_ids: list[int] = field(default_factory=list)


def get_configuration(config_path: str = CONFIG_PATH) -> BotConfig:
    """
    Reads the bot token, admin IDs and internal API settings from config.ini.

    A missing file or token is fatal. A missing API key is only logged, since
    the bot can still start and answer help requests without it.
    """
    if not os.path.exists(config_path):
        logger.critical(
            f"Configuration file '{config_path}' not found. Please create it."
        )
        sys.exit(1)

    parser = configparser.ConfigParser()
    with open(config_path, encoding="utf-8") as f:
        parser.read_string(f.read())

    token = parser.get("telegram", "bot_token", fallback=None)
    if not token or token == "PLACE_TOKEN_HERE":
        logger.critical(f"Bot token not found or not set in '{config_path}'.")
        sys.exit(1)

    admin_ids_str = parser.get("telegram", "admin_user_ids", fallback="")
    admin_ids = _parse_id_list(admin_ids_str)
    if not admin_ids:
        logger.info("[CONFIG] No admin_user_ids configured. Admin commands disabled.")

    api_config = _load_api_config(parser)
    return BotConfig(token=token, api=api_config, admin_user_ids=admin_ids)


def _parse_id_list(raw: str) -> list[int]:
    ids: list[int] = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.append(int(part))
        except ValueError:
            logger.warning(f"[CONFIG] Ignoring non-numeric user id '{part}'.")
    return ids


def _load_api_config(config: configparser.ConfigParser) -> ApiConfig:
    """Loads the [api] section. The base URL is mandatory."""
    base_url = config.get("api", "base_url", fallback="").strip()
    if not base_url:
        raise ValueError(
            "'base_url' is mandatory in the [api] section and was not found."
        )

    api_key = config.get("api", "api_key", fallback="").strip()
    if not api_key:
        logger.error(
            "[CONFIG] api_key not set; the bot will not be able to talk to the API."
        )

    timeout = config.getfloat(
        "api", "timeout_seconds", fallback=DEFAULT_API_TIMEOUT_SECONDS
    )

    logger.info(f"[CONFIG] Internal API resolved to: {base_url}")
    return ApiConfig(base_url=base_url.rstrip("/"), api_key=api_key, timeout=timeout)
