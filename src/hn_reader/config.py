from __future__ import annotations

import json
import logging
import os
from datetime import datetime
from typing import Any, Dict, Optional

# --- Configuration ---
DEFAULT_API_BASE_URL = "http://localhost:3000/api"
API_BASE_URL_ENV = "HN_READER_API_BASE_URL"
HTTP_TIMEOUT = 15
RETRY_ATTEMPTS = 3

INITIAL_ITEMS = 20
LOAD_MORE_ITEMS = 10
RECONNECT_DELAY = 5.0

READ_STORIES_KEY = "hn_read_stories"
MAX_READ_STORIES = 500
FAVORITES_KEY = "hn_favorites"

CONFIG_PATH = os.path.expanduser("~/.config/hn-reader/config.json")
STATE_DIR = os.path.expanduser("~/.config/hn-reader/state")

DEFAULT_CONFIG: Dict[str, Any] = {
    "api_base_url": DEFAULT_API_BASE_URL,
    "initial_items": INITIAL_ITEMS,
    "load_more_items": LOAD_MORE_ITEMS,
    "reconnect_delay": RECONNECT_DELAY,
    "state_dir": STATE_DIR,
}

# --- Logging ---
logger = logging.getLogger("hn_reader")


def setup_logging(debug: bool = False) -> Optional[str]:
    """Configure logging."""
    if not debug:
        logging.basicConfig(level=logging.CRITICAL, handlers=[logging.NullHandler()])
        return None

    ts = datetime.now().strftime("%Y%m%dT%H%M%S")
    pid = os.getpid()
    debug_path = f"/tmp/hn_reader_debug_{ts}_{pid}.log"

    logging.basicConfig(
        level=logging.DEBUG,
        filename=debug_path,
        filemode="a",
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )

    logger.debug("Debug logging enabled to %s", debug_path)
    return debug_path


def trim_trailing_slash(value: str) -> str:
    if len(value) > 1 and value.endswith("/"):
        return value.rstrip("/") or "/"
    return value


def resolve_api_base_url(config: Dict[str, Any]) -> str:
    """Pick the backend base URL: environment first, then config, then default."""
    raw = os.environ.get(API_BASE_URL_ENV) or config.get("api_base_url") or ""
    return trim_trailing_slash(str(raw).strip() or DEFAULT_API_BASE_URL)


def ensure_config_file_exists() -> None:
    """Write the default config file if the user's config file is not found."""
    if not os.path.exists(CONFIG_PATH):
        logger.info("Config file not found at %s, creating default.", CONFIG_PATH)
        save_config(DEFAULT_CONFIG)


def load_config() -> Dict[str, Any]:
    """Load the main configuration file, filling in defaults for missing keys."""
    ensure_config_file_exists()
    config = dict(DEFAULT_CONFIG)
    try:
        with open(CONFIG_PATH, "r") as f:
            config.update(json.load(f))
            logger.info("Loaded config from %s", CONFIG_PATH)
    except (IOError, json.JSONDecodeError) as e:
        logger.error("Failed to load config from %s: %s", CONFIG_PATH, e)
    return config


def save_config(config: Dict[str, Any]) -> None:
    """Save the main configuration file."""
    try:
        os.makedirs(os.path.dirname(CONFIG_PATH), exist_ok=True)
        with open(CONFIG_PATH, "w") as f:
            json.dump(config, f, indent=2)
        logger.info("Saved config to %s", CONFIG_PATH)
    except IOError as e:
        logger.error("Failed to save config to %s: %s", CONFIG_PATH, e)
