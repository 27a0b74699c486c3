#!/usr/bin/env python3
# -*- coding: utf-8 -*-
from __future__ import annotations

import argparse
import logging
import sys

from .app import HNReaderApp
from .config import load_config, resolve_api_base_url, setup_logging, trim_trailing_slash

logger = logging.getLogger("hn_reader")


# --- Entrypoint ---
def main() -> None:
    parser = argparse.ArgumentParser(description="Live translated Hacker News reader")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--api-url", type=str, help="Backend API base URL for this run")
    args = parser.parse_args()

    debug_path = setup_logging(args.debug)
    if debug_path:
        print(f"Debug logging enabled: {debug_path}", file=sys.stderr)

    config = load_config()
    api_url = resolve_api_base_url(config)
    if args.api_url:
        api_url = trim_trailing_slash(args.api_url.strip())

    logger.info("Using backend: %s", api_url)

    try:
        app = HNReaderApp(config=config, api_url=api_url)
        app.run()
    except Exception as e:
        logger.exception("Application crashed: %s", e)
        print(f"Application crashed: {e}", file=sys.stderr)


if __name__ == "__main__":
    main()
