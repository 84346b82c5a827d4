#!/usr/bin/env python3
"""
PrivateArt API Server Launcher
"""

import os
import sys

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from api import create_app  # noqa: E402
from config import LedgerConfig  # noqa: E402
from monitoring import configure_logging, get_logger  # noqa: E402


def run_server():
    config = LedgerConfig.from_env()
    configure_logging(level=config.log_level, json_output=config.log_format == "json")
    logger = get_logger("privateart.server")

    app = create_app(config=config)
    logger.info(
        "Starting PrivateArt API",
        extra={"host": config.host, "port": config.port, "owner": config.owner},
    )
    app.run(host=config.host, port=config.port)


if __name__ == '__main__':
    run_server()
