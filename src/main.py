"""
Main module for the chat relay server.
"""

from __future__ import annotations

import asyncio

import structlog
import uvicorn

from src.config import Configuration
from src.logging_utils import configure_logging
from src.relay import Relay
from src.server import create_app

logger = structlog.get_logger(__name__)


def build_server(config: Configuration) -> uvicorn.Server:
    """Wire configuration, relay and app into a uvicorn server."""
    server_config = config.get_server_config()
    relay = Relay.from_config(config)
    app = create_app(relay, route=config.get_relay_config()["route"])

    return uvicorn.Server(
        uvicorn.Config(
            app,
            host=server_config["host"],
            port=server_config["port"],
            log_level=server_config["log_level"],
        )
    )


async def main() -> None:
    """Main entry point - serve the relay until interrupted."""
    config = Configuration()
    configure_logging(config.get_logging_config().get("level", "INFO"))

    server = build_server(config)
    logger.info(
        "Starting chat relay",
        host=server.config.host,
        port=server.config.port,
        api_key_configured=config.llm_api_key is not None,
    )

    try:
        await server.serve()
    finally:
        logger.info("Application shutdown complete")


if __name__ == "__main__":
    asyncio.run(main())
