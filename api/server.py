"""
Process entry point.

Loads settings, configures logging and runs the server lifecycle until
SIGINT/SIGTERM. A failed startup is logged and the process exits
normally, matching the lifecycle's non-raising start().
"""

import asyncio

from core.config import get_settings
from core.logging import configure_logging, get_logger
from manager.lifecycle import ServerLifecycle


logger = get_logger(__name__)


async def serve() -> None:
    settings = get_settings()
    configure_logging(settings.log_level, development=settings.is_development)

    config = settings.to_server_config()
    logger.info(
        "Starting BIF API server...",
        api_port=config.api_port,
        cockpit_port=config.cockpit_port,
        storage_plugin=config.storage_plugin_package,
    )

    lifecycle = ServerLifecycle(config, logger=get_logger("api-server", label="api-server"))
    result = await lifecycle.run()

    if result.ok:
        logger.info("BIF API server stopped")
    else:
        logger.warning("BIF API server did not start", error=str(result.error))


def main() -> None:
    asyncio.run(serve())


if __name__ == "__main__":
    main()
