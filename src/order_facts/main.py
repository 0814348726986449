"""Order Facts HTTP entrypoint."""

import asyncio
import logging

from .config import Config
from .governance import GOVERNANCE_CHECKS
from .logging import setup_logging
from .server import start_server


def main() -> None:
    config = Config.from_env()
    setup_logging(config.log_format)

    logger = logging.getLogger(__name__)

    logger.info("Order facts service starting")
    logger.info("Log format: %s", config.log_format)
    logger.info("HTTP: %s:%d", config.http_host, config.http_port)
    logger.info("Request timeout: %.1fs", config.request_timeout_seconds)
    logger.info("Admin token configured: %s", config.admin_token is not None)
    logger.info(
        "Governance checks (%d): %s",
        len(GOVERNANCE_CHECKS),
        [check.__name__ for check in GOVERNANCE_CHECKS],
    )

    asyncio.run(_run(config))


async def _run(config: Config) -> None:
    server = await start_server(config)
    try:
        async with server:
            await server.serve_forever()
    finally:
        server.close()
        await server.wait_closed()


if __name__ == "__main__":
    main()
