"""Main application module of the market-driven power capping controller.

This module wires the power manager from the environment configuration and
runs it on an asyncio event loop until the process receives SIGINT or SIGTERM.
Configuration, cluster access and RAPL discovery errors stop the process;
everything that goes wrong later is logged and retried at the next cycle.
"""

import asyncio
import signal
import sys

from market_powercap.config import Config
from market_powercap.power.manager import PowerManager
from market_powercap.util.exceptions import PowerManagerError
from market_powercap.util.logging import LoggingUtil

logger = LoggingUtil.get_logger(__name__)


async def serve(manager: PowerManager) -> None:
    """Runs the power manager until a termination signal is received.

    Args:
        manager: An initialized power manager.
    """
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, manager.stop)

    await manager.run()


def main() -> None:
    """Entry point of the `market-powercap` command."""
    logger.info("Starting power management system...")

    try:
        config = Config.from_env()
        LoggingUtil.set_level(config.log_level)
        manager = PowerManager.from_config(config)
        manager.initialize()
    except PowerManagerError as err:
        logger.error("Failed to initialize power manager: %s", err)
        sys.exit(1)

    asyncio.run(serve(manager))


if __name__ == "__main__":
    main()
