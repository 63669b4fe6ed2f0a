"""Service entry point: python -m sniper.main"""

import asyncio
import logging
import signal
from contextlib import asynccontextmanager

from sniper.database import create_db_and_tables
from sniper.engine.trigger_monitor import TriggerMonitor
from sniper.services.position_manager import PositionManager
from sniper.services.trading_service import get_trade_executor
from sniper.utils.logging import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan():
    """Startup and shutdown of the engine."""
    setup_logging()
    create_db_and_tables()

    executor = get_trade_executor()
    manager = PositionManager(executor, executor.oracle)
    monitor = TriggerMonitor(manager, executor.oracle)
    monitor.start()

    try:
        yield monitor
    finally:
        monitor.stop()
        await executor.close()


async def serve():
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    async with lifespan() as monitor:
        logger.info(f"Sniper engine running: {monitor.status()}")
        await stop_event.wait()
        logger.info("Shutdown requested")


def main():
    asyncio.run(serve())


if __name__ == "__main__":
    main()
