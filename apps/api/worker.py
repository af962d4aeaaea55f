"""Standalone scheduler process for deployments that run the API without schedulers."""

import asyncio
import logging
import signal

from config import settings, validate_scheduler_settings
from main import build_schedulers

logger = logging.getLogger(__name__)


async def run() -> None:
    validate_scheduler_settings()
    trend_scheduler, analytics_scheduler = build_schedulers()
    trend_scheduler.start()
    analytics_scheduler.start()
    logger.info("scheduler_worker_started timezone=%s", settings.SCHEDULER_TIMEZONE)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)
    await stop_event.wait()

    trend_scheduler.stop()
    analytics_scheduler.stop()
    grace = float(settings.SCHEDULER_SHUTDOWN_GRACE_SECONDS)
    await trend_scheduler.wait_idle(grace)
    await analytics_scheduler.wait_idle(grace)
    logger.info("scheduler_worker_stopped")


def main():
    asyncio.run(run())


if __name__ == "__main__":
    main()
