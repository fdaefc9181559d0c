"""
Background Scheduler Runner
Runs recurring-job processing and appointment reminders without the HTTP API.
Run this as a separate process: python run_scheduler.py
(Set SCHEDULERS_ENABLED=false on the API processes so only this one ticks.)
"""

import asyncio
import logging
import signal
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent))

from bizops import models, models_notification, models_recurring  # noqa: F401
from bizops.workers.scheduler import SchedulerSupervisor

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


async def run_scheduler():
    supervisor = SchedulerSupervisor()
    stop_requested = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_requested.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers; KeyboardInterrupt still works
            pass

    supervisor.start_all()
    try:
        await stop_requested.wait()
        logger.info("🛑 Termination signal received, stopping schedulers...")
    finally:
        await supervisor.shutdown()


if __name__ == "__main__":
    logger.info("🚀 Starting Background Scheduler...")
    try:
        asyncio.run(run_scheduler())
    except KeyboardInterrupt:
        logger.info("👋 Scheduler stopped by user")
    except Exception as e:
        logger.error(f"❌ Scheduler crashed: {e}")
        sys.exit(1)
