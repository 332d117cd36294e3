# This project was developed with assistance from AI tools.
"""
Background worker draining the job outbox.

Usage:
    python -m src.worker
"""

import asyncio
import logging

from db.database import SessionLocal, db_service

from .core.config import settings
from .services import notification  # noqa: F401 -- registers job handlers
from .services.jobs import run_pending_jobs
from .services.mailer import init_mailer
from .services.storage import init_storage_service

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


async def worker_loop(*, once: bool = False) -> None:
    """Poll for due jobs until cancelled."""
    init_storage_service(settings)
    init_mailer(settings)
    logger.info("Worker started (poll every %.1fs)", settings.JOB_POLL_INTERVAL_SECONDS)
    try:
        while True:
            try:
                await run_pending_jobs(SessionLocal)
            except Exception:
                logger.exception("Job pass failed")
            if once:
                return
            await asyncio.sleep(settings.JOB_POLL_INTERVAL_SECONDS)
    finally:
        await db_service.close()


def main() -> None:
    asyncio.run(worker_loop())


if __name__ == "__main__":
    main()
