"""Periodic return of overdue textbooks.

The API process runs :func:`sweep_loop` as a background task. Deployments
that prefer an external cron can disable it (``SWEEP_ENABLED=0``) and run
``python -m textbook_lending.scheduler`` instead.
"""

import asyncio
import logging
from typing import Optional

from textbook_lending.config.db import SessionLocal
from textbook_lending.config.settings import SWEEP_INTERVAL_SECONDS
from textbook_lending.services.lending import auto_return_overdue_books

logger = logging.getLogger(__name__)


def run_sweep(now: Optional[int] = None, session_factory=SessionLocal) -> int:
    """Run one sweep in a fresh session and return how many textbooks it returned."""
    db = session_factory()
    try:
        result = auto_return_overdue_books(db, now=now)
    finally:
        db.close()
    logger.info("Overdue sweep finished: returned_count=%d", result["returned_count"])
    return result["returned_count"]


async def sweep_loop(interval: float = SWEEP_INTERVAL_SECONDS, session_factory=SessionLocal) -> None:
    """Background task: sweep, then sleep ``interval`` seconds. Runs until cancelled."""
    logger.info("Overdue sweep scheduled every %s seconds", interval)
    while True:
        try:
            await asyncio.to_thread(run_sweep, None, session_factory)
        except Exception as e:
            logger.exception("Overdue sweep error: %s", e)
        await asyncio.sleep(interval)


if __name__ == "__main__":
    from textbook_lending.config.db import Base, engine

    logging.basicConfig(level=logging.INFO)
    Base.metadata.create_all(bind=engine)
    run_sweep()
