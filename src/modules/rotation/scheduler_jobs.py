"""Scheduled jobs for the rotation module.

This module provides scheduled jobs for:
- Starting a new cycle in every home with auto-rotation on
"""

import logging

from src.core import db_client
from src.core.config import Constants, settings
from src.core.module import ScheduledJob
from src.domain.home import Home
from src.modules.rotation import assignments


logger = logging.getLogger(__name__)


async def run_auto_rotation_check() -> None:
    """Roll over every auto-rotating home whose current cycle has no assignments yet.

    The guarded entry point makes repeated runs inside one cycle harmless.
    A failing home is logged and skipped so the others still roll over; the
    job fails afterwards so the tracker records it.
    """
    logger.info("Running auto rotation check job")

    records = await db_client.list_records(
        collection="homes",
        filter_query='auto_rotation = "true"',
        per_page=Constants.DEFAULT_PER_PAGE_LIMIT,
    )

    started = 0
    failed: list[str] = []
    for home in (Home(**record) for record in records):
        try:
            result = await assignments.check_and_start_cycle_if_needed(home_id=home.id)
        except Exception:
            logger.exception("Auto rotation failed for home %s", home.id)
            failed.append(home.id)
            continue
        if result.new_cycle_started:
            started += 1

    logger.info("Completed auto rotation check: %d/%d homes started a new cycle", started, len(records))
    if failed:
        msg = f"Auto rotation failed for homes: {', '.join(failed)}"
        raise RuntimeError(msg)


def get_scheduled_jobs() -> list[ScheduledJob]:
    return [
        ScheduledJob(
            id="auto_rotation_check",
            name="Start New Rotation Cycles",
            cron=settings.auto_rotation_check_cron,
            func=run_auto_rotation_check,
        ),
    ]
