"""Scheduled jobs for the gamification module."""

import logging

from src.core.config import settings
from src.core.module import ScheduledJob
from src.modules.gamification import challenges


logger = logging.getLogger(__name__)


async def run_challenge_expiry() -> None:
    """Expire every active challenge whose window has ended."""
    logger.info("Running challenge expiry job")
    expired = await challenges.expire_old_challenges()
    logger.info("Completed challenge expiry job: %d challenge(s) expired", expired)


def get_scheduled_jobs() -> list[ScheduledJob]:
    return [
        ScheduledJob(
            id="challenge_expiry",
            name="Expire Ended Challenges",
            cron=settings.challenge_expiry_cron,
            func=run_challenge_expiry,
        ),
    ]
