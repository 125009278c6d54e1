"""Job execution tracking and monitoring for scheduled jobs."""

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from src.core.cache_client import cache_client
from src.core.config import Constants


logger = logging.getLogger(__name__)

_KEY_PREFIX = "scheduler:job"
CONSECUTIVE_FAILURE_THRESHOLD = 3


class JobTracker:
    """Track job execution history and health status in the cache."""

    def __init__(self) -> None:
        self._dead_letter_queue: deque[tuple[str, str, str]] = deque(
            maxlen=Constants.TRACKER_DEAD_LETTER_QUEUE_MAXLEN
        )

    @staticmethod
    def _key(job_name: str, field: str) -> str:
        return f"{_KEY_PREFIX}:{job_name}:{field}"

    async def record_job_start(self, job_name: str) -> None:
        """Record job execution start.

        Args:
            job_name: Name of the scheduled job
        """
        now = datetime.now(UTC)
        await cache_client.set(self._key(job_name, "current_run"), now.isoformat(), ttl_seconds=3600)

    async def record_job_success(self, job_name: str) -> None:
        """Record successful job execution.

        Args:
            job_name: Name of the scheduled job
        """
        now = datetime.now(UTC)
        ttl = Constants.TRACKER_TTL_SECONDS

        await cache_client.set(self._key(job_name, "last_success"), now.isoformat(), ttl_seconds=ttl)

        # Reset consecutive failures
        await cache_client.set(self._key(job_name, "consecutive_failures"), "0", ttl_seconds=ttl)

        await cache_client.increment(self._key(job_name, "success_count"), ttl)

        await cache_client.delete(self._key(job_name, "current_run"))

    async def record_job_failure(self, job_name: str, error: str) -> int | None:
        """Record failed job execution.

        Args:
            job_name: Name of the scheduled job
            error: Error message

        Returns:
            Number of consecutive failures including this one
        """
        now = datetime.now(UTC)
        ttl = Constants.TRACKER_TTL_SECONDS

        await cache_client.set(self._key(job_name, "last_failure"), now.isoformat(), ttl_seconds=ttl)
        await cache_client.set(self._key(job_name, "last_error"), error[:500], ttl_seconds=ttl)

        consecutive_failures = await cache_client.increment(self._key(job_name, "consecutive_failures"), ttl)
        await cache_client.increment(self._key(job_name, "failure_count"), ttl)

        await cache_client.delete(self._key(job_name, "current_run"))

        return consecutive_failures

    async def get_job_status(self, job_name: str) -> dict[str, Any]:
        """Get job execution status.

        Args:
            job_name: Name of the scheduled job

        Returns:
            Dict with job status information
        """
        last_success = await cache_client.get(self._key(job_name, "last_success"))
        last_failure = await cache_client.get(self._key(job_name, "last_failure"))
        last_error = await cache_client.get(self._key(job_name, "last_error"))
        consecutive_failures = await cache_client.get(self._key(job_name, "consecutive_failures"))
        success_count = await cache_client.get(self._key(job_name, "success_count"))
        failure_count = await cache_client.get(self._key(job_name, "failure_count"))
        current_run = await cache_client.get(self._key(job_name, "current_run"))

        return {
            "job_name": job_name,
            "last_success": last_success,
            "last_failure": last_failure,
            "last_error": last_error,
            "consecutive_failures": int(consecutive_failures) if consecutive_failures else 0,
            "success_count": int(success_count) if success_count else 0,
            "failure_count": int(failure_count) if failure_count else 0,
            "currently_running": current_run is not None,
            "current_run_started": current_run,
        }

    async def add_to_dead_letter_queue(self, job_name: str, error: str, context: str) -> None:
        """Add persistently failed job to dead letter queue.

        Args:
            job_name: Name of the scheduled job
            error: Error message
            context: Additional context about the failure
        """
        timestamp = datetime.now(UTC).isoformat()
        self._dead_letter_queue.append((job_name, error, context))

        logger.error(
            "Job added to dead letter queue",
            extra={
                "job_name": job_name,
                "error": error,
                "context": context,
                "timestamp": timestamp,
            },
        )

    def get_dead_letter_queue(self) -> list[dict[str, str]]:
        """Get all items in dead letter queue."""
        return [
            {
                "job_name": job_name,
                "error": error,
                "context": context,
            }
            for job_name, error, context in self._dead_letter_queue
        ]


# Global job tracker instance
job_tracker = JobTracker()


async def retry_job_with_backoff(
    job_func: Callable[[], Awaitable[None]],
    job_name: str,
    max_retries: int = 3,
    base_delay: float = 2.0,
) -> None:
    """Execute job with retry logic and exponential backoff.

    This is the only retry policy in the application; service operations
    called by the job never retry on their own.

    Args:
        job_func: Async function to execute
        job_name: Name of the job for tracking
        max_retries: Maximum number of retry attempts
        base_delay: Base delay in seconds for exponential backoff
    """
    await job_tracker.record_job_start(job_name)

    last_error = None
    for attempt in range(max_retries):
        try:
            logger.info("Executing %s (attempt %d/%d)", job_name, attempt + 1, max_retries)
            await job_func()

            await job_tracker.record_job_success(job_name)
            logger.info("%s completed successfully", job_name)
            return

        except Exception as e:
            last_error = str(e)
            logger.error(
                "%s failed on attempt %d/%d: %s",
                job_name,
                attempt + 1,
                max_retries,
                last_error,
            )

            if attempt < max_retries - 1:
                delay = base_delay**attempt
                logger.info("Retrying %s in %ss", job_name, delay)
                await asyncio.sleep(delay)

    # All retries exhausted
    error_msg = f"Failed after {max_retries} attempts: {last_error}"
    consecutive_failures = await job_tracker.record_job_failure(job_name, error_msg)

    logger.error(
        "%s failed after all retry attempts",
        job_name,
        extra={
            "error": error_msg,
            "consecutive_failures": consecutive_failures,
        },
    )

    if consecutive_failures and consecutive_failures >= CONSECUTIVE_FAILURE_THRESHOLD:
        await job_tracker.add_to_dead_letter_queue(
            job_name=job_name,
            error=last_error or "Unknown error",
            context=f"Failed {consecutive_failures} consecutive times",
        )
