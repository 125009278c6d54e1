"""Cache keys and invalidation for per-home metrics."""

import json
import logging

from pydantic import ValidationError

from src.core.cache_client import cache_client
from src.core.config import settings
from src.models.service_models import HomeMetrics


logger = logging.getLogger(__name__)

_CACHE_KEY_PREFIX = "chorecycle:metrics"


def metrics_cache_key(home_id: str) -> str:
    return f"{_CACHE_KEY_PREFIX}:{home_id}"


async def get_cached_metrics(home_id: str) -> HomeMetrics | None:
    """Return cached metrics for a home, or None on a miss or unreadable entry."""
    try:
        cached_value = await cache_client.get(metrics_cache_key(home_id))
    except Exception as e:
        logger.warning("Failed to read cached metrics for home %s: %s", home_id, e)
        return None

    if not cached_value:
        return None

    try:
        return HomeMetrics.model_validate_json(cached_value)
    except (json.JSONDecodeError, ValidationError) as e:
        logger.warning("Failed to deserialize cached metrics for home %s: %s", home_id, e)
        return None


async def store_metrics(metrics: HomeMetrics) -> None:
    """Cache metrics for the configured TTL. A TTL of zero disables caching."""
    if settings.metrics_cache_ttl_seconds <= 0:
        return
    try:
        await cache_client.set(
            metrics_cache_key(metrics.home_id),
            metrics.model_dump_json(),
            settings.metrics_cache_ttl_seconds,
        )
    except Exception as e:
        logger.warning("Failed to cache metrics for home %s: %s", metrics.home_id, e)


async def invalidate_home_metrics(home_id: str | None = None) -> None:
    """Drop cached metrics for one home, or for every home when `home_id` is None.

    Called after every mutation that changes assignment or member counters.
    Failures are logged; a stale entry lives at most one TTL.
    """
    try:
        if home_id is not None:
            await cache_client.delete(metrics_cache_key(home_id))
            logger.debug("Invalidated metrics cache for home %s", home_id)
            return

        removed = await cache_client.delete_prefix(f"{_CACHE_KEY_PREFIX}:")
        if removed:
            logger.info("Invalidated %d metrics cache entries", removed)
    except Exception as e:
        logger.warning("Failed to invalidate metrics cache: %s", e)
