# medislot/services/slots/invalidator.py
"""
Cache invalidation for a doctor's offered slots.

Triggers:
✓ Doctor availability replaced → invalidate every cached day of the doctor
✓ Single days changed → invalidate those dates

Does NOT trigger:
✗ Hold created/released/expired (never cached)
✗ Booking created/cancelled (never cached)
"""

import logging
from datetime import date
from redis import Redis
from redis.exceptions import RedisError

from .config import BookingConfig
from .redis_store import SlotsRedisStore

logger = logging.getLogger(__name__)


def invalidate_doctor_cache(
    redis: Redis | None,
    doctor_id: int,
    config: BookingConfig,
    dates: list[date] | None = None,
) -> int:
    """
    Invalidate cached slots for doctor.

    Args:
        redis: Redis client, or None when caching is disabled
        doctor_id: Doctor ID
        config: Booking configuration
        dates: List of specific dates to invalidate,
               or None to invalidate all cached dates

    Returns:
        Number of deleted cache keys
    """
    if redis is None:
        return 0

    store = SlotsRedisStore(redis, config)
    try:
        return store.delete_day_slots(doctor_id, dates)
    except RedisError as e:
        logger.error(f"Failed to invalidate slots cache for doctor={doctor_id}: {e}")
        return 0

