# medislot/services/slots/calculator.py
"""
Offered slot calculation for a doctor's day.

Produces per-slot data:
  (time_str "HH:MM", expire_ts float)

expire_ts = (slot_datetime − min_advance_minutes).timestamp()
Redis filters with ZRANGEBYSCORE {now_ts} +inf: slots inside the lead time
drop automatically.

Contains:
✓ availability.time_slots for the doctor, date and type
✓ availability.is_available flag
✓ min_advance_minutes (baked into expire_ts)

Does NOT contain:
✗ Holds (read live by the availability view and the reservation manager)
✗ Bookings (same)
"""

import json
import logging
from datetime import date
from redis import Redis
from redis.exceptions import RedisError
from sqlalchemy.orm import Session

from .config import BookingConfig, normalize_time, slot_datetime
from .redis_store import SlotsRedisStore

logger = logging.getLogger(__name__)


def calculate_day_slots(
    db: Session,
    doctor_id: int,
    target_date: date,
    appointment_type: str,
    config: BookingConfig,
) -> list[tuple[str, float]]:
    """
    Calculate offered slots for a doctor on a specific date.

    Returns:
        List of (time_str, expire_ts) pairs sorted by time. Empty list = no slots.
    """
    row = _get_availability(db, doctor_id, target_date, appointment_type)
    if not row or not row.is_available:
        return []

    return [
        (time_str, (slot_datetime(target_date, time_str) - config.min_advance).timestamp())
        for time_str in parse_time_slots(row.time_slots)
    ]


def get_offered_slots(
    db: Session,
    doctor_id: int,
    target_date: date,
    appointment_type: str,
    config: BookingConfig,
    redis: Redis | None = None,
) -> list[tuple[str, float]]:
    """Offered slots for a day, using the Redis cache when available."""
    if redis is None:
        return calculate_day_slots(db, doctor_id, target_date, appointment_type, config)

    store = SlotsRedisStore(redis, config)
    try:
        cached = store.get_day_slots(doctor_id, target_date, appointment_type)
    except RedisError as e:
        logger.warning(f"Slots cache read failed, falling back to DB: {e}")
        return calculate_day_slots(db, doctor_id, target_date, appointment_type, config)

    if cached is not None:
        return cached

    # Cache miss: calculate and store
    slots = calculate_day_slots(db, doctor_id, target_date, appointment_type, config)
    try:
        store.store_day_slots(doctor_id, target_date, appointment_type, slots)
    except RedisError as e:
        logger.warning(f"Slots cache write failed: {e}")
    return slots


# ── Helpers ──────────────────────────────────────────────────────────────


def parse_time_slots(raw: str | None) -> list[str]:
    """
    Parse the stored JSON list of times.

    Invalid entries are skipped; the result is sorted and de-duplicated.
    """
    try:
        values = json.loads(raw) if raw else []
    except json.JSONDecodeError:
        values = []

    if not isinstance(values, list):
        return []

    times = set()
    for value in values:
        try:
            times.add(normalize_time(value))
        except ValueError:
            continue
    return sorted(times)


def _get_availability(db: Session, doctor_id: int, target_date: date, appointment_type: str):
    """Get the availability row for doctor, date and type."""
    from ...models.tables import Availability

    return (
        db.query(Availability)
        .filter(
            Availability.doctor_id == doctor_id,
            Availability.date == target_date,
            Availability.type == appointment_type,
        )
        .first()
    )
