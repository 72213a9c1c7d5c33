# medislot/services/schedule.py
"""
Doctor schedule management: replaces the availability records of a doctor.

Rules:
- times are "HH:MM", type is one of APPOINTMENT_TYPES
- the same time on the same date cannot be offered for both types
- an entry with empty time_slots removes that day/type
- future days (>= today) missing from the request are removed
- cached offered slots of the doctor are invalidated afterwards

Held and booked slots are not touched: removing a time from the schedule
only stops new blocks, existing reservations stay valid.
"""

import json
import logging
from datetime import date, datetime

from redis import Redis
from sqlalchemy.orm import Session

from ..models.tables import Availability, Doctors
from .reservations.errors import InvalidSlot, NotFound, ScheduleConflict
from .slots.config import APPOINTMENT_TYPES, BookingConfig, normalize_time
from .slots.calculator import parse_time_slots
from .slots.invalidator import invalidate_doctor_cache

logger = logging.getLogger(__name__)


def update_availability(
    db: Session,
    doctor_id: int,
    entries: list[dict],
    config: BookingConfig,
    now: datetime,
    redis: Redis | None = None,
) -> list[Availability]:
    """
    Replace the doctor's schedule with `entries`.

    Each entry: {date, time_slots, is_available, type}.

    Returns:
        Availability rows kept or written by the request, sorted by date/type.

    Raises:
        NotFound: unknown doctor
        InvalidSlot: malformed time or unknown type
        ScheduleConflict: time offered for both types on the same date
    """
    if db.get(Doctors, doctor_id) is None:
        raise NotFound("Doctor not found")

    requested = _normalize_entries(entries)
    existing = {
        (row.date, row.type): row
        for row in db.query(Availability).filter(Availability.doctor_id == doctor_id).all()
    }
    today = now.date()

    _check_overlaps(requested, existing, today)

    written = []
    for (day, day_type), entry in sorted(requested.items()):
        row = existing.get((day, day_type))

        if not entry["time_slots"]:
            if row is not None:
                db.delete(row)
                logger.info(f"Availability removed: doctor={doctor_id} {day.isoformat()} {day_type}")
            continue

        if row is None:
            row = Availability(doctor_id=doctor_id, date=day, type=day_type)
            db.add(row)
        row.time_slots = json.dumps(entry["time_slots"])
        row.is_available = entry["is_available"]
        row.updated_at = now
        written.append(row)

    # Future days dropped from the schedule
    removed = 0
    for key, row in existing.items():
        if key[0] >= today and key not in requested:
            db.delete(row)
            removed += 1
    if removed:
        logger.info(f"Availability removed for {removed} day(s) not in request: doctor={doctor_id}")

    db.commit()
    for row in written:
        db.refresh(row)

    invalidate_doctor_cache(redis, doctor_id, config)
    logger.info(f"Availability updated: doctor={doctor_id} entries={len(written)}")
    return written


def _normalize_entries(entries: list[dict]) -> dict[tuple[date, str], dict]:
    requested: dict[tuple[date, str], dict] = {}
    for entry in entries:
        day_type = entry.get("type") or "video"
        if day_type not in APPOINTMENT_TYPES:
            raise InvalidSlot(f"Unknown appointment type: {day_type}")

        try:
            times = sorted({normalize_time(t) for t in entry.get("time_slots") or []})
        except ValueError as e:
            raise InvalidSlot(str(e)) from e

        # Last entry for the same date/type wins
        requested[(entry["date"], day_type)] = {
            "time_slots": times,
            "is_available": entry.get("is_available", True),
        }
    return requested


def _check_overlaps(
    requested: dict[tuple[date, str], dict],
    existing: dict[tuple[date, str], Availability],
    today: date,
) -> None:
    """Reject a time offered for both types on the same date, after the update."""
    for (day, day_type), entry in requested.items():
        if not entry["time_slots"] or not entry["is_available"]:
            continue
        other_type = next(t for t in APPOINTMENT_TYPES if t != day_type)

        if (day, other_type) in requested:
            other = requested[(day, other_type)]
            other_times = other["time_slots"] if other["is_available"] else []
        else:
            row = existing.get((day, other_type))
            # Future rows missing from the request are about to be removed
            if row is None or day >= today or not row.is_available:
                other_times = []
            else:
                other_times = parse_time_slots(row.time_slots)

        overlap = sorted(set(entry["time_slots"]) & set(other_times))
        if overlap:
            raise ScheduleConflict(
                f"Times {', '.join(overlap)} on {day.isoformat()} are already offered for {other_type}"
            )
