# medislot/services/slots/availability.py
"""
Availability view: what a doctor offers and what is taken, per day and type.

Read-only. Composes, at query time:
- Offered time slots (availability records)
- Active, non-expired holds
- Confirmed/completed bookings

Uses set[str] of "HH:MM" time strings. The slot key ignores the appointment
type: a doctor booked for a video call at 10:00 cannot make a home visit at
10:00, so taken times of either type are removed from the free list.
"""

from datetime import date, datetime
from sqlalchemy.orm import Session

from .config import BookingConfig, slot_datetime
from .calculator import parse_time_slots

DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

OCCUPYING_BOOKING_STATUSES = ("confirmed", "completed")


def get_doctor_availability(
    db: Session,
    doctor_id: int,
    config: BookingConfig,
    now: datetime,
    start_date: date | None = None,
    end_date: date | None = None,
    appointment_type: str | None = None,
    for_patient: bool = False,
) -> list[dict]:
    """
    Build the day-by-day availability list for a doctor.

    Args:
        db: Session
        doctor_id: Doctor ID (must exist)
        config: Booking configuration (lead time, default window)
        now: Current time; holds expiring at or before it count as free
        start_date, end_date: Inclusive range; defaults to config.default_range
        appointment_type: Restrict to "video" or "home-visit"
        for_patient: Hide slots inside the lead time and days without free slots

    Returns:
        List of dicts (for AvailabilityDay), sorted by date then type.
    """
    _ensure_doctor(db, doctor_id)

    if start_date is None or end_date is None:
        default_start, default_end = config.default_range(now.date())
        start_date = start_date or default_start
        end_date = end_date or default_end
    if end_date < start_date:
        start_date, end_date = end_date, start_date

    # Step 1: Offered slots per (date, type)
    offered: dict[tuple[date, str], list[str]] = {}
    for row in _get_availability_rows(db, doctor_id, start_date, end_date, appointment_type):
        offered[(row.date, row.type)] = parse_time_slots(row.time_slots) if row.is_available else []

    # Step 2: Taken times (any type blocks the slot)
    booked_by_type: dict[tuple[date, str], set[str]] = {}
    taken_by_date: dict[date, set[str]] = {}
    for booking in _get_occupying_bookings(db, doctor_id, start_date, end_date):
        booked_by_type.setdefault((booking.date, booking.type), set()).add(booking.time)
        taken_by_date.setdefault(booking.date, set()).add(booking.time)

    held_by_type: dict[tuple[date, str], set[str]] = {}
    for hold in _get_active_holds(db, doctor_id, start_date, end_date, now):
        held_by_type.setdefault((hold.date, hold.type), set()).add(hold.time)
        taken_by_date.setdefault(hold.date, set()).add(hold.time)

    # Step 3: Booked days without an availability record are still shown
    keys = set(offered)
    for key in booked_by_type:
        if appointment_type is None or key[1] == appointment_type:
            keys.add(key)

    # Step 4: Compose days
    days = []
    for day, day_type in sorted(keys):
        all_times = offered.get((day, day_type), [])
        booked = booked_by_type.get((day, day_type), set())
        held = held_by_type.get((day, day_type), set())
        taken = taken_by_date.get(day, set())

        if not all_times and not booked:
            continue

        free = [t for t in all_times if t not in taken]
        if for_patient:
            free = [t for t in free if slot_datetime(day, t) - config.min_advance > now]
            if not free:
                continue

        days.append({
            "date": day,
            "day_of_week": DAY_NAMES[day.weekday()],
            "type": day_type,
            "time_slots": free,
            "booked_slots": sorted(booked),
            "held_slots": sorted(held),
            "is_available": len(free) > 0,
        })

    return days


# ── Database helpers ─────────────────────────────────────────────────────


def _ensure_doctor(db: Session, doctor_id: int) -> None:
    from ...models.tables import Doctors
    from ..reservations.errors import NotFound

    if db.get(Doctors, doctor_id) is None:
        raise NotFound("Doctor not found")


def _get_availability_rows(
    db: Session,
    doctor_id: int,
    start_date: date,
    end_date: date,
    appointment_type: str | None,
) -> list:
    from ...models.tables import Availability

    query = db.query(Availability).filter(
        Availability.doctor_id == doctor_id,
        Availability.date >= start_date,
        Availability.date <= end_date,
    )
    if appointment_type:
        query = query.filter(Availability.type == appointment_type)
    return query.all()


def _get_occupying_bookings(db: Session, doctor_id: int, start_date: date, end_date: date) -> list:
    from ...models.tables import Bookings

    return (
        db.query(Bookings)
        .filter(
            Bookings.doctor_id == doctor_id,
            Bookings.date >= start_date,
            Bookings.date <= end_date,
            Bookings.status.in_(OCCUPYING_BOOKING_STATUSES),
        )
        .all()
    )


def _get_active_holds(
    db: Session,
    doctor_id: int,
    start_date: date,
    end_date: date,
    now: datetime,
) -> list:
    """Active holds that have not expired yet (lazy expiry on read)."""
    from ...models.tables import Holds

    return (
        db.query(Holds)
        .filter(
            Holds.doctor_id == doctor_id,
            Holds.date >= start_date,
            Holds.date <= end_date,
            Holds.status == "active",
            Holds.expires_at > now,
        )
        .all()
    )
