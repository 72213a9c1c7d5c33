# medislot/services/reservations/manager.py
"""
Reservation manager: the only writer of slot status.

Slot state machine per (doctor_id, date, time):

    free ──block──▶ held ──confirm──▶ booked ──cancel──▶ free
                     │
                     └──release / expiry──▶ free

    free ──admin_book──▶ booked      (admin override, same atomic check)
    booked ──reschedule──▶ free, with the new key free ──▶ booked

Every mutating operation on a key runs inside the key's lock (bounded wait,
Busy on timeout) and commits its slot-state change with a version check, so
transitions for one key are totally ordered even across processes.
"""

import logging
import secrets
from contextlib import contextmanager
from datetime import date, datetime
from typing import Callable, Iterator

from redis import Redis
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from ...models.tables import Bookings, Doctors, Holds, SlotStates
from ..events import emit_event
from ..slots.calculator import get_offered_slots
from ..slots.config import (
    APPOINTMENT_TYPES,
    BookingConfig,
    local_now,
    normalize_time,
    slot_datetime,
)
from .errors import (
    Forbidden,
    HoldExpired,
    InvalidSlot,
    InvalidTransition,
    NotFound,
    SlotUnavailable,
)
from .ledger import HOLD_ACTIVE, HOLD_CONSUMED, HoldLedger
from .locks import SlotKey, SlotLockRegistry

logger = logging.getLogger(__name__)

SLOT_FREE = "free"
SLOT_HELD = "held"
SLOT_BOOKED = "booked"

BOOKING_CONFIRMED = "confirmed"
BOOKING_CANCELLED = "cancelled"
BOOKING_COMPLETED = "completed"
BOOKING_STATUSES = (BOOKING_CONFIRMED, BOOKING_CANCELLED, BOOKING_COMPLETED)

# Optional patient/appointment fields accepted on confirm and admin booking
BOOKING_DETAIL_FIELDS = (
    "patient_name",
    "date_of_birth",
    "gender",
    "problem",
    "notes",
    "consultation_fee",
)


class ReservationManager:
    """
    Coordinates the hold ledger, bookings and slot states.

    Args:
        session_factory: sessionmaker bound to the database
        config: Booking configuration (TTL, lead time, lock timeout)
        clock: Returns the current naive local time
        redis: Optional Redis client (slots cache and events)
        locks: Per-key lock registry; one per manager by default
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        config: BookingConfig,
        clock: Callable[[], datetime] = local_now,
        redis: Redis | None = None,
        locks: SlotLockRegistry | None = None,
    ):
        self.session_factory = session_factory
        self.config = config
        self.clock = clock
        self.redis = redis
        self.locks = locks or SlotLockRegistry(config.lock_timeout_seconds)

    # ── Patient flow ─────────────────────────────────────────────────────

    def block_slot(
        self,
        doctor_id: int,
        target_date: date,
        time: str,
        holder_id: str,
        appointment_type: str = "video",
    ) -> Holds:
        """
        Place a hold on a free slot for `hold_ttl_seconds`.

        Raises:
            NotFound: doctor missing or inactive
            InvalidSlot: time not offered, or inside the lead time
            SlotUnavailable: slot held by someone else or booked
            Busy: lock wait exceeded
        """
        key = self._key(doctor_id, target_date, time)
        appointment_type = self._check_type(appointment_type)

        with self.locks.acquire(key):
            now = self.clock()
            # Rejected requests must not leave slot-state rows behind
            with self.session_factory() as db:
                self._require_doctor(db, doctor_id)
                self._require_bookable(db, key, appointment_type, now)

            self._ensure_slot_state(key, now)
            with self._transaction() as db:
                state = self._load_state(db, key)
                expired = self._settle(db, state, now)

                if state.status == SLOT_HELD:
                    current = db.get(Holds, state.hold_id)
                    if current.holder_id == holder_id and current.type == appointment_type:
                        # Same holder blocking again keeps the existing hold
                        return current
                    raise SlotUnavailable("Time slot is temporarily held")
                if state.status == SLOT_BOOKED:
                    raise SlotUnavailable("Time slot is already booked")

                hold = HoldLedger(db).create_hold(
                    doctor_id, key[1], key[2], holder_id,
                    self.config.hold_ttl, now, appointment_type,
                )
                self._transition(db, state, SLOT_HELD, now, hold_id=hold.id)

        self._emit_expired(expired)
        logger.info(
            f"Slot held: doctor={doctor_id} {key[1].isoformat()} {key[2]} "
            f"hold={hold.id} holder={holder_id} until {hold.expires_at.isoformat()}"
        )
        emit_event(self.redis, "hold_created", self._hold_payload(hold))
        return hold

    def confirm_booking(
        self,
        hold_id: str,
        holder_id: str,
        details: dict | None = None,
    ) -> Bookings:
        """
        Convert an active hold into a confirmed booking.

        Raises:
            NotFound: unknown hold, or hold already converted
            Forbidden: hold belongs to another holder
            HoldExpired: hold released, expired, or no longer owns the slot
        """
        hold = self._get_hold(hold_id)
        if hold.holder_id != holder_id:
            raise Forbidden("Hold belongs to another user")
        key = (hold.doctor_id, hold.date, hold.time)
        return self._confirm(key, holder_id, details, hold_id=hold_id)

    def confirm_slot(
        self,
        doctor_id: int,
        target_date: date,
        time: str,
        holder_id: str,
        details: dict | None = None,
    ) -> Bookings:
        """
        Confirm the caller's active hold on a slot, addressed by its key
        instead of the hold id.

        Raises:
            HoldExpired: the caller holds no active hold on the slot
        """
        key = self._key(doctor_id, target_date, time)
        return self._confirm(key, holder_id, details)

    def _confirm(
        self,
        key: SlotKey,
        holder_id: str,
        details: dict | None,
        hold_id: str | None = None,
    ) -> Bookings:
        booking = None
        expired = None

        with self.locks.acquire(key):
            now = self.clock()
            with self._transaction() as db:
                if hold_id is not None:
                    hold = db.get(Holds, hold_id)
                else:
                    hold = HoldLedger(db).find_active_hold(*key, now)
                    if hold is None or hold.holder_id != holder_id:
                        # The caller's hold may have elapsed without a sweep yet
                        state = self._find_state(db, key)
                        if state is not None:
                            expired = self._settle(db, state, now)
                        hold = None

                if hold is not None:
                    if hold.status == HOLD_CONSUMED:
                        raise NotFound("Hold already used")
                    if hold.status != HOLD_ACTIVE:
                        raise HoldExpired()

                    state = self._load_state(db, key)
                    if hold.expires_at <= now:
                        self._expire(db, hold, state, now)
                        expired = hold
                    elif state.status != SLOT_HELD or state.hold_id != hold.id:
                        raise HoldExpired("Slot is no longer held by this hold")
                    else:
                        booking = self._create_booking(
                            db,
                            doctor_id=hold.doctor_id,
                            patient_id=holder_id,
                            target_date=hold.date,
                            time=hold.time,
                            appointment_type=hold.type,
                            source="hold",
                            details=details,
                            now=now,
                            hold_id=hold.id,
                        )
                        HoldLedger(db).mark_consumed(hold, booking.id, now)
                        self._transition(db, state, SLOT_BOOKED, now, booking_id=booking.id)

        self._emit_expired(expired)
        if booking is None:
            if hold_id is None and expired is None:
                raise HoldExpired("No active hold on this slot")
            raise HoldExpired()

        logger.info(
            f"Booking confirmed: {booking.appointment_number} id={booking.id} "
            f"doctor={booking.doctor_id} {booking.date.isoformat()} {booking.time} hold={hold.id}"
        )
        emit_event(self.redis, "booking_confirmed", self._booking_payload(booking))
        return booking

    def release_slot(self, hold_id: str, holder_id: str | None = None) -> Holds:
        """
        Give a held slot back. Idempotent: releasing a released, expired or
        consumed hold changes nothing.

        Raises:
            NotFound: unknown hold
            Forbidden: hold belongs to another holder
        """
        hold = self._get_hold(hold_id)
        if holder_id is not None and hold.holder_id != holder_id:
            raise Forbidden("Hold belongs to another user")
        if hold.status != HOLD_ACTIVE:
            return hold
        key = (hold.doctor_id, hold.date, hold.time)

        with self.locks.acquire(key):
            now = self.clock()
            with self._transaction() as db:
                hold = db.get(Holds, hold_id)
                if hold.status != HOLD_ACTIVE:
                    return hold

                HoldLedger(db).release_hold(hold_id, now)
                state = self._find_state(db, key)
                if state is not None and state.status == SLOT_HELD and state.hold_id == hold.id:
                    self._transition(db, state, SLOT_FREE, now)

        logger.info(f"Hold released: {hold_id}")
        emit_event(self.redis, "hold_released", self._hold_payload(hold))
        return hold

    def cancel_booking(
        self,
        booking_id: int,
        actor_id: str | None = None,
        is_admin: bool = False,
        reason: str | None = None,
    ) -> Bookings:
        """
        Cancel a booking and free its slot.

        Cancelling an already cancelled booking is a no-op.

        Raises:
            NotFound: unknown booking
            Forbidden: patient cancelling someone else's booking
            InvalidTransition: booking already completed
        """
        booking = self._get_booking(booking_id)
        if not is_admin and booking.patient_id != actor_id:
            raise Forbidden("Not allowed for this appointment")
        key = (booking.doctor_id, booking.date, booking.time)

        with self.locks.acquire(key):
            now = self.clock()
            with self._transaction() as db:
                booking = db.get(Bookings, booking_id)
                if booking.status == BOOKING_CANCELLED:
                    return booking
                if booking.status == BOOKING_COMPLETED:
                    raise InvalidTransition("Completed appointment cannot be cancelled")

                booking.status = BOOKING_CANCELLED
                booking.cancel_reason = reason
                booking.updated_at = now
                db.flush()

                state = self._find_state(db, key)
                if state is not None and state.status == SLOT_BOOKED and state.booking_id == booking.id:
                    self._transition(db, state, SLOT_FREE, now)
                else:
                    logger.warning(
                        f"Booking {booking.id} cancelled but slot {key} no longer points at it"
                    )

        logger.info(f"Booking cancelled: id={booking.id} by={'admin' if is_admin else actor_id}")
        emit_event(self.redis, "booking_cancelled", self._booking_payload(booking))
        return booking

    def reschedule_booking(
        self,
        booking_id: int,
        new_date: date,
        new_time: str,
        actor_id: str | None = None,
        is_admin: bool = False,
    ) -> Bookings:
        """
        Move a confirmed booking to another slot of the same doctor.

        The new slot is booked and the old one freed in one transaction.
        Patients may only pick an offered slot outside the lead time; admins
        skip the schedule checks but not slot uniqueness.

        Raises:
            NotFound: unknown booking
            Forbidden: patient moving someone else's booking
            InvalidTransition: booking cancelled or completed
            InvalidSlot: new slot not offered, or inside the lead time
            SlotUnavailable: new slot held or booked
        """
        booking = self._get_booking(booking_id)
        if not is_admin and booking.patient_id != actor_id:
            raise Forbidden("Not allowed for this appointment")
        if booking.status != BOOKING_CONFIRMED:
            raise InvalidTransition(f"Cannot reschedule {booking.status} appointment")

        old_key = (booking.doctor_id, booking.date, booking.time)
        new_key = self._key(booking.doctor_id, new_date, new_time)
        if new_key == old_key:
            return booking

        # Fixed order, so two opposite moves cannot deadlock
        first, second = sorted([old_key, new_key])
        with self.locks.acquire(first), self.locks.acquire(second):
            now = self.clock()
            if not is_admin:
                with self.session_factory() as db:
                    self._require_bookable(db, new_key, booking.type, now)

            self._ensure_slot_state(new_key, now)
            with self._transaction() as db:
                booking = db.get(Bookings, booking_id)
                if booking.status != BOOKING_CONFIRMED:
                    raise InvalidTransition(f"Cannot reschedule {booking.status} appointment")
                if (booking.doctor_id, booking.date, booking.time) != old_key:
                    raise SlotUnavailable("Appointment was moved concurrently")

                target = self._load_state(db, new_key)
                expired = self._settle(db, target, now)
                if target.status != SLOT_FREE:
                    raise SlotUnavailable()

                booking.date = new_key[1]
                booking.time = new_key[2]
                booking.updated_at = now
                try:
                    db.flush()
                except IntegrityError as e:
                    raise SlotUnavailable("Time slot is already booked") from e
                self._transition(db, target, SLOT_BOOKED, now, booking_id=booking.id)

                source = self._find_state(db, old_key)
                if source is not None and source.status == SLOT_BOOKED and source.booking_id == booking.id:
                    self._transition(db, source, SLOT_FREE, now)

        self._emit_expired(expired)
        logger.info(
            f"Booking rescheduled: id={booking.id} {old_key[1].isoformat()} {old_key[2]} "
            f"→ {new_key[1].isoformat()} {new_key[2]}"
        )
        payload = self._booking_payload(booking)
        payload.update(previous_date=old_key[1].isoformat(), previous_time=old_key[2])
        emit_event(self.redis, "booking_rescheduled", payload)
        return booking

    # ── Admin ────────────────────────────────────────────────────────────

    def admin_book(
        self,
        doctor_id: int,
        target_date: date,
        time: str,
        patient_id: str,
        appointment_type: str = "video",
        details: dict | None = None,
    ) -> Bookings:
        """
        Book a free slot directly, bypassing the hold ledger.

        Schedule and lead-time checks are skipped; the slot must still be free.

        Raises:
            NotFound: doctor missing
            SlotUnavailable: slot held (unexpired) or booked
        """
        key = self._key(doctor_id, target_date, time)
        appointment_type = self._check_type(appointment_type)

        with self.locks.acquire(key):
            now = self.clock()
            self._ensure_slot_state(key, now)
            with self._transaction() as db:
                self._require_doctor(db, doctor_id, active_only=False)
                state = self._load_state(db, key)
                expired = self._settle(db, state, now)
                if state.status != SLOT_FREE:
                    raise SlotUnavailable()

                booking = self._create_booking(
                    db,
                    doctor_id=doctor_id,
                    patient_id=patient_id,
                    target_date=key[1],
                    time=key[2],
                    appointment_type=appointment_type,
                    source="admin",
                    details=details,
                    now=now,
                )
                self._transition(db, state, SLOT_BOOKED, now, booking_id=booking.id)

        self._emit_expired(expired)
        logger.info(
            f"Admin booking created: {booking.appointment_number} id={booking.id} "
            f"doctor={doctor_id} {key[1].isoformat()} {key[2]}"
        )
        emit_event(self.redis, "booking_confirmed", self._booking_payload(booking))
        return booking

    def update_booking_status(
        self,
        booking_id: int,
        status: str,
        reason: str | None = None,
    ) -> Bookings:
        """
        Admin-driven booking transition.

        confirmed → cancelled (frees the slot) | completed (slot stays booked).
        cancelled and completed are terminal. Same status is a no-op.
        """
        if status not in BOOKING_STATUSES:
            raise InvalidTransition(f"Unknown status: {status}")

        booking = self._get_booking(booking_id)
        if booking.status == status:
            return booking
        if status == BOOKING_CANCELLED:
            return self.cancel_booking(booking_id, is_admin=True, reason=reason)
        if status == BOOKING_CONFIRMED:
            raise InvalidTransition(f"Cannot move {booking.status} appointment back to confirmed")

        key = (booking.doctor_id, booking.date, booking.time)
        with self.locks.acquire(key):
            now = self.clock()
            with self._transaction() as db:
                booking = db.get(Bookings, booking_id)
                if booking.status != BOOKING_CONFIRMED:
                    raise InvalidTransition(f"Cannot complete {booking.status} appointment")
                booking.status = BOOKING_COMPLETED
                booking.updated_at = now

        logger.info(f"Booking status changed: id={booking_id} → {status}")
        emit_event(self.redis, "booking_status_changed", self._booking_payload(booking))
        return booking

    # ── Expiry ───────────────────────────────────────────────────────────

    def expire_hold(self, hold_id: str) -> bool:
        """
        Reclaim one hold if it is still active and its TTL has elapsed.

        Returns:
            True if the hold was expired by this call.
        """
        hold = self._get_hold(hold_id)
        key = (hold.doctor_id, hold.date, hold.time)

        with self.locks.acquire(key):
            now = self.clock()
            with self._transaction() as db:
                hold = db.get(Holds, hold_id)
                # Re-check under the lock: a concurrent confirm may have won
                if hold.status != HOLD_ACTIVE or hold.expires_at > now:
                    return False
                self._expire(db, hold, self._find_state(db, key), now)

        self._emit_expired(hold)
        return True

    def sweep_expired(self, limit: int = 500) -> int:
        """
        Reclaim every elapsed hold. Per-hold failures are logged and left for
        the next sweep.

        Returns:
            Number of holds expired.
        """
        now = self.clock()
        with self.session_factory() as db:
            hold_ids = [hold.id for hold in HoldLedger(db).expired_holds(now, limit)]

        expired = 0
        for hold_id in hold_ids:
            try:
                if self.expire_hold(hold_id):
                    expired += 1
            except Exception:
                logger.exception(f"Failed to reclaim hold {hold_id}")

        if expired:
            logger.info(f"Expired {expired} hold(s)")
        return expired

    # ── Internals ────────────────────────────────────────────────────────

    @contextmanager
    def _transaction(self) -> Iterator[Session]:
        db = self.session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _key(self, doctor_id: int, target_date: date, time: str) -> SlotKey:
        try:
            return (doctor_id, target_date, normalize_time(time))
        except ValueError as e:
            raise InvalidSlot(str(e)) from e

    def _check_type(self, appointment_type: str) -> str:
        if appointment_type not in APPOINTMENT_TYPES:
            raise InvalidSlot(f"Unknown appointment type: {appointment_type}")
        return appointment_type

    def _get_hold(self, hold_id: str) -> Holds:
        with self.session_factory() as db:
            hold = db.get(Holds, hold_id)
        if hold is None:
            raise NotFound("Hold not found")
        return hold

    def _get_booking(self, booking_id: int) -> Bookings:
        with self.session_factory() as db:
            booking = db.get(Bookings, booking_id)
        if booking is None:
            raise NotFound("Appointment not found")
        return booking

    def _require_doctor(self, db: Session, doctor_id: int, active_only: bool = True) -> Doctors:
        doctor = db.get(Doctors, doctor_id)
        if doctor is None or (active_only and not doctor.is_active):
            raise NotFound("Doctor not found")
        return doctor

    def _require_bookable(
        self,
        db: Session,
        key: SlotKey,
        appointment_type: str,
        now: datetime,
    ) -> None:
        """Slot must be offered for the type and outside the lead time."""
        doctor_id, target_date, time = key
        offered = get_offered_slots(
            db, doctor_id, target_date, appointment_type, self.config, self.redis
        )
        if time not in {t for t, _ in offered}:
            raise InvalidSlot("Doctor is not available at this time")

        if slot_datetime(target_date, time) - self.config.min_advance <= now:
            raise InvalidSlot(
                f"Appointments must be booked at least "
                f"{self.config.min_advance_minutes} minutes in advance"
            )

    def _ensure_slot_state(self, key: SlotKey, now: datetime) -> None:
        """Create the slot-state row for a key if it does not exist yet."""
        doctor_id, target_date, time = key
        with self.session_factory() as db:
            if self._find_state(db, key) is not None:
                return
            if db.get(Doctors, doctor_id) is None:
                raise NotFound("Doctor not found")

            db.add(SlotStates(
                doctor_id=doctor_id,
                date=target_date,
                time=time,
                status=SLOT_FREE,
                updated_at=now,
            ))
            try:
                db.commit()
            except IntegrityError:
                # Created concurrently by another process
                db.rollback()

    def _find_state(self, db: Session, key: SlotKey) -> SlotStates | None:
        doctor_id, target_date, time = key
        return (
            db.query(SlotStates)
            .filter(
                SlotStates.doctor_id == doctor_id,
                SlotStates.date == target_date,
                SlotStates.time == time,
            )
            .first()
        )

    def _load_state(self, db: Session, key: SlotKey) -> SlotStates:
        state = self._find_state(db, key)
        if state is None:
            # Slot never held or booked: nothing can reference it
            raise HoldExpired("Slot is no longer held")
        return state

    def _transition(
        self,
        db: Session,
        state: SlotStates,
        status: str,
        now: datetime,
        hold_id: str | None = None,
        booking_id: int | None = None,
    ) -> None:
        previous = state.status
        state.status = status
        state.hold_id = hold_id
        state.booking_id = booking_id
        state.updated_at = now
        try:
            db.flush()
        except StaleDataError as e:
            raise SlotUnavailable("Time slot changed concurrently") from e
        logger.debug(
            f"Slot {state.doctor_id} {state.date.isoformat()} {state.time}: "
            f"{previous} → {status} (v{state.version})"
        )

    def _settle(self, db: Session, state: SlotStates, now: datetime) -> Holds | None:
        """
        Lazy expiry: bring a held/booked state in line with its occupant.

        A held slot whose hold elapsed (or is no longer active) and a booked
        slot whose booking was cancelled go back to free.

        Returns:
            The hold expired by this call, if any.
        """
        if state.status == SLOT_HELD:
            hold = db.get(Holds, state.hold_id) if state.hold_id else None
            if hold is None or hold.status != HOLD_ACTIVE:
                self._transition(db, state, SLOT_FREE, now)
            elif hold.expires_at <= now:
                self._expire(db, hold, state, now)
                return hold
        elif state.status == SLOT_BOOKED:
            booking = db.get(Bookings, state.booking_id) if state.booking_id else None
            if booking is None or booking.status == BOOKING_CANCELLED:
                self._transition(db, state, SLOT_FREE, now)
        return None

    def _emit_expired(self, hold: Holds | None) -> None:
        """Publish hold_expired for a hold reclaimed by a committed call."""
        if hold is not None:
            emit_event(self.redis, "hold_expired", self._hold_payload(hold))

    def _expire(
        self,
        db: Session,
        hold: Holds,
        state: SlotStates | None,
        now: datetime,
    ) -> None:
        HoldLedger(db).mark_expired(hold, now)
        if state is not None and state.status == SLOT_HELD and state.hold_id == hold.id:
            self._transition(db, state, SLOT_FREE, now)
        logger.info(f"Hold expired: {hold.id} (doctor={hold.doctor_id} {hold.date.isoformat()} {hold.time})")

    def _create_booking(
        self,
        db: Session,
        doctor_id: int,
        patient_id: str,
        target_date: date,
        time: str,
        appointment_type: str,
        source: str,
        details: dict | None,
        now: datetime,
        hold_id: str | None = None,
    ) -> Bookings:
        details = {k: v for k, v in (details or {}).items() if k in BOOKING_DETAIL_FIELDS}
        if details.get("consultation_fee") is None:
            doctor = db.get(Doctors, doctor_id)
            details["consultation_fee"] = doctor.consultation_fee if doctor else None

        booking = Bookings(
            appointment_number=self._appointment_number(db, now),
            doctor_id=doctor_id,
            patient_id=patient_id,
            date=target_date,
            time=time,
            type=appointment_type,
            status=BOOKING_CONFIRMED,
            source=source,
            hold_id=hold_id,
            created_at=now,
            updated_at=now,
            **details,
        )
        db.add(booking)
        try:
            db.flush()
        except IntegrityError as e:
            raise SlotUnavailable("Time slot is already booked") from e
        return booking

    def _appointment_number(self, db: Session, now: datetime) -> str:
        """APT<year><6 digits>, retried on collision."""
        for _ in range(20):
            number = f"APT{now.year}{secrets.randbelow(1_000_000):06d}"
            exists = (
                db.query(Bookings.id)
                .filter(Bookings.appointment_number == number)
                .first()
            )
            if exists is None:
                return number
        raise RuntimeError("Could not generate a unique appointment number")

    @staticmethod
    def _hold_payload(hold: Holds) -> dict:
        return {
            "hold_id": hold.id,
            "doctor_id": hold.doctor_id,
            "date": hold.date.isoformat(),
            "time": hold.time,
            "holder_id": hold.holder_id,
        }

    @staticmethod
    def _booking_payload(booking: Bookings) -> dict:
        return {
            "booking_id": booking.id,
            "appointment_number": booking.appointment_number,
            "doctor_id": booking.doctor_id,
            "patient_id": booking.patient_id,
            "date": booking.date.isoformat(),
            "time": booking.time,
            "status": booking.status,
        }
