# medislot/services/reservations/ledger.py
"""
Hold ledger: temporary reservations with expiry timestamps.

The ledger owns the hold lifecycle:
    active → released   (client gave the slot back)
    active → expired    (TTL elapsed; sweeper or lazy expiry)
    active → consumed   (converted into a booking)

It works inside the caller's session and never commits; the reservation
manager decides transaction boundaries.
"""

from datetime import date, datetime, timedelta
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models.tables import Holds
from .errors import NotFound, SlotUnavailable


HOLD_ACTIVE = "active"
HOLD_RELEASED = "released"
HOLD_EXPIRED = "expired"
HOLD_CONSUMED = "consumed"


class HoldLedger:
    def __init__(self, db: Session):
        self.db = db

    def get(self, hold_id: str) -> Holds | None:
        return self.db.get(Holds, hold_id)

    def create_hold(
        self,
        doctor_id: int,
        target_date: date,
        time: str,
        holder_id: str,
        ttl: timedelta,
        now: datetime,
        appointment_type: str = "video",
    ) -> Holds:
        """
        Create an active hold.

        Raises:
            SlotUnavailable: another active, unexpired hold exists for the slot.
        """
        if ttl <= timedelta(0):
            raise ValueError("Hold TTL must be positive")

        if self.find_active_hold(doctor_id, target_date, time, now) is not None:
            raise SlotUnavailable()

        # Lazy expiry: an elapsed hold still marked active is closed here
        for stale in self._stale_holds(doctor_id, target_date, time, now):
            self.mark_expired(stale, now)

        hold = Holds(
            id=uuid4().hex,
            doctor_id=doctor_id,
            date=target_date,
            time=time,
            type=appointment_type,
            holder_id=holder_id,
            status=HOLD_ACTIVE,
            created_at=now,
            expires_at=now + ttl,
        )
        self.db.add(hold)
        try:
            self.db.flush()
        except IntegrityError as e:
            # Partial unique index: an active hold row still exists for the key
            raise SlotUnavailable() from e
        return hold

    def release_hold(self, hold_id: str, now: datetime) -> Holds:
        """
        Release a hold. Holds that are no longer active are returned unchanged.

        Raises:
            NotFound: unknown hold.
        """
        hold = self.get(hold_id)
        if hold is None:
            raise NotFound("Hold not found")
        if hold.status == HOLD_ACTIVE:
            self._close(hold, HOLD_RELEASED, now)
        return hold

    def find_active_hold(
        self,
        doctor_id: int,
        target_date: date,
        time: str,
        now: datetime,
    ) -> Holds | None:
        """Active hold for the slot; an expired hold counts as absent."""
        return (
            self.db.query(Holds)
            .filter(
                Holds.doctor_id == doctor_id,
                Holds.date == target_date,
                Holds.time == time,
                Holds.status == HOLD_ACTIVE,
                Holds.expires_at > now,
            )
            .first()
        )

    def expired_holds(self, now: datetime, limit: int = 500) -> list[Holds]:
        """Holds still marked active whose TTL has elapsed."""
        return (
            self.db.query(Holds)
            .filter(
                Holds.status == HOLD_ACTIVE,
                Holds.expires_at <= now,
            )
            .order_by(Holds.expires_at)
            .limit(limit)
            .all()
        )

    def _stale_holds(
        self,
        doctor_id: int,
        target_date: date,
        time: str,
        now: datetime,
    ) -> list[Holds]:
        return (
            self.db.query(Holds)
            .filter(
                Holds.doctor_id == doctor_id,
                Holds.date == target_date,
                Holds.time == time,
                Holds.status == HOLD_ACTIVE,
                Holds.expires_at <= now,
            )
            .all()
        )

    def mark_expired(self, hold: Holds, now: datetime) -> None:
        self._close(hold, HOLD_EXPIRED, now)

    def mark_consumed(self, hold: Holds, booking_id: int, now: datetime) -> None:
        hold.booking_id = booking_id
        self._close(hold, HOLD_CONSUMED, now)

    def _close(self, hold: Holds, status: str, now: datetime) -> None:
        hold.status = status
        hold.closed_at = now
        self.db.flush()
