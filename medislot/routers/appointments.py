# medislot/routers/appointments.py
# Patient flow:
#   POST   /appointments/block           → hold the slot (409 if taken)
#   DELETE /appointments/block/{hold_id} → give it back (idempotent)
#   POST   /appointments                 → confirm the hold (by holdId or slot key)
#   POST   /appointments/{id}/cancel     → cancel own booking
#   PUT    /appointments/{id}/reschedule → move own booking to another slot

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..auth import Actor, get_actor
from ..database import get_db
from ..dependencies import get_manager
from ..models.tables import Bookings as DBBookings
from ..schemas.appointments import (
    BlockRequest,
    BookingCreate,
    BookingRead,
    CancelRequest,
    HoldRead,
    RescheduleRequest,
)
from ..services.reservations import Forbidden, NotFound, ReservationManager

router = APIRouter(prefix="/appointments", tags=["appointments"])


# ---------------------------------------------------------------------
# Holds
# ---------------------------------------------------------------------

@router.post("/block", response_model=HoldRead, status_code=status.HTTP_201_CREATED)
def block_slot(
    data: BlockRequest,
    manager: ReservationManager = Depends(get_manager),
    actor: Actor = Depends(get_actor),
):
    return manager.block_slot(
        data.doctor_id,
        data.date,
        data.time,
        actor.user_id,
        data.type,
    )


@router.delete("/block/{hold_id}", response_model=HoldRead)
def release_slot(
    hold_id: str,
    manager: ReservationManager = Depends(get_manager),
    actor: Actor = Depends(get_actor),
):
    holder_id = None if actor.is_admin else actor.user_id
    return manager.release_slot(hold_id, holder_id)


# ---------------------------------------------------------------------
# Bookings
# ---------------------------------------------------------------------

@router.post("", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
def confirm_booking(
    data: BookingCreate,
    manager: ReservationManager = Depends(get_manager),
    actor: Actor = Depends(get_actor),
):
    if data.hold_id is not None:
        return manager.confirm_booking(data.hold_id, actor.user_id, data.booking_details())
    return manager.confirm_slot(
        data.doctor_id,
        data.slot_date,
        data.time,
        actor.user_id,
        data.booking_details(),
    )


@router.get("", response_model=list[BookingRead])
def list_my_appointments(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    query = db.query(DBBookings)
    if actor.role == "doctor":
        query = query.filter(DBBookings.doctor_id == actor.doctor_id)
    else:
        query = query.filter(DBBookings.patient_id == actor.user_id)
    return query.order_by(DBBookings.date, DBBookings.time).all()


@router.get("/{id}", response_model=BookingRead)
def get_appointment(
    id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    obj = db.get(DBBookings, id)
    if not obj:
        raise NotFound("Appointment not found")
    if not (
        actor.is_admin
        or obj.patient_id == actor.user_id
        or (actor.role == "doctor" and obj.doctor_id == actor.doctor_id)
    ):
        raise Forbidden("Not allowed for this appointment")
    return obj


@router.post("/{id}/cancel", response_model=BookingRead)
def cancel_appointment(
    id: int,
    data: CancelRequest | None = None,
    manager: ReservationManager = Depends(get_manager),
    actor: Actor = Depends(get_actor),
):
    return manager.cancel_booking(
        id,
        actor_id=actor.user_id,
        is_admin=actor.is_admin,
        reason=data.reason if data else None,
    )


@router.put("/{id}/reschedule", response_model=BookingRead)
def reschedule_appointment(
    id: int,
    data: RescheduleRequest,
    manager: ReservationManager = Depends(get_manager),
    actor: Actor = Depends(get_actor),
):
    return manager.reschedule_booking(
        id,
        data.new_date,
        data.new_time,
        actor_id=actor.user_id,
        is_admin=actor.is_admin,
    )
