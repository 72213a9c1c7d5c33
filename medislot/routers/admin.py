# medislot/routers/admin.py
# Admin-only: booking overview, direct booking (no hold), status changes.

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..auth import Actor, require_admin
from ..database import get_db
from ..dependencies import get_manager
from ..models.tables import Bookings as DBBookings
from ..schemas.appointments import AdminBookingCreate, BookingRead, StatusUpdate
from ..services.reservations import ReservationManager

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/appointments", response_model=list[BookingRead])
def list_appointments(
    doctor_id: Optional[int] = Query(None, alias="doctorId"),
    status_: Optional[str] = Query(None, alias="status"),
    date_: Optional[date] = Query(None, alias="date"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    query = db.query(DBBookings)
    if doctor_id is not None:
        query = query.filter(DBBookings.doctor_id == doctor_id)
    if status_:
        query = query.filter(DBBookings.status == status_)
    if date_:
        query = query.filter(DBBookings.date == date_)
    return query.order_by(DBBookings.date, DBBookings.time).all()


@router.post("/appointments", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: AdminBookingCreate,
    manager: ReservationManager = Depends(get_manager),
    actor: Actor = Depends(require_admin),
):
    return manager.admin_book(
        data.doctor_id,
        data.date,
        data.time,
        data.patient_id,
        data.type,
        data.booking_details(),
    )


@router.put("/appointments/{id}/status", response_model=BookingRead)
def update_appointment_status(
    id: int,
    data: StatusUpdate,
    manager: ReservationManager = Depends(get_manager),
    actor: Actor = Depends(require_admin),
):
    return manager.update_booking_status(id, data.status, data.reason)
