# medislot/routers/doctors.py
# - POST = admin only
# - availability GET = anyone authenticated; forPatient hides the lead time
# - availability PUT = the doctor themself or admin; replaces the schedule

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from redis import Redis
from sqlalchemy.orm import Session

from ..auth import Actor, get_actor, require_admin
from ..database import get_db
from ..dependencies import get_config, get_manager, get_redis
from ..models.tables import Doctors as DBDoctors
from ..schemas.availability import AvailabilityDay, AvailabilityRecord, AvailabilityUpdate
from ..schemas.doctors import DoctorCreate, DoctorRead
from ..services.reservations import ReservationManager
from ..services.schedule import update_availability
from ..services.slots import BookingConfig, get_doctor_availability

router = APIRouter(prefix="/doctors", tags=["doctors"])


# ---------------------------------------------------------------------
# Base CRUD
# ---------------------------------------------------------------------

@router.get("", response_model=list[DoctorRead])
def list_doctors(
    include_inactive: bool = Query(False, alias="includeInactive"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    query = db.query(DBDoctors)
    if not include_inactive:
        query = query.filter(DBDoctors.is_active.is_(True))
    return query.order_by(DBDoctors.id).all()


@router.get("/{id}", response_model=DoctorRead)
def get_doctor(
    id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    obj = db.get(DBDoctors, id)
    if not obj:
        raise HTTPException(status_code=404, detail="Doctor not found")
    return obj


@router.post("", response_model=DoctorRead, status_code=status.HTTP_201_CREATED)
def create_doctor(
    data: DoctorCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_admin),
):
    obj = DBDoctors(**data.model_dump())
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj


# ---------------------------------------------------------------------
# Domain: Doctor → Availability
# ---------------------------------------------------------------------

@router.get("/{id}/availability", response_model=list[AvailabilityDay])
def get_availability(
    id: int,
    type: Optional[str] = Query(None),
    for_patient: bool = Query(False, alias="forPatient"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    db: Session = Depends(get_db),
    manager: ReservationManager = Depends(get_manager),
    config: BookingConfig = Depends(get_config),
    actor: Actor = Depends(get_actor),
):
    return get_doctor_availability(
        db,
        id,
        config,
        manager.clock(),
        start_date=start_date,
        end_date=end_date,
        appointment_type=type,
        for_patient=for_patient,
    )


@router.put("/{id}/availability", response_model=list[AvailabilityRecord])
def put_availability(
    id: int,
    data: AvailabilityUpdate,
    db: Session = Depends(get_db),
    manager: ReservationManager = Depends(get_manager),
    config: BookingConfig = Depends(get_config),
    redis: Redis | None = Depends(get_redis),
    actor: Actor = Depends(get_actor),
):
    if not actor.can_manage_doctor(id):
        raise HTTPException(status_code=403, detail="Not allowed for this doctor")

    return update_availability(
        db,
        id,
        [entry.model_dump() for entry in data.availability],
        config,
        manager.clock(),
        redis,
    )
