# medislot/schemas/appointments.py

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import Field, model_validator

from .base import CamelModel


# ── Holds ────────────────────────────────────────────────────────────────

class BlockRequest(CamelModel):
    doctor_id: int
    date: date
    time: str
    type: str = "video"


class HoldRead(CamelModel):
    id: str
    doctor_id: int
    date: date
    time: str
    type: str
    holder_id: str
    status: str
    created_at: datetime
    expires_at: datetime
    booking_id: Optional[int] = None


# ── Bookings ─────────────────────────────────────────────────────────────

class PatientDetails(CamelModel):
    name: Optional[str] = None
    date_of_birth: Optional[str] = None
    gender: Optional[str] = None
    problem: Optional[str] = None


class _BookingDetails(CamelModel):
    patient_details: Optional[PatientDetails] = None
    notes: Optional[str] = None
    consultation_fee: Optional[float] = Field(default=None, ge=0)

    def booking_details(self) -> dict:
        """Flat booking columns for the reservation manager."""
        details = {
            "notes": self.notes,
            "consultation_fee": self.consultation_fee,
        }
        if self.patient_details:
            details.update(
                patient_name=self.patient_details.name,
                date_of_birth=self.patient_details.date_of_birth,
                gender=self.patient_details.gender,
                problem=self.patient_details.problem,
            )
        return details


class BookingCreate(_BookingDetails):
    """Confirm by hold id, or by the slot key the caller holds."""

    hold_id: Optional[str] = None
    doctor_id: Optional[int] = None
    slot_date: Optional[date] = Field(default=None, alias="date")
    time: Optional[str] = None

    @model_validator(mode="after")
    def check_target(self):
        if self.hold_id is None and None in (self.doctor_id, self.slot_date, self.time):
            raise ValueError("holdId or doctorId, date and time are required")
        return self


class AdminBookingCreate(_BookingDetails):
    doctor_id: int
    date: date
    time: str
    type: str = "video"
    patient_id: str


class CancelRequest(CamelModel):
    reason: Optional[str] = None


class RescheduleRequest(CamelModel):
    new_date: date
    new_time: str


class StatusUpdate(CamelModel):
    status: Literal["confirmed", "cancelled", "completed"]
    reason: Optional[str] = None


class BookingRead(CamelModel):
    id: int
    appointment_number: str
    doctor_id: int
    patient_id: str
    date: date
    time: str
    type: str
    status: str
    source: str
    hold_id: Optional[str] = None
    patient_name: Optional[str] = None
    date_of_birth: Optional[str] = None
    gender: Optional[str] = None
    problem: Optional[str] = None
    notes: Optional[str] = None
    consultation_fee: Optional[float] = None
    cancel_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime
