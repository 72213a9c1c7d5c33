# medislot/schemas/doctors.py

from datetime import datetime
from typing import Optional

from pydantic import Field

from .base import CamelModel


class DoctorCreate(CamelModel):
    name: str = Field(min_length=1)
    specialization: Optional[str] = None
    consultation_fee: float = Field(default=0, ge=0)
    is_active: bool = True


class DoctorRead(CamelModel):
    id: int
    name: str
    specialization: Optional[str] = None
    consultation_fee: float
    is_active: bool
    created_at: datetime
