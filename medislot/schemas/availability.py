# medislot/schemas/availability.py

import json
from datetime import date, datetime
from typing import Optional

from pydantic import field_validator

from .base import CamelModel


class AvailabilityEntry(CamelModel):
    date: date
    time_slots: list[str] = []
    is_available: bool = True
    type: str = "video"


class AvailabilityUpdate(CamelModel):
    availability: list[AvailabilityEntry]


class AvailabilityRecord(CamelModel):
    """Stored schedule row for a day and type."""
    id: int
    doctor_id: int
    date: date
    type: str
    time_slots: list[str]
    is_available: bool
    updated_at: Optional[datetime] = None

    @field_validator("time_slots", mode="before")
    @classmethod
    def parse_stored_slots(cls, value):
        # Stored as JSON text in the availability table
        if isinstance(value, str):
            return json.loads(value or "[]")
        return value


class AvailabilityDay(CamelModel):
    """Composed view of a day: free, booked and held times."""
    date: date
    day_of_week: str
    type: str
    time_slots: list[str]
    booked_slots: list[str]
    held_slots: list[str]
    is_available: bool
