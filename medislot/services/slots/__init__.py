# medislot/services/slots/__init__.py
"""
Slot availability module.

Offered slots: doctor schedule (cached in Redis Sorted Sets)
Availability view: offered slots minus live holds and bookings (on-the-fly)
"""

from .config import BookingConfig, booking_config_from_settings
from .calculator import calculate_day_slots, get_offered_slots
from .redis_store import SlotsRedisStore
from .invalidator import invalidate_doctor_cache
from .availability import get_doctor_availability

__all__ = [
    "BookingConfig",
    "booking_config_from_settings",
    "calculate_day_slots",
    "get_offered_slots",
    "SlotsRedisStore",
    "invalidate_doctor_cache",
    "get_doctor_availability",
]
