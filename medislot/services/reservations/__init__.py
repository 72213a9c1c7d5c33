# medislot/services/reservations/__init__.py
"""
Reservation kernel.

Hold ledger: temporary holds with expiry
Manager: atomic slot transitions (block, confirm, release, cancel, admin book)
Sweeper: periodic reclaim of elapsed holds
"""

from .errors import (
    Busy,
    Forbidden,
    HoldExpired,
    InvalidSlot,
    InvalidTransition,
    NotFound,
    ReservationError,
    ScheduleConflict,
    SlotUnavailable,
)
from .ledger import HoldLedger
from .locks import SlotLockRegistry
from .manager import ReservationManager
from .sweeper import hold_sweeper_loop

__all__ = [
    "Busy",
    "Forbidden",
    "HoldExpired",
    "InvalidSlot",
    "InvalidTransition",
    "NotFound",
    "ReservationError",
    "ScheduleConflict",
    "SlotUnavailable",
    "HoldLedger",
    "SlotLockRegistry",
    "ReservationManager",
    "hold_sweeper_loop",
]
