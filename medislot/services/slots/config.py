# medislot/services/slots/config.py
"""
Booking configuration for slot availability and reservations.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta


APPOINTMENT_TYPES = ("video", "home-visit")

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


@dataclass(frozen=True)
class BookingConfig:
    """
    Configuration for the reservation system.

    Attributes:
        hold_ttl_seconds: Lifetime of an unconfirmed hold
        sweep_interval_seconds: Pause between expiry sweeps
        lock_timeout_seconds: Max wait for a per-slot lock before Busy
        min_advance_minutes: Lead time between now and a bookable slot
        horizon_days: How many days ahead availability is shown by default
        lookback_days: How many past days availability shows by default
        cache_ttl_seconds: Redis cache TTL for offered slots
    """
    hold_ttl_seconds: int = 600
    sweep_interval_seconds: int = 60
    lock_timeout_seconds: float = 2.0
    min_advance_minutes: int = 120
    horizon_days: int = 30
    lookback_days: int = 7
    cache_ttl_seconds: int = 86400

    def __post_init__(self):
        """Validate configuration."""
        if self.hold_ttl_seconds <= 0:
            raise ValueError(f"hold_ttl_seconds must be positive, got {self.hold_ttl_seconds}")
        if self.sweep_interval_seconds <= 0:
            raise ValueError(f"sweep_interval_seconds must be positive, got {self.sweep_interval_seconds}")
        if self.lock_timeout_seconds <= 0:
            raise ValueError(f"lock_timeout_seconds must be positive, got {self.lock_timeout_seconds}")
        if self.min_advance_minutes < 0:
            raise ValueError(f"min_advance_minutes cannot be negative, got {self.min_advance_minutes}")

    @property
    def hold_ttl(self) -> timedelta:
        return timedelta(seconds=self.hold_ttl_seconds)

    @property
    def min_advance(self) -> timedelta:
        return timedelta(minutes=self.min_advance_minutes)

    def default_range(self, today: date) -> tuple[date, date]:
        """Default availability window: past lookback_days + next horizon_days."""
        return (
            today - timedelta(days=self.lookback_days),
            today + timedelta(days=self.horizon_days),
        )


def booking_config_from_settings(settings) -> BookingConfig:
    return BookingConfig(
        hold_ttl_seconds=settings.hold_ttl_seconds,
        sweep_interval_seconds=settings.sweep_interval_seconds,
        lock_timeout_seconds=settings.lock_timeout_seconds,
        min_advance_minutes=settings.min_advance_minutes,
        horizon_days=settings.horizon_days,
        lookback_days=settings.lookback_days,
        cache_ttl_seconds=settings.cache_ttl_seconds,
    )


# ── Time helpers ─────────────────────────────────────────────────────────


def local_now() -> datetime:
    """
    Naive server-local now.

    Slot dates and times are clinic wall-clock values, so holds, bookings and
    lead-time checks all use the same naive local clock.
    """
    return datetime.now()


def normalize_time(value: str) -> str:
    """
    Normalize "H:MM" / "HH:MM" to "HH:MM".

    Raises ValueError on anything that is not a valid clock time.
    """
    match = _TIME_RE.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise ValueError(f"Time must be in HH:MM format, got {value!r}")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValueError(f"Time out of range: {value!r}")
    return f"{hour:02d}:{minute:02d}"


def time_str_to_minutes(time_str: str) -> int:
    """Convert "HH:MM" to minutes since midnight."""
    parts = time_str.split(":")
    return int(parts[0]) * 60 + int(parts[1])


def slot_datetime(target_date: date, time_str: str) -> datetime:
    """Start of a slot as a naive datetime."""
    return datetime.combine(target_date, datetime.min.time()) + timedelta(
        minutes=time_str_to_minutes(time_str)
    )
