# medislot/services/slots/redis_store.py
"""
Redis cache for a doctor's offered slots using Sorted Sets.

Key format: slots:day:{doctor_id}:{date}:{type}
Value: Sorted Set where member = "HH:MM", score = expire_ts
       (unix timestamp after which the slot is inside the booking lead time).

Score lets callers drop slots inside the lead time with ZRANGEBYSCORE {now_ts} +inf.
Sentinel: "__empty__" with score=0 marks "calculated, zero slots".

Only the doctor's schedule is cached. Holds and bookings are always read
from the database, so a held or booked slot is never served as free.
"""

from datetime import date
from redis import Redis

from .config import BookingConfig


EMPTY_SENTINEL = "__empty__"


def _decode(member) -> str:
    return member.decode() if isinstance(member, bytes) else member


class SlotsRedisStore:
    """Redis storage wrapper using Sorted Sets for offered slots."""

    KEY_PREFIX = "slots:day"

    def __init__(self, redis: Redis, config: BookingConfig):
        self.redis = redis
        self.config = config

    def _key(self, doctor_id: int, dt: date, appointment_type: str) -> str:
        return f"{self.KEY_PREFIX}:{doctor_id}:{dt.isoformat()}:{appointment_type}"

    # ── Write ────────────────────────────────────────────────────────────

    def store_day_slots(
        self,
        doctor_id: int,
        dt: date,
        appointment_type: str,
        slots: list[tuple[str, float]],
    ) -> None:
        """
        Store offered slots for a day.

        Args:
            doctor_id: Doctor ID
            dt: Target date
            appointment_type: "video" or "home-visit"
            slots: List of (time_str, expire_ts) pairs.
                   Empty list → sentinel is stored.
        """
        key = self._key(doctor_id, dt, appointment_type)
        pipe = self.redis.pipeline()

        pipe.delete(key)

        if slots:
            mapping = {time_str: expire_ts for time_str, expire_ts in slots}
            pipe.zadd(key, mapping)
        else:
            # Empty day: sentinel so EXISTS returns True
            pipe.zadd(key, {EMPTY_SENTINEL: 0})
        pipe.expire(key, self.config.cache_ttl_seconds)

        pipe.execute()

    # ── Read ─────────────────────────────────────────────────────────────

    def get_day_slots(
        self,
        doctor_id: int,
        dt: date,
        appointment_type: str,
    ) -> list[tuple[str, float]] | None:
        """
        Get all cached slots with their expire_ts.

        Returns:
            List of (time_str, expire_ts), or None on cache miss.
        """
        key = self._key(doctor_id, dt, appointment_type)
        if not self.redis.exists(key):
            return None

        raw = self.redis.zrangebyscore(key, "-inf", "+inf", withscores=True)
        return [
            (_decode(member), score)
            for member, score in raw
            if _decode(member) != EMPTY_SENTINEL
        ]

    # ── Delete ───────────────────────────────────────────────────────────

    def delete_day_slots(
        self,
        doctor_id: int,
        dates: list[date] | None = None,
    ) -> int:
        """
        Delete cached slots.

        Args:
            doctor_id: Doctor ID
            dates: Specific dates, or None to delete every cached day.

        Returns:
            Number of deleted keys.
        """
        if dates:
            pattern_keys = [
                f"{self.KEY_PREFIX}:{doctor_id}:{dt.isoformat()}:*" for dt in dates
            ]
        else:
            pattern_keys = [f"{self.KEY_PREFIX}:{doctor_id}:*"]

        keys = []
        for pattern in pattern_keys:
            keys.extend(self.redis.scan_iter(pattern))

        if not keys:
            return 0

        return self.redis.delete(*keys)
