# medislot/services/reservations/locks.py
"""
Per-slot-key mutual exclusion.

One lock per (doctor_id, date, time) key, created on first use and dropped
once no caller holds or waits on it. Keys never share a lock, so operations
on different slots proceed independently.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import date
from typing import Iterator

from .errors import Busy

logger = logging.getLogger(__name__)

SlotKey = tuple[int, date, str]


class SlotLockRegistry:
    """Keyed locks with a bounded wait."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        self._guard = threading.Lock()
        self._locks: dict[SlotKey, threading.Lock] = {}
        self._refs: dict[SlotKey, int] = {}

    @contextmanager
    def acquire(self, key: SlotKey, timeout: float | None = None) -> Iterator[None]:
        """
        Hold the lock for `key` for the duration of the block.

        Raises:
            Busy: the lock was not acquired within the timeout.
        """
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._refs[key] = self._refs.get(key, 0) + 1

        acquired = False
        try:
            acquired = lock.acquire(timeout=self.timeout if timeout is None else timeout)
            if not acquired:
                logger.warning(f"Slot lock timeout: {key}")
                raise Busy()
            yield
        finally:
            if acquired:
                lock.release()
            with self._guard:
                self._refs[key] -= 1
                if self._refs[key] == 0:
                    del self._refs[key]
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
