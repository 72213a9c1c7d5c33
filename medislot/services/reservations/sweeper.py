"""
Expiry sweeper.

Periodically reclaims holds whose TTL has elapsed so that abandoned holds
free their slots even when nobody touches the slot again.

Runs as an asyncio task in the app lifespan.
Uses the synchronous reservation manager (via asyncio.to_thread).
"""

import asyncio
import logging

from .manager import ReservationManager

logger = logging.getLogger(__name__)


async def hold_sweeper_loop(manager: ReservationManager, interval: float) -> None:
    """
    Periodic loop: expire every hold with expires_at <= now.

    Each hold is reclaimed under its slot lock with the expiry re-checked,
    so a confirm that wins the race is never undone.
    """
    logger.info(f"hold_sweeper_loop started (interval={interval}s)")

    try:
        while True:
            try:
                await asyncio.to_thread(manager.sweep_expired)
            except asyncio.CancelledError:
                logger.info("hold_sweeper_loop cancelled")
                raise
            except Exception:
                logger.exception("hold_sweeper_loop error")

            await asyncio.sleep(interval)
    except asyncio.CancelledError:
        pass
