"""
medislot/services/events.py

Event emitter: pushes reservation events to a Redis queue for consumers
(notification workers, admin dashboard refresh).

Queue:
- events:p2p: per-user events (hold and booking lifecycle)

Redis is optional; without it events are only logged.
"""

import json
import time
import logging

from redis import Redis

logger = logging.getLogger(__name__)

P2P_QUEUE = "events:p2p"


def emit_event(redis: Redis | None, event_type: str, payload: dict) -> None:
    """
    Emit a p2p event.

    Pushed to Redis list `events:p2p` for the consumer loop. Failures are
    logged and never propagate to the caller.
    """
    if redis is None:
        logger.debug(f"Event skipped (no redis): {event_type}")
        return

    event = {
        "type": event_type,
        **payload,
        "ts": int(time.time()),
    }
    try:
        redis.rpush(P2P_QUEUE, json.dumps(event, default=str))
        logger.info(f"Event emitted: {event_type} → {P2P_QUEUE}")
    except Exception as e:
        logger.error(f"Failed to emit event {event_type}: {e}")
