# medislot/middleware/audit.py
# One JSON line per request on medislot.audit.
# Identity comes from the Actor resolved by get_actor (request.state.actor);
# requests rejected before that (401, 404 on unknown routes) log actor=None.

import json
import logging
import time

from fastapi import Request

logger = logging.getLogger("medislot.audit")


def _actor_fields(request: Request) -> dict:
    actor = getattr(request.state, "actor", None)
    if actor is None:
        return {"user_id": None, "role": None, "doctor_id": None}
    return {"user_id": actor.user_id, "role": actor.role, "doctor_id": actor.doctor_id}


async def audit_middleware(request: Request, call_next):
    started = time.perf_counter()

    response = await call_next(request)

    record = {
        "ts": int(time.time()),
        "method": request.method,
        "path": request.url.path,
        "status": response.status_code,
        **_actor_fields(request),
        "ip": request.headers.get("X-Real-IP") or (request.client.host if request.client else None),
        "duration_ms": int((time.perf_counter() - started) * 1000),
    }

    log = logger.warning if response.status_code >= 500 else logger.info
    log(json.dumps(record, ensure_ascii=False))

    return response
