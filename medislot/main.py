# medislot/main.py

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from redis import Redis
from redis.exceptions import RedisError
from sqlalchemy.orm import sessionmaker

from .config import Settings, settings as default_settings
from .database import init_db, make_engine, make_session_factory
from .middleware.audit import audit_middleware
from .redis_client import make_redis
from .routers import admin, appointments, doctors
from .services.reservations import ReservationError, ReservationManager, hold_sweeper_loop
from .services.slots import BookingConfig, booking_config_from_settings
from .services.slots.config import local_now

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    session_factory: sessionmaker | None = None,
    redis: Redis | None = None,
    config: BookingConfig | None = None,
    clock: Callable[[], datetime] | None = None,
) -> FastAPI:
    """
    Build the API.

    Everything not passed in is built from settings; tests inject their own
    session factory, clock and (mock) Redis.
    """
    settings = settings or default_settings
    logging.basicConfig(level=settings.log_level.upper())

    engine = None
    if session_factory is None:
        engine = make_engine(settings.resolved_database_url)
        session_factory = make_session_factory(engine)
    if redis is None:
        redis = make_redis(settings.redis_url)
    config = config or booking_config_from_settings(settings)

    manager = ReservationManager(
        session_factory,
        config,
        clock=clock or local_now,
        redis=redis,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if engine is not None:
            init_db(engine)

        sweeper = None
        if settings.sweeper_enabled:
            sweeper = asyncio.create_task(
                hold_sweeper_loop(manager, config.sweep_interval_seconds)
            )
        try:
            yield
        finally:
            if sweeper is not None:
                sweeper.cancel()
                try:
                    await sweeper
                except asyncio.CancelledError:
                    pass

    app = FastAPI(title="Medislot Booking API", lifespan=lifespan)
    app.state.session_factory = session_factory
    app.state.manager = manager
    app.state.redis = redis
    app.state.config = config

    # ===== Middleware =====
    app.middleware("http")(audit_middleware)

    # ===== Errors =====
    @app.exception_handler(ReservationError)
    async def reservation_error_handler(request: Request, exc: ReservationError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "code": exc.code},
        )

    # ===== Routes =====
    app.include_router(doctors.router)
    app.include_router(appointments.router)
    app.include_router(admin.router)

    @app.get("/health")
    def health():
        redis_ok = None
        if app.state.redis is not None:
            try:
                redis_ok = bool(app.state.redis.ping())
            except RedisError:
                redis_ok = False
        return {"status": "ok", "redis": redis_ok}

    return app


app = create_app()
