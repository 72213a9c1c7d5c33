# medislot/dependencies.py
# Shared app-state accessors for routers.

from fastapi import Request
from redis import Redis

from .services.reservations import ReservationManager
from .services.slots import BookingConfig


def get_manager(request: Request) -> ReservationManager:
    return request.app.state.manager


def get_config(request: Request) -> BookingConfig:
    return request.app.state.config


def get_redis(request: Request) -> Redis | None:
    return request.app.state.redis
