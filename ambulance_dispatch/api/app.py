"""
FastAPI application factory.

* Registers routes for bookings, drivers and admin.
* Starts / stops the emergency dispatch and maintenance workers via
  lifespan events.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from ambulance_dispatch.api.middleware import limiter
from ambulance_dispatch.api.routes import admin, bookings, drivers
from ambulance_dispatch.config import settings
from ambulance_dispatch.workers import dispatcher as _dispatcher
from ambulance_dispatch.workers import maintenance as _maintenance

logging.basicConfig(level=settings.log_level.upper())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the background workers on startup; stop on shutdown."""
    await _dispatcher.start_dispatch_loop()
    await _maintenance.start_maintenance_loop()
    yield
    await _maintenance.stop_maintenance_loop()
    await _dispatcher.stop_dispatch_loop()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Ambulance Dispatch API",
        description=(
            "Assigns ambulance drivers to emergency and scheduled bookings. "
            "Emergency bookings are dispatched automatically (nearest driver "
            "first, then broadcast) and escalated when nobody is found; "
            "drivers move bookings through their lifecycle."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Routers
    app.include_router(bookings.router, prefix="/api/v1")
    app.include_router(drivers.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
