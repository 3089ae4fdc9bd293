"""
FastAPI application factory.

* Registers routes for auth, rides, payments, notifications, realtime
  and admin.
* Disposes the database engine via lifespan events.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from src.api.middleware import limiter
from src.api.routes import admin, auth, notifications, payments, realtime, rides
from src.infrastructure.database import engine

logging.basicConfig(level=logging.INFO)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Cab booking API starting")
    yield
    await engine.dispose()
    logger.info("Cab booking API stopped")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Corporate Cab Booking API",
        description=(
            "Books corporate cabs, takes payment through Stripe and keeps "
            "riders' dashboards current with realtime ride and notification "
            "events."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Routers
    for module in (auth, rides, payments, notifications, realtime, admin):
        app.include_router(module.router, prefix="/api/v1")

    return app
