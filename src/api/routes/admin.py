"""
Admin / observability endpoints
===============================

GET   /api/v1/admin/rides            -- every booking, newest first
PATCH /api/v1/admin/rides/{ride_id}  -- move a ride along its lifecycle,
                                        assign a driver
GET   /api/v1/admin/health           -- simple health check
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.broadcast import publish_notification, publish_ride, ride_payload
from src.api.dependencies import get_change_feed, get_db, require_admin
from src.api.middleware import limiter
from src.api.schemas import AdminRideUpdate, HealthResponse, RideResponse
from src.domain.entities import InvalidStateTransition, ensure_transition
from src.domain.enums import ChangeType, NotificationType, RideStatus
from src.infrastructure.models import UserModel
from src.infrastructure.realtime import ChangeFeed
from src.infrastructure.repositories import NotificationRepository, RideRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get(
    "/rides",
    response_model=list[RideResponse],
    summary="List all bookings",
)
@limiter.limit("100/minute")
async def list_bookings(
    request: Request,
    status: Optional[RideStatus] = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    admin: UserModel = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await RideRepository(db).list_all(status, limit, offset)


@router.patch(
    "/rides/{ride_id}",
    response_model=RideResponse,
    summary="Update a booking",
    description="Status changes follow the same transition table as riders.",
)
@limiter.limit("100/minute")
async def update_booking(
    request: Request,
    ride_id: str,
    body: AdminRideUpdate,
    admin: UserModel = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    ride = await RideRepository(db).get_by_id(ride_id)
    if not ride:
        raise HTTPException(status_code=404, detail="Ride not found")

    old = ride_payload(ride)
    previous = RideStatus(ride.status)
    note = None
    if body.status is not None and body.status != previous:
        try:
            ensure_transition(previous, body.status)
        except InvalidStateTransition as e:
            raise HTTPException(status_code=409, detail=str(e))
        ride.status = body.status
        note = await NotificationRepository(db).create(
            user_id=ride.user_id,
            title="Ride update",
            message=f"Your ride is now {body.status.value.replace('_', ' ')}.",
            type=NotificationType.RIDE_STATUS.value,
            related_ride_id=ride.id,
        )

    for field in ("driver_name", "driver_rating", "vehicle_number"):
        value = getattr(body, field)
        if value is not None:
            setattr(ride, field, value)

    await db.commit()
    logger.info(
        "Admin %s updated ride %s (%s -> %s)",
        admin.id,
        ride.id,
        previous.value,
        RideStatus(ride.status).value,
    )
    await publish_ride(feed, ride, ChangeType.UPDATE, old)
    if note is not None:
        await publish_notification(feed, note, ChangeType.INSERT)
    return ride


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()
