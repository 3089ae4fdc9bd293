"""
Ride endpoints
==============

POST  /api/v1/rides                 -- book a ride (upcoming or pending_payment)
GET   /api/v1/rides                 -- the caller's rides, newest first
GET   /api/v1/rides/{ride_id}       -- one ride
PATCH /api/v1/rides/{ride_id}/cancel  -- cancel an open ride
PATCH /api/v1/rides/{ride_id}/payment -- record a confirmed charge

Every write is committed before its change event is published so that
realtime subscribers never see a row the database could still roll back.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.broadcast import (
    publish_notification,
    publish_ride,
    ride_payload,
)
from src.api.dependencies import (
    get_change_feed,
    get_current_user,
    get_db,
    get_gateway,
)
from src.api.middleware import limiter
from src.api.schemas import RideCreateRequest, RidePaymentRequest, RideResponse
from src.domain.entities import InvalidStateTransition, ensure_transition
from src.domain.enums import ChangeType, NotificationType, RideStatus
from src.domain.errors import GatewayError
from src.domain.pricing import format_amount, to_major_units
from src.infrastructure.gateway import PaymentGateway
from src.infrastructure.models import RideModel, UserModel, utcnow
from src.infrastructure.realtime import ChangeFeed
from src.infrastructure.repositories import NotificationRepository, RideRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rides", tags=["rides"])


async def _owned_ride_or_404(
    repo: RideRepository, ride_id: str, user: UserModel
) -> RideModel:
    ride = await repo.get_owned(ride_id, user.id)
    if not ride:
        raise HTTPException(status_code=404, detail="Ride not found")
    return ride


def _check_transition(ride: RideModel, new_status: RideStatus) -> None:
    try:
        ensure_transition(RideStatus(ride.status), new_status)
    except InvalidStateTransition:
        raise HTTPException(
            status_code=409,
            detail=f"Cannot move ride from {RideStatus(ride.status).value} "
            f"to {new_status.value}",
        )


@router.post(
    "",
    status_code=201,
    response_model=RideResponse,
    summary="Book a ride",
)
@limiter.limit("100/minute")
async def create_ride(
    request: Request,
    body: RideCreateRequest,
    user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    ride = await RideRepository(db).create(
        RideModel(
            user_id=user.id,
            pickup_location=body.pickup_location,
            drop_location=body.drop_location,
            date=body.date,
            time=body.time,
            vehicle_type=body.vehicle_type.value,
            passengers=body.passengers,
            status=(
                RideStatus.PENDING_PAYMENT if body.pay_now else RideStatus.UPCOMING
            ),
        )
    )
    await db.commit()
    logger.info("Ride %s booked by %s (status=%s)", ride.id, user.id, ride.status)
    await publish_ride(feed, ride, ChangeType.INSERT)
    return ride


@router.get(
    "",
    response_model=list[RideResponse],
    summary="List the caller's rides, newest first",
)
@limiter.limit("100/minute")
async def list_rides(
    request: Request,
    status: Optional[RideStatus] = None,
    user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await RideRepository(db).list_for_user(user.id, status)


@router.get("/{ride_id}", response_model=RideResponse, summary="Get one ride")
@limiter.limit("100/minute")
async def get_ride(
    request: Request,
    ride_id: str,
    user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await _owned_ride_or_404(RideRepository(db), ride_id, user)


@router.patch(
    "/{ride_id}/cancel",
    response_model=RideResponse,
    summary="Cancel a ride",
    description=(
        "Transitions an UPCOMING or PENDING_PAYMENT ride to CANCELLED. "
        "No refund is issued."
    ),
)
@limiter.limit("100/minute")
async def cancel_ride(
    request: Request,
    ride_id: str,
    user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    ride = await _owned_ride_or_404(RideRepository(db), ride_id, user)
    _check_transition(ride, RideStatus.CANCELLED)

    old = ride_payload(ride)
    ride.status = RideStatus.CANCELLED
    await db.commit()
    logger.info("Ride %s cancelled by %s", ride.id, user.id)
    await publish_ride(feed, ride, ChangeType.UPDATE, old)
    return ride


@router.patch(
    "/{ride_id}/payment",
    response_model=RideResponse,
    summary="Mark a ride as paid",
    description=(
        "Called once the gateway has confirmed the charge. The ride's linked "
        "intent is looked up with the gateway; status=paid, the amount the "
        "gateway charged and payment_date are then set in a single update."
    ),
)
@limiter.limit("100/minute")
async def record_payment(
    request: Request,
    ride_id: str,
    body: RidePaymentRequest,
    user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
    gateway: PaymentGateway = Depends(get_gateway),
):
    ride = await _owned_ride_or_404(RideRepository(db), ride_id, user)
    _check_transition(ride, RideStatus.PAID)
    if ride.payment_intent_id is None:
        raise HTTPException(
            status_code=409, detail="Ride has no payment intent to settle"
        )

    try:
        intent = await gateway.retrieve_intent(ride.payment_intent_id)
    except GatewayError as e:
        raise HTTPException(status_code=502, detail=e.user_message)
    if not intent.belongs_to(ride.id, user.id):
        raise HTTPException(
            status_code=409, detail="Payment intent does not belong to this ride"
        )
    if not intent.charged:
        raise HTTPException(
            status_code=409,
            detail=f"Payment has not been confirmed (status {intent.status})",
        )
    if body.amount_minor != intent.amount:
        logger.warning(
            "Ride %s reported %d minor units; gateway charged %d",
            ride.id,
            body.amount_minor,
            intent.amount,
        )

    old = ride_payload(ride)
    ride.status = RideStatus.PAID
    ride.amount = to_major_units(intent.amount)
    ride.payment_date = utcnow()

    note = await NotificationRepository(db).create(
        user_id=user.id,
        title="Ride confirmed",
        message=(
            f"Your {ride.vehicle_type} ride from {ride.pickup_location} to "
            f"{ride.drop_location} is paid ({format_amount(intent.amount)})."
        ),
        type=NotificationType.RIDE_CONFIRMED.value,
        related_ride_id=ride.id,
    )
    await db.commit()
    logger.info(
        "Ride %s paid: %d minor units (intent=%s, status=%s)",
        ride.id,
        intent.amount,
        intent.id,
        intent.status,
    )
    await publish_ride(feed, ride, ChangeType.UPDATE, old)
    await publish_notification(feed, note, ChangeType.INSERT)
    return ride
