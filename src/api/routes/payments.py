"""
Payment endpoints
=================

POST    /api/v1/payments/intent   -- price a ride and open a Stripe PaymentIntent
OPTIONS /api/v1/payments/intent   -- CORS preflight (204)
POST    /api/v1/payments/confirm  -- confirm the intent with a payment method
GET     /api/v1/payments/config   -- publishable key for the client library

The intent endpoint answers every failure with ``500 {"error", "code"}``;
``code`` tells the caller whether a retry can help (``gateway_error``) or
not (``unauthenticated``, ``invalid_request``, ``unauthorized``).
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.broadcast import publish_ride, ride_payload
from src.api.dependencies import (
    bearer_token,
    get_change_feed,
    get_current_user,
    get_db,
    get_gateway,
    resolve_session,
)
from src.api.middleware import limiter
from src.api.schemas import (
    ConfirmedIntent,
    PaymentConfigResponse,
    PaymentConfirmRequest,
    PaymentConfirmResponse,
    PaymentIntentRequest,
    PaymentIntentResponse,
)
from src.config import settings
from src.domain.enums import PAYABLE_STATUSES, ChangeType, RideStatus
from src.domain.errors import (
    CabBookingError,
    GatewayError,
    InvalidRequest,
    Unauthenticated,
    Unauthorized,
)
from src.domain.pricing import fare_for_vehicle, to_major_units
from src.infrastructure.gateway import (
    GatewayIntent,
    PaymentGateway,
    intent_id_from_client_secret,
)
from src.infrastructure.models import RideModel, UserModel, utcnow
from src.infrastructure.realtime import ChangeFeed
from src.infrastructure.repositories import RideRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": (
        "authorization, x-client-info, apikey, content-type, idempotency-key"
    ),
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}


def _error(err: CabBookingError) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={"error": str(err), "code": err.code},
        headers=CORS_HEADERS,
    )


async def _link_intent(
    db: AsyncSession, feed: ChangeFeed, ride: RideModel, intent: GatewayIntent
) -> bool:
    """Store the intent on the ride; a failed write is logged, not raised."""
    old = ride_payload(ride)
    try:
        ride.payment_intent_id = intent.id
        ride.status = RideStatus.PENDING_PAYMENT
        ride.amount = to_major_units(intent.amount)
        ride.payment_date = utcnow()
        await db.commit()
    except SQLAlchemyError:
        logger.exception("Failed to link payment intent %s to ride", intent.id)
        await db.rollback()
        return False
    await publish_ride(feed, ride, ChangeType.UPDATE, old)
    return True


@router.options("/intent", include_in_schema=False)
async def intent_preflight():
    return Response(status_code=204, headers=CORS_HEADERS)


@router.api_route(
    "/intent",
    methods=["GET", "PUT", "PATCH", "DELETE"],
    include_in_schema=False,
)
async def intent_method_not_allowed():
    return JSONResponse(
        status_code=405,
        content={"error": "Method not allowed"},
        headers=CORS_HEADERS,
    )


@router.post(
    "/intent",
    response_model=PaymentIntentResponse,
    summary="Create a payment intent for a ride",
    responses={500: {"description": "`{error, code}` on any failure"}},
)
@limiter.limit("100/minute")
async def create_payment_intent(
    request: Request,
    token: Optional[str] = Depends(bearer_token),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
    feed: ChangeFeed = Depends(get_change_feed),
):
    logger.info("Payment intent request received")
    try:
        resolved = await resolve_session(db, token)
        if resolved is None:
            raise Unauthenticated("User not authenticated")
        user = resolved[1]

        try:
            body = PaymentIntentRequest.model_validate(await request.json())
        except (ValidationError, ValueError) as e:
            raise InvalidRequest(f"Invalid ride details: {e}") from e
        details = body.ride_details

        rides = RideRepository(db)
        ride = await rides.get_owned(details.ride_id, user.id)
        if ride is None:
            raise InvalidRequest(f"Ride {details.ride_id} not found")
        if RideStatus(ride.status) not in PAYABLE_STATUSES:
            raise Unauthorized(
                f"Ride {ride.id} is {RideStatus(ride.status).value}; "
                "payment not allowed"
            )

        amount = fare_for_vehicle(ride.vehicle_type or details.vehicle_type)
        logger.info("Calculated amount for ride %s: %d", ride.id, amount)

        intent = await gateway.create_intent(
            amount=amount,
            currency=settings.currency,
            metadata={
                "user_id": user.id,
                "ride_id": ride.id,
                "pickup_location": details.pickup_location,
                "drop_location": details.drop_location,
                "vehicle_type": details.vehicle_type,
            },
            idempotency_key=request.headers.get("idempotency-key"),
        )
    except CabBookingError as e:
        logger.error("Error creating payment intent: %s", e)
        return _error(e)

    # Linking the intent to the ride is best effort: the rider can still pay
    await _link_intent(db, feed, ride, intent)

    return JSONResponse(
        status_code=200,
        content=PaymentIntentResponse(
            client_secret=intent.client_secret, amount=amount
        ).model_dump(by_alias=True),
        headers=CORS_HEADERS,
    )


@router.post(
    "/confirm",
    response_model=PaymentConfirmResponse,
    summary="Confirm a payment intent",
    responses={402: {"description": "`{error: {message, code, type}}` on decline"}},
)
@limiter.limit("100/minute")
async def confirm_payment(
    request: Request,
    body: PaymentConfirmRequest,
    user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
    feed: ChangeFeed = Depends(get_change_feed),
):
    ride = await RideRepository(db).get_owned(body.ride_id, user.id)
    if ride is None:
        raise HTTPException(status_code=404, detail="Ride not found")
    try:
        intent_id = intent_id_from_client_secret(body.client_secret)
    except ValueError:
        raise HTTPException(status_code=400, detail="Malformed client secret")
    if RideStatus(ride.status) not in PAYABLE_STATUSES:
        raise HTTPException(
            status_code=409,
            detail=f"Cannot pay for a {RideStatus(ride.status).value} ride",
        )

    if ride.payment_intent_id is None:
        # The link written at intent creation was lost; the gateway's
        # metadata decides whether this intent is the ride's
        try:
            intent = await gateway.retrieve_intent(intent_id)
        except GatewayError as e:
            raise HTTPException(status_code=502, detail=e.user_message)
        if not intent.belongs_to(ride.id, user.id):
            raise HTTPException(
                status_code=409, detail="Client secret does not belong to this ride"
            )
        logger.info("Linking intent %s to ride %s at confirmation", intent_id, ride.id)
        await _link_intent(db, feed, ride, intent)
    elif intent_id != ride.payment_intent_id:
        raise HTTPException(
            status_code=409, detail="Client secret does not belong to this ride"
        )

    try:
        result = await gateway.confirm_intent(
            intent_id,
            payment_method=body.payment_method,
            return_url=settings.payment_return_url,
        )
    except GatewayError as e:
        raise HTTPException(status_code=502, detail=e.user_message)

    if result.failed:
        return JSONResponse(
            status_code=402,
            content={
                "error": {
                    "message": result.error_message,
                    "code": result.error_code,
                    "type": result.error_type,
                }
            },
        )
    logger.info("Intent %s confirmed with status %s", intent_id, result.status)
    return PaymentConfirmResponse(
        payment_intent=ConfirmedIntent(
            id=result.intent_id, status=result.status, amount=result.amount
        )
    )


@router.get(
    "/config",
    response_model=PaymentConfigResponse,
    summary="Client-side payment configuration",
)
async def payment_config():
    return PaymentConfigResponse(
        publishable_key=settings.stripe_publishable_key, currency=settings.currency
    )
