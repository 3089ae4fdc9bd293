"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import date, datetime, time
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from src.domain.enums import RideStatus, VehicleType


# ── Requests ──────────────────────────────────────────────────────────


class SignUpRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    full_name: str = Field(..., min_length=1, max_length=120)
    phone: Optional[str] = Field(None, max_length=32)


class SignInRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RideCreateRequest(BaseModel):
    pickup_location: str = Field(..., min_length=1)
    drop_location: str = Field(..., min_length=1)
    date: date
    time: time
    vehicle_type: VehicleType
    passengers: int = Field(1, ge=1, le=8)
    pay_now: bool = Field(
        False,
        description="Create the ride as pending_payment instead of upcoming.",
    )


class RidePaymentRequest(BaseModel):
    amount_minor: int = Field(..., alias="amountMinor", gt=0)

    model_config = {"populate_by_name": True}


class AdminRideUpdate(BaseModel):
    status: Optional[RideStatus] = None
    driver_name: Optional[str] = Field(None, max_length=120)
    driver_rating: Optional[float] = Field(None, ge=0, le=5)
    vehicle_number: Optional[str] = Field(None, max_length=32)


class RideDetails(BaseModel):
    ride_id: str = Field(..., alias="rideId", min_length=1)
    pickup_location: str = Field(..., alias="pickupLocation", min_length=1)
    drop_location: str = Field(..., alias="dropLocation", min_length=1)
    vehicle_type: str = Field(..., alias="vehicleType", min_length=1)

    model_config = {"populate_by_name": True}


class PaymentIntentRequest(BaseModel):
    ride_details: RideDetails = Field(..., alias="rideDetails")

    model_config = {"populate_by_name": True}


class PaymentConfirmRequest(BaseModel):
    ride_id: str = Field(..., alias="rideId", min_length=1)
    client_secret: str = Field(..., alias="clientSecret", min_length=1)
    payment_method: str = Field(..., alias="paymentMethod", min_length=1)

    model_config = {"populate_by_name": True}


# ── Responses ─────────────────────────────────────────────────────────


class UserResponse(BaseModel):
    id: str
    email: str
    full_name: str
    phone: Optional[str] = None
    is_admin: bool = False
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AuthResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: UserResponse


class RideResponse(BaseModel):
    id: str
    user_id: str
    pickup_location: str
    drop_location: str
    date: date
    time: time
    vehicle_type: str
    passengers: int
    status: RideStatus
    amount: Optional[float] = None
    payment_date: Optional[datetime] = None
    payment_intent_id: Optional[str] = None
    driver_name: Optional[str] = None
    driver_rating: Optional[float] = None
    vehicle_number: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True, "use_enum_values": True}


class NotificationResponse(BaseModel):
    id: str
    user_id: str
    title: str
    message: str
    type: str
    read: bool
    related_ride_id: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PaymentIntentResponse(BaseModel):
    client_secret: str = Field(..., alias="clientSecret")
    amount: int

    model_config = {"populate_by_name": True}


class ConfirmedIntent(BaseModel):
    id: str
    status: str
    amount: int = 0


class PaymentConfirmResponse(BaseModel):
    payment_intent: ConfirmedIntent = Field(..., alias="paymentIntent")

    model_config = {"populate_by_name": True}


class PaymentConfigResponse(BaseModel):
    publishable_key: str = Field(..., alias="publishableKey")
    currency: str

    model_config = {"populate_by_name": True}


class HealthResponse(BaseModel):
    status: str = "ok"
