"""
HTTP client for the cab booking API.

Translates transport failures and error responses into the error taxonomy
in :mod:`src.domain.errors` so that the flows above never see raw
``httpx`` exceptions.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Optional

import httpx

from src.domain.entities import Notification, Ride
from src.domain.errors import (
    ERRORS_BY_CODE,
    CabBookingError,
    GatewayError,
    InvalidRequest,
    Unauthenticated,
    Unauthorized,
)
from src.domain.events import RowChange

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


@dataclass(frozen=True)
class IntentHandle:
    client_secret: str
    amount: int


@dataclass(frozen=True)
class Confirmation:
    """What the gateway said about a confirm call."""

    status: str
    intent_id: Optional[str] = None
    amount: int = 0
    error_message: Optional[str] = None
    error_code: Optional[str] = None


def _detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        detail = body.get("detail") or body.get("error")
        if isinstance(detail, (dict, list)):
            return json.dumps(detail)
        if detail:
            return str(detail)
    return str(body)


def _raise_for_status(response: httpx.Response) -> None:
    if response.is_success:
        return
    message = f"{response.request.method} {response.request.url.path} -> {response.status_code}: {_detail(response)}"
    status = response.status_code
    if status == 401:
        raise Unauthenticated(message)
    if status in (403, 404, 409):
        raise Unauthorized(message)
    if status in (400, 422):
        raise InvalidRequest(message)
    raise CabBookingError(message)


async def iter_sse(lines: AsyncIterator[str]) -> AsyncIterator[tuple[str, str]]:
    """Parse a text/event-stream body into ``(event, data)`` pairs."""
    event, data = "message", []
    async for line in lines:
        if line == "":
            if data:
                yield event, "\n".join(data)
            event, data = "message", []
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        value = value[1:] if value.startswith(" ") else value
        if name == "event":
            event = value
        elif name == "data":
            data.append(value)
    if data:
        yield event, "\n".join(data)


class CabApiClient:
    def __init__(self, http: httpx.AsyncClient, token: Optional[str] = None):
        self.http = http
        self.token = token

    def _headers(self, extra: Optional[dict[str, str]] = None) -> dict[str, str]:
        headers = dict(extra or {})
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> httpx.Response:
        try:
            return await self.http.request(
                method,
                f"{API_PREFIX}{path}",
                json=json,
                params=params,
                headers=self._headers(headers),
            )
        except httpx.HTTPError as e:
            raise CabBookingError(
                f"{method} {path} failed: {e!r}",
                user_message="We couldn't reach the server. Check your connection.",
            ) from e

    async def _json(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._request(method, path, **kwargs)
        _raise_for_status(response)
        return response.json()

    # ── auth ──────────────────────────────────────────────────────────

    async def sign_up(
        self, email: str, password: str, full_name: str, phone: Optional[str] = None
    ) -> dict[str, Any]:
        data = await self._json(
            "POST",
            "/auth/sign-up",
            json={
                "email": email,
                "password": password,
                "full_name": full_name,
                "phone": phone,
            },
        )
        self.token = data["access_token"]
        return data

    async def sign_in(self, email: str, password: str) -> dict[str, Any]:
        data = await self._json(
            "POST", "/auth/sign-in", json={"email": email, "password": password}
        )
        self.token = data["access_token"]
        return data

    async def sign_out(self) -> None:
        try:
            response = await self._request("POST", "/auth/sign-out")
            _raise_for_status(response)
        finally:
            self.token = None

    async def get_session(self) -> dict[str, Any]:
        return await self._json("GET", "/auth/session")

    # ── rides ─────────────────────────────────────────────────────────

    async def create_ride(
        self,
        *,
        pickup_location: str,
        drop_location: str,
        date: str,
        time: str,
        vehicle_type: str,
        passengers: int = 1,
        pay_now: bool = False,
    ) -> Ride:
        data = await self._json(
            "POST",
            "/rides",
            json={
                "pickup_location": pickup_location,
                "drop_location": drop_location,
                "date": date,
                "time": time,
                "vehicle_type": vehicle_type,
                "passengers": passengers,
                "pay_now": pay_now,
            },
        )
        return Ride.from_dict(data)

    async def list_rides(self, status: Optional[str] = None) -> list[Ride]:
        params = {"status": status} if status else None
        data = await self._json("GET", "/rides", params=params)
        return [Ride.from_dict(row) for row in data]

    async def get_ride(self, ride_id: str) -> Ride:
        return Ride.from_dict(await self._json("GET", f"/rides/{ride_id}"))

    async def cancel_ride(self, ride_id: str) -> Ride:
        return Ride.from_dict(await self._json("PATCH", f"/rides/{ride_id}/cancel"))

    async def record_payment(self, ride_id: str, amount_minor: int) -> Ride:
        data = await self._json(
            "PATCH", f"/rides/{ride_id}/payment", json={"amountMinor": amount_minor}
        )
        return Ride.from_dict(data)

    # ── payments ──────────────────────────────────────────────────────

    async def create_payment_intent(
        self, ride: Ride, idempotency_key: Optional[str] = None
    ) -> IntentHandle:
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else None
        body = {
            "rideDetails": {
                "rideId": ride.id,
                "pickupLocation": ride.pickup_location,
                "dropLocation": ride.drop_location,
                "vehicleType": ride.vehicle_type,
            }
        }
        try:
            response = await self._request(
                "POST", "/payments/intent", json=body, headers=headers
            )
        except CabBookingError as e:
            raise GatewayError(
                str(e), stage=GatewayError.SETUP, answered=False
            ) from e

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not response.is_success:
            code = data.get("code") if isinstance(data, dict) else None
            message = (data.get("error") if isinstance(data, dict) else None) or (
                f"Payment intent request failed with {response.status_code}"
            )
            if response.status_code == 401:
                raise Unauthenticated(message)
            raise ERRORS_BY_CODE.get(code, GatewayError)(message)

        if not isinstance(data, dict) or not data.get("clientSecret"):
            raise GatewayError(
                f"Invalid payment data received: {data!r}",
                user_message="Invalid payment data received. Please try again.",
            )
        return IntentHandle(client_secret=data["clientSecret"], amount=int(data["amount"]))

    async def confirm_payment(
        self, ride_id: str, client_secret: str, payment_method: str
    ) -> Confirmation:
        try:
            response = await self._request(
                "POST",
                "/payments/confirm",
                json={
                    "rideId": ride_id,
                    "clientSecret": client_secret,
                    "paymentMethod": payment_method,
                },
            )
        except CabBookingError as e:
            raise GatewayError(
                str(e), stage=GatewayError.CONFIRMATION, answered=False
            ) from e

        if response.status_code == 402:
            error = response.json().get("error") or {}
            return Confirmation(
                status="requires_payment_method",
                error_message=error.get("message") or "",
                error_code=error.get("code"),
            )
        if response.status_code == 502:
            raise GatewayError(
                _detail(response), stage=GatewayError.CONFIRMATION
            )
        _raise_for_status(response)
        intent = response.json()["paymentIntent"]
        return Confirmation(
            status=intent["status"],
            intent_id=intent.get("id"),
            amount=intent.get("amount") or 0,
        )

    async def payment_config(self) -> dict[str, str]:
        return await self._json("GET", "/payments/config")

    # ── notifications ─────────────────────────────────────────────────

    async def list_notifications(self, limit: int = 10) -> list[Notification]:
        data = await self._json("GET", "/notifications", params={"limit": limit})
        return [Notification.from_dict(row) for row in data]

    async def mark_notification_read(self, notification_id: str) -> Notification:
        data = await self._json("PATCH", f"/notifications/{notification_id}/read")
        return Notification.from_dict(data)

    async def mark_all_notifications_read(self) -> list[Notification]:
        data = await self._json("POST", "/notifications/read-all")
        return [Notification.from_dict(row) for row in data]

    # ── realtime ──────────────────────────────────────────────────────

    async def stream_changes(
        self, table: str, on_ready: Optional[Callable[[], None]] = None
    ) -> AsyncIterator[RowChange]:
        """
        One SSE connection; ends when the server closes the stream.
        ``on_ready`` is called once the server has attached the subscription.
        """
        async with self.http.stream(
            "GET",
            f"{API_PREFIX}/realtime/{table}",
            headers=self._headers({"Accept": "text/event-stream"}),
            timeout=httpx.Timeout(10.0, read=None),
        ) as response:
            if not response.is_success:
                await response.aread()
                _raise_for_status(response)
            async for event, data in iter_sse(response.aiter_lines()):
                if event == "change":
                    yield RowChange.from_json(data)
                elif event == "ready" and on_ready is not None:
                    on_ready()
