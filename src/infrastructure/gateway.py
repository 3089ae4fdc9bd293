"""
Stripe payment gateway adapter.

The ``stripe`` library is synchronous, so every call is pushed onto a worker
thread with ``asyncio.to_thread`` to keep the event loop free.  Stripe
failures are translated into :class:`~src.domain.errors.GatewayError` with
the stage (setup / confirmation) that failed.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

import stripe

from src.domain.errors import GatewayError

logger = logging.getLogger(__name__)

SECRET_MARKER = "_secret_"


def intent_id_from_client_secret(client_secret: str) -> str:
    """``pi_123_secret_abc`` -> ``pi_123``."""
    intent_id, marker, _ = client_secret.partition(SECRET_MARKER)
    if not marker or not intent_id:
        raise ValueError("Malformed client secret")
    return intent_id


# Statuses in which no charge has happened or can still happen on its own
UNCHARGED_STATUSES = frozenset(
    {"requires_payment_method", "requires_confirmation", "canceled"}
)


@dataclass(frozen=True)
class GatewayIntent:
    id: str
    client_secret: str
    amount: int
    status: str
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def charged(self) -> bool:
        """Succeeded, or in an intermediate status counted as success."""
        return self.status not in UNCHARGED_STATUSES

    def belongs_to(self, ride_id: str, user_id: str) -> bool:
        return (
            self.metadata.get("ride_id") == ride_id
            and self.metadata.get("user_id") == user_id
        )


@dataclass(frozen=True)
class ConfirmationResult:
    """Outcome of one confirm call: ``error_message`` set means a definitive failure."""

    intent_id: str
    status: str
    amount: int = 0
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    error_type: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error_message is not None


def _to_gateway_intent(intent) -> GatewayIntent:
    return GatewayIntent(
        id=intent.id,
        client_secret=intent.client_secret,
        amount=intent.amount,
        status=intent.status,
        metadata=dict(intent.metadata or {}),
    )


class PaymentGateway(ABC):
    @abstractmethod
    async def create_intent(
        self,
        *,
        amount: int,
        currency: str,
        metadata: dict[str, str],
        idempotency_key: Optional[str] = None,
    ) -> GatewayIntent: ...

    @abstractmethod
    async def confirm_intent(
        self, intent_id: str, *, payment_method: str, return_url: str
    ) -> ConfirmationResult: ...

    @abstractmethod
    async def retrieve_intent(self, intent_id: str) -> GatewayIntent: ...


class StripeGateway(PaymentGateway):
    def __init__(self, secret_key: str, api_version: Optional[str] = None):
        self.secret_key = secret_key
        self.api_version = api_version

    def _ensure_configured(self) -> None:
        if not self.secret_key:
            raise GatewayError("Stripe secret key not configured")

    async def create_intent(
        self,
        *,
        amount: int,
        currency: str,
        metadata: dict[str, str],
        idempotency_key: Optional[str] = None,
    ) -> GatewayIntent:
        self._ensure_configured()
        kwargs = {
            "api_key": self.secret_key,
            "amount": amount,
            "currency": currency,
            "automatic_payment_methods": {"enabled": True},
            "metadata": metadata,
        }
        if self.api_version:
            kwargs["stripe_version"] = self.api_version
        if idempotency_key:
            kwargs["idempotency_key"] = idempotency_key
        try:
            intent = await asyncio.to_thread(stripe.PaymentIntent.create, **kwargs)
        except stripe.StripeError as e:
            logger.error("Stripe error creating payment intent: %s", e)
            raise GatewayError(
                f"Failed to create payment intent: {e}",
                stage=GatewayError.SETUP,
                user_message=getattr(e, "user_message", None),
            ) from e
        logger.info("Payment intent created: %s", intent.id)
        return _to_gateway_intent(intent)

    async def retrieve_intent(self, intent_id: str) -> GatewayIntent:
        self._ensure_configured()
        kwargs = {"api_key": self.secret_key}
        if self.api_version:
            kwargs["stripe_version"] = self.api_version
        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.retrieve, intent_id, **kwargs
            )
        except stripe.StripeError as e:
            logger.error("Stripe error retrieving %s: %s", intent_id, e)
            raise GatewayError(
                f"Failed to retrieve payment intent: {e}",
                stage=GatewayError.CONFIRMATION,
                user_message=getattr(e, "user_message", None),
            ) from e
        return _to_gateway_intent(intent)

    async def confirm_intent(
        self, intent_id: str, *, payment_method: str, return_url: str
    ) -> ConfirmationResult:
        self._ensure_configured()
        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.confirm,
                intent_id,
                api_key=self.secret_key,
                payment_method=payment_method,
                return_url=return_url,
            )
        except stripe.CardError as e:
            # Declines are an answer, not an outage
            logger.info("Card declined for %s: %s", intent_id, e.code)
            return ConfirmationResult(
                intent_id=intent_id,
                status="requires_payment_method",
                error_message=e.user_message or str(e),
                error_code=e.code,
                error_type="card_error",
            )
        except stripe.StripeError as e:
            logger.error("Stripe error confirming %s: %s", intent_id, e)
            raise GatewayError(
                f"Failed to confirm payment: {e}",
                stage=GatewayError.CONFIRMATION,
                user_message=getattr(e, "user_message", None),
            ) from e
        return ConfirmationResult(
            intent_id=intent.id, status=intent.status, amount=intent.amount
        )
