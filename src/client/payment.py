"""
Payment dialog
==============

Drives one payment for one ride:

1. ``open()`` asks the service for a payment intent, retrying gateway
   failures a fixed number of times before giving up.
2. ``submit(payment_method)`` confirms the charge with the gateway.
3. On success the ride is marked paid, a short grace period passes and the
   completion callback fires.

Setup states::

    pending -> loading -> ready
                       -> failed   (retry_setup() goes back to loading)

Payment states::

    idle -> processing -> succeeded
                       -> error -> idle   (try_again)
    any  -> cancelled

Errors never leave ``open``/``submit``; their user-facing text is kept on
``setup_error`` / ``error_message`` / ``result_message``. The only
exception is ``NotReady``, raised when ``submit`` is called at the wrong
time.
"""

from __future__ import annotations

import asyncio
import enum
import inspect
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from src.config import settings
from src.domain.entities import PaymentAttempt, Ride
from src.domain.errors import (
    CabBookingError,
    GatewayError,
    NotReady,
    PartialFailure,
)
from src.domain.pricing import format_amount

logger = logging.getLogger(__name__)

GENERIC_DECLINE_MESSAGE = "Payment failed. Please try again."
PAID_MESSAGE = "Your ride has been confirmed and paid."


class SetupState(str, enum.Enum):
    PENDING = "pending"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class PaymentState(str, enum.Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    ERROR = "error"
    CANCELLED = "cancelled"


class PaymentOutcome(str, enum.Enum):
    PAID = "paid"
    PARTIAL_FAILURE = "partial_failure"
    DECLINED = "declined"


@dataclass(frozen=True)
class ChargeResult:
    succeeded: bool
    status: str
    message: Optional[str] = None


def classify_confirmation(confirmation) -> ChargeResult:
    """
    An error message means a definitive decline; any other status counts as
    success, including intermediate ones such as ``processing``.
    """
    if confirmation.error_message is not None:
        return ChargeResult(
            succeeded=False,
            status=confirmation.status,
            message=confirmation.error_message or GENERIC_DECLINE_MESSAGE,
        )
    if confirmation.status != "succeeded":
        logger.warning(
            "Treating gateway status %r as a successful charge", confirmation.status
        )
    return ChargeResult(succeeded=True, status=confirmation.status)


def _new_idempotency_key() -> str:
    return str(uuid.uuid4())


class PaymentDialog:
    def __init__(
        self,
        api,
        ride: Ride,
        *,
        gateway_ready: Callable[[], bool] = lambda: True,
        on_complete: Optional[Callable[[PaymentDialog], Any]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        max_retries: int = settings.payment_setup_max_retries,
        retry_delay: float = settings.payment_setup_retry_delay_seconds,
        setup_timeout: float = settings.payment_setup_timeout_seconds,
        success_grace: float = settings.payment_success_grace_seconds,
    ):
        self.api = api
        self.ride = ride
        self._gateway_ready = gateway_ready
        self.on_complete = on_complete
        self._sleep = sleep
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.setup_timeout = setup_timeout
        self.success_grace = success_grace

        self.attempt = PaymentAttempt(
            ride_id=ride.id, idempotency_key=_new_idempotency_key()
        )
        self.setup_state = SetupState.PENDING
        self.state = PaymentState.IDLE
        self.setup_error: Optional[str] = None
        self.error_message: Optional[str] = None
        self.result_message: Optional[str] = None

    @property
    def amount_label(self) -> str:
        return format_amount(self.attempt.amount_minor)

    @property
    def is_cancelled(self) -> bool:
        return self.state is PaymentState.CANCELLED

    # ── setup ─────────────────────────────────────────────────────────

    async def open(self) -> bool:
        """Request the payment intent. Returns True once the form is ready."""
        self.setup_state = SetupState.LOADING
        self.setup_error = None
        try:
            await asyncio.wait_for(self._request_intent(), timeout=self.setup_timeout)
        except asyncio.TimeoutError:
            logger.error(
                "Payment setup for ride %s timed out after %.0fs",
                self.ride.id,
                self.setup_timeout,
            )
            self._fail_setup(GatewayError().user_message)
            return False
        except CabBookingError as e:
            logger.error(
                "Payment setup for ride %s failed after %d attempt(s): %s",
                self.ride.id,
                self.attempt.attempt_count,
                e,
            )
            self._fail_setup(e.user_message)
            return False

        self.setup_state = SetupState.READY
        logger.info(
            "Payment ready for ride %s (%s)", self.ride.id, self.amount_label
        )
        return True

    async def _request_intent(self) -> None:
        retries = 0
        while True:
            self.attempt.attempt_count += 1
            try:
                handle = await self.api.create_payment_intent(
                    self.ride, idempotency_key=self.attempt.idempotency_key
                )
            except GatewayError as e:
                if retries >= self.max_retries:
                    raise
                retries += 1
                if e.answered:
                    # A reused key would replay the stored failure
                    self.attempt.idempotency_key = _new_idempotency_key()
                logger.warning(
                    "Payment setup attempt %d for ride %s failed (%s); "
                    "retrying in %.1fs",
                    self.attempt.attempt_count,
                    self.ride.id,
                    e,
                    self.retry_delay,
                )
                await self._sleep(self.retry_delay)
                continue
            self.attempt.client_secret = handle.client_secret
            self.attempt.amount_minor = handle.amount
            return

    def _fail_setup(self, message: str) -> None:
        if self.is_cancelled:
            return
        self.setup_state = SetupState.FAILED
        self.setup_error = message

    async def retry_setup(self) -> bool:
        """Start setup over with a fresh retry budget and idempotency key."""
        self.attempt = PaymentAttempt(
            ride_id=self.ride.id, idempotency_key=_new_idempotency_key()
        )
        return await self.open()

    # ── payment ───────────────────────────────────────────────────────

    async def submit(self, payment_method: str) -> Optional[PaymentOutcome]:
        if self.state is not PaymentState.IDLE:
            raise NotReady(f"Cannot submit payment while {self.state.value}")
        if self.setup_state is not SetupState.READY or not self._gateway_ready():
            raise NotReady(
                f"Payment gateway not ready (setup {self.setup_state.value})"
            )

        self.state = PaymentState.PROCESSING
        self.error_message = None
        try:
            confirmation = await self.api.confirm_payment(
                self.ride.id, self.attempt.client_secret, payment_method
            )
        except CabBookingError as e:
            logger.error("Payment confirmation for ride %s failed: %s", self.ride.id, e)
            return self._decline(e.user_message)
        except Exception:
            logger.exception("Unexpected error confirming payment for ride %s", self.ride.id)
            return self._decline(GENERIC_DECLINE_MESSAGE)

        charge = classify_confirmation(confirmation)
        if not charge.succeeded:
            logger.error(
                "Payment for ride %s declined: %s", self.ride.id, charge.message
            )
            return self._decline(charge.message)

        outcome = await self._reconcile()
        self.attempt.outcome = outcome.value
        if self.is_cancelled:
            logger.info(
                "Payment for ride %s finished after the dialog closed (%s)",
                self.ride.id,
                outcome.value,
            )
            return outcome

        self.state = PaymentState.SUCCEEDED
        await self._sleep(self.success_grace)
        if self.on_complete is not None and not self.is_cancelled:
            result = self.on_complete(self)
            if inspect.isawaitable(result):
                await result
        return outcome

    def _decline(self, message: str) -> PaymentOutcome:
        self.attempt.outcome = PaymentOutcome.DECLINED.value
        if not self.is_cancelled:
            self.state = PaymentState.ERROR
            self.error_message = message
        return PaymentOutcome.DECLINED

    async def _reconcile(self) -> PaymentOutcome:
        try:
            await self.api.record_payment(self.ride.id, self.attempt.amount_minor)
        except CabBookingError as e:
            failure = PartialFailure(
                f"Ride {self.ride.id} charged but status update failed: {e}"
            )
            logger.error("%s", failure)
            self.result_message = failure.user_message
            return PaymentOutcome.PARTIAL_FAILURE
        self.result_message = PAID_MESSAGE
        return PaymentOutcome.PAID

    def try_again(self) -> None:
        """Back to the card form after a decline; the intent is kept."""
        if self.state is not PaymentState.ERROR:
            return
        self.state = PaymentState.IDLE
        self.error_message = None

    def cancel(self) -> None:
        if self.state is not PaymentState.CANCELLED:
            logger.info(
                "Payment dialog for ride %s closed while %s",
                self.ride.id,
                self.state.value,
            )
        self.state = PaymentState.CANCELLED
