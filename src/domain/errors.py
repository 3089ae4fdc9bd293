"""
Error taxonomy shared by the service and the client flows.

Every error carries two strings: ``str(err)`` is the technical message that
goes to the logs, ``err.user_message`` is what a rider gets to read.
"""

from __future__ import annotations

from typing import Optional


class CabBookingError(Exception):
    code = "error"
    default_user_message = "Something went wrong. Please try again."

    def __init__(self, message: str = "", *, user_message: Optional[str] = None):
        super().__init__(message or self.default_user_message)
        self.user_message = user_message or self.default_user_message


class Unauthenticated(CabBookingError):
    code = "unauthenticated"
    default_user_message = "Please sign in to continue."


class InvalidRequest(CabBookingError):
    code = "invalid_request"
    default_user_message = "Some booking details are missing or invalid."


class Unauthorized(CabBookingError):
    code = "unauthorized"
    default_user_message = "This ride can no longer be changed."


class GatewayError(CabBookingError):
    """The payment gateway refused to set up or to confirm a charge."""

    code = "gateway_error"
    default_user_message = "Unable to set up payment. Please try again."

    SETUP = "setup"
    CONFIRMATION = "confirmation"

    def __init__(
        self,
        message: str = "",
        *,
        stage: str = SETUP,
        user_message: Optional[str] = None,
        answered: bool = True,
    ):
        super().__init__(message, user_message=user_message)
        self.stage = stage
        # False when the request never got a response (timeout, reset)
        self.answered = answered


class PartialFailure(CabBookingError):
    """The charge went through but the ride could not be marked as paid."""

    code = "partial_failure"
    default_user_message = (
        "Your payment went through, but we couldn't update your ride status. "
        "No need to pay again; our team will sort it out."
    )


class NotReady(CabBookingError):
    code = "not_ready"
    default_user_message = "Payment form is still loading. Please wait a moment."


ERRORS_BY_CODE: dict[str, type[CabBookingError]] = {
    cls.code: cls
    for cls in (
        Unauthenticated,
        InvalidRequest,
        Unauthorized,
        GatewayError,
        PartialFailure,
        NotReady,
    )
}
