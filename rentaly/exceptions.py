"""
Domain exceptions for the booking lifecycle.

Every exception carries a stable machine-readable ``code``, a human readable
message and optional ``details``. The HTTP layer renders them as
``{"error": {"code", "message", "details"}}`` using ``status_code``; nothing
else about the failure (stack, internal ids) reaches the caller.
"""

from __future__ import annotations

from typing import Any, Optional


class RentalError(Exception):
    """Base class for all business failures raised by the services."""

    status_code = 400
    default_code = "error"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


# =============================================================================
# Validation
# =============================================================================


class ValidationError(RentalError):
    """Malformed input, rejected before any transaction opens."""

    default_code = "validation_failed"


class InvalidDateError(ValidationError):
    default_code = "invalid_date"


# =============================================================================
# Identity and lookup
# =============================================================================


class AuthenticationError(RentalError):
    status_code = 401
    default_code = "unauthenticated"


class AuthorizationError(RentalError):
    """Caller is not the owner/requester/admin the operation demands."""

    status_code = 403
    default_code = "unauthorized"


class NotFoundError(RentalError):
    status_code = 404
    default_code = "not_found"


# =============================================================================
# State machine
# =============================================================================


class StateTransitionError(RentalError):
    """
    Transition refused by the state machine.

    ``reason`` is one of same_state, invalid_transition, unauthorized_role or
    precondition_failed; ``code`` may be a more specific rendering of it
    (already_terminal, payment_not_confirmed).
    """

    status_code = 409
    default_code = "invalid_transition"

    def __init__(
        self,
        message: str,
        reason: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code=code or reason, details=details)
        self.reason = reason
        if self.code == "unauthorized_role":
            self.status_code = 403


# =============================================================================
# Conflicts
# =============================================================================


class ConflictError(RentalError):
    """Business conflict; never retried automatically."""

    status_code = 409
    default_code = "conflict"


class DateConflictError(ConflictError):
    default_code = "date_conflict"

    def __init__(self, conflicting_booking_id: str, message: Optional[str] = None) -> None:
        super().__init__(
            message or f"Dates unavailable - conflicts with booking {conflicting_booking_id}",
            details={"conflicting_booking_id": conflicting_booking_id},
        )
        self.conflicting_booking_id = conflicting_booking_id


class CouponError(RentalError):
    """Coupon rejected; ``code`` names the failed rule."""

    default_code = "invalid_coupon"


class CouponNotEligibleError(CouponError):
    status_code = 403
    default_code = "not_eligible"


class CouponExhaustedError(CouponError, ConflictError):
    status_code = 409
    default_code = "coupon_exhausted"


class CouponAlreadyAppliedError(CouponError, ConflictError):
    status_code = 409
    default_code = "already_applied"


# =============================================================================
# Admission control
# =============================================================================


class AdmissionDeniedError(RentalError):
    status_code = 429
    default_code = "admission_denied"


# =============================================================================
# Storage
# =============================================================================


class TransientStorageError(RentalError):
    """The storage transaction could not commit after the allowed retries."""

    status_code = 503
    default_code = "storage_busy"


class ConcurrentModificationError(Exception):
    """
    A conditional write matched no row because another transaction got there first.

    Raised inside a transaction so that it rolls back; the transaction runner
    retries the whole unit of work, which then observes the winner's state.
    """


class InternalError(RentalError):
    """Unexpected failure; the original exception is logged, never rendered."""

    status_code = 500
    default_code = "internal_error"
