"""
Booking and payment transition tables.

Each table is built once at import time and exposes only queries. Checks run
in a fixed order and report the first failure:

1. same_state: the target equals the current status
2. invalid_transition: the pair is not in the table
3. unauthorized_role: the caller's role is not allowed for the pair
4. precondition_failed: the pair's guard rejects the booking (skipped when no
   booking is supplied)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping, Optional, cast

from rentaly.exceptions import StateTransitionError


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"
    SYSTEM = "system"


class RejectionReason(str, Enum):
    SAME_STATE = "same_state"
    INVALID_TRANSITION = "invalid_transition"
    UNAUTHORIZED_ROLE = "unauthorized_role"
    PRECONDITION_FAILED = "precondition_failed"


Guard = Callable[[Mapping[str, Any]], bool]


@dataclass(frozen=True)
class Transition:
    """One allowed edge of a transition table."""

    source: str
    target: str
    roles: frozenset[str]
    guard: Optional[Guard] = None
    # Error code reported when the guard fails
    guard_code: str = RejectionReason.PRECONDITION_FAILED.value


@dataclass(frozen=True)
class TransitionCheck:
    allowed: bool
    reason: Optional[RejectionReason] = None
    code: Optional[str] = None
    message: str = ""


class TransitionTable:
    """
    Read-only view over a closed set of transitions.

    Example:
        >>> BOOKING_TRANSITIONS.check("pending", "confirmed", "user").allowed
        True
        >>> BOOKING_TRANSITIONS.check("completed", "cancelled", "admin").reason
        <RejectionReason.INVALID_TRANSITION: 'invalid_transition'>
    """

    def __init__(self, name: str, transitions: Iterable[Transition], terminal: Iterable[str]):
        self.name = name
        self._transitions: Mapping[tuple[str, str], Transition] = MappingProxyType(
            {(t.source, t.target): t for t in transitions}
        )
        self._terminal = frozenset(terminal)

    def __setattr__(self, key: str, value: Any) -> None:
        if key in self.__dict__:
            raise AttributeError(f"{type(self).__name__} is immutable")
        super().__setattr__(key, value)

    def check(
        self,
        current: str,
        target: str,
        role: str,
        booking: Optional[Mapping[str, Any]] = None,
    ) -> TransitionCheck:
        """
        Evaluate a requested transition without raising.

        Args:
            current: Current status
            target: Requested status
            role: Caller role (user, admin, system)
            booking: Booking row for guard evaluation; guards are skipped when None

        Returns:
            TransitionCheck: allowed flag plus the first rejection reason
        """
        current, target, role = _value(current), _value(target), _value(role)

        if current == target:
            return TransitionCheck(
                False,
                RejectionReason.SAME_STATE,
                RejectionReason.SAME_STATE.value,
                f"{self.name} is already {current}",
            )

        transition = self._transitions.get((current, target))
        if transition is None:
            return TransitionCheck(
                False,
                RejectionReason.INVALID_TRANSITION,
                RejectionReason.INVALID_TRANSITION.value,
                f"Cannot move {self.name} from {current} to {target}",
            )

        if role not in transition.roles:
            return TransitionCheck(
                False,
                RejectionReason.UNAUTHORIZED_ROLE,
                RejectionReason.UNAUTHORIZED_ROLE.value,
                f"Role {role} cannot move {self.name} from {current} to {target}",
            )

        if booking is not None and transition.guard is not None and not transition.guard(booking):
            return TransitionCheck(
                False,
                RejectionReason.PRECONDITION_FAILED,
                transition.guard_code,
                f"Precondition for {current} -> {target} not met",
            )

        return TransitionCheck(True)

    def require(
        self,
        current: str,
        target: str,
        role: str,
        booking: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """
        Same as check(), raising on rejection.

        Raises:
            StateTransitionError: With reason and code of the first failed rule
        """
        result = self.check(current, target, role, booking)
        if not result.allowed:
            reason = cast(RejectionReason, result.reason)
            raise StateTransitionError(
                result.message,
                reason=reason.value,
                code=result.code,
                details={"from": _value(current), "to": _value(target)},
            )

    def allowed_targets(self, current: str, role: Optional[str] = None) -> list[str]:
        """Statuses reachable from current, optionally only those open to role."""
        current = _value(current)
        return sorted(
            t.target
            for (source, _), t in self._transitions.items()
            if source == current and (role is None or _value(role) in t.roles)
        )

    def is_terminal(self, status: str) -> bool:
        return _value(status) in self._terminal

    def required_roles(self, current: str, target: str) -> frozenset[str]:
        transition = self._transitions.get((_value(current), _value(target)))
        return transition.roles if transition else frozenset()


def _value(item: Any) -> str:
    return item.value if isinstance(item, Enum) else str(item)


def _payment_confirmed(booking: Mapping[str, Any]) -> bool:
    return booking.get("payment_status") == PaymentStatus.PAID.value


def _not_completed(booking: Mapping[str, Any]) -> bool:
    return booking.get("status") != BookingStatus.COMPLETED.value


def _booking_cancelled(booking: Mapping[str, Any]) -> bool:
    return booking.get("status") == BookingStatus.CANCELLED.value


def _booking_open(booking: Mapping[str, Any]) -> bool:
    return booking.get("status") in (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value)


_ANY_CALLER = frozenset({Role.USER.value, Role.ADMIN.value, Role.SYSTEM.value})
_USER_OR_ADMIN = frozenset({Role.USER.value, Role.ADMIN.value})
_STAFF = frozenset({Role.ADMIN.value, Role.SYSTEM.value})

BOOKING_TRANSITIONS = TransitionTable(
    "booking",
    [
        # Ownership of the asset is verified by the lifecycle service
        Transition(BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value, _ANY_CALLER),
        Transition(BookingStatus.PENDING.value, BookingStatus.CANCELLED.value, _USER_OR_ADMIN),
        Transition(
            BookingStatus.CONFIRMED.value,
            BookingStatus.COMPLETED.value,
            _STAFF,
            guard=_payment_confirmed,
            guard_code="payment_not_confirmed",
        ),
        Transition(
            BookingStatus.CONFIRMED.value,
            BookingStatus.CANCELLED.value,
            _USER_OR_ADMIN,
            guard=_not_completed,
        ),
    ],
    terminal=[BookingStatus.COMPLETED.value, BookingStatus.CANCELLED.value],
)

PAYMENT_TRANSITIONS = TransitionTable(
    "payment",
    [
        Transition(
            PaymentStatus.PENDING.value,
            PaymentStatus.PAID.value,
            _STAFF,
            guard=_booking_open,
            guard_code="booking_not_open",
        ),
        Transition(
            PaymentStatus.PAID.value,
            PaymentStatus.REFUNDED.value,
            _STAFF,
            guard=_booking_cancelled,
            guard_code="booking_not_cancelled",
        ),
    ],
    terminal=[PaymentStatus.REFUNDED.value],
)


@dataclass(frozen=True)
class Caller:
    """Authenticated caller as forwarded by the auth layer."""

    user_id: str
    role: str = Role.USER.value

    @property
    def is_staff(self) -> bool:
        return self.role in _STAFF
