# backend/spabooker/services/scheduling/errors.py
"""
Typed errors and the Result container returned by the engine.

Expected business failures travel as BookingError values inside a Result.
Only InvariantViolation is raised: it signals a defect, not a user error.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INCOMPATIBLE_RESOURCE = "incompatible_resource"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    INVARIANT_VIOLATION = "invariant_violation"


@dataclass(frozen=True)
class BookingError:
    code: str
    message: str
    kind: ErrorKind

    def with_message(self, message: str) -> "BookingError":
        """Same code and kind, more specific message."""
        return BookingError(self.code, message, self.kind)


class InvariantViolation(Exception):
    """Internal consistency failure. Never corrected silently."""

    def __init__(self, message: str):
        super().__init__(message)
        self.error = BookingError("Booking.InvariantViolation", message, ErrorKind.INVARIANT_VIOLATION)


@dataclass(frozen=True)
class Result(Generic[T]):
    value: Optional[T] = None
    error: Optional[BookingError] = None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: BookingError) -> "Result[T]":
        return cls(error=error)

    @property
    def is_success(self) -> bool:
        return self.error is None

    @property
    def is_failure(self) -> bool:
        return self.error is not None


_V = ErrorKind.VALIDATION
_NF = ErrorKind.NOT_FOUND
_C = ErrorKind.CONFLICT
_IR = ErrorKind.INCOMPATIBLE_RESOURCE
_IB = ErrorKind.INSUFFICIENT_BALANCE

# ── Booking ──────────────────────────────────────────────────────────────

BOOKING_NOT_FOUND = BookingError("Booking.NotFound", "Booking was not found", _NF)
INVALID_TIME_SLOT = BookingError("Booking.InvalidTimeSlot", "Invalid time slot provided", _V)
DURATION_OUT_OF_RANGE = BookingError(
    "Booking.DurationOutOfRange", "Booking duration is outside the allowed range", _V
)
START_NOT_IN_FUTURE = BookingError("Booking.StartNotInFuture", "Start time must be in the future", _V)
TOO_FAR_IN_ADVANCE = BookingError(
    "Booking.TooFarInAdvance", "Start time is beyond the advance booking limit", _V
)
NOTES_TOO_LONG = BookingError("Booking.NotesTooLong", "Notes are too long", _V)
INVALID_STATUS_TRANSITION = BookingError(
    "Booking.InvalidStatusTransition", "Booking status change is not allowed", _V
)
BOOKING_CONFLICT = BookingError("Booking.Conflict", "Booking conflicts with existing booking", _C)

# ── Room ─────────────────────────────────────────────────────────────────

ROOM_NOT_AVAILABLE = BookingError("Room.NotAvailable", "Room is not available for the selected time", _C)
ROOM_NOT_FOUND = BookingError("Room.NotFound", "Room was not found", _NF)
ROOM_NOT_COMPATIBLE = BookingError("Room.NotCompatible", "Room does not support this service", _IR)

# ── Therapist ────────────────────────────────────────────────────────────

THERAPIST_NOT_AVAILABLE = BookingError(
    "Therapist.NotAvailable", "Therapist is not available for the selected time", _C
)
THERAPIST_NOT_FOUND = BookingError("Therapist.NotFound", "Therapist was not found", _NF)
THERAPIST_NOT_QUALIFIED = BookingError(
    "Therapist.NotQualified", "Therapist is not qualified for this service", _IR
)

# ── Client / service / location ──────────────────────────────────────────

CLIENT_NOT_FOUND = BookingError("Client.NotFound", "Client was not found", _NF)
SERVICE_NOT_FOUND = BookingError("Service.NotFound", "Service was not found", _NF)
SERVICE_NOT_ACTIVE = BookingError("Service.NotActive", "Service is not active", _V)
LOCATION_NOT_FOUND = BookingError("Location.NotFound", "Location was not found", _NF)

# ── Membership credits ───────────────────────────────────────────────────

MEMBERSHIP_NOT_ACTIVE = BookingError(
    "Membership.NotActive", "Client has no active membership", _IB
)
INSUFFICIENT_CREDITS = BookingError("Membership.InsufficientCredits", "Insufficient credits", _IB)

# ── Gift certificates ────────────────────────────────────────────────────

GIFT_CERTIFICATE_NOT_FOUND = BookingError(
    "GiftCertificate.NotFound", "Gift certificate was not found", _NF
)
GIFT_CERTIFICATE_NOT_ACTIVE = BookingError(
    "GiftCertificate.NotActive", "Gift certificate is not active", _IB
)
GIFT_CERTIFICATE_EXPIRED = BookingError("GiftCertificate.Expired", "Gift certificate has expired", _IB)
GIFT_CERTIFICATE_EXHAUSTED = BookingError(
    "GiftCertificate.Exhausted", "Gift certificate has no remaining balance", _IB
)
GIFT_CERTIFICATE_WRONG_LOCATION = BookingError(
    "GiftCertificate.WrongLocation", "Gift certificate is not valid at this location", _IB
)
