# backend/spabooker/services/scheduling/__init__.py
"""
Booking scheduling & availability engine.

Pure decision logic: no database, network or clock access. Callers load
a read view, call the facade, and persist whatever comes back.
"""

from .availability import ConflictReport, find_conflicts, is_available
from .cancellation import CancellationOutcome
from .domain import (
    BlockedTime,
    Booking,
    BookingRequest,
    BookingStatus,
    CreditLedger,
    GiftCertificateBalance,
    GiftCertificateStatus,
    ResourceKind,
    ResourceRef,
    SchedulingContext,
    ServiceInfo,
    WorkingHours,
)
from .errors import BookingError, ErrorKind, InvariantViolation, Result
from .facade import SchedulingFacade, SchedulingStore
from .policy import BookingPolicyConfig, get_booking_policy
from .pricing import PricingOutcome
from .timeutils import Interval

__all__ = [
    "BlockedTime",
    "Booking",
    "BookingError",
    "BookingPolicyConfig",
    "BookingRequest",
    "BookingStatus",
    "CancellationOutcome",
    "ConflictReport",
    "CreditLedger",
    "ErrorKind",
    "GiftCertificateBalance",
    "GiftCertificateStatus",
    "Interval",
    "InvariantViolation",
    "PricingOutcome",
    "ResourceKind",
    "ResourceRef",
    "Result",
    "SchedulingContext",
    "SchedulingFacade",
    "SchedulingStore",
    "ServiceInfo",
    "WorkingHours",
    "find_conflicts",
    "get_booking_policy",
    "is_available",
]
