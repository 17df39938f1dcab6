# backend/spabooker/services/scheduling/domain.py
"""
Engine-side data model.

Plain dataclasses: the storage layer maps database rows onto these and
back. Money and credits are Decimal throughout.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from enum import Enum
from typing import Optional

from .timeutils import Interval, combine_utc, to_utc


ZERO = Decimal("0.00")
FULL_DAY_START = time(0, 0, 0)
FULL_DAY_END_MIN = time(23, 59, 58)


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class ResourceKind(str, Enum):
    THERAPIST = "therapist"
    ROOM = "room"


class ResourceAssignment(str, Enum):
    """Which resources a booking occupies."""
    NONE = "none"
    THERAPIST_ONLY = "therapist_only"
    ROOM_ONLY = "room_only"
    BOTH = "both"

    @classmethod
    def of(cls, therapist_id: Optional[int], room_id: Optional[int]) -> "ResourceAssignment":
        if therapist_id is not None and room_id is not None:
            return cls.BOTH
        if therapist_id is not None:
            return cls.THERAPIST_ONLY
        if room_id is not None:
            return cls.ROOM_ONLY
        return cls.NONE


@dataclass(frozen=True)
class ResourceRef:
    kind: ResourceKind
    id: int

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"


@dataclass
class Booking:
    client_id: int
    service_id: int
    location_id: Optional[int]
    start_time: datetime
    end_time: datetime
    therapist_id: Optional[int] = None
    room_id: Optional[int] = None
    id: Optional[int] = None
    status: BookingStatus = BookingStatus.PENDING
    service_price: Decimal = ZERO
    total_price: Decimal = ZERO
    deposit_amount: Decimal = ZERO
    discount_applied: Decimal = ZERO
    used_membership_credits: bool = False
    credits_used: Decimal = ZERO
    gift_certificate_code: Optional[str] = None
    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    reschedule_reason: Optional[str] = None
    payment_reference: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @property
    def interval(self) -> Interval:
        return Interval.of(self.start_time, self.end_time)

    @property
    def assignment(self) -> ResourceAssignment:
        return ResourceAssignment.of(self.therapist_id, self.room_id)

    @property
    def occupies_resources(self) -> bool:
        """Everything except a cancelled booking holds its slot."""
        return self.status != BookingStatus.CANCELLED

    def resources(self) -> list[ResourceRef]:
        refs = []
        if self.therapist_id is not None:
            refs.append(ResourceRef(ResourceKind.THERAPIST, self.therapist_id))
        if self.room_id is not None:
            refs.append(ResourceRef(ResourceKind.ROOM, self.room_id))
        return refs

    def uses(self, resource: ResourceRef) -> bool:
        if resource.kind == ResourceKind.THERAPIST:
            return self.therapist_id == resource.id
        return self.room_id == resource.id


@dataclass(frozen=True)
class BlockedTime:
    """
    Staff-declared unavailability on one date.

    therapist_id / room_id select the resource; neither set means the whole
    location is blocked.
    """
    day: date
    start_time: time
    end_time: time
    therapist_id: Optional[int] = None
    room_id: Optional[int] = None
    location_id: Optional[int] = None
    id: Optional[int] = None
    reason: Optional[str] = None

    @property
    def is_full_day(self) -> bool:
        return self.start_time == FULL_DAY_START and self.end_time >= FULL_DAY_END_MIN

    @property
    def is_location_wide(self) -> bool:
        return self.therapist_id is None and self.room_id is None

    def applies_to(self, resource: ResourceRef) -> bool:
        if self.is_location_wide:
            return True
        if resource.kind == ResourceKind.THERAPIST:
            return self.therapist_id == resource.id
        return self.room_id == resource.id

    def window(self) -> Interval:
        """Blocked window as a UTC interval; a full-day block covers the whole date."""
        start = combine_utc(self.day, self.start_time)
        if self.is_full_day:
            return Interval(start, start + timedelta(days=1))
        return Interval.of(start, combine_utc(self.day, self.end_time))

    def __str__(self) -> str:
        if self.is_full_day:
            return f"{self.day.isoformat()} all day"
        return f"{self.day.isoformat()} {self.start_time:%H:%M}-{self.end_time:%H:%M}"


@dataclass(frozen=True)
class WorkingHours:
    """
    One working window of a therapist.

    day_of_week follows date.weekday() (0 = Monday). An entry with
    specific_date replaces the weekly entries for that date; with
    is_available=False it marks the therapist off for the day.
    """
    therapist_id: int
    day_of_week: int
    start_time: time
    end_time: time
    is_available: bool = True
    specific_date: Optional[date] = None

    def window(self, day: date) -> Interval:
        return Interval(combine_utc(day, self.start_time), combine_utc(day, self.end_time))


@dataclass(frozen=True)
class AvailabilityQuery:
    resource: ResourceRef
    interval: Interval
    bookings: tuple = ()
    blocks: tuple = ()
    exclude_booking_id: Optional[int] = None


@dataclass(frozen=True)
class ServiceInfo:
    id: int
    price: Decimal
    is_active: bool = True
    credit_eligible: bool = True
    location_id: Optional[int] = None
    name: str = ""


@dataclass
class CreditLedger:
    """Membership credit balance of one client."""
    membership_id: int
    client_id: int
    current_credits: Decimal
    status: str = "active"

    @property
    def is_active(self) -> bool:
        return self.status == "active"


class GiftCertificateStatus(str, Enum):
    ACTIVE = "Active"
    PARTIALLY_USED = "PartiallyUsed"
    FULLY_REDEEMED = "FullyRedeemed"
    EXPIRED = "Expired"
    CANCELLED = "Cancelled"


REDEEMABLE_STATUSES = (GiftCertificateStatus.ACTIVE, GiftCertificateStatus.PARTIALLY_USED)


@dataclass
class GiftCertificateBalance:
    code: str
    original_amount: Decimal
    remaining_balance: Decimal
    status: GiftCertificateStatus = GiftCertificateStatus.ACTIVE
    is_active: bool = True
    expires_at: Optional[datetime] = None
    restricted_to_location_id: Optional[int] = None
    id: Optional[int] = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and to_utc(self.expires_at) < to_utc(now)


@dataclass(frozen=True)
class CreditTransaction:
    membership_id: int
    amount: Decimal
    balance_after: Decimal
    description: str
    type: str = "Debit"


@dataclass(frozen=True)
class GiftCertificateTransaction:
    code: str
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    description: str
    type: str = "Redemption"


@dataclass(frozen=True)
class BookingRequest:
    client_id: int
    service_id: int
    start_time: Optional[datetime]
    end_time: Optional[datetime]
    therapist_id: Optional[int] = None
    room_id: Optional[int] = None
    location_id: Optional[int] = None
    notes: Optional[str] = None
    use_membership_credits: bool = False
    gift_certificate_code: Optional[str] = None


@dataclass(frozen=True)
class SchedulingContext:
    """
    Read view the validator checks a request against.

    bookings / blocks may hold every reservation of the day; the validator
    narrows them to the requested therapist and room. working_hours holds
    WorkingHours entries of the therapists involved.
    """
    bookings: tuple = ()
    blocks: tuple = ()
    room_services: dict = field(default_factory=dict)
    therapist_services: dict = field(default_factory=dict)
    working_hours: tuple = ()

    def room_supports(self, room_id: int, service_id: int) -> bool:
        return service_id in self.room_services.get(room_id, ())

    def therapist_qualified(self, therapist_id: int, service_id: int) -> bool:
        return service_id in self.therapist_services.get(therapist_id, ())
