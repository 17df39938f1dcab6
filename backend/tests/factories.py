# backend/tests/factories.py
"""Builders for engine objects and an in-memory SchedulingStore."""

import copy
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Optional

from spabooker.services.scheduling.domain import (
    BlockedTime,
    Booking,
    BookingRequest,
    BookingStatus,
    CreditLedger,
    GiftCertificateBalance,
    SchedulingContext,
    ServiceInfo,
    WorkingHours,
)

UTC = timezone.utc

# Fixed "now" for engine tests: Monday 2025-11-10 08:00 UTC
NOW = datetime(2025, 11, 10, 8, 0, tzinfo=UTC)

# Default shift of every therapist, all week
SHIFT_START = time(7, 0)
SHIFT_END = time(22, 0)


def at(day: int, hour: int, minute: int = 0, month: int = 11) -> datetime:
    """UTC datetime in 2025."""
    return datetime(2025, month, day, hour, minute, tzinfo=UTC)


def make_booking(
    id: int = 1,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    therapist_id: Optional[int] = 1,
    room_id: Optional[int] = None,
    status: BookingStatus = BookingStatus.CONFIRMED,
    **overrides,
) -> Booking:
    start = start or at(12, 10)
    end = end or at(12, 11)
    fields = dict(
        id=id,
        client_id=1,
        service_id=1,
        location_id=1,
        start_time=start,
        end_time=end,
        therapist_id=therapist_id,
        room_id=room_id,
        status=status,
    )
    fields.update(overrides)
    return Booking(**fields)


def make_block(
    day: date,
    start: time = time(0, 0),
    end: time = time(23, 59, 59),
    therapist_id: Optional[int] = None,
    room_id: Optional[int] = None,
    location_id: Optional[int] = 1,
) -> BlockedTime:
    return BlockedTime(
        day=day,
        start_time=start,
        end_time=end,
        therapist_id=therapist_id,
        room_id=room_id,
        location_id=location_id,
    )


def make_request(**overrides) -> BookingRequest:
    fields = dict(
        client_id=1,
        service_id=1,
        start_time=at(12, 10),
        end_time=at(12, 11),
        therapist_id=1,
        room_id=1,
        location_id=1,
    )
    fields.update(overrides)
    return BookingRequest(**fields)


def weekly_shift(therapist_id: int, start: time = SHIFT_START, end: time = SHIFT_END) -> list[WorkingHours]:
    return [WorkingHours(therapist_id, weekday, start, end) for weekday in range(7)]


def make_context(
    bookings=(), blocks=(), rooms=(1,), therapists=(1,), service_id: int = 1, working_hours=None,
):
    """
    Context where every listed room and therapist handles `service_id`.

    Therapists work SHIFT_START to SHIFT_END every day unless
    working_hours is given.
    """
    if working_hours is None:
        working_hours = [h for t in therapists for h in weekly_shift(t)]
    return SchedulingContext(
        bookings=tuple(bookings),
        blocks=tuple(blocks),
        room_services={r: frozenset({service_id}) for r in rooms},
        therapist_services={t: frozenset({service_id}) for t in therapists},
        working_hours=tuple(working_hours),
    )


def make_service(id: int = 1, price: str = "100.00", **overrides) -> ServiceInfo:
    fields = dict(id=id, price=Decimal(price), location_id=1, name="Deep tissue")
    fields.update(overrides)
    return ServiceInfo(**fields)


def make_membership(credits: str = "4.0", status: str = "active") -> CreditLedger:
    return CreditLedger(membership_id=1, client_id=1, current_credits=Decimal(credits), status=status)


def make_certificate(balance: str = "30.00", original: Optional[str] = None, **overrides):
    fields = dict(
        code="GIFT30",
        original_amount=Decimal(original or balance),
        remaining_balance=Decimal(balance),
    )
    fields.update(overrides)
    return GiftCertificateBalance(**fields)


class InMemoryStore:
    """
    SchedulingStore over plain dicts.

    Reads hand out copies, so anything the facade changes stays local
    until a test writes it back with put_booking().
    """

    def __init__(self):
        self.bookings: dict[int, Booking] = {}
        self.services: dict[int, ServiceInfo] = {}
        self.clients: set[int] = set()
        self.therapists: list[int] = []
        self.rooms: list[int] = []
        self.locations: set[int] = set()
        self.blocks: list[BlockedTime] = []
        self.room_services: dict[int, set] = {}
        self.therapist_services: dict[int, set] = {}
        self.memberships: dict[int, CreditLedger] = {}
        self.certificates: dict[str, GiftCertificateBalance] = {}
        self.working_hours: list[WorkingHours] = []

    # ── Setup ────────────────────────────────────────────────────────────

    def put_booking(self, booking: Booking) -> Booking:
        self.bookings[booking.id] = copy.deepcopy(booking)
        return booking

    def add_room(self, room_id: int, *service_ids: int):
        self.rooms.append(room_id)
        self.room_services[room_id] = set(service_ids)

    def add_therapist(self, therapist_id: int, *service_ids: int):
        self.therapists.append(therapist_id)
        self.therapist_services[therapist_id] = set(service_ids)
        self.working_hours.extend(weekly_shift(therapist_id))

    # ── SchedulingStore ──────────────────────────────────────────────────

    def get_booking(self, booking_id):
        booking = self.bookings.get(booking_id)
        return copy.deepcopy(booking) if booking else None

    def get_service(self, service_id):
        return self.services.get(service_id)

    def client_exists(self, client_id):
        return client_id in self.clients

    def therapist_exists(self, therapist_id):
        return therapist_id in self.therapists

    def room_exists(self, room_id):
        return room_id in self.rooms

    def location_exists(self, location_id):
        return location_id in self.locations

    def load_context(self, interval, therapist_ids, room_ids, location_id=None):
        return SchedulingContext(
            bookings=tuple(copy.deepcopy(b) for b in self.bookings.values()),
            blocks=tuple(self.blocks),
            room_services={r: frozenset(s) for r, s in self.room_services.items()},
            therapist_services={t: frozenset(s) for t, s in self.therapist_services.items()},
            working_hours=tuple(self.working_hours),
        )

    def get_membership(self, client_id):
        membership = self.memberships.get(client_id)
        return copy.deepcopy(membership) if membership else None

    def get_gift_certificate(self, code):
        certificate = self.certificates.get(code.strip().upper())
        return copy.deepcopy(certificate) if certificate else None

    def rooms_for_service(self, service_id):
        return [r for r in self.rooms if service_id in self.room_services.get(r, ())]

    def therapists_for_service(self, service_id):
        return [t for t in self.therapists if service_id in self.therapist_services.get(t, ())]


def seeded_store() -> InMemoryStore:
    """Location 1, client 1, service 1 (100.00) with therapist 1 and room 1."""
    store = InMemoryStore()
    store.locations.add(1)
    store.clients.add(1)
    store.services[1] = make_service()
    store.add_therapist(1, 1)
    store.add_room(1, 1)
    return store
