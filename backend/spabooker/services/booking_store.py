# backend/spabooker/services/booking_store.py
"""
SQLAlchemy storage for the scheduling engine.

Reads: maps rows onto engine dataclasses (SchedulingStore protocol).
Writes: persists facade decisions. Before inserting or moving a booking
the therapist and room rows are locked and the availability check
(bookings with buffer, blocks) is repeated inside the same transaction.
Balances are debited with guarded UPDATEs against the stored value, never
written back from the decision. A concurrent winner surfaces as
BookingCommitConflict and nothing is written.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import and_, or_, update
from sqlalchemy.orm import Session

from ..models.entities import (
    BlockedTimes as DBBlockedTime,
    Bookings as DBBooking,
    Clients as DBClient,
    GiftCertificateTransactions as DBGiftTransaction,
    GiftCertificates as DBGiftCertificate,
    Locations as DBLocation,
    MembershipCreditTransactions as DBCreditTransaction,
    RoomServiceCapabilities as DBRoomCapability,
    Rooms as DBRoom,
    Services as DBService,
    TherapistAvailability as DBTherapistAvailability,
    Therapists as DBTherapist,
    UserMemberships as DBMembership,
    t_therapist_services,
)
from .scheduling.availability import find_conflicts
from .scheduling.domain import (
    REDEEMABLE_STATUSES,
    BlockedTime,
    Booking,
    BookingStatus,
    CreditLedger,
    GiftCertificateBalance,
    GiftCertificateStatus,
    SchedulingContext,
    ServiceInfo,
    WorkingHours,
)
from .scheduling.pricing import PricingOutcome
from .scheduling.timeutils import Interval, start_of_day_utc, to_utc, utc_now

logger = logging.getLogger(__name__)


class BookingCommitConflict(Exception):
    """Another booking took the slot between the decision and the write."""


def _naive(value: Optional[datetime]) -> Optional[datetime]:
    """UTC datetime as stored in the database (naive)."""
    if value is None:
        return None
    return to_utc(value).replace(tzinfo=None)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return to_utc(value)


# ── Row → engine mapping ─────────────────────────────────────────────────


def booking_from_row(row: DBBooking) -> Booking:
    return Booking(
        id=row.id,
        client_id=row.client_id,
        service_id=row.service_id,
        therapist_id=row.therapist_id,
        room_id=row.room_id,
        location_id=row.location_id,
        start_time=_aware(row.start_time),
        end_time=_aware(row.end_time),
        status=BookingStatus(row.status),
        service_price=row.service_price,
        total_price=row.total_price,
        deposit_amount=row.deposit_amount,
        discount_applied=row.discount_applied,
        used_membership_credits=bool(row.used_membership_credits),
        credits_used=row.credits_used,
        gift_certificate_code=row.gift_certificate_code,
        notes=row.notes,
        cancellation_reason=row.cancellation_reason,
        reschedule_reason=row.reschedule_reason,
        payment_reference=row.payment_reference,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
        cancelled_at=_aware(row.cancelled_at),
    )


def block_from_row(row: DBBlockedTime) -> BlockedTime:
    return BlockedTime(
        id=row.id,
        day=row.date,
        start_time=row.start_time,
        end_time=row.end_time,
        therapist_id=row.therapist_id,
        room_id=row.room_id,
        location_id=row.location_id,
        reason=row.reason,
    )


def hours_from_row(row: DBTherapistAvailability) -> WorkingHours:
    return WorkingHours(
        therapist_id=row.therapist_id,
        day_of_week=row.day_of_week,
        start_time=row.start_time,
        end_time=row.end_time,
        is_available=bool(row.is_available),
        specific_date=row.specific_date,
    )


def _apply_booking(row: DBBooking, booking: Booking) -> None:
    row.client_id = booking.client_id
    row.service_id = booking.service_id
    row.therapist_id = booking.therapist_id
    row.room_id = booking.room_id
    row.location_id = booking.location_id
    row.start_time = _naive(booking.start_time)
    row.end_time = _naive(booking.end_time)
    row.status = booking.status.value
    row.service_price = booking.service_price
    row.total_price = booking.total_price
    row.deposit_amount = booking.deposit_amount
    row.discount_applied = booking.discount_applied
    row.used_membership_credits = booking.used_membership_credits
    row.credits_used = booking.credits_used
    row.gift_certificate_code = booking.gift_certificate_code
    row.notes = booking.notes
    row.cancellation_reason = booking.cancellation_reason
    row.reschedule_reason = booking.reschedule_reason
    row.payment_reference = booking.payment_reference
    row.created_at = _naive(booking.created_at)
    row.updated_at = _naive(booking.updated_at)
    row.cancelled_at = _naive(booking.cancelled_at)


class SqlSchedulingStore:
    """SchedulingStore backed by a SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    # ── Reads ────────────────────────────────────────────────────────────

    def get_booking(self, booking_id: int) -> Optional[Booking]:
        row = self.db.get(DBBooking, booking_id)
        return booking_from_row(row) if row else None

    def get_service(self, service_id: int) -> Optional[ServiceInfo]:
        row = self.db.get(DBService, service_id)
        if not row:
            return None
        return ServiceInfo(
            id=row.id,
            price=row.base_price,
            is_active=bool(row.is_active),
            credit_eligible=bool(row.credit_eligible),
            location_id=row.location_id,
            name=row.name,
        )

    def client_exists(self, client_id: int) -> bool:
        return self.db.get(DBClient, client_id) is not None

    def therapist_exists(self, therapist_id: int) -> bool:
        row = self.db.get(DBTherapist, therapist_id)
        return bool(row and row.is_active)

    def room_exists(self, room_id: int) -> bool:
        row = self.db.get(DBRoom, room_id)
        return bool(row and row.is_active)

    def location_exists(self, location_id: int) -> bool:
        row = self.db.get(DBLocation, location_id)
        return bool(row and row.is_active)

    def load_context(
        self,
        interval: Interval,
        therapist_ids: Sequence[int],
        room_ids: Sequence[int],
        location_id: Optional[int] = None,
    ) -> SchedulingContext:
        """
        Bookings and blocks on every day the interval touches, for the
        given therapists and rooms, plus their service relations and the
        therapists' working hours.

        Bookings are read from the previous day on, so a buffer running
        past midnight is seen.
        """
        days = interval.days()
        window_start = start_of_day_utc(interval.start) - timedelta(days=1)
        window_end = start_of_day_utc(interval.end) + timedelta(days=1)

        bookings = [
            booking_from_row(row)
            for row in self._occupying_rows(therapist_ids, room_ids, window_start, window_end)
        ]

        resource_filter = [
            and_(DBBlockedTime.therapist_id.is_(None), DBBlockedTime.room_id.is_(None))
        ]
        if therapist_ids:
            resource_filter.append(DBBlockedTime.therapist_id.in_(therapist_ids))
        if room_ids:
            resource_filter.append(DBBlockedTime.room_id.in_(room_ids))

        block_rows = (
            self.db.query(DBBlockedTime)
            .filter(DBBlockedTime.date.in_(days))
            .filter(or_(*resource_filter))
            .all()
        )
        blocks = [
            block_from_row(row) for row in block_rows
            if not _is_foreign_location_block(row, location_id)
        ]

        room_services: dict[int, frozenset] = {}
        if room_ids:
            rows = (
                self.db.query(DBRoomCapability)
                .filter(DBRoomCapability.room_id.in_(room_ids))
                .all()
            )
            for room_id in room_ids:
                room_services[room_id] = frozenset(r.service_id for r in rows if r.room_id == room_id)

        therapist_services: dict[int, frozenset] = {}
        if therapist_ids:
            rows = self.db.execute(
                t_therapist_services.select().where(
                    t_therapist_services.c.therapist_id.in_(therapist_ids),
                    t_therapist_services.c.is_active.is_(True),
                )
            ).all()
            for therapist_id in therapist_ids:
                therapist_services[therapist_id] = frozenset(
                    r.service_id for r in rows if r.therapist_id == therapist_id
                )

        working_hours = []
        if therapist_ids:
            weekdays = sorted({day.weekday() for day in days})
            rows = (
                self.db.query(DBTherapistAvailability)
                .filter(DBTherapistAvailability.therapist_id.in_(therapist_ids))
                .filter(or_(
                    DBTherapistAvailability.specific_date.in_(days),
                    and_(
                        DBTherapistAvailability.specific_date.is_(None),
                        DBTherapistAvailability.day_of_week.in_(weekdays),
                    ),
                ))
                .order_by(DBTherapistAvailability.therapist_id, DBTherapistAvailability.start_time)
                .all()
            )
            working_hours = [hours_from_row(row) for row in rows]

        return SchedulingContext(
            bookings=tuple(bookings),
            blocks=tuple(blocks),
            room_services=room_services,
            therapist_services=therapist_services,
            working_hours=tuple(working_hours),
        )

    def get_membership(self, client_id: int) -> Optional[CreditLedger]:
        """Active membership of the client, or the latest one if none is active."""
        rows = (
            self.db.query(DBMembership)
            .filter(DBMembership.client_id == client_id)
            .order_by(DBMembership.id.desc())
            .all()
        )
        if not rows:
            return None
        row = next((r for r in rows if r.status == "active"), rows[0])
        return CreditLedger(
            membership_id=row.id,
            client_id=row.client_id,
            current_credits=row.current_credits,
            status=row.status,
        )

    def get_gift_certificate(self, code: str) -> Optional[GiftCertificateBalance]:
        row = (
            self.db.query(DBGiftCertificate)
            .filter(DBGiftCertificate.code == code.strip().upper())
            .first()
        )
        if not row:
            return None
        return GiftCertificateBalance(
            id=row.id,
            code=row.code,
            original_amount=row.original_amount,
            remaining_balance=row.remaining_balance,
            status=GiftCertificateStatus(row.status),
            is_active=bool(row.is_active),
            expires_at=_aware(row.expires_at),
            restricted_to_location_id=row.restricted_to_location_id,
        )

    def rooms_for_service(self, service_id: int) -> list[int]:
        """Active rooms with the service capability, in display order."""
        rows = (
            self.db.query(DBRoom)
            .join(DBRoomCapability, DBRoomCapability.room_id == DBRoom.id)
            .filter(DBRoomCapability.service_id == service_id, DBRoom.is_active.is_(True))
            .order_by(DBRoom.display_order, DBRoom.id)
            .all()
        )
        return [r.id for r in rows]

    def therapists_for_service(self, service_id: int) -> list[int]:
        rows = (
            self.db.query(DBTherapist)
            .join(t_therapist_services, t_therapist_services.c.therapist_id == DBTherapist.id)
            .filter(
                t_therapist_services.c.service_id == service_id,
                t_therapist_services.c.is_active.is_(True),
                DBTherapist.is_active.is_(True),
            )
            .order_by(DBTherapist.id)
            .all()
        )
        return [r.id for r in rows]

    def _occupying_rows(
        self,
        therapist_ids: Sequence[int],
        room_ids: Sequence[int],
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[int] = None,
    ) -> list[DBBooking]:
        resource_filter = []
        if therapist_ids:
            resource_filter.append(DBBooking.therapist_id.in_(therapist_ids))
        if room_ids:
            resource_filter.append(DBBooking.room_id.in_(room_ids))
        if not resource_filter:
            return []

        query = (
            self.db.query(DBBooking)
            .filter(or_(*resource_filter))
            .filter(DBBooking.status != BookingStatus.CANCELLED.value)
            .filter(DBBooking.start_time < _naive(end), DBBooking.end_time > _naive(start))
        )
        if exclude_booking_id is not None:
            query = query.filter(DBBooking.id != exclude_booking_id)
        return query.all()

    # ── Writes ───────────────────────────────────────────────────────────

    def _lock_resources(self, booking: Booking) -> None:
        """Row locks on the booked therapist and room for the rest of the transaction."""
        if booking.therapist_id is not None:
            self.db.query(DBTherapist).filter(
                DBTherapist.id == booking.therapist_id
            ).with_for_update().all()
        if booking.room_id is not None:
            self.db.query(DBRoom).filter(DBRoom.id == booking.room_id).with_for_update().all()

    def _ensure_slot_free(
        self,
        booking: Booking,
        buffer_minutes: int = 0,
        exclude_booking_id: Optional[int] = None,
    ) -> None:
        self._lock_resources(booking)
        context = self.load_context(
            booking.interval,
            [booking.therapist_id] if booking.therapist_id is not None else [],
            [booking.room_id] if booking.room_id is not None else [],
            booking.location_id,
        )
        for resource in booking.resources():
            report = find_conflicts(
                resource,
                booking.interval,
                context.bookings,
                context.blocks,
                exclude_booking_id=exclude_booking_id,
                buffer_minutes=buffer_minutes,
            )
            if report.has_conflict:
                raise BookingCommitConflict(
                    f"{resource} no longer free at {booking.interval}: {'; '.join(report.reasons)}"
                )

    def commit_new_booking(self, outcome: PricingOutcome, buffer_minutes: int = 0) -> Booking:
        """
        Persist an accepted booking together with its balance changes.

        Raises:
            BookingCommitConflict: the slot was taken, or the credits or
                certificate balance were spent, concurrently; the
                transaction is rolled back.
        """
        booking = outcome.booking
        try:
            self._ensure_slot_free(booking, buffer_minutes)

            row = DBBooking()
            _apply_booking(row, booking)
            self.db.add(row)
            self.db.flush()
            booking.id = row.id

            if outcome.membership is not None:
                self.debit_membership(outcome.membership, booking.credits_used)
                for tx in outcome.credit_transactions:
                    self.db.add(DBCreditTransaction(
                        membership_id=tx.membership_id,
                        amount=tx.amount,
                        type=tx.type,
                        description=tx.description,
                        related_booking_id=row.id,
                        created_at=_naive(booking.created_at),
                    ))

            if outcome.gift_certificate is not None:
                cert_row, balance_before = self.redeem_gift_certificate(
                    outcome.gift_certificate, booking.discount_applied,
                )
                for tx in outcome.gift_certificate_transactions:
                    self.db.add(DBGiftTransaction(
                        gift_certificate_id=cert_row.id,
                        type=tx.type,
                        amount=tx.amount,
                        balance_before=balance_before,
                        balance_after=cert_row.remaining_balance,
                        description=tx.description,
                        related_booking_id=row.id,
                        created_at=_naive(booking.created_at),
                    ))

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Booking {booking.id} stored ({booking.status.value})")
        return booking

    def save_booking(
        self,
        booking: Booking,
        recheck_slot: bool = False,
        buffer_minutes: int = 0,
    ) -> Booking:
        """Write back a booking changed by the facade (status, times, reasons)."""
        try:
            if recheck_slot:
                self._ensure_slot_free(booking, buffer_minutes, exclude_booking_id=booking.id)
            row = self.db.get(DBBooking, booking.id)
            if row is None:
                raise ValueError(f"Booking {booking.id} not found")
            _apply_booking(row, booking)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return booking

    def debit_membership(self, membership: CreditLedger, credits: Decimal) -> DBMembership:
        """
        Take `credits` off the stored balance with a single guarded UPDATE.

        `membership` is refreshed with the balance actually left.

        Raises:
            BookingCommitConflict: the membership is no longer active or
                its balance no longer covers the debit.
        """
        result = self.db.execute(
            update(DBMembership)
            .where(
                DBMembership.id == membership.membership_id,
                DBMembership.status == "active",
                DBMembership.current_credits >= credits,
            )
            .values(
                current_credits=DBMembership.current_credits - credits,
                updated_at=_naive(utc_now()),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise BookingCommitConflict(
                f"Membership {membership.membership_id} no longer covers {credits} credits"
            )

        row = self.db.get(DBMembership, membership.membership_id, populate_existing=True)
        membership.current_credits = row.current_credits
        return row

    def redeem_gift_certificate(
        self,
        certificate: GiftCertificateBalance,
        amount: Decimal,
    ) -> tuple[DBGiftCertificate, Decimal]:
        """
        Take `amount` off the stored certificate balance with a guarded UPDATE.

        Returns:
            The refreshed row and the balance it had before the redemption.

        Raises:
            BookingCommitConflict: the certificate was redeemed, deactivated
                or spent below `amount` concurrently.
        """
        result = self.db.execute(
            update(DBGiftCertificate)
            .where(
                DBGiftCertificate.code == certificate.code,
                DBGiftCertificate.is_active.is_(True),
                DBGiftCertificate.status.in_([s.value for s in REDEEMABLE_STATUSES]),
                DBGiftCertificate.remaining_balance >= amount,
            )
            .values(
                remaining_balance=DBGiftCertificate.remaining_balance - amount,
                updated_at=_naive(utc_now()),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise BookingCommitConflict(
                f"Gift certificate {certificate.code} no longer covers {amount}"
            )

        row = (
            self.db.query(DBGiftCertificate)
            .filter(DBGiftCertificate.code == certificate.code)
            .populate_existing()
            .one()
        )
        if row.remaining_balance <= 0:
            row.status = GiftCertificateStatus.FULLY_REDEEMED.value
        else:
            row.status = GiftCertificateStatus.PARTIALLY_USED.value

        certificate.remaining_balance = row.remaining_balance
        certificate.status = GiftCertificateStatus(row.status)
        return row, row.remaining_balance + amount


def _is_foreign_location_block(row: DBBlockedTime, location_id: Optional[int]) -> bool:
    """Location-wide block that belongs to another location."""
    if row.therapist_id is not None or row.room_id is not None:
        return False
    return (
        location_id is not None
        and row.location_id is not None
        and row.location_id != location_id
    )
