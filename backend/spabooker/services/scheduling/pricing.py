# backend/spabooker/services/scheduling/pricing.py
"""
Pricing and credit allocation for an accepted booking draft.

Payment sources, first match wins (they do NOT stack):
  1. Membership credits: requested and the service is credit-eligible
  2. Gift certificate: a code was supplied
  3. Cash: full service price

Deposit = amount owed × deposit_percentage, rounded half-up to cents.

Every check runs before any balance is touched, so a rejection leaves
the ledger and the certificate exactly as they were handed in.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from . import errors
from .domain import (
    REDEEMABLE_STATUSES,
    ZERO,
    Booking,
    CreditLedger,
    CreditTransaction,
    GiftCertificateBalance,
    GiftCertificateStatus,
    GiftCertificateTransaction,
    ServiceInfo,
)
from .errors import BookingError, InvariantViolation, Result
from .policy import BookingPolicyConfig

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
HUNDRED = Decimal(100)


def to_money(value) -> Decimal:
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def calculate_deposit(amount_owed: Decimal, deposit_percentage: Decimal) -> Decimal:
    return to_money(Decimal(amount_owed) * Decimal(deposit_percentage) / HUNDRED)


@dataclass
class PricingOutcome:
    booking: Booking
    source: str  # "credits" | "gift_certificate" | "cash"
    membership: Optional[CreditLedger] = None
    gift_certificate: Optional[GiftCertificateBalance] = None
    credit_transactions: list = field(default_factory=list)
    gift_certificate_transactions: list = field(default_factory=list)


def check_gift_certificate(
    certificate: Optional[GiftCertificateBalance],
    location_id: Optional[int],
    now: datetime,
) -> Optional[BookingError]:
    """Return why a certificate cannot be redeemed, or None if it can."""
    if certificate is None:
        return errors.GIFT_CERTIFICATE_NOT_FOUND
    if not certificate.is_active or certificate.status not in REDEEMABLE_STATUSES:
        return errors.GIFT_CERTIFICATE_NOT_ACTIVE
    if certificate.is_expired(now):
        return errors.GIFT_CERTIFICATE_EXPIRED
    if certificate.remaining_balance <= 0:
        return errors.GIFT_CERTIFICATE_EXHAUSTED
    if (
        certificate.restricted_to_location_id is not None
        and certificate.restricted_to_location_id != location_id
    ):
        return errors.GIFT_CERTIFICATE_WRONG_LOCATION
    return None


def _check_credits(
    membership: Optional[CreditLedger],
    cost: Decimal,
) -> Optional[BookingError]:
    if membership is None or not membership.is_active:
        return errors.MEMBERSHIP_NOT_ACTIVE
    if membership.current_credits < cost:
        return errors.INSUFFICIENT_CREDITS.with_message(
            f"Insufficient credits. Available: {membership.current_credits}, Required: {cost}"
        )
    return None


def _assert_invariants(booking: Booking, covered: bool) -> None:
    if booking.total_price < 0 or (booking.total_price == 0 and not covered):
        raise InvariantViolation(
            f"Total price must be positive, got {booking.total_price}"
        )
    if booking.deposit_amount < 0:
        raise InvariantViolation(f"Deposit cannot be negative, got {booking.deposit_amount}")
    if booking.deposit_amount > booking.total_price:
        raise InvariantViolation(
            f"Deposit {booking.deposit_amount} exceeds total price {booking.total_price}"
        )


def allocate(
    draft: Booking,
    service: ServiceInfo,
    policy: BookingPolicyConfig,
    now: datetime,
    use_membership_credits: bool = False,
    membership: Optional[CreditLedger] = None,
    gift_certificate_code: Optional[str] = None,
    gift_certificate: Optional[GiftCertificateBalance] = None,
) -> Result[PricingOutcome]:
    """
    Compute final charge terms for an accepted draft.

    Mutates `draft`, and `membership` or `gift_certificate` when one of them
    pays; the caller persists all three.

    Raises:
        InvariantViolation: computed terms are inconsistent (a defect).
    """
    base_price = to_money(service.price)
    if base_price <= 0:
        raise InvariantViolation(f"Service {service.id} has non-positive price {base_price}")

    source = "cash"
    total = base_price
    discount = ZERO
    credits = ZERO

    if use_membership_credits and not service.credit_eligible:
        logger.info(
            "Service %s is not credit-eligible, falling back for client %s",
            service.id, draft.client_id,
        )

    if use_membership_credits and service.credit_eligible:
        credits = Decimal(policy.credit_cost_per_booking)
        error = _check_credits(membership, credits)
        if error is not None:
            logger.warning("Credit use rejected for client %s: %s", draft.client_id, error.message)
            return Result.failure(error)
        source = "credits"
        total = ZERO
    elif gift_certificate_code:
        error = check_gift_certificate(gift_certificate, draft.location_id, now)
        if error is not None:
            logger.warning(
                "Gift certificate %s rejected for client %s: %s",
                gift_certificate_code, draft.client_id, error.code,
            )
            return Result.failure(error)
        source = "gift_certificate"
        discount = to_money(min(gift_certificate.remaining_balance, base_price))
        total = base_price - discount

    draft.service_price = base_price
    draft.total_price = total
    draft.discount_applied = discount
    draft.used_membership_credits = source == "credits"
    draft.credits_used = credits
    draft.gift_certificate_code = gift_certificate.code if source == "gift_certificate" else None
    draft.deposit_amount = calculate_deposit(total, policy.deposit_percentage)

    _assert_invariants(draft, covered=source != "cash")

    outcome = PricingOutcome(booking=draft, source=source)

    if source == "credits":
        membership.current_credits -= credits
        outcome.membership = membership
        outcome.credit_transactions.append(CreditTransaction(
            membership_id=membership.membership_id,
            amount=-credits,
            balance_after=membership.current_credits,
            description=f"Booking: service {service.name or service.id}",
        ))
        logger.info(
            "Deducted %s credits from membership %s. New balance: %s",
            credits, membership.membership_id, membership.current_credits,
        )

    elif source == "gift_certificate":
        balance_before = gift_certificate.remaining_balance
        gift_certificate.remaining_balance = balance_before - discount
        if gift_certificate.remaining_balance <= 0:
            gift_certificate.status = GiftCertificateStatus.FULLY_REDEEMED
        elif gift_certificate.remaining_balance < gift_certificate.original_amount:
            gift_certificate.status = GiftCertificateStatus.PARTIALLY_USED
        outcome.gift_certificate = gift_certificate
        outcome.gift_certificate_transactions.append(GiftCertificateTransaction(
            code=gift_certificate.code,
            amount=-discount,
            balance_before=balance_before,
            balance_after=gift_certificate.remaining_balance,
            description=f"Redeemed by client {draft.client_id}",
        ))
        logger.info(
            "Redeemed %s from gift certificate %s. Remaining: %s",
            discount, gift_certificate.code, gift_certificate.remaining_balance,
        )

    return Result.success(outcome)
