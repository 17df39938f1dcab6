# backend/tests/test_pricing.py

from datetime import timedelta
from decimal import Decimal

import pytest

from spabooker.services.scheduling import errors
from spabooker.services.scheduling.domain import GiftCertificateStatus
from spabooker.services.scheduling.errors import ErrorKind, InvariantViolation
from spabooker.services.scheduling.policy import BookingPolicyConfig
from spabooker.services.scheduling.pricing import allocate, calculate_deposit

from .factories import NOW, make_booking, make_certificate, make_membership, make_service


@pytest.fixture
def draft():
    return make_booking(id=None)


class TestDeposit:

    @pytest.mark.parametrize("amount,pct,expected", [
        ("100.00", "50", "50.00"),
        ("70.00", "50", "35.00"),
        ("99.99", "50", "50.00"),   # 49.995 rounds half-up
        ("33.33", "25", "8.33"),
        ("0.00", "50", "0.00"),
        ("80.00", "0", "0.00"),
    ])
    def test_rounding(self, amount, pct, expected):
        assert calculate_deposit(Decimal(amount), Decimal(pct)) == Decimal(expected)


class TestCash:

    def test_full_price(self, draft, policy):
        result = allocate(draft, make_service(), policy, NOW)

        assert result.is_success
        assert result.value.source == "cash"
        booking = result.value.booking
        assert booking.service_price == Decimal("100.00")
        assert booking.total_price == Decimal("100.00")
        assert booking.deposit_amount == Decimal("50.00")
        assert booking.discount_applied == Decimal("0.00")
        assert not booking.used_membership_credits

    def test_non_positive_service_price_raises(self, draft, policy):
        with pytest.raises(InvariantViolation) as exc:
            allocate(draft, make_service(price="0.00"), policy, NOW)
        assert exc.value.error.kind == ErrorKind.INVARIANT_VIOLATION


class TestCredits:

    def test_debits_one_credit(self, draft, policy):
        membership = make_membership("4.0")
        result = allocate(
            draft, make_service(), policy, NOW,
            use_membership_credits=True, membership=membership,
        )

        assert result.is_success
        outcome = result.value
        assert outcome.source == "credits"
        assert membership.current_credits == Decimal("3.0")
        assert outcome.booking.used_membership_credits
        assert outcome.booking.credits_used == Decimal("1.0")
        assert outcome.booking.total_price == Decimal("0.00")
        assert outcome.booking.deposit_amount == Decimal("0.00")
        [tx] = outcome.credit_transactions
        assert tx.amount == Decimal("-1.0")
        assert tx.balance_after == Decimal("3.0")

    def test_insufficient_credits_are_not_clamped(self, draft, policy):
        membership = make_membership("0.5")
        result = allocate(
            draft, make_service(), policy, NOW,
            use_membership_credits=True, membership=membership,
        )

        assert result.error.code == errors.INSUFFICIENT_CREDITS.code
        assert result.error.kind == ErrorKind.INSUFFICIENT_BALANCE
        assert membership.current_credits == Decimal("0.5")

    @pytest.mark.parametrize("membership", [None, make_membership("10", status="expired")])
    def test_requires_active_membership(self, draft, policy, membership):
        result = allocate(
            draft, make_service(), policy, NOW,
            use_membership_credits=True, membership=membership,
        )
        assert result.error == errors.MEMBERSHIP_NOT_ACTIVE

    def test_credits_win_over_gift_certificate(self, draft, policy):
        membership = make_membership("2.0")
        certificate = make_certificate("30.00")
        result = allocate(
            draft, make_service(), policy, NOW,
            use_membership_credits=True, membership=membership,
            gift_certificate_code="GIFT30", gift_certificate=certificate,
        )

        assert result.value.source == "credits"
        assert certificate.remaining_balance == Decimal("30.00")
        assert result.value.booking.gift_certificate_code is None

    def test_not_eligible_service_falls_back_to_cash(self, draft, policy):
        membership = make_membership("4.0")
        result = allocate(
            draft, make_service(credit_eligible=False), policy, NOW,
            use_membership_credits=True, membership=membership,
        )

        assert result.value.source == "cash"
        assert membership.current_credits == Decimal("4.0")
        assert result.value.booking.total_price == Decimal("100.00")


class TestGiftCertificate:

    def test_partial_cover_exhausts_certificate(self, draft, policy):
        certificate = make_certificate("30.00")
        result = allocate(
            draft, make_service(), policy, NOW,
            gift_certificate_code="GIFT30", gift_certificate=certificate,
        )

        booking = result.value.booking
        assert booking.total_price == Decimal("70.00")
        assert booking.discount_applied == Decimal("30.00")
        assert booking.deposit_amount == Decimal("35.00")
        assert booking.gift_certificate_code == "GIFT30"
        assert certificate.remaining_balance == Decimal("0.00")
        assert certificate.status == GiftCertificateStatus.FULLY_REDEEMED
        [tx] = result.value.gift_certificate_transactions
        assert (tx.balance_before, tx.balance_after) == (Decimal("30.00"), Decimal("0.00"))

    def test_booking_keeps_stored_code(self, draft, policy):
        result = allocate(
            draft, make_service(), policy, NOW,
            gift_certificate_code=" gift30 ", gift_certificate=make_certificate("30.00"),
        )
        assert result.value.booking.gift_certificate_code == "GIFT30"

    def test_large_certificate_covers_everything(self, draft, policy):
        certificate = make_certificate("250.00")
        result = allocate(
            draft, make_service(), policy, NOW,
            gift_certificate_code="GIFT30", gift_certificate=certificate,
        )

        assert result.value.booking.total_price == Decimal("0.00")
        assert result.value.booking.deposit_amount == Decimal("0.00")
        assert certificate.remaining_balance == Decimal("150.00")
        assert certificate.status == GiftCertificateStatus.PARTIALLY_USED

    def test_partially_used_certificate_is_redeemable(self, draft, policy):
        certificate = make_certificate(
            "20.00", original="50.00", status=GiftCertificateStatus.PARTIALLY_USED,
        )
        result = allocate(
            draft, make_service(), policy, NOW,
            gift_certificate_code="GIFT30", gift_certificate=certificate,
        )
        assert result.value.booking.total_price == Decimal("80.00")

    def test_unknown_code(self, draft, policy):
        result = allocate(
            draft, make_service(), policy, NOW,
            gift_certificate_code="NOPE", gift_certificate=None,
        )
        assert result.error == errors.GIFT_CERTIFICATE_NOT_FOUND
        assert result.error.kind == ErrorKind.NOT_FOUND

    @pytest.mark.parametrize("overrides,expected", [
        ({"is_active": False}, errors.GIFT_CERTIFICATE_NOT_ACTIVE),
        ({"status": GiftCertificateStatus.CANCELLED}, errors.GIFT_CERTIFICATE_NOT_ACTIVE),
        ({"expires_at": NOW - timedelta(days=1)}, errors.GIFT_CERTIFICATE_EXPIRED),
        ({"remaining_balance": Decimal("0.00")}, errors.GIFT_CERTIFICATE_EXHAUSTED),
        ({"restricted_to_location_id": 2}, errors.GIFT_CERTIFICATE_WRONG_LOCATION),
    ])
    def test_rejected_certificate_is_untouched(self, draft, policy, overrides, expected):
        certificate = make_certificate("30.00", **overrides)
        before = certificate.remaining_balance

        result = allocate(
            draft, make_service(), policy, NOW,
            gift_certificate_code="GIFT30", gift_certificate=certificate,
        )

        assert result.error == expected
        assert result.error.kind == ErrorKind.INSUFFICIENT_BALANCE
        assert certificate.remaining_balance == before


class TestPolicy:

    def test_custom_deposit_percentage(self, draft):
        policy = BookingPolicyConfig(deposit_percentage=Decimal("20"))
        result = allocate(draft, make_service(price="85.00"), policy, NOW)
        assert result.value.booking.deposit_amount == Decimal("17.00")

    def test_custom_credit_cost(self, draft):
        policy = BookingPolicyConfig(credit_cost_per_booking=Decimal("2.0"))
        membership = make_membership("3.0")
        allocate(
            draft, make_service(), policy, NOW,
            use_membership_credits=True, membership=membership,
        )
        assert membership.current_credits == Decimal("1.0")
