"""Tests for changing booking dates and settling the difference."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
import stripe
from django.core import mail
from django.db.models import F

from bookings import modifications
from bookings.models import Booking
from bookings.modifications import (
    BookingConflict,
    BookingNotFound,
    BookingNotModifiable,
    DatesUnavailable,
    InsufficientWalletBalance,
    InvalidListingPrice,
    InvalidModificationDates,
    InvalidPaymentMethod,
    PaymentMethodRequired,
    modify_booking,
)
from chat.models import Message
from notifications import tasks as notification_tasks
from payments.models import BookingModification, Wallet, WalletTransaction

pytestmark = pytest.mark.django_db


@pytest.fixture
def alerts(monkeypatch):
    captured = []
    monkeypatch.setattr(
        notification_tasks.alert_reconciliation_required,
        "delay",
        lambda *args: captured.append(args),
    )
    return captured


def _modify(booking, start, end, payment_method=None):
    return modify_booking(
        booking_id=booking.id,
        renter=booking.renter,
        new_start_date=start,
        new_end_date=end,
        payment_method=payment_method,
    )


def test_shortening_card_paid_booking_refunds_card(booking_factory, fake_stripe):
    booking = booking_factory()

    result = _modify(booking, date(2030, 6, 10), date(2030, 6, 12))

    assert result.to_payload() == {
        "success": True,
        "priceDifference": -55.0,
        "newTotal": 112.0,
        "refundedWallet": 0.0,
        "refundedCard": 55.0,
    }
    assert fake_stripe["refunds"][0]["payment_intent"] == "pi_original"
    assert fake_stripe["refunds"][0]["amount"] == 5500
    booking.refresh_from_db()
    assert booking.end_date == date(2030, 6, 12)
    assert booking.amount_total == Decimal("112.00")
    assert booking.refunded_card_cents == 5500
    assert booking.refunded_wallet_cents == 0
    assert booking.stripe_refund_id == "re_1"
    assert booking.version == 2
    assert not WalletTransaction.objects.exists()


def test_extending_without_payment_method_is_rejected(booking_factory, fake_stripe):
    booking = booking_factory()

    with pytest.raises(PaymentMethodRequired):
        _modify(booking, date(2030, 6, 10), date(2030, 6, 15))

    booking.refresh_from_db()
    assert booking.end_date == date(2030, 6, 13)
    assert booking.version == 1
    assert fake_stripe["intents"] == []


def test_refund_is_split_by_how_the_booking_was_paid(booking_factory, renter_user, fake_stripe):
    booking = booking_factory(wallet_used_cents=8350, card_paid_cents=8350)

    result = _modify(booking, date(2030, 6, 10), date(2030, 6, 11))

    assert result.price_difference == Decimal("-110.00")
    assert result.refunded_wallet == Decimal("55.00")
    assert result.refunded_card == Decimal("55.00")
    assert Wallet.objects.get(user=renter_user).balance_cents == 5500
    credit = WalletTransaction.objects.get(user=renter_user)
    assert credit.amount_cents == 5500
    assert credit.type == WalletTransaction.Type.CREDIT
    assert credit.source == WalletTransaction.Source.BOOKING_MODIFICATION_REFUND
    assert credit.related_booking_id == booking.id
    assert fake_stripe["refunds"][0]["amount"] == 5500

    booking.refresh_from_db()
    assert booking.amount_total == Decimal("57.00")
    assert booking.refunded_wallet_cents == 5500
    assert booking.refunded_card_cents == 5500
    assert booking.refunded_wallet_cents + booking.refunded_card_cents == 11000


def test_refund_split_uses_amounts_not_yet_refunded(booking_factory, fake_stripe):
    # An earlier change already gave back 100.00 of the card charge.
    booking = booking_factory(
        wallet_used_cents=10000,
        card_paid_cents=16700,
        refunded_card_cents=10000,
    )

    result = _modify(booking, date(2030, 6, 10), date(2030, 6, 12))

    assert result.refunded_wallet == Decimal("32.93")
    assert result.refunded_card == Decimal("22.07")
    assert fake_stripe["refunds"][0]["amount"] == 2207
    booking.refresh_from_db()
    assert booking.refunded_card_cents == 12207
    assert booking.refunded_wallet_cents == 3293


def test_same_dates_change_nothing(booking_factory, fake_stripe):
    booking = booking_factory()

    result = _modify(booking, booking.start_date, booking.end_date)

    assert result.to_payload() == {"success": True, "priceDifference": 0.0, "newTotal": 167.0}
    booking.refresh_from_db()
    assert booking.version == 1
    assert fake_stripe == {"intents": [], "refunds": []}
    assert not WalletTransaction.objects.exists()


def test_shift_with_same_length_only_moves_dates(booking_factory, fake_stripe):
    booking = booking_factory()

    result = _modify(booking, date(2030, 7, 1), date(2030, 7, 4))

    assert result.price_difference == Decimal("0")
    booking.refresh_from_db()
    assert (booking.start_date, booking.end_date) == (date(2030, 7, 1), date(2030, 7, 4))
    assert booking.amount_total == Decimal("167.00")
    assert booking.version == 2
    assert fake_stripe == {"intents": [], "refunds": []}


def test_wallet_supplement_can_spend_exact_balance(booking_factory, renter_user, owner_user, fund_wallet):
    booking = booking_factory()
    fund_wallet(renter_user, 11000)

    result = _modify(booking, date(2030, 6, 10), date(2030, 6, 15), payment_method="wallet")

    assert result.to_payload() == {
        "success": True,
        "priceDifference": 110.0,
        "newTotal": 277.0,
        "paidWithWallet": True,
        "chargedExtra": 110.0,
    }
    assert Wallet.objects.get(user=renter_user).balance_cents == 0
    assert Wallet.objects.get(user=owner_user).balance_cents == 11000
    debit = WalletTransaction.objects.get(user=renter_user)
    assert debit.amount_cents == -11000
    assert debit.source == WalletTransaction.Source.BOOKING_MODIFICATION_CHARGE
    income = WalletTransaction.objects.get(user=owner_user)
    assert income.amount_cents == 11000
    assert income.wallet_type == WalletTransaction.WalletType.HUBBER

    booking.refresh_from_db()
    assert booking.end_date == date(2030, 6, 15)
    assert booking.amount_total == Decimal("277.00")
    assert booking.wallet_used_cents == 11000
    assert booking.version == 2


def test_wallet_supplement_one_cent_short_changes_nothing(booking_factory, renter_user, fund_wallet):
    booking = booking_factory()
    fund_wallet(renter_user, 10999)

    with pytest.raises(InsufficientWalletBalance) as excinfo:
        _modify(booking, date(2030, 6, 10), date(2030, 6, 15), payment_method="wallet")

    assert excinfo.value.message.startswith("Saldo insufficiente")
    assert excinfo.value.status_code == 400
    assert Wallet.objects.get(user=renter_user).balance_cents == 10999
    assert not WalletTransaction.objects.exists()
    booking.refresh_from_db()
    assert booking.end_date == date(2030, 6, 13)
    assert booking.version == 1


def test_card_supplement_creates_intent_and_leaves_booking_untouched(booking_factory, fake_stripe):
    booking = booking_factory()

    result = _modify(booking, date(2030, 6, 10), date(2030, 6, 15), payment_method="card")

    assert result.to_payload() == {
        "success": True,
        "priceDifference": 110.0,
        "newTotal": 277.0,
        "requiresPayment": True,
        "clientSecret": "pi_mod_1_secret",
        "paymentIntentId": "pi_mod_1",
    }
    intent = fake_stripe["intents"][0]
    assert intent["amount"] == 11000
    assert intent["currency"] == "eur"
    assert intent["metadata"]["type"] == "booking_modification"
    assert intent["metadata"]["booking_id"] == str(booking.id)
    assert intent["metadata"]["new_end_date"] == "2030-06-15"
    assert intent["metadata"]["new_total"] == "277.00"
    assert intent["metadata"]["booking_version"] == "1"

    pending = BookingModification.objects.get(payment_intent_id="pi_mod_1")
    assert pending.status == BookingModification.Status.PENDING
    assert pending.amount_cents == 11000
    booking.refresh_from_db()
    assert booking.end_date == date(2030, 6, 13)
    assert booking.version == 1


def test_unknown_payment_method_is_rejected(booking_factory, fake_stripe):
    booking = booking_factory()

    with pytest.raises(InvalidPaymentMethod):
        _modify(booking, date(2030, 6, 10), date(2030, 6, 15), payment_method="bitcoin")


def test_only_the_renter_can_modify(booking_factory, other_user):
    booking = booking_factory()

    with pytest.raises(BookingNotFound) as excinfo:
        modify_booking(
            booking_id=booking.id,
            renter=other_user,
            new_start_date=date(2030, 6, 10),
            new_end_date=date(2030, 6, 12),
        )
    assert excinfo.value.status_code == 404


@pytest.mark.parametrize(
    "status",
    [Booking.Status.PENDING, Booking.Status.CANCELLED, Booking.Status.COMPLETED],
)
def test_only_confirmed_bookings_can_change(booking_factory, status):
    booking = booking_factory(status=status)

    with pytest.raises(BookingNotModifiable):
        _modify(booking, date(2030, 6, 10), date(2030, 6, 12))


def test_end_before_start_is_rejected(booking_factory):
    booking = booking_factory()

    with pytest.raises(InvalidModificationDates):
        _modify(booking, date(2030, 6, 12), date(2030, 6, 10))


def test_zero_priced_listing_is_rejected(booking_factory, listing):
    listing.price = Decimal("0")
    listing.save(update_fields=["price"])
    booking = booking_factory()

    with pytest.raises(InvalidListingPrice):
        _modify(booking, date(2030, 6, 10), date(2030, 6, 12))


def test_overlapping_confirmed_booking_blocks_new_dates(booking_factory, other_user):
    booking = booking_factory()
    booking_factory(renter=other_user, start_date=date(2030, 6, 15), end_date=date(2030, 6, 18))

    with pytest.raises(DatesUnavailable) as excinfo:
        _modify(booking, date(2030, 6, 10), date(2030, 6, 15), payment_method="wallet")
    assert excinfo.value.status_code == 409


def _load_then_bump_version(monkeypatch):
    original = modifications.load_booking_for_renter

    def stale_loader(booking_id, renter):
        booking = original(booking_id, renter)
        Booking.objects.filter(pk=booking_id).update(version=F("version") + 1)
        return booking

    monkeypatch.setattr(modifications, "load_booking_for_renter", stale_loader)


def test_concurrent_change_rolls_back_wallet_supplement(
    booking_factory, renter_user, owner_user, fund_wallet, monkeypatch
):
    booking = booking_factory()
    fund_wallet(renter_user, 20000)
    _load_then_bump_version(monkeypatch)

    with pytest.raises(BookingConflict) as excinfo:
        _modify(booking, date(2030, 6, 10), date(2030, 6, 15), payment_method="wallet")

    assert excinfo.value.status_code == 409
    assert Wallet.objects.get(user=renter_user).balance_cents == 20000
    assert not Wallet.objects.filter(user=owner_user, balance_cents__gt=0).exists()
    assert not WalletTransaction.objects.exists()
    booking.refresh_from_db()
    assert booking.end_date == date(2030, 6, 13)


def test_concurrent_change_after_refund_credit_flags_reconciliation(
    booking_factory, renter_user, fake_stripe, alerts, monkeypatch
):
    booking = booking_factory(wallet_used_cents=16700, card_paid_cents=0)
    _load_then_bump_version(monkeypatch)

    with pytest.raises(BookingConflict):
        _modify(booking, date(2030, 6, 10), date(2030, 6, 12))

    # The credit stays: it is never reverted automatically.
    assert Wallet.objects.get(user=renter_user).balance_cents == 5500
    assert alerts[0][0] == booking.id
    assert alerts[0][1] == "refund_issued_booking_not_updated"
    booking.refresh_from_db()
    assert booking.end_date == date(2030, 6, 13)
    assert booking.refunded_wallet_cents == 0


def test_stripe_refund_failure_keeps_booking_update(booking_factory, alerts, monkeypatch):
    booking = booking_factory()

    def failing_refund(**kwargs):
        raise stripe.error.APIConnectionError("network down")

    monkeypatch.setattr(stripe.Refund, "create", failing_refund)

    result = _modify(booking, date(2030, 6, 10), date(2030, 6, 12))

    payload = result.to_payload()
    assert payload["refundedCard"] == 55.0
    assert payload["cardRefundPending"] is True
    assert alerts[0][1] == "stripe_refund_failed"
    booking.refresh_from_db()
    assert booking.amount_total == Decimal("112.00")
    assert booking.refunded_card_cents == 5500
    assert booking.stripe_refund_id == ""


def test_refund_on_unpaid_booking_is_void(booking_factory, fake_stripe):
    booking = booking_factory(wallet_used_cents=0, card_paid_cents=0)

    result = _modify(booking, date(2030, 6, 10), date(2030, 6, 12))

    assert result.refunded_wallet == Decimal("0")
    assert result.refunded_card == Decimal("0")
    assert fake_stripe["refunds"] == []
    booking.refresh_from_db()
    assert booking.amount_total == Decimal("112.00")
    assert booking.version == 2


def test_successful_modification_notifies_both_parties(booking_factory, renter_user, fund_wallet):
    booking = booking_factory()
    fund_wallet(renter_user, 11000)

    _modify(booking, date(2030, 6, 10), date(2030, 6, 15), payment_method="wallet")

    message = Message.objects.get(conversation__booking=booking)
    assert message.kind == Message.Kind.BOOKING_MODIFIED
    assert "15/06/2030" in message.body
    assert "110.00" in message.body
    recipients = sorted(email.to[0] for email in mail.outbox)
    assert recipients == ["hubber@example.com", "renter@example.com"]


def test_notification_failure_does_not_fail_modification(booking_factory, fake_stripe, monkeypatch):
    booking = booking_factory()

    def broken_chat(*args, **kwargs):
        raise RuntimeError("chat offline")

    def broken_queue(*args, **kwargs):
        raise RuntimeError("broker offline")

    monkeypatch.setattr(modifications, "post_system_message", broken_chat)
    monkeypatch.setattr(notification_tasks.send_booking_modified_email, "delay", broken_queue)

    result = _modify(booking, date(2030, 6, 10), date(2030, 6, 12))

    assert result.refunded_card == Decimal("55.00")
    booking.refresh_from_db()
    assert booking.version == 2
