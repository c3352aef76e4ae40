"""
Change the dates of a confirmed booking and settle the price difference.

Every branch runs as a sequence of separate writes against the wallet
ledger, Stripe and the booking row. Steps that benefit the renter and cannot
be undone run first; the booking row is written last behind a version check.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from chat.models import Message as ChatMessage
from chat.models import post_system_message
from core.fees import to_cents
from notifications import tasks as notification_tasks
from notifications.models import NotificationLog
from payments.ledger import InsufficientFundsError, credit_wallet, debit_wallet, get_wallet
from payments.models import BookingModification, WalletTransaction
from payments.stripe_api import (
    StripeConfigurationError,
    StripePaymentError,
    StripeTransientError,
    create_modification_payment_intent,
    create_modification_refund,
)
from payments_modification_policy import ModificationQuote, compute_modification_quote, split_refund

from .domain import ensure_no_conflict, same_dates, validate_booking_dates
from .models import Booking

logger = logging.getLogger(__name__)

PAYMENT_WALLET = "wallet"
PAYMENT_CARD = "card"
PAYMENT_METHODS = (PAYMENT_WALLET, PAYMENT_CARD)


class ModificationError(Exception):
    """A modification request rejected before (or instead of) any mutation."""

    status_code = 400
    default_message = "Impossibile modificare la prenotazione."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class BookingNotFound(ModificationError):
    status_code = 404
    default_message = "Booking not found or not yours"


class BookingNotModifiable(ModificationError):
    pass


class InvalidModificationDates(ModificationError):
    default_message = "Date non valide"


class DatesUnavailable(ModificationError):
    status_code = 409
    default_message = "Le date richieste non sono disponibili."


class InvalidListingPrice(ModificationError):
    default_message = "Invalid listing price"


class PaymentMethodRequired(ModificationError):
    default_message = "Payment method required for supplement"


class InvalidPaymentMethod(ModificationError):
    pass


class InsufficientWalletBalance(ModificationError):
    def __init__(self, available_cents: int, required_cents: int):
        self.available_cents = available_cents
        self.required_cents = required_cents
        super().__init__(
            "Saldo insufficiente. "
            f"Disponibile: €{Decimal(available_cents) / 100:.2f}, "
            f"Richiesto: €{Decimal(required_cents) / 100:.2f}"
        )


class BookingConflict(ModificationError):
    status_code = 409
    default_message = "La prenotazione è stata modificata nel frattempo. Riprova."


@dataclass
class ModificationResult:
    """Outcome of a modification request, shaped for the API response."""

    classification: str
    price_difference: Decimal
    new_total: Decimal
    refunded_wallet: Decimal = Decimal("0")
    refunded_card: Decimal = Decimal("0")
    card_refund_pending: bool = False
    paid_with_wallet: bool = False
    charged_extra: Decimal = Decimal("0")
    requires_payment: bool = False
    client_secret: str = ""
    payment_intent_id: str = ""

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "success": True,
            "priceDifference": float(self.price_difference),
            "newTotal": float(self.new_total),
        }
        if self.classification == "refund":
            payload["refundedWallet"] = float(self.refunded_wallet)
            payload["refundedCard"] = float(self.refunded_card)
            if self.card_refund_pending:
                payload["cardRefundPending"] = True
        if self.paid_with_wallet:
            payload["paidWithWallet"] = True
            payload["chargedExtra"] = float(self.charged_extra)
        if self.requires_payment:
            payload["requiresPayment"] = True
            payload["clientSecret"] = self.client_secret
            payload["paymentIntentId"] = self.payment_intent_id
        return payload


def load_booking_for_renter(booking_id: int, renter) -> Booking:
    """Fetch a confirmed booking owned by ``renter`` or fail before any mutation."""
    booking = (
        Booking.objects.select_related("listing", "owner", "renter")
        .filter(pk=booking_id, renter_id=getattr(renter, "pk", None))
        .first()
    )
    if booking is None:
        raise BookingNotFound()
    if not booking.is_modifiable():
        raise BookingNotModifiable(f"Cannot modify booking with status: {booking.status}")
    return booking


def quote_modification(booking: Booking, new_start_date: date, new_end_date: date) -> ModificationQuote:
    """Validate the requested range and price it against the booking's current one."""
    try:
        validate_booking_dates(new_start_date, new_end_date)
    except ValidationError as exc:
        raise InvalidModificationDates() from exc

    listing = booking.listing
    if not listing.price or listing.price <= 0:
        raise InvalidListingPrice()

    return compute_modification_quote(
        original_start=booking.start_date,
        original_end=booking.end_date,
        new_start=new_start_date,
        new_end=new_end_date,
        price_per_unit=listing.price,
        price_unit=listing.price_unit,
        original_total=booking.amount_total,
    )


def flag_reconciliation_required(booking_id: int | None, reason: str, **details) -> None:
    """Log and alert operators about money that moved without its booking update."""
    logger.error(
        "booking_modification: reconciliation required (%s)",
        reason,
        extra={"reconciliation_required": True, "booking_id": booking_id, **details},
    )
    try:
        notification_tasks.alert_reconciliation_required.delay(
            booking_id,
            reason,
            ", ".join(f"{key}={value}" for key, value in sorted(details.items())),
        )
    except Exception:
        logger.warning(
            "notifications: could not queue alert_reconciliation_required",
            exc_info=True,
        )


def notify_booking_modified(
    booking: Booking,
    summary: str,
    *,
    kind: str = ChatMessage.Kind.BOOKING_MODIFIED,
) -> None:
    """Post a system chat message and e-mail both parties; failures are only logged."""
    listing_title = booking.listing.title
    start_label = booking.start_date.strftime("%d/%m/%Y")
    end_label = booking.end_date.strftime("%d/%m/%Y")
    text = (
        f'Le date della prenotazione per "{listing_title}" sono state modificate.\n\n'
        f"Nuove date: {start_label} - {end_label}"
    )
    if summary:
        text += f"\n{summary}"

    try:
        post_system_message(booking, kind, text)
    except Exception as exc:
        logger.warning(
            "booking_modification: failed to send system message",
            extra={"booking_id": booking.id},
            exc_info=True,
        )
        NotificationLog.objects.create(
            channel=NotificationLog.Channel.CHAT,
            type=notification_tasks.BOOKING_MODIFIED,
            status=NotificationLog.Status.FAILED,
            booking_id=booking.id,
            error=str(exc) or exc.__class__.__name__,
        )

    for user_id in (booking.renter_id, booking.owner_id):
        try:
            notification_tasks.send_booking_modified_email.delay(
                user_id,
                booking.id,
                listing_title,
                start_label,
                end_label,
                summary,
            )
        except Exception:
            logger.info(
                "notifications: could not queue send_booking_modified_email",
                exc_info=True,
            )


def _persist_modification(booking: Booking, **changes) -> Booking:
    """
    Write the modification only if nobody changed the booking since it was read.

    Raises BookingConflict when the version moved or the booking left the
    confirmed state.
    """
    changes["version"] = F("version") + 1
    changes["updated_at"] = timezone.now()
    updated = Booking.objects.filter(
        pk=booking.pk,
        version=booking.version,
        status=Booking.Status.CONFIRMED,
    ).update(**changes)
    if not updated:
        raise BookingConflict()
    booking.refresh_from_db()
    return booking


def _apply_noop(booking: Booking, quote: ModificationQuote, start: date, end: date) -> ModificationResult:
    if not same_dates(booking, start, end):
        _persist_modification(booking, start_date=start, end_date=end)
        logger.info(
            "booking_modification: dates updated without price change",
            extra={"booking_id": booking.id},
        )
    return ModificationResult(
        classification=quote.classification,
        price_difference=Decimal("0"),
        new_total=booking.amount_total,
    )


def _apply_refund(booking: Booking, quote: ModificationQuote, start: date, end: date) -> ModificationResult:
    # Split by what is still refundable on each side.
    split = split_refund(
        quote.amount,
        wallet_paid_cents=max(booking.wallet_used_cents - booking.refunded_wallet_cents, 0),
        card_paid_cents=max(booking.card_paid_cents - booking.refunded_card_cents, 0),
    )
    if split.total == 0:
        logger.warning(
            "booking_modification: nothing was paid, refund of %s is void",
            quote.amount,
            extra={"booking_id": booking.id},
        )
    elif split.unallocated:
        logger.warning(
            "booking_modification: refund exceeds amounts paid, %s left unallocated",
            split.unallocated,
            extra={"booking_id": booking.id},
        )

    wallet_cents = to_cents(split.wallet)
    card_cents = to_cents(split.card)
    reference = booking.reference

    # Credit first: once issued it is never reverted, so a later failure
    # leaves the renter refunded rather than out of pocket.
    if wallet_cents > 0:
        credit_wallet(
            user=booking.renter,
            amount_cents=wallet_cents,
            source=WalletTransaction.Source.BOOKING_MODIFICATION_REFUND,
            wallet_type=WalletTransaction.WalletType.RENTER,
            description=f"Rimborso modifica prenotazione {reference} ({booking.listing.title})",
            booking=booking,
        )

    refund_id: str | None = None
    card_refund_pending = False
    if card_cents > 0:
        if booking.stripe_payment_intent_id:
            try:
                refund_id = create_modification_refund(booking=booking, amount=split.card)
            except (StripePaymentError, StripeTransientError, StripeConfigurationError) as exc:
                card_refund_pending = True
                logger.warning(
                    "booking_modification: Stripe refund failed: %s",
                    exc,
                    extra={"booking_id": booking.id, "card_refund_cents": card_cents},
                )
                flag_reconciliation_required(
                    booking.id,
                    "stripe_refund_failed",
                    card_refund_cents=card_cents,
                )
        else:
            card_refund_pending = True
            flag_reconciliation_required(
                booking.id,
                "card_refund_without_payment_intent",
                card_refund_cents=card_cents,
            )

    try:
        _persist_modification(
            booking,
            start_date=start,
            end_date=end,
            amount_total=quote.new_total,
            refunded_wallet_cents=F("refunded_wallet_cents") + wallet_cents,
            refunded_card_cents=F("refunded_card_cents") + card_cents,
            stripe_refund_id=refund_id or booking.stripe_refund_id,
        )
    except Exception as exc:
        if wallet_cents > 0 or refund_id:
            flag_reconciliation_required(
                booking.id,
                "refund_issued_booking_not_updated",
                wallet_refund_cents=wallet_cents,
                card_refund_cents=card_cents,
                stripe_refund_id=refund_id or "",
                error=exc.__class__.__name__,
            )
        raise

    logger.info(
        "booking_modification: refund applied",
        extra={
            "booking_id": booking.id,
            "wallet_refund_cents": wallet_cents,
            "card_refund_cents": card_cents,
        },
    )
    notify_booking_modified(
        booking,
        f"Rimborso: €{split.total:.2f}",
        kind=ChatMessage.Kind.BOOKING_REFUNDED,
    )
    return ModificationResult(
        classification=quote.classification,
        price_difference=quote.price_difference,
        new_total=quote.new_total,
        refunded_wallet=split.wallet,
        refunded_card=split.card,
        card_refund_pending=card_refund_pending,
    )


def _apply_wallet_supplement(
    booking: Booking, quote: ModificationQuote, start: date, end: date
) -> ModificationResult:
    amount_cents = to_cents(quote.amount)
    wallet = get_wallet(booking.renter)
    if wallet.balance_cents < amount_cents:
        raise InsufficientWalletBalance(wallet.balance_cents, amount_cents)

    description = f"Supplemento modifica {booking.reference} ({booking.listing.title})"
    try:
        with transaction.atomic():
            debit_wallet(
                user=booking.renter,
                amount_cents=amount_cents,
                source=WalletTransaction.Source.BOOKING_MODIFICATION_CHARGE,
                wallet_type=WalletTransaction.WalletType.RENTER,
                description=description,
                booking=booking,
            )
            credit_wallet(
                user=booking.owner,
                amount_cents=amount_cents,
                source=WalletTransaction.Source.BOOKING_MODIFICATION_INCOME,
                wallet_type=WalletTransaction.WalletType.HUBBER,
                description=description,
                booking=booking,
            )
            _persist_modification(
                booking,
                start_date=start,
                end_date=end,
                amount_total=quote.new_total,
                wallet_used_cents=F("wallet_used_cents") + amount_cents,
            )
    except InsufficientFundsError as exc:
        raise InsufficientWalletBalance(exc.available_cents, exc.required_cents) from exc

    logger.info(
        "booking_modification: supplement paid with wallet",
        extra={"booking_id": booking.id, "amount_cents": amount_cents},
    )
    notify_booking_modified(booking, f"Supplemento pagato: €{quote.amount:.2f}")
    return ModificationResult(
        classification=quote.classification,
        price_difference=quote.price_difference,
        new_total=quote.new_total,
        paid_with_wallet=True,
        charged_extra=quote.amount,
    )


def _start_card_supplement(
    booking: Booking, quote: ModificationQuote, start: date, end: date
) -> ModificationResult:
    intent = create_modification_payment_intent(
        booking=booking,
        new_start_date=start,
        new_end_date=end,
        price_difference=quote.amount,
        new_total=quote.new_total,
    )
    BookingModification.objects.update_or_create(
        payment_intent_id=intent.id,
        defaults={
            "booking": booking,
            "new_start_date": start,
            "new_end_date": end,
            "price_difference": quote.amount,
            "new_total": quote.new_total,
            "amount_cents": to_cents(quote.amount),
            "booking_version": booking.version,
            "status": BookingModification.Status.PENDING,
        },
    )
    # Only the latest card request for a booking may be applied.
    superseded = (
        BookingModification.objects.filter(
            booking=booking,
            status__in=[BookingModification.Status.PENDING, BookingModification.Status.FAILED],
        )
        .exclude(payment_intent_id=intent.id)
        .update(status=BookingModification.Status.SUPERSEDED, updated_at=timezone.now())
    )
    if superseded:
        logger.info(
            "booking_modification: superseded %s earlier card supplement(s)",
            superseded,
            extra={"booking_id": booking.id},
        )
    logger.info(
        "booking_modification: awaiting card payment",
        extra={"booking_id": booking.id, "payment_intent_id": intent.id},
    )
    return ModificationResult(
        classification=quote.classification,
        price_difference=quote.price_difference,
        new_total=quote.new_total,
        requires_payment=True,
        client_secret=intent.client_secret or "",
        payment_intent_id=intent.id,
    )


def modify_booking(
    *,
    booking_id: int,
    renter,
    new_start_date: date,
    new_end_date: date,
    payment_method: str | None = None,
) -> ModificationResult:
    """
    Move a confirmed booking to new dates and settle the difference.

    - no price change: only the dates are written
    - cheaper: refund split across wallet and card by how the booking was paid
    - more expensive: paid from the wallet immediately, or by card through a
      PaymentIntent whose webhook applies the change later
    """
    booking = load_booking_for_renter(booking_id, renter)
    quote = quote_modification(booking, new_start_date, new_end_date)

    if not same_dates(booking, new_start_date, new_end_date):
        try:
            ensure_no_conflict(
                booking.listing,
                new_start_date,
                new_end_date,
                exclude_booking_id=booking.id,
            )
        except ValidationError as exc:
            raise DatesUnavailable() from exc

    logger.info(
        "booking_modification: %s of %s requested",
        quote.classification,
        quote.amount,
        extra={
            "booking_id": booking.id,
            "original_dates": f"{booking.start_date} -> {booking.end_date}",
            "new_dates": f"{new_start_date} -> {new_end_date}",
        },
    )

    if quote.is_noop:
        return _apply_noop(booking, quote, new_start_date, new_end_date)
    if quote.is_refund:
        return _apply_refund(booking, quote, new_start_date, new_end_date)

    if not payment_method:
        raise PaymentMethodRequired()
    if payment_method == PAYMENT_WALLET:
        return _apply_wallet_supplement(booking, quote, new_start_date, new_end_date)
    if payment_method == PAYMENT_CARD:
        return _start_card_supplement(booking, quote, new_start_date, new_end_date)
    raise InvalidPaymentMethod(f"Invalid payment method: {payment_method}")
