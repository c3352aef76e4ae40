"""
Apply card-paid booking modifications reported by Stripe webhooks.

Stripe delivers events at least once, so each PaymentIntent is applied at
most once: the BookingModification row keyed by the intent id is locked and
its status decides whether there is anything left to do.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from bookings.models import Booking
from bookings.modifications import flag_reconciliation_required, notify_booking_modified
from core.fees import from_cents, to_cents

from .models import BookingModification
from .stripe_api import (
    StripeConfigurationError,
    StripePaymentError,
    StripeTransientError,
    create_modification_refund,
)

logger = logging.getLogger(__name__)


def _metadata(payment_intent: Mapping[str, Any]) -> Mapping[str, Any]:
    return payment_intent.get("metadata") or {}


def _parse_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _parse_decimal(value: Any) -> Optional[Decimal]:
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return None


def _parse_date(value: Any) -> Optional[date]:
    try:
        return date.fromisoformat(str(value))
    except (TypeError, ValueError):
        return None


def _amount_cents(payment_intent: Mapping[str, Any], modification: BookingModification) -> int:
    """Cents actually collected, falling back to what was requested."""
    for key in ("amount_received", "amount"):
        cents = _parse_int(payment_intent.get(key))
        if cents:
            return cents
    if modification.amount_cents:
        return modification.amount_cents
    return to_cents(modification.price_difference)


def _modification_from_metadata(intent_id: str, metadata: Mapping[str, Any]) -> Optional[BookingModification]:
    """Build the pending row for an intent whose request was never recorded locally."""
    new_start = _parse_date(metadata.get("new_start_date"))
    new_end = _parse_date(metadata.get("new_end_date"))
    price_difference = _parse_decimal(metadata.get("price_difference"))
    new_total = _parse_decimal(metadata.get("new_total"))
    if None in (new_start, new_end, price_difference, new_total):
        logger.error(
            "stripe_webhook: booking modification metadata incomplete",
            extra={"payment_intent_id": intent_id, "reconciliation_required": True},
        )
        return None

    booking_id = _parse_int(metadata.get("booking_id"))
    booking = Booking.objects.filter(pk=booking_id).first() if booking_id else None
    try:
        with transaction.atomic():
            return BookingModification.objects.create(
                booking=booking,
                payment_intent_id=intent_id,
                new_start_date=new_start,
                new_end_date=new_end,
                price_difference=price_difference,
                new_total=new_total,
                amount_cents=to_cents(price_difference),
                booking_version=_parse_int(metadata.get("booking_version")),
            )
    except IntegrityError:
        # A concurrent delivery created it first.
        return BookingModification.objects.select_for_update().get(payment_intent_id=intent_id)


def _notify(booking: Booking, amount_cents: int) -> None:
    notify_booking_modified(booking, f"Supplemento pagato: €{Decimal(amount_cents) / 100:.2f}")


def _refund_rejected_payment(
    booking: Booking,
    intent_id: str,
    amount_cents: int,
    reason: str,
    **details: Any,
) -> None:
    """Give back a supplement that was paid but can no longer be applied."""
    refund_id = ""
    try:
        refund_id = (
            create_modification_refund(
                booking=booking,
                amount=from_cents(amount_cents),
                payment_intent_id=intent_id,
            )
            or ""
        )
    except (StripePaymentError, StripeTransientError, StripeConfigurationError) as exc:
        logger.warning(
            "stripe_webhook: refund of rejected modification failed: %s",
            exc,
            extra={"booking_id": booking.id, "payment_intent_id": intent_id},
        )
    flag_reconciliation_required(
        booking.id,
        reason,
        payment_intent_id=intent_id,
        amount_cents=amount_cents,
        stripe_refund_id=refund_id or "pending",
        **details,
    )


def apply_modification_payment(payment_intent: Mapping[str, Any]) -> Optional[Booking]:
    """
    Apply the date change paid by ``payment_intent`` to its booking.

    The change is applied only while the booking is still confirmed and at
    the version the supplement was quoted against. Otherwise the payment is
    rejected, refunded and flagged for reconciliation.

    Returns the updated booking, or None when nothing was applied.
    """
    intent_id = payment_intent.get("id") or ""
    metadata = _metadata(payment_intent)
    if not intent_id:
        logger.warning("stripe_webhook: payment_intent.succeeded without id")
        return None

    rejection: Optional[str] = None
    details: dict[str, Any] = {}
    with transaction.atomic():
        modification = (
            BookingModification.objects.select_for_update()
            .filter(payment_intent_id=intent_id)
            .first()
        )
        if modification is None:
            modification = _modification_from_metadata(intent_id, metadata)
            if modification is None:
                flag_reconciliation_required(
                    _parse_int(metadata.get("booking_id")),
                    "modification_metadata_invalid",
                    payment_intent_id=intent_id,
                )
                return None

        if modification.status in (
            BookingModification.Status.APPLIED,
            BookingModification.Status.REJECTED,
        ):
            logger.info(
                "stripe_webhook: modification already settled",
                extra={
                    "payment_intent_id": intent_id,
                    "booking_id": modification.booking_id,
                    "status": modification.status,
                },
            )
            return None

        booking = None
        if modification.booking_id:
            booking = Booking.objects.select_for_update().filter(pk=modification.booking_id).first()
        if booking is None:
            flag_reconciliation_required(
                _parse_int(metadata.get("booking_id")),
                "paid_modification_booking_missing",
                payment_intent_id=intent_id,
            )
            return None

        amount_cents = _amount_cents(payment_intent, modification)
        if not booking.is_modifiable():
            rejection = "paid_modification_booking_not_confirmed"
            details["status"] = booking.status
        elif modification.status == BookingModification.Status.SUPERSEDED:
            rejection = "paid_modification_superseded"
        elif modification.booking_version and modification.booking_version != booking.version:
            rejection = "paid_modification_stale_version"
            details["quoted_version"] = modification.booking_version
            details["current_version"] = booking.version

        if rejection:
            modification.status = BookingModification.Status.REJECTED
            modification.save(update_fields=["status", "updated_at"])
        else:
            Booking.objects.filter(pk=booking.pk).update(
                start_date=modification.new_start_date,
                end_date=modification.new_end_date,
                amount_total=modification.new_total,
                card_paid_cents=F("card_paid_cents") + amount_cents,
                version=F("version") + 1,
                updated_at=timezone.now(),
            )
            modification.status = BookingModification.Status.APPLIED
            modification.applied_at = timezone.now()
            modification.save(update_fields=["status", "applied_at", "updated_at"])

    if rejection:
        logger.warning(
            "stripe_webhook: paid modification rejected (%s)",
            rejection,
            extra={"booking_id": booking.id, "payment_intent_id": intent_id},
        )
        _refund_rejected_payment(booking, intent_id, amount_cents, rejection, **details)
        return None

    booking.refresh_from_db()
    logger.info(
        "stripe_webhook: booking modification applied",
        extra={
            "booking_id": booking.id,
            "payment_intent_id": intent_id,
            "amount_cents": amount_cents,
        },
    )
    _notify(booking, amount_cents)
    return booking


def mark_modification_failed(payment_intent: Mapping[str, Any]) -> Optional[BookingModification]:
    """Record a failed supplement payment; the booking keeps its dates."""
    intent_id = payment_intent.get("id") or ""
    if not intent_id:
        return None

    with transaction.atomic():
        modification = (
            BookingModification.objects.select_for_update()
            .filter(payment_intent_id=intent_id)
            .first()
        )
        if modification is None:
            logger.info(
                "stripe_webhook: failed payment for unknown modification",
                extra={"payment_intent_id": intent_id},
            )
            return None
        if modification.status != BookingModification.Status.PENDING:
            return modification
        modification.status = BookingModification.Status.FAILED
        modification.save(update_fields=["status", "updated_at"])

    error = payment_intent.get("last_payment_error") or {}
    logger.warning(
        "stripe_webhook: modification payment failed",
        extra={
            "payment_intent_id": intent_id,
            "booking_id": modification.booking_id,
            "error": error.get("message") if isinstance(error, Mapping) else None,
        },
    )
    return modification
