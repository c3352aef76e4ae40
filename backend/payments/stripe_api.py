"""Stripe payment helpers for booking modifications."""

from __future__ import annotations

import logging
from decimal import Decimal

import stripe
from django.conf import settings
from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.response import Response

from core.fees import to_cents

logger = logging.getLogger(__name__)
IDEMPOTENCY_VERSION = "v1"
AUTOMATIC_PAYMENT_METHODS_CONFIG = {"enabled": True}
BOOKING_MODIFICATION = "booking_modification"


class StripeConfigurationError(Exception):
    """Stripe is not configured correctly in the environment."""


class StripeTransientError(Exception):
    """Temporary Stripe/API issue that should be retried."""


class StripePaymentError(Exception):
    """Permanent payment failure for a booking charge or refund."""


def _get_stripe_api_key() -> str:
    """Return the configured Stripe API key or raise if missing."""
    api_key = getattr(settings, "STRIPE_SECRET_KEY", "")
    if not api_key:
        raise StripeConfigurationError("Stripe secret key not configured.")
    return api_key


def _ensure_stripe_key() -> None:
    """Ensure the global Stripe API key is configured before SDK calls."""
    stripe.api_key = _get_stripe_api_key()


def _handle_stripe_error(exc: stripe.error.StripeError) -> None:
    """Map Stripe SDK errors onto internal exception types."""
    if isinstance(exc, stripe.error.CardError):
        message = exc.user_message or "Your card was declined."
        raise StripePaymentError(message) from exc
    if isinstance(
        exc,
        (
            stripe.error.RateLimitError,
            stripe.error.APIConnectionError,
            stripe.error.APIError,
        ),
    ):
        raise StripeTransientError("Temporary Stripe error, please retry.") from exc
    if isinstance(exc, (stripe.error.AuthenticationError, stripe.error.PermissionError)):
        raise StripeConfigurationError("Stripe credentials are invalid or unauthorized.") from exc
    if isinstance(exc, stripe.error.InvalidRequestError):
        raise StripePaymentError(exc.user_message or "Invalid payment request.") from exc
    raise StripePaymentError(exc.user_message or "Stripe payment failure.") from exc


def _currency() -> str:
    return (getattr(settings, "STRIPE_CURRENCY", "") or "eur").lower()


def create_modification_payment_intent(
    *,
    booking,
    new_start_date,
    new_end_date,
    price_difference: Decimal,
    new_total: Decimal,
):
    """
    Create the PaymentIntent that collects a date-change supplement by card.

    The booking is not touched here: every value the webhook needs to apply
    the change travels in the intent metadata.
    """
    amount_cents = to_cents(price_difference)
    if amount_cents <= 0:
        raise StripePaymentError("Supplement must be greater than zero.")

    _ensure_stripe_key()
    listing = booking.listing
    metadata = {
        "type": BOOKING_MODIFICATION,
        "booking_id": str(booking.id),
        "renter_id": str(booking.renter_id),
        "hubber_id": str(booking.owner_id),
        "listing_id": str(booking.listing_id),
        "listing_title": (listing.title or "")[:120],
        "new_start_date": new_start_date.isoformat(),
        "new_end_date": new_end_date.isoformat(),
        "price_difference": str(price_difference),
        "new_total": str(new_total),
        "booking_version": str(booking.version),
        "env": getattr(settings, "STRIPE_ENV", "dev") or "dev",
    }
    idempotency_key = (
        f"booking:{booking.id}:{IDEMPOTENCY_VERSION}:modify:{booking.version}:"
        f"{new_start_date.isoformat()}:{new_end_date.isoformat()}:{amount_cents}"
    )
    try:
        return stripe.PaymentIntent.create(
            amount=amount_cents,
            currency=_currency(),
            automatic_payment_methods={**AUTOMATIC_PAYMENT_METHODS_CONFIG},
            customer=(getattr(booking.renter, "stripe_customer_id", "") or "").strip() or None,
            metadata=metadata,
            description=f"Supplemento modifica {booking.reference}",
            idempotency_key=idempotency_key,
        )
    except stripe.error.StripeError as exc:
        _handle_stripe_error(exc)


def create_modification_refund(
    *,
    booking,
    amount: Decimal,
    payment_intent_id: str | None = None,
) -> str | None:
    """
    Refund ``amount`` of a card charge made for the booking.

    Defaults to the booking's original charge; pass ``payment_intent_id`` to
    refund a supplement intent instead. Returns the Stripe refund id, or None
    when the intent no longer exists on Stripe (treated as already refunded).
    """
    intent_id = (payment_intent_id or booking.stripe_payment_intent_id or "").strip()
    if not intent_id:
        return None
    if payment_intent_id:
        idempotency_key = f"booking:{booking.id}:{IDEMPOTENCY_VERSION}:refund:{intent_id}"
    else:
        idempotency_key = (
            f"booking:{booking.id}:{IDEMPOTENCY_VERSION}:refund:{booking.version}:"
            f"{to_cents(amount)}"
        )
    _ensure_stripe_key()
    try:
        refund = stripe.Refund.create(
            payment_intent=intent_id,
            amount=to_cents(amount),
            metadata={"booking_id": str(booking.id), "reason": BOOKING_MODIFICATION},
            idempotency_key=idempotency_key,
        )
    except stripe.error.InvalidRequestError as exc:
        if getattr(exc, "code", "") == "resource_missing":
            logger.info(
                "Stripe charge PaymentIntent %s missing for booking %s; assuming refunded.",
                intent_id,
                booking.id,
            )
            return None
        _handle_stripe_error(exc)
    except stripe.error.StripeError as exc:
        _handle_stripe_error(exc)
    return refund.id


@api_view(["POST"])
@authentication_classes([])
@permission_classes([])
def stripe_webhook(request):
    """Handle Stripe webhook callbacks for booking modification PaymentIntents."""
    from .modification_events import apply_modification_payment, mark_modification_failed

    payload = request.body
    sig_header = request.META.get("HTTP_STRIPE_SIGNATURE", "")
    endpoint_secret = getattr(settings, "STRIPE_WEBHOOK_SECRET", "")

    try:
        event = stripe.Webhook.construct_event(
            payload=payload,
            sig_header=sig_header,
            secret=endpoint_secret,
        )
    except ValueError:
        return Response(status=status.HTTP_400_BAD_REQUEST)
    except stripe.error.SignatureVerificationError:
        logger.warning("stripe_webhook: signature verification failed")
        return Response(status=status.HTTP_400_BAD_REQUEST)

    event_type = event.get("type")
    data_object = event.get("data", {}).get("object", {}) or {}
    metadata = data_object.get("metadata") or {}

    if metadata.get("type") != BOOKING_MODIFICATION:
        logger.info("stripe_webhook: ignoring %s event", event_type)
        return Response({"received": True}, status=status.HTTP_200_OK)

    if event_type == "payment_intent.succeeded":
        apply_modification_payment(data_object)
    elif event_type == "payment_intent.payment_failed":
        mark_modification_failed(data_object)
    else:
        logger.info("stripe_webhook: unhandled booking modification event %s", event_type)

    return Response({"received": True}, status=status.HTTP_200_OK)
