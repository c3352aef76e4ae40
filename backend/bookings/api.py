"""API viewsets and permissions for bookings."""

from __future__ import annotations

import logging

from django.db.models import Q
from django.shortcuts import get_object_or_404
from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from core.fees import quantize_money
from listings.services import PriceBreakdown
from payments.stripe_api import (
    StripeConfigurationError,
    StripePaymentError,
    StripeTransientError,
)
from payments_modification_policy import split_refund

from .modifications import (
    ModificationError,
    load_booking_for_renter,
    modify_booking,
    quote_modification,
)
from .models import Booking
from .serializers import BookingSerializer, ModifyBookingSerializer

logger = logging.getLogger(__name__)


def _error(message: str, code: int) -> Response:
    return Response({"error": message}, status=code)


def _first_error(errors) -> str:
    """Flatten DRF validation errors to the first human-readable message."""
    if isinstance(errors, dict):
        for value in errors.values():
            return _first_error(value)
    if isinstance(errors, (list, tuple)) and errors:
        return _first_error(errors[0])
    return str(errors) or "Invalid request."


def _breakdown_payload(breakdown: PriceBreakdown) -> dict[str, object]:
    return {
        "units": breakdown.units,
        "pricePerUnit": float(quantize_money(breakdown.price_per_unit)),
        "basePrice": float(quantize_money(breakdown.base_price)),
        "variableFee": float(quantize_money(breakdown.variable_fee)),
        "fixedFee": float(quantize_money(breakdown.fixed_fee)),
        "total": float(quantize_money(breakdown.total)),
    }


class IsBookingParticipant(permissions.BasePermission):
    """Allow access only to users tied to the booking."""

    def has_permission(self, request, view) -> bool:
        """Always allow; actual checks happen at object level."""
        return True

    def has_object_permission(self, request, view, obj: Booking) -> bool:
        """Check that the user is the booking owner or renter."""
        user_id = getattr(request.user, "id", None)
        return user_id in (obj.owner_id, obj.renter_id)


class BookingViewSet(viewsets.ReadOnlyModelViewSet):
    """Booking lookup for participants plus the renter's date changes."""

    serializer_class = BookingSerializer
    permission_classes = (permissions.IsAuthenticated, IsBookingParticipant)

    def get_queryset(self):
        """Restrict bookings to the authenticated participant."""
        user = self.request.user
        if not user.is_authenticated:
            return Booking.objects.none()
        return (
            Booking.objects.select_related("listing", "owner", "renter")
            .filter(Q(owner=user) | Q(renter=user))
            .order_by("-created_at")
        )

    def get_object(self):
        """Fetch a single booking and enforce participant permissions."""
        obj = get_object_or_404(
            Booking.objects.select_related("listing", "owner", "renter"),
            pk=self.kwargs["pk"],
        )
        self.check_object_permissions(self.request, obj)
        return obj

    def _modification_input(self, request):
        serializer = ModifyBookingSerializer(data=request.data)
        if not serializer.is_valid():
            return None, _error(_first_error(serializer.errors), status.HTTP_400_BAD_REQUEST)
        return serializer.validated_data, None

    @action(detail=True, methods=["post"], url_path="modify")
    def modify(self, request, *args, **kwargs):
        """Move the booking to new dates and settle the price difference (renter-only)."""
        data, error_response = self._modification_input(request)
        if error_response is not None:
            return error_response

        try:
            result = modify_booking(
                booking_id=kwargs["pk"],
                renter=request.user,
                new_start_date=data["new_start_date"],
                new_end_date=data["new_end_date"],
                payment_method=data["payment_method"],
            )
        except ModificationError as exc:
            return _error(exc.message, exc.status_code)
        except StripePaymentError as exc:
            message = str(exc) or "Payment could not be completed."
            return _error(message, status.HTTP_402_PAYMENT_REQUIRED)
        except StripeTransientError:
            return _error("Temporary payment issue, please retry.", status.HTTP_503_SERVICE_UNAVAILABLE)
        except StripeConfigurationError:
            logger.exception("booking_modification: Stripe is not configured")
            return _error("Payments are temporarily unavailable.", status.HTTP_503_SERVICE_UNAVAILABLE)

        return Response(result.to_payload(), status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"], url_path="modify-quote")
    def modify_quote(self, request, *args, **kwargs):
        """Preview the price difference of a date change without applying it."""
        data, error_response = self._modification_input(request)
        if error_response is not None:
            return error_response

        try:
            booking = load_booking_for_renter(kwargs["pk"], request.user)
            quote = quote_modification(booking, data["new_start_date"], data["new_end_date"])
        except ModificationError as exc:
            return _error(exc.message, exc.status_code)

        payload = {
            "classification": quote.classification,
            "priceDifference": float(quote.price_difference),
            "newTotal": float(quote.new_total),
            "currentTotal": float(booking.amount_total),
            "original": _breakdown_payload(quote.original),
            "new": _breakdown_payload(quote.new),
        }
        if quote.is_refund:
            split = split_refund(
                quote.amount,
                wallet_paid_cents=booking.wallet_used_cents,
                card_paid_cents=booking.card_paid_cents,
            )
            payload["refundWallet"] = float(split.wallet)
            payload["refundCard"] = float(split.card)
        return Response(payload, status=status.HTTP_200_OK)
