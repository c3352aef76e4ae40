"""Serializers for booking-related API endpoints."""

from __future__ import annotations

from typing import Any

from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import serializers

from .domain import parse_booking_date
from .models import Booking


class BookingSerializer(serializers.ModelSerializer):
    """Read-only view of a booking for its participants."""

    owner = serializers.PrimaryKeyRelatedField(read_only=True)
    renter = serializers.PrimaryKeyRelatedField(read_only=True)
    listing_title = serializers.ReadOnlyField(source="listing.title")
    listing_price_unit = serializers.ReadOnlyField(source="listing.price_unit")
    reference = serializers.ReadOnlyField()
    wallet_paid = serializers.DecimalField(max_digits=10, decimal_places=2, read_only=True)
    card_paid = serializers.DecimalField(max_digits=10, decimal_places=2, read_only=True)

    class Meta:
        model = Booking
        fields = (
            "id",
            "reference",
            "status",
            "listing",
            "listing_title",
            "listing_price_unit",
            "owner",
            "renter",
            "start_date",
            "end_date",
            "amount_total",
            "wallet_paid",
            "card_paid",
            "refunded_wallet_cents",
            "refunded_card_cents",
            "version",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class ModifyBookingSerializer(serializers.Serializer):
    """
    Validate a date-change request.

    Accepts the camelCase keys sent by the web client (``newStartDate``,
    ``newEndDate``, ``paymentMethod``) as well as their snake_case forms.
    """

    _ALIASES = {
        "new_start_date": ("newStartDate", "new_start_date"),
        "new_end_date": ("newEndDate", "new_end_date"),
        "payment_method": ("paymentMethod", "payment_method"),
    }

    def to_internal_value(self, data: Any) -> dict[str, Any]:
        if not hasattr(data, "get"):
            raise serializers.ValidationError({"non_field_errors": ["Invalid payload."]})

        values: dict[str, Any] = {}
        for field, keys in self._ALIASES.items():
            values[field] = next((data.get(key) for key in keys if data.get(key) is not None), None)

        try:
            start = parse_booking_date(values["new_start_date"], "newStartDate")
            end = parse_booking_date(values["new_end_date"], "newEndDate")
        except DjangoValidationError as exc:
            raise serializers.ValidationError(exc.message_dict) from exc

        payment_method = values["payment_method"]
        if isinstance(payment_method, str):
            payment_method = payment_method.strip().lower() or None

        return {
            "new_start_date": start,
            "new_end_date": end,
            "payment_method": payment_method,
        }
