"""Domain helpers for booking validation and modification guards."""

from __future__ import annotations

from datetime import date
from typing import Optional

from django.core.exceptions import ValidationError

from listings.models import Listing

from .models import Booking

# Statuses that block dates for availability and conflict detection.
ACTIVE_BOOKING_STATUSES = (Booking.Status.CONFIRMED,)


def parse_booking_date(value: object, field_name: str) -> date:
    """Parse a ``YYYY-MM-DD`` wire value into a calendar date."""
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValidationError({field_name: ["This field is required."]})
    # Accept a full ISO timestamp but nothing else after the date.
    raw = value.strip().split("T", 1)[0]
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise ValidationError({field_name: ["Use the YYYY-MM-DD format."]}) from exc


def validate_booking_dates(start_date: date | None, end_date: date | None) -> None:
    """
    Validate that the provided dates exist and form a valid range.

    A same-day range is accepted and billed as one unit.
    """
    if not start_date or not end_date:
        raise ValidationError({"non_field_errors": ["Start and end dates are required."]})
    if end_date < start_date:
        raise ValidationError({"end_date": ["End date must not be before start date."]})


def ensure_no_conflict(
    listing: Listing,
    start_date: date,
    end_date: date,
    *,
    exclude_booking_id: Optional[int] = None,
) -> None:
    """Ensure no other active booking occupies any day of the range (inclusive)."""
    qs = Booking.objects.filter(listing=listing, status__in=ACTIVE_BOOKING_STATUSES)
    if exclude_booking_id is not None:
        qs = qs.exclude(pk=exclude_booking_id)
    conflicts = qs.filter(start_date__lte=end_date, end_date__gte=start_date)
    if conflicts.exists():
        raise ValidationError(
            {"non_field_errors": ["Requested dates are not available for this listing."]}
        )


def same_dates(booking: Booking, start_date: date, end_date: date) -> bool:
    return booking.start_date == start_date and booking.end_date == end_date
