"""Database models for rental bookings."""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.db import models

from core.fees import from_cents
from listings.models import Listing


class Booking(models.Model):
    """A rental agreement between a renter and the listing's hubber."""

    class Status(models.TextChoices):
        PENDING = "pending", "pending"
        CONFIRMED = "confirmed", "confirmed"
        COMPLETED = "completed", "completed"
        CANCELLED = "cancelled", "cancelled"
        REJECTED = "rejected", "rejected"

    listing = models.ForeignKey(
        Listing,
        related_name="bookings",
        on_delete=models.CASCADE,
    )
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="bookings_as_owner",
        on_delete=models.CASCADE,
        help_text="Hubber receiving the rental.",
    )
    renter = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="bookings_as_renter",
        on_delete=models.CASCADE,
    )
    start_date = models.DateField()
    end_date = models.DateField()
    status = models.CharField(
        max_length=16,
        choices=Status.choices,
        default=Status.CONFIRMED,
    )
    amount_total = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Total charged to the renter, net of refunds.",
    )
    wallet_used_cents = models.PositiveIntegerField(default=0)
    card_paid_cents = models.PositiveIntegerField(default=0)
    refunded_wallet_cents = models.PositiveIntegerField(default=0)
    refunded_card_cents = models.PositiveIntegerField(default=0)
    stripe_payment_intent_id = models.CharField(
        max_length=120,
        blank=True,
        default="",
        help_text="Stripe PaymentIntent of the original card charge.",
    )
    stripe_refund_id = models.CharField(max_length=120, blank=True, default="")
    version = models.PositiveIntegerField(
        default=1,
        help_text="Incremented on every modification; guards concurrent writes.",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["listing", "start_date", "end_date"], name="booking_listing_dates_idx"),
            models.Index(fields=["renter", "status"], name="booking_renter_status_idx"),
            models.Index(fields=["owner", "status"], name="booking_owner_status_idx"),
        ]

    def __str__(self) -> str:
        """Return a human-readable representation."""
        return f"Booking #{self.pk} for {self.listing_id} ({self.status})"

    @property
    def reference(self) -> str:
        """Short code shown to users in messages and ledger descriptions."""
        return f"#{str(self.pk).zfill(8)[:8].upper()}"

    @property
    def wallet_paid(self) -> Decimal:
        return from_cents(self.wallet_used_cents)

    @property
    def card_paid(self) -> Decimal:
        return from_cents(self.card_paid_cents)

    def is_modifiable(self) -> bool:
        """Only confirmed bookings may change dates or amounts."""
        return self.status == self.Status.CONFIRMED
