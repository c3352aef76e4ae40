from django.conf import settings
from django.db import models


class Wallet(models.Model):
    """Internal credit balances for a user, tracked in cents."""

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="wallet",
    )
    balance_cents = models.BigIntegerField(default=0)
    refund_balance_cents = models.BigIntegerField(default=0)
    referral_balance_cents = models.BigIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=models.Q(balance_cents__gte=0),
                name="wallet_balance_non_negative",
            ),
            models.CheckConstraint(
                condition=models.Q(refund_balance_cents__gte=0),
                name="wallet_refund_balance_non_negative",
            ),
            models.CheckConstraint(
                condition=models.Q(referral_balance_cents__gte=0),
                name="wallet_referral_balance_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"Wallet({self.user_id}, {self.balance_cents}c)"


class WalletTransaction(models.Model):
    """Append-only ledger entry paired with every wallet balance mutation."""

    class Type(models.TextChoices):
        CREDIT = "credit", "Credit"
        DEBIT = "debit", "Debit"

    class Source(models.TextChoices):
        BOOKING_MODIFICATION_REFUND = "booking_modification_refund", "Booking modification refund"
        BOOKING_MODIFICATION_CHARGE = "booking_modification_charge", "Booking modification charge"
        BOOKING_MODIFICATION_INCOME = "booking_modification_income", "Booking modification income"

    class WalletType(models.TextChoices):
        RENTER = "renter", "Renter"
        HUBBER = "hubber", "Hubber"

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="wallet_transactions",
    )
    amount_cents = models.BigIntegerField(help_text="Signed: positive for credits.")
    type = models.CharField(max_length=8, choices=Type.choices)
    source = models.CharField(max_length=64, choices=Source.choices)
    wallet_type = models.CharField(max_length=8, choices=WalletType.choices)
    description = models.CharField(max_length=255, blank=True, default="")
    related_booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="wallet_transactions",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["user", "created_at"], name="wallettxn_user_created_idx"),
            models.Index(fields=["related_booking", "source"], name="wallettxn_booking_source_idx"),
        ]

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise ValueError("Wallet transactions are immutable once written.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Wallet transactions cannot be deleted.")

    def __str__(self) -> str:
        return f"{self.user_id} {self.type} {self.amount_cents}c ({self.source})"


class BookingModification(models.Model):
    """
    Pending card-paid date change, keyed by its Stripe PaymentIntent.

    Created when the supplement intent is issued and applied once by the
    payment webhook; ``status`` makes redelivered events a no-op. A newer
    card supplement for the same booking supersedes older pending rows, and
    a payment that can no longer be applied is rejected and refunded.
    """

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        APPLIED = "applied", "Applied"
        FAILED = "failed", "Failed"
        SUPERSEDED = "superseded", "Superseded"
        REJECTED = "rejected", "Rejected"

    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.CASCADE,
        related_name="modifications",
        null=True,
        blank=True,
    )
    payment_intent_id = models.CharField(max_length=120, unique=True)
    new_start_date = models.DateField()
    new_end_date = models.DateField()
    price_difference = models.DecimalField(max_digits=10, decimal_places=2)
    new_total = models.DecimalField(max_digits=10, decimal_places=2)
    amount_cents = models.PositiveIntegerField()
    booking_version = models.PositiveIntegerField(null=True, blank=True)
    status = models.CharField(
        max_length=12,
        choices=Status.choices,
        default=Status.PENDING,
    )
    applied_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"BookingModification({self.booking_id}, {self.payment_intent_id}, {self.status})"
