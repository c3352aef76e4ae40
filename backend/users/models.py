from __future__ import annotations

from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """Platform account; the same user can rent (renter) and list (hubber)."""

    phone = models.CharField(
        max_length=32,
        unique=True,
        null=True,
        blank=True,
        help_text="Optional E.164 formatted phone number.",
    )
    can_rent = models.BooleanField(default=True)
    can_list = models.BooleanField(default=True)
    stripe_customer_id = models.CharField(
        max_length=120,
        blank=True,
        default="",
        help_text="Stripe Customer ID for renter payments.",
    )

    def is_hubber(self) -> bool:
        return bool(self.can_list)

    def is_renter(self) -> bool:
        return bool(self.can_rent)

    @property
    def display_name(self) -> str:
        return (self.get_full_name() or self.username or f"user-{self.pk}").strip()
