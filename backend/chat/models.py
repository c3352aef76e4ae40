"""Booking conversation between hubber and renter, plus system notices."""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.conf import settings
from django.db import models
from django.utils import timezone

if TYPE_CHECKING:  # pragma: no cover
    from bookings.models import Booking


class Conversation(models.Model):
    """One thread per booking; participants are the booking's hubber and renter."""

    booking = models.OneToOneField(
        "bookings.Booking",
        on_delete=models.CASCADE,
        related_name="conversation",
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"Conversation for booking {self.booking_id}"

    @property
    def participant_ids(self) -> tuple[int, int]:
        return (self.booking.owner_id, self.booking.renter_id)


class Message(models.Model):
    class Kind(models.TextChoices):
        USER = "user", "User"
        BOOKING_MODIFIED = "booking_modified", "Booking modified"
        BOOKING_REFUNDED = "booking_refunded", "Booking refunded"

    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name="messages",
    )
    author = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="chat_messages",
        help_text="Empty for messages posted by the platform.",
    )
    kind = models.CharField(max_length=24, choices=Kind.choices, default=Kind.USER)
    body = models.TextField(blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["created_at"]

    def __str__(self) -> str:
        return f"{self.kind} message in conversation {self.conversation_id}"

    @property
    def is_system(self) -> bool:
        return self.author_id is None and self.kind != self.Kind.USER


def post_system_message(booking: "Booking", kind: str, body: str) -> Message:
    """Append a platform notice to the booking's conversation, opening it if needed."""
    conversation, _ = Conversation.objects.get_or_create(booking=booking)
    return Message.objects.create(conversation=conversation, kind=kind, body=body)
