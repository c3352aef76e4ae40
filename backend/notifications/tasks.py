from __future__ import annotations

import logging
from typing import Optional

from celery import shared_task
from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.mail import EmailMultiAlternatives

from notifications.models import NotificationLog

logger = logging.getLogger(__name__)
User = get_user_model()

BOOKING_MODIFIED = "booking_modified"
RECONCILIATION_REQUIRED = "reconciliation_required"


def _get_user(user_id: int) -> Optional[User]:
    try:
        return User.objects.get(pk=user_id)
    except User.DoesNotExist:
        logger.warning("notifications: user %s no longer exists", user_id)
        return None


def _log_notification(
    type_: str,
    status: str,
    *,
    user_id: int | None = None,
    booking_id: int | None = None,
    error: str | None = None,
) -> None:
    try:
        NotificationLog.objects.create(
            channel=NotificationLog.Channel.EMAIL,
            type=type_,
            status=status,
            user_id=user_id,
            booking_id=booking_id,
            error=error or "",
        )
    except Exception:
        logger.exception(
            "notifications: failed to persist notification log",
            extra={"type": type_, "status": status},
        )


def _send_email_logged(
    type_: str,
    *,
    to_email: str | None,
    subject: str,
    body: str,
    user_id: int | None = None,
    booking_id: int | None = None,
) -> bool:
    if not to_email:
        _log_notification(
            type_,
            NotificationLog.Status.FAILED,
            user_id=user_id,
            booking_id=booking_id,
            error="missing recipient email",
        )
        logger.warning("notifications: cannot send email without recipient")
        return False

    message = EmailMultiAlternatives(
        subject=subject,
        body=body,
        from_email=settings.DEFAULT_FROM_EMAIL,
        to=[to_email],
    )
    try:
        message.send(fail_silently=False)
    except Exception as exc:
        logger.exception(
            "notifications: email send failed",
            extra={"type": type_, "booking_id": booking_id, "user_id": user_id},
        )
        _log_notification(
            type_,
            NotificationLog.Status.FAILED,
            user_id=user_id,
            booking_id=booking_id,
            error=str(exc) or exc.__class__.__name__,
        )
        return False

    _log_notification(
        type_,
        NotificationLog.Status.SENT,
        user_id=user_id,
        booking_id=booking_id,
    )
    return True


@shared_task(name="notifications.send_booking_modified_email")
def send_booking_modified_email(
    user_id: int,
    booking_id: int,
    listing_title: str,
    new_start_date: str,
    new_end_date: str,
    summary: str = "",
) -> bool:
    """Tell a booking participant that the rental dates changed."""
    user = _get_user(user_id)
    if user is None:
        return False
    site_name = getattr(settings, "SITE_NAME", "RentHubber")
    lines = [
        f"Ciao {user.first_name or user.username},",
        "",
        f'le date della prenotazione per "{listing_title}" sono state modificate.',
        f"Nuove date: {new_start_date} - {new_end_date}",
    ]
    if summary:
        lines.append(summary)
    lines.extend(["", f"Il team {site_name}"])
    return _send_email_logged(
        BOOKING_MODIFIED,
        to_email=user.email,
        subject=f"{site_name}: prenotazione modificata",
        body="\n".join(lines),
        user_id=user.id,
        booking_id=booking_id,
    )


@shared_task(name="notifications.alert_reconciliation_required")
def alert_reconciliation_required(booking_id: int | None, reason: str, details: str = "") -> bool:
    """
    Notify operators that money moved without the matching booking update.

    Sent when a wallet or Stripe mutation already happened and a later step
    failed; nothing is compensated automatically.
    """
    recipient = getattr(settings, "OPS_ALERT_EMAIL", "") or ""
    body = f"Booking: {booking_id}\nReason: {reason}\n"
    if details:
        body += f"\n{details}\n"
    return _send_email_logged(
        RECONCILIATION_REQUIRED,
        to_email=recipient,
        subject=f"[reconciliation] booking {booking_id}: {reason}",
        body=body,
        booking_id=booking_id,
    )
