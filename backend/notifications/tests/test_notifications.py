import pytest
from django.core import mail

from notifications import tasks
from notifications.models import NotificationLog

pytestmark = pytest.mark.django_db


def test_booking_modified_email_is_sent_and_logged(renter_user, booking_factory):
    booking = booking_factory()

    sent = tasks.send_booking_modified_email(
        renter_user.id,
        booking.id,
        "Trapano a percussione",
        "10/06/2030",
        "15/06/2030",
        "Supplemento pagato: €110.00",
    )

    assert sent is True
    assert len(mail.outbox) == 1
    email = mail.outbox[0]
    assert email.to == ["renter@example.com"]
    assert "Trapano a percussione" in email.body
    assert "15/06/2030" in email.body
    assert "Supplemento pagato" in email.body
    log = NotificationLog.objects.get()
    assert log.status == NotificationLog.Status.SENT
    assert log.booking_id == booking.id


def test_missing_user_skips_email():
    assert tasks.send_booking_modified_email(424242, 1, "x", "a", "b") is False
    assert mail.outbox == []


def test_missing_address_is_logged_as_failure(renter_user):
    renter_user.email = ""
    renter_user.save(update_fields=["email"])

    assert tasks.send_booking_modified_email(renter_user.id, 7, "x", "a", "b") is False

    log = NotificationLog.objects.get()
    assert log.status == NotificationLog.Status.FAILED
    assert log.error == "missing recipient email"


def test_reconciliation_alert_goes_to_ops(settings):
    settings.OPS_ALERT_EMAIL = "ops@example.com"

    assert tasks.alert_reconciliation_required(12, "stripe_refund_failed", "card_refund_cents=5500")

    email = mail.outbox[0]
    assert email.to == ["ops@example.com"]
    assert "stripe_refund_failed" in email.subject
    assert "card_refund_cents=5500" in email.body
    log = NotificationLog.objects.get()
    assert log.type == tasks.RECONCILIATION_REQUIRED


def test_send_failure_is_logged(renter_user, monkeypatch):
    def boom(self, fail_silently=False):
        raise ConnectionError("smtp down")

    monkeypatch.setattr("notifications.tasks.EmailMultiAlternatives.send", boom)

    assert tasks.send_booking_modified_email(renter_user.id, 3, "x", "a", "b") is False

    log = NotificationLog.objects.get()
    assert log.status == NotificationLog.Status.FAILED
    assert log.error == "smtp down"
