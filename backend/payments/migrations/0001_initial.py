import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("bookings", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Wallet",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("balance_cents", models.BigIntegerField(default=0)),
                ("refund_balance_cents", models.BigIntegerField(default=0)),
                ("referral_balance_cents", models.BigIntegerField(default=0)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "user",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="wallet",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "constraints": [
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
                ],
            },
        ),
        migrations.CreateModel(
            name="WalletTransaction",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("amount_cents", models.BigIntegerField(help_text="Signed: positive for credits.")),
                (
                    "type",
                    models.CharField(
                        choices=[("credit", "Credit"), ("debit", "Debit")],
                        max_length=8,
                    ),
                ),
                (
                    "source",
                    models.CharField(
                        choices=[
                            ("booking_modification_refund", "Booking modification refund"),
                            ("booking_modification_charge", "Booking modification charge"),
                            ("booking_modification_income", "Booking modification income"),
                        ],
                        max_length=64,
                    ),
                ),
                (
                    "wallet_type",
                    models.CharField(
                        choices=[("renter", "Renter"), ("hubber", "Hubber")],
                        max_length=8,
                    ),
                ),
                ("description", models.CharField(blank=True, default="", max_length=255)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "related_booking",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="wallet_transactions",
                        to="bookings.booking",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="wallet_transactions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "indexes": [
                    models.Index(fields=["user", "created_at"], name="wallettxn_user_created_idx"),
                    models.Index(
                        fields=["related_booking", "source"],
                        name="wallettxn_booking_source_idx",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="BookingModification",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("payment_intent_id", models.CharField(max_length=120, unique=True)),
                ("new_start_date", models.DateField()),
                ("new_end_date", models.DateField()),
                ("price_difference", models.DecimalField(decimal_places=2, max_digits=10)),
                ("new_total", models.DecimalField(decimal_places=2, max_digits=10)),
                ("amount_cents", models.PositiveIntegerField()),
                ("booking_version", models.PositiveIntegerField(blank=True, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("applied", "Applied"),
                            ("failed", "Failed"),
                            ("superseded", "Superseded"),
                            ("rejected", "Rejected"),
                        ],
                        default="pending",
                        max_length=12,
                    ),
                ),
                ("applied_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "booking",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="modifications",
                        to="bookings.booking",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
    ]
