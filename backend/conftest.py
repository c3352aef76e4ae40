"""Shared pytest configuration and fixtures."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from typing import Callable

import pytest
import stripe
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from bookings.models import Booking
from core.settings_resolver import clear_settings_cache
from listings.models import Listing
from payments.models import Wallet

User = get_user_model()


@pytest.fixture
def api_client():
    """DRF API client for request/response helpers."""
    return APIClient()


@pytest.fixture(autouse=True)
def _fresh_settings_cache():
    clear_settings_cache()
    yield
    clear_settings_cache()


def _create_user(*, username: str, can_list: bool, can_rent: bool) -> User:
    return User.objects.create_user(
        username=username,
        password="testpass",
        email=f"{username}@example.com",
        can_list=can_list,
        can_rent=can_rent,
    )


@pytest.fixture
def owner_user():
    return _create_user(username="hubber", can_list=True, can_rent=True)


@pytest.fixture
def renter_user():
    return _create_user(username="renter", can_list=False, can_rent=True)


@pytest.fixture
def other_user():
    return _create_user(username="other", can_list=True, can_rent=True)


@pytest.fixture
def listing(owner_user):
    return Listing.objects.create(
        owner=owner_user,
        title="Trapano a percussione",
        description="Trapano con due batterie.",
        price=Decimal("50.00"),
        price_unit=Listing.PriceUnit.DAY,
        city="Milano",
        is_active=True,
    )


@pytest.fixture
def booking_factory(listing, renter_user) -> Callable[..., Booking]:
    """
    Create a confirmed booking.

    Defaults to three days at 50/day (base 150, fees 17) paid in full by card.
    """

    def _create_booking(
        *,
        listing_override: Listing | None = None,
        owner=None,
        renter=None,
        start_date=date(2030, 6, 10),
        end_date=date(2030, 6, 13),
        status=Booking.Status.CONFIRMED,
        amount_total=Decimal("167.00"),
        wallet_used_cents=0,
        card_paid_cents=16700,
        stripe_payment_intent_id="pi_original",
        **extra_fields,
    ) -> Booking:
        selected_listing = listing_override or listing
        return Booking.objects.create(
            listing=selected_listing,
            owner=owner or selected_listing.owner,
            renter=renter or renter_user,
            start_date=start_date,
            end_date=end_date,
            status=status,
            amount_total=amount_total,
            wallet_used_cents=wallet_used_cents,
            card_paid_cents=card_paid_cents,
            stripe_payment_intent_id=stripe_payment_intent_id,
            **extra_fields,
        )

    return _create_booking


@pytest.fixture
def fund_wallet() -> Callable[..., Wallet]:
    def _fund(user, cents: int) -> Wallet:
        wallet, _ = Wallet.objects.get_or_create(user=user)
        wallet.balance_cents = cents
        wallet.save(update_fields=["balance_cents", "updated_at"])
        return wallet

    return _fund


@pytest.fixture
def fake_stripe(monkeypatch):
    """Record Stripe SDK calls and return canned objects instead of hitting the API."""
    calls: dict[str, list[dict]] = {"intents": [], "refunds": []}

    def fake_intent_create(**kwargs):
        calls["intents"].append(kwargs)
        intent_id = f"pi_mod_{len(calls['intents'])}"
        return SimpleNamespace(id=intent_id, client_secret=f"{intent_id}_secret")

    def fake_refund_create(**kwargs):
        calls["refunds"].append(kwargs)
        return SimpleNamespace(id=f"re_{len(calls['refunds'])}")

    monkeypatch.setattr(stripe.PaymentIntent, "create", fake_intent_create)
    monkeypatch.setattr(stripe.Refund, "create", fake_refund_create)
    return calls
