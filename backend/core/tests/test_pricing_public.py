from decimal import Decimal

import pytest
from django.test import override_settings

from operator_settings.models import DbSetting


@override_settings(
    BOOKING_VARIABLE_FEE_PERCENT=Decimal("12"),
    RENTER_FIXED_FEE_THRESHOLD=Decimal("9.00"),
)
@pytest.mark.django_db
def test_pricing_summary_uses_current_settings(client):
    response = client.get("/api/platform/pricing/")

    assert response.status_code == 200
    payload = response.json()
    assert payload["currency"] == "EUR"
    assert payload["variable_fee_percent"] == "12"
    assert payload["renter_fixed_fee"] == {
        "threshold": "9.00",
        "fee_at_or_below": "0.50",
        "fee_above": "2.00",
    }
    assert payload["hubber_fixed_fee"]["threshold"] == "10.00"


@pytest.mark.django_db
def test_pricing_summary_prefers_operator_overrides(client):
    DbSetting.objects.create(key="HUBBER_FIXED_FEE_HIGH", value_json="2.50")

    response = client.get("/api/platform/pricing/")

    assert response.status_code == 200
    assert response.json()["hubber_fixed_fee"]["fee_above"] == "2.50"
