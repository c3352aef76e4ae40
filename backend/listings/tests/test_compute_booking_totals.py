from datetime import date
from decimal import Decimal

import pytest

from listings.models import Listing
from listings.services import billable_units, compute_booking_totals, compute_price_breakdown


@pytest.mark.parametrize(
    ("start", "end", "unit", "expected"),
    [
        (date(2030, 1, 1), date(2030, 1, 1), "giorno", 1),
        (date(2030, 1, 1), date(2030, 1, 4), "giorno", 3),
        (date(2030, 1, 1), date(2030, 1, 8), "settimana", 1),
        (date(2030, 1, 1), date(2030, 1, 9), "settimana", 2),
        (date(2030, 1, 1), date(2030, 1, 31), "mese", 1),
        (date(2030, 1, 1), date(2030, 2, 1), "mese", 2),
        (date(2030, 1, 1), date(2030, 1, 4), "unknown", 3),
    ],
)
def test_billable_units(start, end, unit, expected):
    assert billable_units(start, end, unit) == expected


def test_price_breakdown_for_three_days():
    breakdown = compute_price_breakdown(
        price_per_unit=Decimal("50.00"),
        start_date=date(2030, 6, 10),
        end_date=date(2030, 6, 13),
        price_unit="giorno",
    )

    assert breakdown.units == 3
    assert breakdown.base_price == Decimal("150.00")
    assert breakdown.variable_fee == Decimal("15")
    assert breakdown.fixed_fee == Decimal("2.00")
    assert breakdown.total == Decimal("167.00")


@pytest.mark.django_db
def test_compute_booking_totals_returns_strings(listing):
    totals = compute_booking_totals(
        listing=listing,
        start_date=date(2030, 6, 10),
        end_date=date(2030, 6, 13),
    )

    assert totals == {
        "units": "3",
        "price_unit": Listing.PriceUnit.DAY,
        "price_per_unit": "50.00",
        "base_price": "150.00",
        "variable_fee": "15.00",
        "fixed_fee": "2.00",
        "total_fee": "17.00",
        "total_charge": "167.00",
    }


@pytest.mark.django_db
def test_compute_booking_totals_rejects_reversed_dates(listing):
    with pytest.raises(ValueError):
        compute_booking_totals(
            listing=listing,
            start_date=date(2030, 6, 13),
            end_date=date(2030, 6, 10),
        )
