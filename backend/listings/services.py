import math
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from core.fees import RENTER, FeeSchedule, fee_breakdown, quantize_money

from .models import Listing

UNIT_DAYS = {
    Listing.PriceUnit.DAY.value: 1,
    Listing.PriceUnit.WEEK.value: 7,
    Listing.PriceUnit.MONTH.value: 30,
}


@dataclass(frozen=True)
class PriceBreakdown:
    """Renter-side price for one date range. Never persisted."""

    units: int
    price_per_unit: Decimal
    base_price: Decimal
    variable_fee: Decimal
    fixed_fee: Decimal
    total_fee: Decimal
    total: Decimal


def billable_units(start_date: date, end_date: date, price_unit: str) -> int:
    """
    Count the billable units between two calendar dates.

    The day difference is converted to the listing's unit (weeks of 7 days,
    months of 30) and rounded up. A same-day span still bills one unit.
    """
    days = max(abs((end_date - start_date).days), 1)
    unit_days = UNIT_DAYS.get(price_unit, 1)
    return max(math.ceil(days / unit_days), 1)


def compute_price_breakdown(
    *,
    price_per_unit: Decimal,
    start_date: date,
    end_date: date,
    price_unit: str,
    schedule: FeeSchedule | None = None,
) -> PriceBreakdown:
    units = billable_units(start_date, end_date, price_unit)
    base_price = price_per_unit * units
    fees = fee_breakdown(RENTER, base_price, schedule=schedule)
    return PriceBreakdown(
        units=units,
        price_per_unit=price_per_unit,
        base_price=base_price,
        variable_fee=fees.variable_fee,
        fixed_fee=fees.fixed_fee,
        total_fee=fees.total_fee,
        total=base_price + fees.total_fee,
    )


def compute_booking_totals(
    *,
    listing: Listing,
    start_date: date,
    end_date: date,
) -> dict[str, str]:
    """
    Compute renter-facing totals for a booking on ``listing``:
    - Base price: units * listing.price
    - Variable fee: BOOKING_VARIABLE_FEE_PERCENT of base
    - Fixed fee: renter tier applied to the base
    - Total charge: base + variable fee + fixed fee

    All monetary values are returned as strings (quantized to 2 decimals)
    for stable JSON output.
    """
    if end_date < start_date:
        raise ValueError("end_date must not be before start_date")

    breakdown = compute_price_breakdown(
        price_per_unit=listing.price,
        start_date=start_date,
        end_date=end_date,
        price_unit=listing.price_unit,
    )
    return {
        "units": str(breakdown.units),
        "price_unit": listing.price_unit,
        "price_per_unit": str(quantize_money(breakdown.price_per_unit)),
        "base_price": str(quantize_money(breakdown.base_price)),
        "variable_fee": str(quantize_money(breakdown.variable_fee)),
        "fixed_fee": str(quantize_money(breakdown.fixed_fee)),
        "total_fee": str(quantize_money(breakdown.total_fee)),
        "total_charge": str(quantize_money(breakdown.total)),
    }
