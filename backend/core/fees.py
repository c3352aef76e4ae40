"""Platform fee calculator for renter-side and hubber-side commissions."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Literal

from django.conf import settings

from core.settings_resolver import get_decimal

FeeRole = Literal["renter", "hubber"]

RENTER = "renter"
HUBBER = "hubber"
_CENT = Decimal("0.01")
_HUNDRED = Decimal("100")


def quantize_money(value: Decimal) -> Decimal:
    """Round a Decimal value to cents using HALF_UP."""
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def to_cents(amount: Decimal) -> int:
    """Convert Decimal euros to integer cents, rounding half up."""
    return int((amount * _HUNDRED).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(cents: int | None) -> Decimal:
    """Convert integer cents back to a two-place Decimal amount."""
    return (Decimal(int(cents or 0)) / _HUNDRED).quantize(_CENT)


@dataclass(frozen=True)
class FixedFeeTier:
    """Single-breakpoint step: ``low`` up to and including ``threshold``, ``high`` above."""

    threshold: Decimal
    low: Decimal
    high: Decimal

    def fee_for(self, amount: Decimal) -> Decimal:
        return self.low if amount <= self.threshold else self.high


@dataclass(frozen=True)
class FeeSchedule:
    variable_percent: Decimal
    renter_tier: FixedFeeTier
    hubber_tier: FixedFeeTier

    @classmethod
    def from_settings(cls) -> "FeeSchedule":
        """
        Build the active schedule from Django settings.

        Each value may be overridden by an operator through a DbSetting row
        keyed by the same name as the Django setting.
        """

        def _value(name: str) -> Decimal:
            return get_decimal(name, Decimal(getattr(settings, name)))

        return cls(
            variable_percent=_value("BOOKING_VARIABLE_FEE_PERCENT"),
            renter_tier=FixedFeeTier(
                threshold=_value("RENTER_FIXED_FEE_THRESHOLD"),
                low=_value("RENTER_FIXED_FEE_LOW"),
                high=_value("RENTER_FIXED_FEE_HIGH"),
            ),
            hubber_tier=FixedFeeTier(
                threshold=_value("HUBBER_FIXED_FEE_THRESHOLD"),
                low=_value("HUBBER_FIXED_FEE_LOW"),
                high=_value("HUBBER_FIXED_FEE_HIGH"),
            ),
        )

    def tier(self, role: FeeRole) -> FixedFeeTier:
        if role == RENTER:
            return self.renter_tier
        if role == HUBBER:
            return self.hubber_tier
        raise ValueError(f"Unknown fee role: {role!r}")


@dataclass(frozen=True)
class FeeBreakdown:
    variable_fee: Decimal
    fixed_fee: Decimal
    total_fee: Decimal


def _as_amount(amount: Decimal | int | str) -> Decimal:
    value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    if value < 0:
        raise ValueError("Fee amounts must not be negative.")
    return value


def fixed_fee(
    role: FeeRole,
    amount: Decimal | int | str,
    schedule: FeeSchedule | None = None,
) -> Decimal:
    """Return the fixed platform fee for ``role`` on a rental base ``amount``."""
    schedule = schedule or FeeSchedule.from_settings()
    return schedule.tier(role).fee_for(_as_amount(amount))


def variable_fee(
    amount: Decimal | int | str,
    percent: Decimal | int | str | None = None,
    schedule: FeeSchedule | None = None,
) -> Decimal:
    """
    Return ``amount * percent / 100`` without rounding.

    Callers round to cents only when the value is persisted or sent to Stripe.
    """
    if percent is None:
        percent = (schedule or FeeSchedule.from_settings()).variable_percent
    return _as_amount(amount) * Decimal(str(percent)) / _HUNDRED


def fee_breakdown(
    role: FeeRole,
    amount: Decimal | int | str,
    schedule: FeeSchedule | None = None,
) -> FeeBreakdown:
    schedule = schedule or FeeSchedule.from_settings()
    variable = variable_fee(amount, schedule=schedule)
    fixed = fixed_fee(role, amount, schedule=schedule)
    return FeeBreakdown(variable_fee=variable, fixed_fee=fixed, total_fee=variable + fixed)
