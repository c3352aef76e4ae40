"""Pricing rules for changing the dates of a confirmed booking."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Literal

from core.fees import RENTER, FeeSchedule, fixed_fee, from_cents, quantize_money, variable_fee
from listings.services import PriceBreakdown, compute_price_breakdown

Classification = Literal["noop", "refund", "supplement"]

NOOP: Classification = "noop"
REFUND: Classification = "refund"
SUPPLEMENT: Classification = "supplement"

_ZERO = Decimal("0")
# Differences below one cent are rounding noise, not money owed.
TOLERANCE = Decimal("0.01")


@dataclass(frozen=True)
class ModificationQuote:
    """Signed price change produced by moving a booking to new dates."""

    classification: Classification
    amount: Decimal
    price_difference: Decimal
    new_total: Decimal
    original: PriceBreakdown
    new: PriceBreakdown
    base_price_delta: Decimal
    commission_delta: Decimal
    fixed_fee_delta: Decimal

    @property
    def is_noop(self) -> bool:
        return self.classification == NOOP

    @property
    def is_refund(self) -> bool:
        return self.classification == REFUND

    @property
    def is_supplement(self) -> bool:
        return self.classification == SUPPLEMENT


@dataclass(frozen=True)
class RefundSplit:
    """How a refund is returned across the instruments that paid the booking."""

    wallet: Decimal
    card: Decimal
    unallocated: Decimal = _ZERO

    @property
    def total(self) -> Decimal:
        return self.wallet + self.card


def classify(price_difference: Decimal) -> Classification:
    if abs(price_difference) < TOLERANCE:
        return NOOP
    if price_difference < 0:
        return REFUND
    return SUPPLEMENT


def compute_modification_quote(
    *,
    original_start: date,
    original_end: date,
    new_start: date,
    new_end: date,
    price_per_unit: Decimal,
    price_unit: str,
    original_total: Decimal,
    schedule: FeeSchedule | None = None,
) -> ModificationQuote:
    """
    Recompute both date ranges with the same unit rules and return the delta.

    The fixed fee is a step function of total spend, so its delta is taken on
    the full original and new base amounts rather than on the base delta.
    """
    schedule = schedule or FeeSchedule.from_settings()
    original = compute_price_breakdown(
        price_per_unit=price_per_unit,
        start_date=original_start,
        end_date=original_end,
        price_unit=price_unit,
        schedule=schedule,
    )
    new = compute_price_breakdown(
        price_per_unit=price_per_unit,
        start_date=new_start,
        end_date=new_end,
        price_unit=price_unit,
        schedule=schedule,
    )

    base_price_delta = new.base_price - original.base_price
    commission_delta = variable_fee(new.base_price, schedule=schedule) - variable_fee(
        original.base_price, schedule=schedule
    )
    fixed_fee_delta = fixed_fee(RENTER, new.base_price, schedule=schedule) - fixed_fee(
        RENTER, original.base_price, schedule=schedule
    )
    price_difference = base_price_delta + commission_delta + fixed_fee_delta
    classification = classify(price_difference)

    if classification == NOOP:
        price_difference = _ZERO

    return ModificationQuote(
        classification=classification,
        amount=quantize_money(abs(price_difference)),
        price_difference=quantize_money(price_difference),
        new_total=quantize_money(original_total + price_difference),
        original=original,
        new=new,
        base_price_delta=base_price_delta,
        commission_delta=commission_delta,
        fixed_fee_delta=fixed_fee_delta,
    )


def split_refund(
    refund_amount: Decimal,
    *,
    wallet_paid_cents: int,
    card_paid_cents: int,
) -> RefundSplit:
    """
    Split a refund proportionally to how the booking was paid.

    The wallet share is capped at what the wallet paid; the card receives the
    remainder so both portions add up to the refund exactly. A booking with
    nothing paid yields a void (zero) split.
    """
    if refund_amount < 0:
        raise ValueError("Refund amount must not be negative.")

    wallet_paid = from_cents(wallet_paid_cents)
    card_paid = from_cents(card_paid_cents)
    total_paid = wallet_paid + card_paid
    refund_amount = quantize_money(refund_amount)
    if total_paid <= 0 or refund_amount == 0:
        return RefundSplit(wallet=_ZERO, card=_ZERO, unallocated=refund_amount)

    wallet_refund = min(quantize_money(refund_amount * wallet_paid / total_paid), wallet_paid)
    card_refund = refund_amount - wallet_refund
    unallocated = _ZERO
    if card_refund > card_paid:
        unallocated = card_refund - card_paid
        card_refund = card_paid
    return RefundSplit(wallet=wallet_refund, card=card_refund, unallocated=unallocated)
