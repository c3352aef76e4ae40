from __future__ import annotations

from django.conf import settings
from django.http import JsonResponse

from core.fees import FeeSchedule, FixedFeeTier


def _tier_payload(tier: FixedFeeTier) -> dict[str, str]:
    return {
        "threshold": str(tier.threshold),
        "fee_at_or_below": str(tier.low),
        "fee_above": str(tier.high),
    }


def pricing_summary(_request):
    """
    Public endpoint that surfaces the platform's current fee configuration.

    Values account for operator overrides stored via DbSetting when present.
    """

    schedule = FeeSchedule.from_settings()
    return JsonResponse(
        {
            "currency": settings.STRIPE_CURRENCY.upper(),
            "variable_fee_percent": str(schedule.variable_percent),
            "renter_fixed_fee": _tier_payload(schedule.renter_tier),
            "hubber_fixed_fee": _tier_payload(schedule.hubber_tier),
        }
    )
