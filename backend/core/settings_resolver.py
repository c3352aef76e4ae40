from __future__ import annotations

import time
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from threading import Lock
from typing import Any

_CACHE_TTL_SECONDS = 5.0
_MISSING = object()


@dataclass(frozen=True)
class _CacheEntry:
    expires_at: float
    value: object


_cache: dict[str, _CacheEntry] = {}
_cache_lock = Lock()


def clear_settings_cache() -> None:
    with _cache_lock:
        _cache.clear()


def _cache_get(key: str, now: float) -> object | None:
    with _cache_lock:
        entry = _cache.get(key)
        if entry is None:
            return None
        if now >= entry.expires_at:
            _cache.pop(key, None)
            return None
        return entry.value


def _cache_set(key: str, now: float, value: object) -> None:
    with _cache_lock:
        _cache[key] = _CacheEntry(expires_at=now + _CACHE_TTL_SECONDS, value=value)


def get_setting(key: str, default: Any) -> Any:
    """
    Resolve an operator override from operator_settings.DbSetting.

    The newest row whose effective_at is unset or already reached wins.
    Falls back to ``default`` when the app is not ready, the table is missing,
    or no row matches. Results (misses included) are cached for 5 seconds.
    """

    now_mono = time.monotonic()
    cached = _cache_get(key, now_mono)
    if cached is not None:
        return default if cached is _MISSING else cached

    value: object = _MISSING
    try:
        from django.apps import apps as django_apps

        if django_apps.ready and django_apps.is_installed("operator_settings"):
            DbSetting = django_apps.get_model("operator_settings", "DbSetting")
            from django.db.models import F, Q
            from django.utils import timezone

            row = (
                DbSetting.objects.filter(key=key)
                .filter(Q(effective_at__isnull=True) | Q(effective_at__lte=timezone.now()))
                .order_by(F("effective_at").desc(nulls_last=True), "-updated_at")
                .values_list("value_json", flat=True)
                .first()
            )
            if row is not None:
                value = row
    except Exception:
        value = _MISSING

    _cache_set(key, now_mono, value)
    return default if value is _MISSING else value


def get_decimal(key: str, default: Decimal = Decimal("0")) -> Decimal:
    value = get_setting(key, default)
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (str, int)) and not isinstance(value, bool):
        try:
            return Decimal(str(value))
        except (InvalidOperation, ValueError):
            return default
    return default
