"""Wallet API endpoints."""

from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from .ledger import wallet_summary

MAX_HISTORY_LIMIT = 100


def _parse_limit(value: str | None) -> int | None:
    if not value:
        return None
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValueError("limit must be an integer.")
    if parsed <= 0:
        raise ValueError("limit must be greater than zero.")
    return min(parsed, MAX_HISTORY_LIMIT)


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def wallet_detail(request):
    """Return the caller's wallet balances and most recent ledger entries."""
    try:
        limit = _parse_limit(request.query_params.get("limit"))
    except ValueError as exc:
        return Response({"error": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
    return Response(wallet_summary(request.user, limit=limit), status=status.HTTP_200_OK)
