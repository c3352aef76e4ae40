"""Wallet balance mutations paired with their ledger entries."""

from __future__ import annotations

import logging
from typing import Optional

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import F

from core.fees import from_cents

from .models import Wallet, WalletTransaction

logger = logging.getLogger(__name__)
User = get_user_model()
RECENT_TRANSACTIONS_LIMIT = 20


class InsufficientFundsError(Exception):
    """A debit would drive the wallet balance below zero."""

    def __init__(self, available_cents: int, required_cents: int):
        super().__init__(
            f"Insufficient balance: available {available_cents}c, required {required_cents}c."
        )
        self.available_cents = available_cents
        self.required_cents = required_cents


def get_wallet(user: User) -> Wallet:
    """Return the user's wallet, creating an empty one on first access."""
    wallet, _ = Wallet.objects.get_or_create(user=user)
    return wallet


def log_wallet_transaction(
    *,
    user: User,
    amount_cents: int,
    type: str,
    source: str,
    wallet_type: str,
    description: str = "",
    booking=None,
) -> WalletTransaction:
    """
    Create and return a WalletTransaction row.

    ``amount_cents`` is signed: debits are stored negative.
    """
    return WalletTransaction.objects.create(
        user=user,
        amount_cents=amount_cents,
        type=type,
        source=source,
        wallet_type=wallet_type,
        description=description[:255],
        related_booking=booking,
    )


def credit_wallet(
    *,
    user: User,
    amount_cents: int,
    source: str,
    wallet_type: str,
    description: str = "",
    booking=None,
) -> WalletTransaction:
    """Add ``amount_cents`` to the general balance and record the credit."""
    if amount_cents <= 0:
        raise ValueError("Credit amount must be positive.")
    with transaction.atomic():
        wallet = get_wallet(user)
        Wallet.objects.filter(pk=wallet.pk).update(
            balance_cents=F("balance_cents") + amount_cents
        )
        txn = log_wallet_transaction(
            user=user,
            amount_cents=amount_cents,
            type=WalletTransaction.Type.CREDIT,
            source=source,
            wallet_type=wallet_type,
            description=description,
            booking=booking,
        )
    logger.info(
        "wallet: credited %s cents",
        amount_cents,
        extra={"user_id": user.pk, "source": source, "booking_id": getattr(booking, "pk", None)},
    )
    return txn


def debit_wallet(
    *,
    user: User,
    amount_cents: int,
    source: str,
    wallet_type: str,
    description: str = "",
    booking=None,
) -> WalletTransaction:
    """
    Subtract ``amount_cents`` from the general balance and record the debit.

    The balance check and the update are a single conditional UPDATE, so a
    concurrent debit can never take the balance below zero.
    """
    if amount_cents <= 0:
        raise ValueError("Debit amount must be positive.")
    with transaction.atomic():
        wallet = get_wallet(user)
        updated = Wallet.objects.filter(pk=wallet.pk, balance_cents__gte=amount_cents).update(
            balance_cents=F("balance_cents") - amount_cents
        )
        if not updated:
            wallet.refresh_from_db(fields=["balance_cents"])
            raise InsufficientFundsError(wallet.balance_cents, amount_cents)
        txn = log_wallet_transaction(
            user=user,
            amount_cents=-amount_cents,
            type=WalletTransaction.Type.DEBIT,
            source=source,
            wallet_type=wallet_type,
            description=description,
            booking=booking,
        )
    logger.info(
        "wallet: debited %s cents",
        amount_cents,
        extra={"user_id": user.pk, "source": source, "booking_id": getattr(booking, "pk", None)},
    )
    return txn


def wallet_summary(user: User, *, limit: Optional[int] = None) -> dict[str, object]:
    """Balances (as currency strings) plus the most recent ledger entries."""
    wallet = get_wallet(user)
    entries = WalletTransaction.objects.filter(user=user)[: limit or RECENT_TRANSACTIONS_LIMIT]
    return {
        "balance": str(from_cents(wallet.balance_cents)),
        "refund_balance": str(from_cents(wallet.refund_balance_cents)),
        "referral_balance": str(from_cents(wallet.referral_balance_cents)),
        "transactions": [
            {
                "id": entry.id,
                "amount": str(from_cents(entry.amount_cents)),
                "type": entry.type,
                "source": entry.source,
                "wallet_type": entry.wallet_type,
                "description": entry.description,
                "related_booking_id": entry.related_booking_id,
                "created_at": entry.created_at.isoformat(),
            }
            for entry in entries
        ],
    }
