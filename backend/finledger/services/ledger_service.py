from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import List, Optional, Tuple

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.finledger.models import Transaction
from backend.finledger.services.account_service import update_balance

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerEntry:
    """
    Balance-relevant fields of a transaction, frozen at a point in time.
    Reversals must use the entry captured before the row was changed.
    """
    transaction_id: Optional[str]
    type: str
    amount: float
    account_id: str
    destination_account_id: Optional[str]
    is_paid: bool

    @classmethod
    def from_transaction(cls, txn: Transaction) -> "LedgerEntry":
        return cls(
            transaction_id=txn.id,
            type=txn.type,
            amount=float(txn.amount or 0.0),
            account_id=txn.account_id,
            destination_account_id=txn.destination_account_id,
            is_paid=bool(txn.is_paid),
        )


def signed_amount(txn_type: str, amount: float) -> float:
    """
    Sign convention by type: expense <= 0, income >= 0, transfer unchanged.
    Rounded to cents, the same precision account balances are kept at.
    """
    amt = round(float(amount or 0.0), 2)
    if txn_type == "expense":
        return -abs(amt)
    if txn_type == "income":
        return abs(amt)
    return amt


def balance_effects(entry: LedgerEntry) -> List[Tuple[str, float]]:
    """
    (account_id, delta) pairs produced by posting `entry`.
    A transfer with a destination moves |amount| between the two accounts.
    """
    if entry.type == "transfer" and entry.destination_account_id:
        magnitude = abs(entry.amount)
        return [
            (entry.account_id, -magnitude),
            (entry.destination_account_id, magnitude),
        ]
    return [(entry.account_id, entry.amount)]


def _post(db: Session, effects: List[Tuple[str, float]], entry: LedgerEntry, action: str) -> None:
    try:
        for account_id, delta in effects:
            update_balance(db, account_id, delta)
    except (SQLAlchemyError, HTTPException) as exc:
        logger.error(
            "balance %s failed transaction=%s accounts=%s: %s",
            action,
            entry.transaction_id,
            [account_id for account_id, _ in effects],
            exc,
        )
        raise HTTPException(status_code=500, detail="balance update failed") from exc


def apply_transaction(db: Session, entry: LedgerEntry) -> None:
    """
    Post the entry's effect on its account(s). Runs inside the caller's
    session transaction; the caller commits or rolls back.
    """
    _post(db, balance_effects(entry), entry, "apply")


def reverse_transaction(db: Session, entry: LedgerEntry) -> None:
    """Exact inverse of apply_transaction for the same entry."""
    effects = [(account_id, -delta) for account_id, delta in balance_effects(entry)]
    _post(db, effects, entry, "reverse")
