from __future__ import annotations

import calendar
from datetime import date, timedelta
import logging
from typing import Any, Dict, List, Optional, Tuple

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from backend.finledger.models import Transaction
from backend.finledger.services.account_service import find_account
from backend.finledger.services.category_service import find_category
from backend.finledger.services.ledger_service import (
    LedgerEntry,
    apply_transaction,
    reverse_transaction,
    signed_amount,
)

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "amount",
    "type",
    "description",
    "date",
    "is_paid",
    "account_id",
    "destination_account_id",
    "category_id",
)
NULLABLE_FIELDS = ("description", "destination_account_id", "category_id")
UNCATEGORIZED_LABEL = "Uncategorized"


def _require_distinct_transfer_accounts(txn_type: str, account_id: str, destination_id: Optional[str]) -> None:
    if txn_type == "transfer" and destination_id and account_id == destination_id:
        raise HTTPException(status_code=400, detail="source and destination accounts must differ")


# -------------------------
# Reads
# -------------------------

def find_transaction(db: Session, transaction_id: str, user_id: str) -> Transaction:
    txn = db.execute(
        select(Transaction)
        .options(joinedload(Transaction.category))
        .where(Transaction.id == transaction_id, Transaction.user_id == user_id)
    ).scalar_one_or_none()
    if not txn:
        raise HTTPException(status_code=404, detail="transaction not found")
    return txn


def find_by_period(db: Session, user_id: str, start: date, end: date) -> List[Transaction]:
    """Paid transactions with start <= date <= end, oldest first."""
    return (
        db.execute(
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(
                Transaction.user_id == user_id,
                Transaction.is_paid.is_(True),
                Transaction.date >= start,
                Transaction.date <= end,
            )
            .order_by(Transaction.date.asc(), Transaction.created_at.asc())
        )
        .scalars()
        .all()
    )


def find_recent(db: Session, user_id: str, limit: int = 100) -> List[Transaction]:
    return (
        db.execute(
            select(Transaction)
            .where(Transaction.user_id == user_id)
            .order_by(Transaction.date.desc(), Transaction.created_at.desc())
            .limit(limit)
        )
        .scalars()
        .all()
    )


def find_categorized(db: Session, limit: int = 5000) -> List[Transaction]:
    """Most recent categorized transactions across all users (model training set)."""
    return (
        db.execute(
            select(Transaction)
            .where(Transaction.category_id.is_not(None))
            .order_by(Transaction.date.desc(), Transaction.created_at.desc())
            .limit(limit)
        )
        .scalars()
        .all()
    )


def list_transactions(
    db: Session,
    user_id: str,
    *,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    type: Optional[str] = None,
    account_id: Optional[str] = None,
    category_id: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = 500,
) -> List[Transaction]:
    stmt = (
        select(Transaction)
        .options(joinedload(Transaction.category))
        .where(Transaction.user_id == user_id)
    )
    if start_date:
        stmt = stmt.where(Transaction.date >= start_date)
    if end_date:
        stmt = stmt.where(Transaction.date <= end_date)
    if type:
        stmt = stmt.where(Transaction.type == type)
    if account_id:
        stmt = stmt.where(Transaction.account_id == account_id)
    if category_id:
        stmt = stmt.where(Transaction.category_id == category_id)
    if search:
        stmt = stmt.where(Transaction.description.ilike(f"%{search}%"))

    stmt = stmt.order_by(Transaction.date.desc(), Transaction.created_at.desc()).limit(limit)
    return db.execute(stmt).scalars().all()


def period_range(period: str, today: Optional[date] = None) -> Tuple[date, date]:
    """
    Inclusive date range for a named period. Unknown names fall back to
    month-to-date.
    """
    today = today or date.today()
    month_start = today.replace(day=1)

    if period == "current-month":
        return month_start, today.replace(day=calendar.monthrange(today.year, today.month)[1])
    if period == "last-month":
        last_month_end = month_start - timedelta(days=1)
        return last_month_end.replace(day=1), last_month_end
    if period == "current-year":
        return date(today.year, 1, 1), date(today.year, 12, 31)
    if period == "last-30-days":
        return today - timedelta(days=30), today
    return month_start, today


def transactions_summary(db: Session, user_id: str, start: date, end: date) -> Dict[str, Any]:
    """
    Income / expense totals of paid transactions in [start, end], with expense
    per category (largest first). Transfers only count towards the row count.
    """
    txns = find_by_period(db, user_id, start, end)

    income = 0.0
    expense = 0.0
    by_category: Dict[str, float] = {}
    for txn in txns:
        amount = abs(float(txn.amount or 0.0))
        if txn.type == "income":
            income += amount
        elif txn.type == "expense":
            expense += amount
            name = txn.category.name if txn.category is not None else UNCATEGORIZED_LABEL
            by_category[name] = by_category.get(name, 0.0) + amount

    categories = sorted(by_category.items(), key=lambda kv: kv[1], reverse=True)
    return {
        "period": {"start": start, "end": end},
        "totals": {
            "income": round(income, 2),
            "expense": round(expense, 2),
            "balance": round(income - expense, 2),
        },
        "categories_by_expense": [{"name": n, "amount": round(a, 2)} for n, a in categories],
        "transaction_count": len(txns),
    }


# -------------------------
# Ledger mutations
# -------------------------

def create_transaction(
    db: Session,
    user_id: str,
    *,
    amount: float,
    type: str,
    date: date,
    account_id: str,
    description: Optional[str] = None,
    is_paid: bool = False,
    destination_account_id: Optional[str] = None,
    category_id: Optional[str] = None,
) -> Transaction:
    find_account(db, account_id, user_id)
    if type == "transfer" and destination_account_id:
        find_account(db, destination_account_id, user_id)
        _require_distinct_transfer_accounts(type, account_id, destination_account_id)
    if category_id:
        find_category(db, category_id, user_id)

    txn = Transaction(
        user_id=user_id,
        amount=signed_amount(type, amount),
        type=type,
        description=description,
        date=date,
        is_paid=bool(is_paid),
        account_id=account_id,
        destination_account_id=destination_account_id if type == "transfer" else None,
        category_id=category_id,
    )

    try:
        db.add(txn)
        db.flush()
        if txn.is_paid:
            apply_transaction(db, LedgerEntry.from_transaction(txn))
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(txn)
    logger.info("transaction created id=%s user=%s paid=%s", txn.id, user_id, txn.is_paid)
    return txn


def update_transaction(
    db: Session,
    transaction_id: str,
    user_id: str,
    changes: Dict[str, Any],
) -> Transaction:
    """
    Apply a partial update.

    Balance protocol: reverse the pre-update entry if it was paid, then apply
    the post-update entry if it is paid. Both happen in one DB transaction.
    """
    txn = find_transaction(db, transaction_id, user_id)
    before = LedgerEntry.from_transaction(txn)

    updates = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS}

    new_account_id = updates.get("account_id")
    if new_account_id and new_account_id != txn.account_id:
        find_account(db, new_account_id, user_id)

    new_destination_id = updates.get("destination_account_id")
    if new_destination_id and new_destination_id != txn.destination_account_id:
        find_account(db, new_destination_id, user_id)

    new_category_id = updates.get("category_id")
    if new_category_id and new_category_id != txn.category_id:
        find_category(db, new_category_id, user_id)

    final_type = updates.get("type") or txn.type
    final_account_id = updates.get("account_id") or txn.account_id
    final_destination_id = (
        updates["destination_account_id"] if "destination_account_id" in updates else txn.destination_account_id
    )
    if final_type != "transfer":
        final_destination_id = None
    _require_distinct_transfer_accounts(final_type, final_account_id, final_destination_id)

    # magnitude carries over when only the type changes
    raw_amount = updates["amount"] if updates.get("amount") is not None else txn.amount
    updates["amount"] = signed_amount(final_type, raw_amount)
    updates["type"] = final_type
    updates["account_id"] = final_account_id
    updates["destination_account_id"] = final_destination_id

    try:
        if before.is_paid:
            reverse_transaction(db, before)

        for field, value in updates.items():
            if field in NULLABLE_FIELDS or value is not None:
                setattr(txn, field, value)
        db.flush()

        if txn.is_paid:
            apply_transaction(db, LedgerEntry.from_transaction(txn))
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(txn)
    logger.info(
        "transaction updated id=%s paid %s->%s amount %s->%s",
        txn.id,
        before.is_paid,
        txn.is_paid,
        before.amount,
        txn.amount,
    )
    return txn


def delete_transaction(db: Session, transaction_id: str, user_id: str) -> None:
    txn = find_transaction(db, transaction_id, user_id)
    before = LedgerEntry.from_transaction(txn)

    try:
        if before.is_paid:
            reverse_transaction(db, before)
        db.delete(txn)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("transaction deleted id=%s user=%s", transaction_id, user_id)
