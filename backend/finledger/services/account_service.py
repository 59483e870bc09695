from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from backend.finledger.models import Account, Transaction



def find_account(db: Session, account_id: str, user_id: str) -> Account:
    account = db.execute(
        select(Account).where(Account.id == account_id, Account.user_id == user_id)
    ).scalar_one_or_none()
    if not account:
        raise HTTPException(status_code=404, detail="account not found")
    return account


def list_accounts(db: Session, user_id: str) -> List[Account]:
    return (
        db.execute(select(Account).where(Account.user_id == user_id).order_by(Account.name.asc()))
        .scalars()
        .all()
    )


def create_account(
    db: Session,
    user_id: str,
    *,
    name: str,
    type: str = "checking",
    initial_balance: float = 0.0,
    institution: Optional[str] = None,
    color: Optional[str] = None,
) -> Account:
    account = Account(
        user_id=user_id,
        name=name,
        type=type,
        balance=round(float(initial_balance or 0.0), 2),
        institution=institution,
    )
    if color:
        account.color = color
    db.add(account)
    db.commit()
    db.refresh(account)
    return account


def update_balance(db: Session, account_id: str, delta: float) -> Account:
    """
    Add `delta` to the account balance.

    The row is re-read under FOR UPDATE (a no-op on SQLite) so concurrent
    writers on the same account serialize. Does not commit.
    """
    account = db.execute(
        select(Account)
        .where(Account.id == account_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if not account:
        raise HTTPException(status_code=404, detail="account not found")

    account.balance = round(float(account.balance or 0.0) + float(delta), 2)
    db.flush()
    return account


def has_transactions_for_account(db: Session, account_id: str) -> bool:
    row = db.execute(
        select(Transaction.id)
        .where(
            or_(
                Transaction.account_id == account_id,
                Transaction.destination_account_id == account_id,
            )
        )
        .limit(1)
    ).first()
    return row is not None


ACCOUNT_UPDATABLE_FIELDS = ("name", "type", "institution", "color", "is_active")


def update_account(db: Session, account_id: str, user_id: str, changes: Dict[str, Any]) -> Account:
    """
    Patch descriptive fields. The balance is owned by the ledger, so
    initial_balance (or balance) in `changes` is ignored.
    """
    account = find_account(db, account_id, user_id)
    for field, value in changes.items():
        if field in ACCOUNT_UPDATABLE_FIELDS and (value is not None or field == "institution"):
            setattr(account, field, value)
    db.commit()
    db.refresh(account)
    return account


def delete_account(db: Session, account_id: str, user_id: str) -> None:
    account = find_account(db, account_id, user_id)
    if has_transactions_for_account(db, account.id):
        raise HTTPException(
            status_code=403,
            detail="account has transactions; deactivate it instead of deleting",
        )
    db.delete(account)
    db.commit()


def accounts_summary(db: Session, user_id: str) -> Dict[str, Any]:
    accounts = list_accounts(db, user_id)
    total = sum(float(a.balance or 0.0) for a in accounts)
    return {"total_balance": round(total, 2), "account_count": len(accounts)}
