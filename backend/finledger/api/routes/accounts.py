from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from backend.finledger.api.deps import get_current_user
from backend.finledger.db import get_db
from backend.finledger.models import AccountType, User
from backend.finledger.services import account_service

router = APIRouter(prefix="/api/accounts", tags=["accounts"])


class AccountIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    type: AccountType = "checking"
    initial_balance: float = 0.0
    institution: Optional[str] = None
    color: Optional[str] = None


class AccountPatchIn(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    type: Optional[AccountType] = None
    institution: Optional[str] = None
    color: Optional[str] = None
    is_active: Optional[bool] = None
    # accepted but ignored; balances only move through transactions
    initial_balance: Optional[float] = None


class AccountOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    type: str
    balance: float
    institution: Optional[str] = None
    color: str
    is_active: bool
    created_at: datetime


class AccountsSummaryOut(BaseModel):
    total_balance: float
    account_count: int


@router.post("", response_model=AccountOut, status_code=201)
def create_account(
    req: AccountIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return account_service.create_account(
        db,
        user.id,
        name=req.name,
        type=req.type,
        initial_balance=req.initial_balance,
        institution=req.institution,
        color=req.color,
    )


@router.get("", response_model=List[AccountOut])
def list_accounts(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return account_service.list_accounts(db, user.id)


@router.get("/summary", response_model=AccountsSummaryOut)
def accounts_summary(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return account_service.accounts_summary(db, user.id)


@router.get("/{account_id}", response_model=AccountOut)
def get_account(
    account_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return account_service.find_account(db, account_id, user.id)


@router.patch("/{account_id}", response_model=AccountOut)
def update_account(
    account_id: str,
    req: AccountPatchIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return account_service.update_account(db, account_id, user.id, req.model_dump(exclude_unset=True))


@router.delete("/{account_id}", status_code=204)
def delete_account(
    account_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    account_service.delete_account(db, account_id, user.id)
