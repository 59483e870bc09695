from __future__ import annotations

import datetime as dt
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from backend.finledger.api.config import auto_apply_threshold
from backend.finledger.api.deps import get_current_user
from backend.finledger.db import get_db
from backend.finledger.models import TransactionType, User
from backend.finledger.services import transaction_service
from backend.finledger.services.auto_categorization_service import suggest_category

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/transactions", tags=["transactions"])


class TransactionIn(BaseModel):
    amount: float
    type: TransactionType
    date: dt.date
    account_id: str
    description: Optional[str] = Field(default=None, max_length=500)
    is_paid: bool = False
    destination_account_id: Optional[str] = None
    category_id: Optional[str] = None
    auto_categorize: bool = False


class TransactionPatchIn(BaseModel):
    amount: Optional[float] = None
    type: Optional[TransactionType] = None
    date: Optional[dt.date] = None
    account_id: Optional[str] = None
    description: Optional[str] = Field(default=None, max_length=500)
    is_paid: Optional[bool] = None
    destination_account_id: Optional[str] = None
    category_id: Optional[str] = None


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    amount: float
    type: str
    description: Optional[str] = None
    date: dt.date
    is_paid: bool
    account_id: str
    destination_account_id: Optional[str] = None
    category_id: Optional[str] = None
    created_at: dt.datetime
    updated_at: dt.datetime


class PeriodOut(BaseModel):
    start: dt.date
    end: dt.date


class SummaryTotalsOut(BaseModel):
    income: float
    expense: float
    balance: float


class CategoryExpenseOut(BaseModel):
    name: str
    amount: float


class TransactionsSummaryOut(BaseModel):
    period: PeriodOut
    totals: SummaryTotalsOut
    categories_by_expense: List[CategoryExpenseOut]
    transaction_count: int


def _auto_category(db: Session, user_id: str, req: TransactionIn) -> Optional[str]:
    if req.category_id or not req.auto_categorize or req.type == "transfer":
        return req.category_id

    signed = -abs(req.amount) if req.type == "expense" else abs(req.amount)
    suggestion = suggest_category(db, req.description, signed, user_id)
    if suggestion and suggestion.confidence >= auto_apply_threshold():
        logger.info(
            "auto-categorized new transaction category=%s source=%s confidence=%.2f",
            suggestion.category_id,
            suggestion.source,
            suggestion.confidence,
        )
        return suggestion.category_id
    return None


@router.post("", response_model=TransactionOut, status_code=201)
def create_transaction(
    req: TransactionIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return transaction_service.create_transaction(
        db,
        user.id,
        amount=req.amount,
        type=req.type,
        date=req.date,
        account_id=req.account_id,
        description=req.description,
        is_paid=req.is_paid,
        destination_account_id=req.destination_account_id,
        category_id=_auto_category(db, user.id, req),
    )


@router.get("", response_model=List[TransactionOut])
def list_transactions(
    start_date: Optional[dt.date] = Query(default=None),
    end_date: Optional[dt.date] = Query(default=None),
    type: Optional[TransactionType] = Query(default=None),
    account_id: Optional[str] = Query(default=None),
    category_id: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None, max_length=120),
    limit: int = Query(500, ge=1, le=2000),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return transaction_service.list_transactions(
        db,
        user.id,
        start_date=start_date,
        end_date=end_date,
        type=type,
        account_id=account_id,
        category_id=category_id,
        search=search,
        limit=limit,
    )


@router.get("/summary", response_model=TransactionsSummaryOut)
def transactions_summary(
    start_date: Optional[dt.date] = Query(default=None),
    end_date: Optional[dt.date] = Query(default=None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    today = dt.date.today()
    start = start_date or today.replace(day=1)
    end = end_date or today
    return transaction_service.transactions_summary(db, user.id, start, end)


@router.get("/period/{period}", response_model=List[TransactionOut])
def transactions_by_period(
    period: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    start, end = transaction_service.period_range(period)
    return transaction_service.find_by_period(db, user.id, start, end)


@router.get("/{transaction_id}", response_model=TransactionOut)
def get_transaction(
    transaction_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return transaction_service.find_transaction(db, transaction_id, user.id)


@router.patch("/{transaction_id}", response_model=TransactionOut)
def update_transaction(
    transaction_id: str,
    req: TransactionPatchIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return transaction_service.update_transaction(
        db, transaction_id, user.id, req.model_dump(exclude_unset=True)
    )


@router.delete("/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    transaction_service.delete_transaction(db, transaction_id, user.id)
