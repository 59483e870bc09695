from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.finledger.models import Category, Transaction

DEFAULT_EXPENSE_CATEGORIES = [
    {"name": "Food", "color": "#4CAF50", "icon": "restaurant"},
    {"name": "Transport", "color": "#2196F3", "icon": "directions_car"},
    {"name": "Housing", "color": "#FF9800", "icon": "home"},
    {"name": "Health", "color": "#F44336", "icon": "local_hospital"},
    {"name": "Education", "color": "#9C27B0", "icon": "school"},
    {"name": "Leisure", "color": "#00BCD4", "icon": "sports_esports"},
]

DEFAULT_INCOME_CATEGORIES = [
    {"name": "Salary", "color": "#4CAF50", "icon": "payments"},
    {"name": "Freelance", "color": "#2196F3", "icon": "work"},
    {"name": "Investments", "color": "#FF9800", "icon": "trending_up"},
]


def polarity_for_amount(amount: float) -> str:
    return "expense" if float(amount or 0.0) < 0 else "income"


def find_categories(db: Session, user_id: str, type: Optional[str] = None) -> List[Category]:
    """
    User's categories ordered by name. Filtering by "expense" or "income" also
    returns "both" categories.
    """
    stmt = select(Category).where(Category.user_id == user_id)
    if type:
        stmt = stmt.where(Category.type.in_([type, "both"]))
    return db.execute(stmt.order_by(Category.name.asc(), Category.id.asc())).scalars().all()


def find_category(db: Session, category_id: str, user_id: str) -> Category:
    category = db.execute(
        select(Category).where(Category.id == category_id, Category.user_id == user_id)
    ).scalar_one_or_none()
    if not category:
        raise HTTPException(status_code=404, detail="category not found")
    return category


def create_category(
    db: Session,
    user_id: str,
    *,
    name: str,
    type: str = "expense",
    color: Optional[str] = None,
    icon: Optional[str] = None,
) -> Category:
    category = Category(user_id=user_id, name=name, type=type, icon=icon)
    if color:
        category.color = color
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


CATEGORY_UPDATABLE_FIELDS = ("name", "type", "color", "icon", "is_active")


def update_category(db: Session, category_id: str, user_id: str, changes: Dict[str, Any]) -> Category:
    category = find_category(db, category_id, user_id)
    for field, value in changes.items():
        if field in CATEGORY_UPDATABLE_FIELDS and (value is not None or field == "icon"):
            setattr(category, field, value)
    db.commit()
    db.refresh(category)
    return category


def delete_category(db: Session, category_id: str, user_id: str) -> None:
    category = find_category(db, category_id, user_id)
    in_use = db.execute(
        select(Transaction.id).where(Transaction.category_id == category.id).limit(1)
    ).first()
    if in_use:
        raise HTTPException(
            status_code=403,
            detail="category has transactions; deactivate it instead of deleting",
        )
    db.delete(category)
    db.commit()


def create_default_categories(db: Session, user_id: str) -> List[Category]:
    """Seed the starter category set for a new user. Flushes, does not commit."""
    rows = [
        Category(user_id=user_id, type="expense", **row) for row in DEFAULT_EXPENSE_CATEGORIES
    ] + [
        Category(user_id=user_id, type="income", **row) for row in DEFAULT_INCOME_CATEGORIES
    ]
    db.add_all(rows)
    db.flush()
    return rows
