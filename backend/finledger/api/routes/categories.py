from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from backend.finledger.api.deps import get_current_user
from backend.finledger.db import get_db
from backend.finledger.models import CategoryType, User
from backend.finledger.services import category_service

router = APIRouter(prefix="/api/categories", tags=["categories"])


class CategoryIn(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    type: CategoryType = "expense"
    color: Optional[str] = None
    icon: Optional[str] = None


class CategoryPatchIn(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    type: Optional[CategoryType] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    is_active: Optional[bool] = None


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    type: str
    color: str
    icon: Optional[str] = None
    is_active: bool


@router.post("", response_model=CategoryOut, status_code=201)
def create_category(
    req: CategoryIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return category_service.create_category(
        db, user.id, name=req.name, type=req.type, color=req.color, icon=req.icon
    )


@router.get("", response_model=List[CategoryOut])
def list_categories(
    type: Optional[CategoryType] = Query(default=None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return category_service.find_categories(db, user.id, type)


@router.get("/{category_id}", response_model=CategoryOut)
def get_category(
    category_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return category_service.find_category(db, category_id, user.id)


@router.patch("/{category_id}", response_model=CategoryOut)
def update_category(
    category_id: str,
    req: CategoryPatchIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return category_service.update_category(db, category_id, user.id, req.model_dump(exclude_unset=True))


@router.delete("/{category_id}", status_code=204)
def delete_category(
    category_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    category_service.delete_category(db, category_id, user.id)
