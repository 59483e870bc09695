from __future__ import annotations

from fastapi import Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.finledger.db import get_db
from backend.finledger.models import User
from backend.finledger.services.category_service import create_default_categories


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
) -> User:
    """
    Header-based identity.

      - X-User-Email (preferred; a missing user is provisioned with the default categories)
      - X-User-Id    (fallback; must already exist)
    """
    email = request.headers.get("X-User-Email")
    user_id = request.headers.get("X-User-Id")
    if not email and not user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Email or X-User-Id header")

    if email:
        normalized = email.strip().lower()
        if not normalized:
            raise HTTPException(status_code=401, detail="Invalid X-User-Email header")

        user = db.execute(select(User).where(User.email == normalized)).scalars().first()
        if not user:
            user = User(email=normalized, name=normalized.split("@")[0])
            db.add(user)
            db.flush()
            create_default_categories(db, user.id)
            db.commit()
            db.refresh(user)
        return user

    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="Unknown X-User-Id")
    return user
