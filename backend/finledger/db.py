"""
Database wiring.

One engine per process, built from DATABASE_URL (SQLALCHEMY_DATABASE_URL is
accepted as an alias). Request handlers get a session from get_db; code that
fans work out to threads opens its own sessions via session_factory_for.
"""

from __future__ import annotations

import os
from typing import Iterator

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

load_dotenv()

SESSION_OPTIONS = {"autoflush": False, "autocommit": False, "future": True}


def database_url() -> str:
    url = os.getenv("DATABASE_URL") or os.getenv("SQLALCHEMY_DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL (or SQLALCHEMY_DATABASE_URL) is not set; finledger needs a database.")
    return url


def make_engine(url: str) -> Engine:
    # sqlite connections are shared with the threadpool FastAPI runs sync routes on
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, future=True, connect_args=connect_args)


engine = make_engine(database_url())
SessionLocal = sessionmaker(bind=engine, **SESSION_OPTIONS)


class Base(DeclarativeBase):
    pass


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def session_factory_for(db: Session) -> sessionmaker:
    """Sessions on the same engine as `db`; never share one session across threads."""
    return sessionmaker(bind=db.get_bind(), **SESSION_OPTIONS)
