import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.finledger.api.config import log_level
from backend.finledger.api.routes.accounts import router as accounts_router
from backend.finledger.api.routes.categories import router as categories_router
from backend.finledger.api.routes.config import router as config_router
from backend.finledger.api.routes.smart_analytics import router as smart_analytics_router
from backend.finledger.api.routes.transactions import router as transactions_router
from backend.finledger.db import Base, SessionLocal, engine
from backend.finledger.services.auto_categorization_service import train_from_history


logging.basicConfig(level=log_level())
logger = logging.getLogger(__name__)

LOCAL_DEV_ORIGINS = ("http://localhost:5173", "http://127.0.0.1:5173")


def _cors_origins() -> list[str]:
    raw = os.getenv("CORS_ALLOW_ORIGINS")
    if raw is None:
        origins = list(LOCAL_DEV_ORIGINS)
    else:
        origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
    if not origins:
        raise RuntimeError("CORS_ALLOW_ORIGINS must not be empty.")
    if not any(origin in origins for origin in LOCAL_DEV_ORIGINS):
        logger.warning("CORS allowlist does not include local dev origins: %s", origins)
    return origins


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        train_from_history(db)
    finally:
        db.close()
    yield


app = FastAPI(title="finledger API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(accounts_router)
app.include_router(categories_router)
app.include_router(transactions_router)
app.include_router(smart_analytics_router)
app.include_router(config_router)
