from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from backend.finledger.api.config import (
    auto_apply_threshold,
    classifier_min_probability,
    classifier_training_limit,
)
from backend.finledger.norma.category_model import category_model

router = APIRouter(prefix="/api", tags=["config"])


class ConfigOut(BaseModel):
    auto_apply_threshold: float
    classifier_min_probability: float
    classifier_training_limit: int
    classifier_trained: bool
    classifier_documents: int


@router.get("/config", response_model=ConfigOut)
def get_config() -> ConfigOut:
    return ConfigOut(
        auto_apply_threshold=auto_apply_threshold(),
        classifier_min_probability=classifier_min_probability(),
        classifier_training_limit=classifier_training_limit(),
        classifier_trained=category_model.is_trained,
        classifier_documents=category_model.document_count,
    )
