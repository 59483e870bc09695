from __future__ import annotations

import datetime as dt
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from backend.finledger.api.deps import get_current_user
from backend.finledger.db import get_db
from backend.finledger.models import User
from backend.finledger.services.anomaly_detection_service import (
    detect_anomalies,
    detect_unusual_frequency,
)
from backend.finledger.services.auto_categorization_service import (
    learn_from_feedback,
    suggest_category,
)
from backend.finledger.services.category_service import find_category
from backend.finledger.services.insights_service import dashboard_insights
from backend.finledger.services.spending_prediction_service import (
    get_category_trend,
    predict_next_month_spending,
    prediction_summary,
)

router = APIRouter(prefix="/api/smart-analytics", tags=["smart-analytics"])


class CategorySuggestionOut(BaseModel):
    category_id: Optional[str] = None
    category_name: Optional[str] = None
    confidence: float
    source: Optional[str] = None


class CategoryFeedbackIn(BaseModel):
    transaction_id: str
    category_id: str


class CategoryFeedbackOut(BaseModel):
    learned: bool


class CategoryPredictionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    category_id: str
    category_name: str
    current_month_actual: float
    next_month_prediction: float
    trend: str
    confidence: float


class PredictionSummaryOut(BaseModel):
    total_current_month: float
    total_next_month: float
    categories: int


class SpendingPredictionsOut(BaseModel):
    predictions: List[CategoryPredictionOut]
    summary: PredictionSummaryOut


class MonthlyAmountOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    month: str
    amount: float


class AnomalyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    transaction_id: str
    description: Optional[str] = None
    amount: float
    date: dt.date
    category_id: Optional[str] = None
    category_name: str
    anomaly_score: float
    reason: str


class MissingRecurrenceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    description: Optional[str] = None
    category: str
    last_date: dt.date
    expected_date: dt.date
    days_past_due: float
    average_amount: float


class SpendingInsightsOut(BaseModel):
    total_current_month: float
    total_next_month: float
    percent_change: float
    trend: str
    top_categories: List[CategoryPredictionOut]


class DashboardOut(BaseModel):
    spending_insights: SpendingInsightsOut
    anomalies: List[AnomalyOut]
    missing_recurrences: List[MissingRecurrenceOut]
    last_updated: dt.datetime


@router.get("/suggest-category", response_model=CategorySuggestionOut)
def suggest(
    description: str = Query("", max_length=500),
    amount: float = Query(...),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    suggestion = suggest_category(db, description, amount, user.id)
    if not suggestion:
        return CategorySuggestionOut(confidence=0.0)

    category = find_category(db, suggestion.category_id, user.id)
    return CategorySuggestionOut(
        category_id=category.id,
        category_name=category.name,
        confidence=suggestion.confidence,
        source=suggestion.source,
    )


@router.post("/category-feedback", response_model=CategoryFeedbackOut)
def category_feedback(
    req: CategoryFeedbackIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    learned = learn_from_feedback(db, req.transaction_id, req.category_id, user.id)
    return CategoryFeedbackOut(learned=learned)


@router.get("/spending-predictions", response_model=SpendingPredictionsOut)
def spending_predictions(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    predictions = predict_next_month_spending(db, user.id)
    return SpendingPredictionsOut(
        predictions=[CategoryPredictionOut.model_validate(p) for p in predictions],
        summary=PredictionSummaryOut(**prediction_summary(predictions)),
    )


@router.get("/category-trend/{category_id}", response_model=List[MonthlyAmountOut])
def category_trend(
    category_id: str,
    months: int = Query(12, ge=1, le=60),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    find_category(db, category_id, user.id)
    return [MonthlyAmountOut.model_validate(m) for m in get_category_trend(db, user.id, category_id, months)]


@router.get("/anomalies", response_model=List[AnomalyOut])
def anomalies(
    limit: int = Query(5, ge=1, le=100),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return [AnomalyOut.model_validate(a) for a in detect_anomalies(db, user.id, limit)]


@router.get("/missing-recurrences", response_model=List[MissingRecurrenceOut])
def missing_recurrences(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return [MissingRecurrenceOut.model_validate(r) for r in detect_unusual_frequency(db, user.id)]


@router.get("/dashboard", response_model=DashboardOut)
def dashboard(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    insights = dashboard_insights(db, user.id)
    spending = insights["spending_insights"]
    return DashboardOut(
        spending_insights=SpendingInsightsOut(
            total_current_month=spending["total_current_month"],
            total_next_month=spending["total_next_month"],
            percent_change=spending["percent_change"],
            trend=spending["trend"],
            top_categories=[CategoryPredictionOut.model_validate(p) for p in spending["top_categories"]],
        ),
        anomalies=[AnomalyOut.model_validate(a) for a in insights["anomalies"]],
        missing_recurrences=[MissingRecurrenceOut.model_validate(r) for r in insights["missing_recurrences"]],
        last_updated=insights["last_updated"],
    )
