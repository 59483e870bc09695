from __future__ import annotations

from dataclasses import dataclass
from datetime import date
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from backend.finledger.analytics.forecast import (
    MonthlyAggregate,
    Trend,
    aggregate_by_month,
    fill_missing_months,
    month_key,
    percent_change,
    shift_months,
    trend_label,
    weighted_moving_average,
)
from backend.finledger.services.category_service import find_categories
from backend.finledger.services.transaction_service import find_by_period

logger = logging.getLogger(__name__)

HISTORY_MONTHS = 12


@dataclass(frozen=True)
class CategoryPrediction:
    category_id: str
    category_name: str
    current_month_actual: float
    next_month_prediction: float
    trend: Trend
    confidence: float


def predict_next_month_spending(
    db: Session,
    user_id: str,
    *,
    today: Optional[date] = None,
) -> List[CategoryPrediction]:
    """
    Per expense category, forecast next month's spend from the last 12 months
    of paid transactions. Categories with no activity in the window are omitted.
    """
    today = today or date.today()
    try:
        categories = find_categories(db, user_id, "expense")
        txns = find_by_period(db, user_id, shift_months(today, -HISTORY_MONTHS), today)
        if not txns:
            return []

        current_month = month_key(today)
        predictions: List[CategoryPrediction] = []
        for category in categories:
            category_txns = [t for t in txns if t.category_id == category.id]
            if not category_txns:
                continue

            monthly = aggregate_by_month(category_txns)
            forecast = weighted_moving_average(monthly)
            current = next((m.amount for m in monthly if m.month == current_month), 0.0)

            predictions.append(
                CategoryPrediction(
                    category_id=category.id,
                    category_name=category.name,
                    current_month_actual=current,
                    next_month_prediction=forecast.amount,
                    trend=trend_label(percent_change(forecast.amount, current)),
                    confidence=forecast.confidence,
                )
            )
    except Exception:
        logger.exception("spending prediction failed user=%s", user_id)
        return []

    predictions.sort(key=lambda p: p.next_month_prediction, reverse=True)
    return predictions


def prediction_summary(predictions: List[CategoryPrediction]) -> Dict[str, Any]:
    return {
        "total_current_month": sum(p.current_month_actual for p in predictions),
        "total_next_month": sum(p.next_month_prediction for p in predictions),
        "categories": len(predictions),
    }


def get_category_trend(
    db: Session,
    user_id: str,
    category_id: str,
    months: int = HISTORY_MONTHS,
    *,
    today: Optional[date] = None,
) -> List[MonthlyAggregate]:
    """Contiguous monthly series (zero-filled) for one category, oldest first."""
    today = today or date.today()
    start = shift_months(today, -months)
    try:
        txns = find_by_period(db, user_id, start, today)
        monthly = aggregate_by_month([t for t in txns if t.category_id == category_id])
        return fill_missing_months(monthly, start, today)
    except Exception:
        logger.exception("category trend failed user=%s category=%s", user_id, category_id)
        return []
