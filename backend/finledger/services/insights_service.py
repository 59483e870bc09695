from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timezone
import logging
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from backend.finledger.analytics.forecast import percent_change, trend_label
from backend.finledger.db import session_factory_for
from backend.finledger.services.anomaly_detection_service import (
    detect_anomalies,
    detect_unusual_frequency,
)
from backend.finledger.services.spending_prediction_service import (
    predict_next_month_spending,
    prediction_summary,
)

logger = logging.getLogger(__name__)

TOP_CATEGORIES = 5
DASHBOARD_ANOMALIES = 3
DASHBOARD_RECURRENCES = 3


def dashboard_insights(
    db: Session,
    user_id: str,
    *,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Predictions, anomalies and overdue recurrences in one payload.

    The three reads run concurrently, each on its own session bound to the
    request's engine; sessions are never shared between threads.
    """
    today = today or date.today()
    make_session = session_factory_for(db)

    def run(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        session = make_session()
        try:
            return fn(session, user_id, *args, today=today, **kwargs)
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=3) as pool:
        predictions_f = pool.submit(run, predict_next_month_spending)
        anomalies_f = pool.submit(run, detect_anomalies, DASHBOARD_ANOMALIES)
        recurrences_f = pool.submit(run, detect_unusual_frequency)

        predictions = predictions_f.result()
        anomalies = anomalies_f.result()
        recurrences = recurrences_f.result()

    summary = prediction_summary(predictions)
    change = percent_change(summary["total_next_month"], summary["total_current_month"])

    return {
        "spending_insights": {
            "total_current_month": summary["total_current_month"],
            "total_next_month": summary["total_next_month"],
            "percent_change": change,
            "trend": trend_label(change),
            "top_categories": predictions[:TOP_CATEGORIES],
        },
        "anomalies": anomalies,
        "missing_recurrences": recurrences[:DASHBOARD_RECURRENCES],
        "last_updated": datetime.now(timezone.utc),
    }
