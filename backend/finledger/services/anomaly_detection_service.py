from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from backend.finledger.analytics.outliers import (
    anomaly_reason,
    anomaly_score,
    category_stats,
    group_similar,
    is_outlier,
    is_overdue,
    recurring_groups,
    z_score,
)
from backend.finledger.services.transaction_service import find_by_period

logger = logging.getLogger(__name__)

ANOMALY_WINDOW_DAYS = 90
RECURRENCE_WINDOW_DAYS = 180
MIN_TRANSACTIONS = 5
MIN_GROUP_SIZE = 3
UNCATEGORIZED_SCORE = 0.7
UNKNOWN_CATEGORY = "Unknown"


@dataclass(frozen=True)
class AnomalyDetection:
    transaction_id: str
    description: Optional[str]
    amount: float
    date: date
    category_id: Optional[str]
    category_name: str
    anomaly_score: float  # 0..1
    reason: str


@dataclass(frozen=True)
class MissingRecurrence:
    description: Optional[str]
    category: str
    last_date: date
    expected_date: date
    days_past_due: float
    average_amount: float


def _category_name(txn) -> str:
    return txn.category.name if txn.category is not None else UNKNOWN_CATEGORY


def detect_anomalies(
    db: Session,
    user_id: str,
    max_results: int = 5,
    *,
    today: Optional[date] = None,
) -> List[AnomalyDetection]:
    """
    Flag paid transactions of the last 90 days whose amount sits more than two
    standard deviations from their category mean, plus every uncategorized one.
    """
    today = today or date.today()
    try:
        txns = find_by_period(db, user_id, today - timedelta(days=ANOMALY_WINDOW_DAYS), today)
        if len(txns) < MIN_TRANSACTIONS:
            return []

        by_category: Dict[str, List] = {}
        for txn in txns:
            if txn.category_id:
                by_category.setdefault(txn.category_id, []).append(txn)

        anomalies: List[AnomalyDetection] = []
        for category_id, group in by_category.items():
            if len(group) < MIN_GROUP_SIZE:
                continue

            stats = category_stats([t.amount for t in group])
            if stats.std_dev == 0:
                continue

            for txn in group:
                z = z_score(txn.amount, stats)
                if not is_outlier(z):
                    continue
                anomalies.append(
                    AnomalyDetection(
                        transaction_id=txn.id,
                        description=txn.description,
                        amount=float(txn.amount),
                        date=txn.date,
                        category_id=category_id,
                        category_name=_category_name(txn),
                        anomaly_score=anomaly_score(z),
                        reason=anomaly_reason(txn.amount, stats),
                    )
                )

        for txn in txns:
            if txn.category_id:
                continue
            anomalies.append(
                AnomalyDetection(
                    transaction_id=txn.id,
                    description=txn.description,
                    amount=float(txn.amount),
                    date=txn.date,
                    category_id=None,
                    category_name="Uncategorized",
                    anomaly_score=UNCATEGORIZED_SCORE,
                    reason="Uncategorized transaction",
                )
            )
    except Exception:
        logger.exception("anomaly detection failed user=%s", user_id)
        return []

    anomalies.sort(key=lambda a: a.anomaly_score, reverse=True)
    return anomalies[:max_results]


def detect_unusual_frequency(
    db: Session,
    user_id: str,
    *,
    today: Optional[date] = None,
) -> List[MissingRecurrence]:
    """
    Find recurring transactions (regular intervals over the last 180 days)
    whose next occurrence is overdue by more than half an interval.
    """
    today = today or date.today()
    try:
        txns = find_by_period(db, user_id, today - timedelta(days=RECURRENCE_WINDOW_DAYS), today)

        results: List[MissingRecurrence] = []
        for group in recurring_groups(group_similar(txns), MIN_GROUP_SIZE):
            last = group.last
            days_since_last = (today - last.date).days
            if not is_overdue(days_since_last, group.avg_interval):
                continue

            amounts = [float(t.amount) for t in group.transactions]
            results.append(
                MissingRecurrence(
                    description=last.description,
                    category=_category_name(last),
                    last_date=last.date,
                    expected_date=last.date + timedelta(days=round(group.avg_interval)),
                    days_past_due=days_since_last - group.avg_interval,
                    average_amount=abs(sum(amounts) / len(amounts)),
                )
            )
    except Exception:
        logger.exception("recurrence check failed user=%s", user_id)
        return []

    return results
