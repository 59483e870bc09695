from __future__ import annotations

from dataclasses import dataclass
import math
import statistics
from typing import Dict, List, Optional, Sequence

from backend.finledger.norma.normalize import descriptions_similar, normalize_text

Z_SCORE_THRESHOLD = 2.0
Z_SCORE_CAP = 4.0
RECURRING_MAX_CV = 0.3
OVERDUE_FACTOR = 1.5


@dataclass(frozen=True)
class CategoryStats:
    mean: float
    median: float
    std_dev: float
    min: float
    max: float


@dataclass(frozen=True)
class RecurringGroup:
    key: str
    transactions: List  # oldest first
    avg_interval: float
    std_dev: float

    @property
    def last(self):
        return self.transactions[-1]


def category_stats(amounts: Sequence[float]) -> CategoryStats:
    """Population statistics over signed amounts."""
    values = [float(a) for a in amounts]
    mean = sum(values) / len(values)
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    return CategoryStats(
        mean=mean,
        median=statistics.median(values),
        std_dev=math.sqrt(variance),
        min=min(values),
        max=max(values),
    )


def z_score(amount: float, stats: CategoryStats) -> Optional[float]:
    """|amount - mean| / std; None when the group has no spread."""
    if stats.std_dev == 0:
        return None
    return abs(float(amount) - stats.mean) / stats.std_dev


def is_outlier(z: Optional[float]) -> bool:
    return z is not None and z > Z_SCORE_THRESHOLD


def anomaly_score(z: float) -> float:
    return min(z / Z_SCORE_CAP, 1.0)


def anomaly_reason(amount: float, stats: CategoryStats) -> str:
    amount = float(amount)
    pct = abs(amount - stats.mean) / abs(stats.mean) * 100 if stats.mean else 0.0

    if amount > stats.mean:
        if amount > stats.max * 0.9:
            return f"Exceptionally high amount - {pct:.0f}% above the average for this category"
        return f"Above normal amount - {pct:.0f}% higher than the average for this category"
    if amount < stats.min * 1.1:
        return f"Exceptionally low amount - {pct:.0f}% below the average for this category"
    return f"Below normal amount - {pct:.0f}% lower than the average for this category"


# -------------------------
# Recurrence
# -------------------------

def group_similar(txns: Sequence) -> Dict[str, List]:
    """
    Group by normalized description; a transaction joins the first existing
    group whose key contains or is contained in its description. Blank
    descriptions are left out.
    """
    groups: Dict[str, List] = {}
    for txn in txns:
        desc = normalize_text(txn.description)
        if not desc:
            continue
        for key in groups:
            if descriptions_similar(desc, key):
                groups[key].append(txn)
                break
        else:
            groups[desc] = [txn]
    return groups


def recurring_groups(groups: Dict[str, List], min_size: int = 3) -> List[RecurringGroup]:
    out: List[RecurringGroup] = []
    for key, members in groups.items():
        if len(members) < min_size:
            continue

        ordered = sorted(members, key=lambda t: t.date)
        intervals = [(b.date - a.date).days for a, b in zip(ordered, ordered[1:])]
        avg = sum(intervals) / len(intervals)
        if avg <= 0:
            continue

        std = math.sqrt(sum((i - avg) ** 2 for i in intervals) / len(intervals))
        if std / avg < RECURRING_MAX_CV:
            out.append(RecurringGroup(key=key, transactions=ordered, avg_interval=avg, std_dev=std))
    return out


def is_overdue(days_since_last: int, avg_interval: float) -> bool:
    return days_since_last > avg_interval * OVERDUE_FACTOR
