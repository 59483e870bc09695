from __future__ import annotations

import calendar
import math
from dataclasses import dataclass
from datetime import date
import statistics
from typing import Dict, Iterable, List, Literal

Trend = Literal["increasing", "decreasing", "stable"]

TREND_THRESHOLD_PCT = 5.0
MIN_MONTHS_FOR_WEIGHTING = 3
LOW_CONFIDENCE = 0.3


@dataclass(frozen=True)
class MonthlyAggregate:
    month: str  # "YYYY-MM"
    amount: float


@dataclass(frozen=True)
class Forecast:
    amount: float
    confidence: float


def month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def shift_months(d: date, months: int) -> date:
    """Move by whole calendar months, clamping the day to the target month's length."""
    index = d.year * 12 + (d.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(d.day, last_day))


def aggregate_by_month(txns: Iterable) -> List[MonthlyAggregate]:
    """
    Sum |amount| per calendar month of txn.date.
    Months come back in first-seen order; callers sort when they need to.
    """
    totals: Dict[str, float] = {}
    for txn in txns:
        key = month_key(txn.date)
        totals[key] = totals.get(key, 0.0) + abs(float(txn.amount or 0.0))
    return [MonthlyAggregate(month=m, amount=amt) for m, amt in totals.items()]


def weighted_moving_average(monthly: List[MonthlyAggregate]) -> Forecast:
    """
    Linear weights 1..n, oldest to newest.

    confidence = (1 - min(cv, 1)) * min(n / 12, 1), where cv is the population
    std dev around the weighted average divided by that average.
    Fewer than 3 months: simple mean at fixed 0.3 confidence.
    """
    if len(monthly) < MIN_MONTHS_FOR_WEIGHTING:
        if not monthly:
            return Forecast(amount=0.0, confidence=LOW_CONFIDENCE)
        return Forecast(
            amount=statistics.fmean(m.amount for m in monthly),
            confidence=LOW_CONFIDENCE,
        )

    ordered = sorted(monthly, key=lambda m: m.month)
    amounts = [m.amount for m in ordered]
    weights = range(1, len(amounts) + 1)

    weighted_average = sum(a * w for a, w in zip(amounts, weights)) / sum(weights)
    if weighted_average == 0:
        return Forecast(amount=0.0, confidence=0.0)

    variance = sum((a - weighted_average) ** 2 for a in amounts) / len(amounts)
    std_dev = math.sqrt(variance)
    coefficient_of_variation = std_dev / weighted_average

    confidence = (1 - min(coefficient_of_variation, 1.0)) * min(len(amounts) / 12, 1.0)
    return Forecast(amount=weighted_average, confidence=confidence)


def percent_change(predicted: float, actual: float) -> float:
    if not actual:
        return 0.0
    return (predicted - actual) / actual * 100


def trend_label(pct: float) -> Trend:
    if pct > TREND_THRESHOLD_PCT:
        return "increasing"
    if pct < -TREND_THRESHOLD_PCT:
        return "decreasing"
    return "stable"


def fill_missing_months(
    monthly: List[MonthlyAggregate],
    start: date,
    end: date,
) -> List[MonthlyAggregate]:
    """Zero-fill every calendar month in [start, end]; result sorted ascending."""
    by_month = {m.month: m for m in monthly}
    cursor = date(start.year, start.month, 1)
    last = date(end.year, end.month, 1)
    while cursor <= last:
        key = month_key(cursor)
        by_month.setdefault(key, MonthlyAggregate(month=key, amount=0.0))
        cursor = shift_months(cursor, 1)
    return sorted(by_month.values(), key=lambda m: m.month)
