"""
Dashboard aggregates over completed service records.
"""

from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List

from .models import ServiceRecord

CHART_DAYS = 30
BREAKUP_DAYS = 12 * 30


def total_revenue(records: Iterable[ServiceRecord]) -> float:
    return round(sum(record.total_cost for record in records), 2)


def daily_revenue(records: Iterable[ServiceRecord], today: date) -> List[Dict[str, Any]]:
    """Revenue per day for the last CHART_DAYS days, ending today, zero-filled."""
    per_day: Dict[str, float] = defaultdict(float)
    for record in records:
        per_day[record.created_at.date().isoformat()] += record.total_cost

    first = today - timedelta(days=CHART_DAYS - 1)
    days = []
    for offset in range(CHART_DAYS):
        day = (first + timedelta(days=offset)).isoformat()
        days.append({"date": day, "revenue": round(per_day.get(day, 0.0), 2)})
    return days


def yearly_breakup(records: Iterable[ServiceRecord]) -> List[Dict[str, Any]]:
    """Revenue per YYYY-MM month, oldest first. Only months with revenue appear."""
    per_month: Dict[str, float] = defaultdict(float)
    for record in records:
        per_month[record.created_at.strftime("%Y-%m")] += record.total_cost

    return [{"month": month, "revenue": round(per_month[month], 2)} for month in sorted(per_month)]


def chart_window_start(now: datetime) -> datetime:
    start = now - timedelta(days=CHART_DAYS - 1)
    return start.replace(hour=0, minute=0, second=0, microsecond=0)


def breakup_window_start(now: datetime) -> datetime:
    return now - timedelta(days=BREAKUP_DAYS)


def month_start(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
