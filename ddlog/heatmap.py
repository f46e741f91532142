"""Per-day completion summary for the progress calendar."""
from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from .database import Task, as_utc, utcnow
from .tasks import day_bounds

DEFAULT_WINDOW_DAYS = 365


@dataclass(frozen=True)
class HeatmapDay:
    date: date
    count: int
    level: int


def completion_percent(completed: int, total: int) -> int:
    """Completion percentage rounded half up."""
    if total <= 0:
        return 0
    return (200 * completed + total) // (2 * total)


def heatmap_level(completed: int, total: int) -> int:
    # Integer comparisons so 25/50/75 stay in the lower bucket.
    if total <= 0 or completed <= 0:
        return 0
    scaled = 100 * completed
    if scaled <= 25 * total:
        return 1
    if scaled <= 50 * total:
        return 2
    if scaled <= 75 * total:
        return 3
    return 4


def summarize_days(rows: Iterable[Tuple[datetime, bool]]) -> List[HeatmapDay]:
    totals: "OrderedDict[date, List[int]]" = OrderedDict()
    for created_at, completed in sorted(rows, key=lambda r: as_utc(r[0])):
        day = as_utc(created_at).date()
        bucket = totals.setdefault(day, [0, 0])
        bucket[0] += 1
        if completed:
            bucket[1] += 1

    return [
        HeatmapDay(date=day, count=completion_percent(done, total), level=heatmap_level(done, total))
        for day, (total, done) in totals.items()
    ]


def heatmap(
    session: Session,
    user_id: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    today: Optional[date] = None,
) -> List[HeatmapDay]:
    today = today or utcnow().date()
    end_date = end_date or today
    start_date = start_date or today - timedelta(days=DEFAULT_WINDOW_DAYS)

    lower, _ = day_bounds(start_date)
    _, upper = day_bounds(end_date)
    rows = session.execute(
        select(Task.created_at, Task.completed).where(
            Task.user_id == user_id,
            Task.created_at >= lower,
            Task.created_at < upper,
        )
    ).all()
    return summarize_days((created_at, completed) for created_at, completed in rows)
