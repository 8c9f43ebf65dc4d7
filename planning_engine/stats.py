"""Period ranges and task status summaries."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from planning_engine.progress import week_start
from planning_engine.schema import TASK_STATUSES, Task


@dataclass
class PeriodRange:
    start: date
    end: date
    label: str

    def contains(self, value: str) -> bool:
        return self.start <= date.fromisoformat(value) < self.end


def period_ranges(reference: Optional[date] = None) -> dict[str, PeriodRange]:
    """Week (Monday start), month and year ranges around ``reference``."""

    ref = reference or date.today()
    week_begin = week_start(ref)
    week_end = week_begin + timedelta(weeks=1)
    month_begin = ref.replace(day=1)
    month_end = date(ref.year + (ref.month == 12), ref.month % 12 + 1, 1)
    year_begin = date(ref.year, 1, 1)
    last = week_end - timedelta(days=1)

    return {
        "week": PeriodRange(week_begin, week_end, f"{week_begin:%b} {week_begin.day} - {last:%b} {last.day}"),
        "month": PeriodRange(month_begin, month_end, ref.strftime("%B %Y")),
        "year": PeriodRange(year_begin, date(ref.year + 1, 1, 1), str(ref.year)),
    }


def build_task_summary(tasks: Iterable[Task], period: PeriodRange) -> dict:
    """Status counts and completion/started/dropped rates for tasks in a period."""

    counts = {status: 0 for status in TASK_STATUSES}
    for task in tasks:
        if task.status in counts and period.contains(task.scheduled_for):
            counts[task.status] += 1

    total = sum(counts.values())

    def rate(value: int) -> float:
        return value / total if total else 0.0

    return {
        "total": total,
        "counts": counts,
        "completion_rate": rate(counts["completed"]),
        "started_rate": rate(counts["in_progress"] + counts["completed"]),
        "dropped_rate": rate(counts["skipped"]),
    }


def day_progress(day_start_hour: int, day_end_hour: int, now: Optional[datetime] = None) -> dict:
    """How much of the user's waking day has elapsed at ``now``."""

    current = now or datetime.now()
    midnight = current.replace(hour=0, minute=0, second=0, microsecond=0)
    start = midnight + timedelta(hours=day_start_hour)
    end = midnight + timedelta(hours=day_end_hour)

    total = max(0, int((end - start).total_seconds() // 60))
    elapsed = min(max(int((current - start).total_seconds() // 60), 0), total)
    return {
        "total_minutes": total,
        "minutes_elapsed": elapsed,
        "minutes_remaining": max(total - elapsed, 0),
        "percent_elapsed": 0.0 if total == 0 else min(max(elapsed / total * 100.0, 0.0), 100.0),
    }
