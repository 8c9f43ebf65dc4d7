"""Day summaries and week-win derivation."""

from __future__ import annotations

import re
from collections import Counter
from datetime import date, timedelta
from typing import Iterable, Optional, Union

import numpy as np

from planning_engine.schema import DaySummary, Preferences, Task, WeekWinEntry

DEFAULT_PROGRESSIVE_TASKS_PER_DAY = 1
DEFAULT_PROGRESSIVE_DAYS_FOR_WEEK_WIN = 3

_WEEK_SUFFIX = re.compile(r"-week-(\d+)$")

DateLike = Union[str, date]


def _as_date(value: DateLike) -> date:
    return value if isinstance(value, date) else date.fromisoformat(value)


def week_start(value: DateLike) -> date:
    """Monday of the week containing ``value``."""

    day = _as_date(value)
    return day - timedelta(days=day.weekday())


def week_id_for_date(value: DateLike, anchor: str) -> str:
    """Key of the Monday-start week containing ``value``, counted from the anchor's week."""

    diff = max(0, (week_start(value) - week_start(anchor)).days // 7)
    return f"{anchor}-week-{diff}"


def week_start_date(week_id: str, anchor: str) -> date:
    match = _WEEK_SUFFIX.search(week_id)
    index = int(match.group(1)) if match else 0
    return week_start(anchor) + timedelta(weeks=index)


def compute_day_summaries(
    tasks: Iterable[Task],
    preferences: Optional[Preferences],
    anchor: Optional[str],
) -> dict[str, DaySummary]:
    """Fold tasks into one summary per ``scheduled_for`` date.

    Without an anchor date (no profile yet) there is nothing to key weeks on,
    so the result is empty.
    """

    if not anchor:
        return {}

    totals: Counter = Counter()
    completed: Counter = Counter()
    in_progress: Counter = Counter()
    progressive: Counter = Counter()
    for task in tasks:
        if not task.scheduled_for:
            continue
        totals[task.scheduled_for] += 1
        completed[task.scheduled_for] += task.status == "completed"
        in_progress[task.scheduled_for] += task.status == "in_progress"
        progressive[task.scheduled_for] += bool(task.progressive)

    threshold = DEFAULT_PROGRESSIVE_TASKS_PER_DAY
    if preferences is not None and preferences.progressive_tasks_per_day is not None:
        threshold = preferences.progressive_tasks_per_day

    summaries = {}
    for day, total in totals.items():
        progressed = threshold <= 0 or progressive[day] >= threshold
        summaries[day] = DaySummary(
            date=day,
            completion_rate=completed[day] / total if total else 0.0,
            total_tasks=total,
            completed_tasks=completed[day],
            in_progress_tasks=in_progress[day],
            progressive_tasks=progressive[day],
            progressed=progressed,
            week_id=week_id_for_date(day, anchor),
            fulfilled=progressed,
        )
    return summaries


def progressed_days_per_week(day_summaries: dict[str, DaySummary]) -> dict[str, int]:
    week_ids = [summary.week_id for summary in day_summaries.values() if summary.progressed]
    if not week_ids:
        return {}
    keys, counts = np.unique(np.asarray(week_ids), return_counts=True)
    return {str(key): int(count) for key, count in zip(keys, counts)}


def derive_auto_week_wins(day_summaries: dict[str, DaySummary], week_target: Optional[int]) -> set[str]:
    """Weeks whose progressed-day count reaches ``clamp(week_target, 1, 7)``."""

    if week_target is None:
        week_target = DEFAULT_PROGRESSIVE_DAYS_FOR_WEEK_WIN
    target = min(max(int(week_target), 1), 7)
    return {week_id for week_id, count in progressed_days_per_week(day_summaries).items() if count >= target}


def merge_week_wins(stored: dict[str, WeekWinEntry], auto_wins: Iterable[str]) -> dict[str, WeekWinEntry]:
    """Displayed win state: manual overrides first, then the auto-derived set."""

    merged = {week_id: entry for week_id, entry in stored.items() if entry.status == "manual"}
    for week_id in auto_wins:
        if week_id not in merged:
            merged[week_id] = WeekWinEntry(status="auto", fulfilled=True)
    return merged


def is_week_win(week_id: str, stored: dict[str, WeekWinEntry], auto_wins: set[str]) -> bool:
    entry = stored.get(week_id)
    if entry is not None and entry.status == "manual":
        return entry.fulfilled
    return week_id in auto_wins


def set_week_win_manual(stored: dict[str, WeekWinEntry], week_id: str, fulfilled: bool) -> dict[str, WeekWinEntry]:
    updated = dict(stored)
    updated[week_id] = WeekWinEntry(status="manual", fulfilled=fulfilled)
    return updated


def reset_week_win(stored: dict[str, WeekWinEntry], week_id: str) -> dict[str, WeekWinEntry]:
    """Clear a manual override so the week reverts to its auto-derived state."""

    updated = dict(stored)
    updated.pop(week_id, None)
    return updated


def filter_day_summaries_by_range(
    day_summaries: dict[str, DaySummary], start: DateLike, end: DateLike
) -> dict[str, DaySummary]:
    """Summaries whose date falls in ``[start, end)``."""

    low, high = _as_date(start), _as_date(end)
    return {day: summary for day, summary in day_summaries.items() if low <= _as_date(day) < high}
