"""Daily capacity allocation and slot conflict validation."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from planning_engine.schema import Task, TaskDraft

MINUTES_PER_DAY = 24 * 60


def _whole_minutes(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() // 60)


def task_duration_minutes(task: Task) -> int:
    """Minutes a task occupies: explicit duration, else the start-deadline span."""

    if task.duration_minutes is not None:
        return max(0, int(task.duration_minutes))
    if task.start_at and task.deadline_at:
        return max(0, _whole_minutes(task.start_at, task.deadline_at))
    return 0


def total_assigned_minutes(tasks: Iterable[Task], scheduled_for: str, exclude_id: Optional[str] = None) -> int:
    return sum(
        task_duration_minutes(task)
        for task in tasks
        if task.scheduled_for == scheduled_for and task.id != exclude_id
    )


def remaining_minutes(tasks: Iterable[Task], scheduled_for: str, exclude_id: Optional[str] = None) -> dict:
    """Return assigned and remaining minutes for a day."""

    assigned = total_assigned_minutes(tasks, scheduled_for, exclude_id)
    capped = min(MINUTES_PER_DAY, assigned)
    return {"assigned": assigned, "remaining": max(0, MINUTES_PER_DAY - capped)}


def format_minutes(total_minutes: int) -> str:
    minutes = max(0, int(total_minutes))
    hours, remainder = divmod(minutes, 60)
    if hours == 0:
        return f"{remainder}m"
    if remainder == 0:
        return f"{hours}h"
    return f"{hours}h {remainder}m"


def _parse_clock(value: str) -> Optional[tuple[int, int]]:
    try:
        hours_raw, minutes_raw = value.split(":")
        hours, minutes = int(hours_raw), int(minutes_raw)
    except (ValueError, AttributeError):
        return None
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        return None
    return hours, minutes


def combine_date_time(date_iso: str, time: str) -> Optional[datetime]:
    """Combine an ISO date and an ``HH:MM`` clock time into a local datetime."""

    if not time:
        return None
    clock = _parse_clock(time)
    if clock is None:
        return None
    try:
        day = date.fromisoformat(date_iso)
    except (TypeError, ValueError):
        return None
    return datetime(day.year, day.month, day.day, clock[0], clock[1])


def time_label(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.strftime("%H:%M")


def draft_duration_minutes(draft: TaskDraft) -> Optional[int]:
    """Minutes a draft would occupy, or ``None`` when it cannot be known yet."""

    if draft.mode == "duration":
        return max(0, (draft.duration_hours or 0) * 60 + (draft.duration_minutes or 0))
    start = combine_date_time(draft.scheduled_for, draft.start_time)
    end = combine_date_time(draft.scheduled_for, draft.deadline_time)
    if start is None or end is None:
        return None
    return max(0, _whole_minutes(start, end))


def can_fit_duration(remaining: int, draft: TaskDraft) -> bool:
    candidate = draft_duration_minutes(draft)
    if candidate is None:
        return True
    return candidate <= remaining


def build_reminder_at(start_at: Optional[datetime], lead_minutes: int) -> Optional[datetime]:
    """Single-shot reminder instant for a task: ``start_at`` minus the lead time."""

    if start_at is None:
        return None
    if not lead_minutes or lead_minutes <= 0:
        return start_at
    return start_at - timedelta(minutes=lead_minutes)


def draft_from_task(task: Task, fallback_start_time: str = "") -> TaskDraft:
    """Turn a committed task back into an editable draft."""

    is_duration = task.duration_minutes is not None and task.duration_minutes > 0
    total = max(0, task.duration_minutes or 0)
    if is_duration:
        start_time = ""
    elif task.start_at:
        start_time = task.start_at.strftime("%H:%M")
    else:
        start_time = fallback_start_time
    deadline_time = "" if is_duration or not task.deadline_at else task.deadline_at.strftime("%H:%M")
    return TaskDraft(
        title=task.title,
        description=task.description or "",
        scheduled_for=task.scheduled_for,
        mode="duration" if is_duration else "time",
        start_time=start_time,
        deadline_time=deadline_time,
        duration_hours=total // 60 if is_duration else 1,
        duration_minutes=total % 60 if is_duration else 0,
        progressive=task.progressive,
        tags=list(task.tags),
    )


def _capacity_error(assigned: int) -> dict:
    remaining = max(0, MINUTES_PER_DAY - assigned)
    if remaining == 0:
        return {"error": "This day is already fully allocated."}
    return {"error": f"Only {format_minutes(remaining)} left on this day ({remaining} minutes remaining)."}


def _conflicts(task: Task, start: datetime, deadline: Optional[datetime]) -> bool:
    existing_start = task.start_at
    existing_deadline = task.deadline_at

    if existing_start == start:
        return True
    if deadline and existing_deadline:
        return start < existing_deadline and existing_start < deadline
    if deadline and not existing_deadline:
        return start < existing_start < deadline
    if not deadline and existing_deadline:
        return existing_start < start < existing_deadline
    return False


def find_conflict(
    tasks: Iterable[Task],
    scheduled_for: str,
    start: datetime,
    deadline: Optional[datetime],
    exclude_id: Optional[str] = None,
) -> Optional[Task]:
    """First committed task on the same day whose slot collides with the candidate."""

    for task in tasks:
        if task.id == exclude_id or task.scheduled_for != scheduled_for or task.start_at is None:
            continue
        if _conflicts(task, start, deadline):
            return task
    return None


def validate_schedule(
    tasks: list[Task],
    scheduled_for: str,
    draft: TaskDraft,
    exclude_id: Optional[str] = None,
) -> dict:
    """Validate a draft slot for ``scheduled_for``.

    Returns the normalized slot (``duration_minutes`` or ``start_at``/``deadline_at``)
    or ``{"error": message}``. Expected rejections never raise.
    """

    if not scheduled_for:
        return {"error": "Choose a day for this task."}

    if draft.mode == "duration":
        total = max(0, (draft.duration_hours or 0) * 60 + (draft.duration_minutes or 0))
        if total <= 0:
            return {"error": "Set a duration greater than zero."}
        assigned = total_assigned_minutes(tasks, scheduled_for, exclude_id)
        if assigned + total > MINUTES_PER_DAY:
            return _capacity_error(assigned)
        return {"duration_minutes": total}

    start_at = combine_date_time(scheduled_for, draft.start_time)
    deadline_at = combine_date_time(scheduled_for, draft.deadline_time)

    if draft.start_time and start_at is None:
        return {"error": "Start time is invalid."}
    if draft.deadline_time and deadline_at is None:
        return {"error": "Deadline is invalid."}
    if deadline_at and not start_at:
        return {"error": "Set a start time before the deadline."}
    if start_at is None:
        return {}

    if deadline_at is not None:
        if deadline_at <= start_at:
            return {"error": "Deadline must be after the start time."}
        assigned = total_assigned_minutes(tasks, scheduled_for, exclude_id)
        if assigned + _whole_minutes(start_at, deadline_at) > MINUTES_PER_DAY:
            return _capacity_error(assigned)

    conflicting = find_conflict(tasks, scheduled_for, start_at, deadline_at, exclude_id)
    if conflicting is not None:
        start_label = time_label(conflicting.start_at) or "that time"
        end_label = f" to {time_label(conflicting.deadline_at)}" if conflicting.deadline_at else ""
        return {"error": f'"{conflicting.title}" already occupies {start_label}{end_label}.'}

    return {"start_at": start_at, "deadline_at": deadline_at}
