"""Recurring reminder evaluation against a wall clock."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, Optional, Protocol

from planning_engine.schema import (
    Daily,
    EveryMinutes,
    Hourly,
    Monthly,
    Reminder,
    ReminderSchedule,
    Weekly,
    Yearly,
)

MINUTE = timedelta(minutes=1)
HOUR = timedelta(hours=1)
DAY = timedelta(days=1)

# Minimum spacing between two fires of the same reminder.
HOURLY_MIN_GAP = HOUR - MINUTE / 2
DAILY_MIN_GAP = DAY - 10 * MINUTE
WEEKLY_MIN_GAP = 7 * DAY - 10 * MINUTE
MONTHLY_MIN_GAP = 27 * DAY
YEARLY_MIN_GAP = 350 * DAY

WEEKDAY_LABELS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


def matches_time(time: str, now: datetime) -> bool:
    hours, minutes = (int(part) for part in time.split(":"))
    return now.hour == hours and now.minute == minutes


def due_now(schedule: ReminderSchedule, now: datetime, last_fired: datetime) -> bool:
    """Decide whether a schedule should fire at ``now`` given its last firing."""

    elapsed = now - last_fired

    if isinstance(schedule, EveryMinutes):
        return elapsed >= schedule.interval_minutes * MINUTE
    if isinstance(schedule, Hourly):
        return now.minute == schedule.minute_mark and elapsed >= HOURLY_MIN_GAP
    if isinstance(schedule, Daily):
        return matches_time(schedule.time, now) and elapsed >= DAILY_MIN_GAP
    if isinstance(schedule, Weekly):
        if now.weekday() not in schedule.days_of_week or not matches_time(schedule.time, now):
            return False
        return elapsed >= WEEKLY_MIN_GAP
    if isinstance(schedule, Monthly):
        if not matches_time(schedule.time, now) or now.day not in schedule.days_of_month:
            return False
        return elapsed >= MONTHLY_MIN_GAP
    if isinstance(schedule, Yearly):
        if not matches_time(schedule.time, now) or now.strftime("%m-%d") not in schedule.dates:
            return False
        return elapsed >= YEARLY_MIN_GAP
    return False


def describe_schedule(schedule: ReminderSchedule) -> Optional[str]:
    """Human-readable description used as the notification body."""

    if isinstance(schedule, EveryMinutes):
        return f"Every {schedule.interval_minutes} minutes"
    if isinstance(schedule, Hourly):
        return f"Every hour at minute {schedule.minute_mark}"
    if isinstance(schedule, Daily):
        return f"Daily at {schedule.time}"
    if isinstance(schedule, Weekly):
        days = ", ".join(WEEKDAY_LABELS[day] for day in schedule.days_of_week)
        return f"Weekly on {days} at {schedule.time}"
    if isinstance(schedule, Monthly):
        days = ", ".join(str(day) for day in schedule.days_of_month)
        return f"Monthly on days {days} at {schedule.time}"
    if isinstance(schedule, Yearly):
        return f"Yearly on {', '.join(schedule.dates)} at {schedule.time}"
    return None


class LastFiredStore(Protocol):
    """Key to timestamp memory of the last firing of each reminder."""

    def get(self, reminder_id: str) -> Optional[datetime]: ...

    def set(self, reminder_id: str, fired_at: datetime) -> None: ...

    def discard(self, reminder_id: str) -> None: ...

    def ids(self) -> list[str]: ...


class InMemoryLastFired:
    """Dict-backed ``LastFiredStore``; reset whenever the process restarts."""

    def __init__(self, initial: Optional[dict[str, datetime]] = None) -> None:
        self._fired: dict[str, datetime] = dict(initial or {})

    def get(self, reminder_id: str) -> Optional[datetime]:
        return self._fired.get(reminder_id)

    def set(self, reminder_id: str, fired_at: datetime) -> None:
        self._fired[reminder_id] = fired_at

    def discard(self, reminder_id: str) -> None:
        self._fired.pop(reminder_id, None)

    def ids(self) -> list[str]:
        return list(self._fired)


def last_fired_for(reminder: Reminder, store: LastFiredStore) -> datetime:
    """Last firing instant, defaulting to the reminder's creation time."""

    fired = store.get(reminder.id)
    return fired if fired is not None else reminder.created_at


def due_reminders(reminders: Iterable[Reminder], now: datetime, store: LastFiredStore) -> list[Reminder]:
    return [reminder for reminder in reminders if due_now(reminder.schedule, now, last_fired_for(reminder, store))]
