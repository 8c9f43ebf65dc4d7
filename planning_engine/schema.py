"""Core data schema for tasks, reminders and derived progress records."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Union

TASK_STATUSES = ("planned", "in_progress", "completed", "skipped")
DRAFT_MODES = ("time", "duration")
WIN_STATUSES = ("auto", "manual")
REFLECTION_TAGS = ("none", "learned", "progressed", "advanced", "enjoyed")

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
_MONTH_DAY_RE = re.compile(r"^(0[1-9]|1[0-2])-(0[1-9]|[12]\d|3[01])$")


def _check_time(value: str) -> None:
    if not _TIME_RE.match(value or ""):
        raise ValueError(f"Invalid time '{value}', expected HH:MM")


@dataclass
class Task:
    """A committed task occupying a calendar day."""

    id: str
    title: str
    scheduled_for: str
    created_at: datetime
    updated_at: datetime
    description: Optional[str] = None
    start_at: Optional[datetime] = None
    deadline_at: Optional[datetime] = None
    reminder_at: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    progressive: bool = True
    status: str = "planned"
    tags: list[str] = field(default_factory=list)


@dataclass
class TaskDraft:
    """Form-shaped task input, validated by the allocator before commit."""

    title: str = ""
    description: str = ""
    scheduled_for: str = ""
    mode: str = "time"
    start_time: str = ""
    deadline_time: str = ""
    duration_hours: int = 1
    duration_minutes: int = 0
    progressive: bool = True
    tags: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class EveryMinutes:
    interval_minutes: int
    type = "every_minutes"

    def __post_init__(self) -> None:
        if not 1 <= self.interval_minutes <= 24 * 60:
            raise ValueError("interval_minutes must be between 1 and 1440")


@dataclass(frozen=True)
class Hourly:
    minute_mark: int
    type = "hourly"

    def __post_init__(self) -> None:
        if not 0 <= self.minute_mark <= 59:
            raise ValueError("minute_mark must be between 0 and 59")


@dataclass(frozen=True)
class Daily:
    time: str
    type = "daily"

    def __post_init__(self) -> None:
        _check_time(self.time)


@dataclass(frozen=True)
class Weekly:
    """Fires on the given ISO weekdays (Monday=0) at ``time``."""

    days_of_week: tuple[int, ...]
    time: str
    type = "weekly"

    def __post_init__(self) -> None:
        object.__setattr__(self, "days_of_week", tuple(self.days_of_week))
        if not self.days_of_week:
            raise ValueError("days_of_week must not be empty")
        if any(not 0 <= day <= 6 for day in self.days_of_week):
            raise ValueError("days_of_week entries must be between 0 and 6")
        _check_time(self.time)


@dataclass(frozen=True)
class Monthly:
    days_of_month: tuple[int, ...]
    time: str
    type = "monthly"

    def __post_init__(self) -> None:
        object.__setattr__(self, "days_of_month", tuple(self.days_of_month))
        if not self.days_of_month:
            raise ValueError("days_of_month must not be empty")
        if any(not 1 <= day <= 31 for day in self.days_of_month):
            raise ValueError("days_of_month entries must be between 1 and 31")
        _check_time(self.time)


@dataclass(frozen=True)
class Yearly:
    """Fires on the given ``MM-DD`` dates at ``time``."""

    dates: tuple[str, ...]
    time: str
    type = "yearly"

    def __post_init__(self) -> None:
        object.__setattr__(self, "dates", tuple(self.dates))
        if not self.dates:
            raise ValueError("dates must not be empty")
        for value in self.dates:
            if not _MONTH_DAY_RE.match(value):
                raise ValueError(f"Invalid date '{value}', expected MM-DD")
        _check_time(self.time)


ReminderSchedule = Union[EveryMinutes, Hourly, Daily, Weekly, Monthly, Yearly]

SCHEDULE_TYPES = {
    "every_minutes": EveryMinutes,
    "hourly": Hourly,
    "daily": Daily,
    "weekly": Weekly,
    "monthly": Monthly,
    "yearly": Yearly,
}


@dataclass
class Reminder:
    """A recurring reminder with a tagged schedule."""

    id: str
    title: str
    schedule: ReminderSchedule
    created_at: datetime
    updated_at: datetime
    description: Optional[str] = None


@dataclass
class DaySummary:
    """Derived per-day progress record, recomputed from the task set."""

    date: str
    completion_rate: float
    total_tasks: int
    completed_tasks: int
    in_progress_tasks: int
    progressive_tasks: int
    progressed: bool
    week_id: str
    fulfilled: bool


@dataclass
class WeekWinEntry:
    status: str = "auto"
    fulfilled: bool = True


@dataclass
class ReflectionEntry:
    """Per-week life reflection shown on the life grid."""

    tag: str
    color: Optional[str] = None

    def __post_init__(self) -> None:
        if self.tag not in REFLECTION_TAGS:
            raise ValueError(f"unknown reflection tag '{self.tag}'")


@dataclass
class Preferences:
    """User-tunable thresholds; defaults apply when a value is missing."""

    reminder_lead_minutes: int = 15
    default_reminder_time: Optional[str] = "09:00"
    day_fulfillment_threshold: int = 40
    week_fulfillment_target: int = 3
    progressive_tasks_per_day: int = 1
    progressive_days_for_week_win: int = 3


@dataclass
class UserProfile:
    name: str
    date_of_birth: str
    allow_notifications: bool = False
    day_start_hour: int = 7
    day_end_hour: int = 23


@dataclass
class AppState:
    """Everything the owning store persists."""

    profile: Optional[UserProfile] = None
    tasks: list[Task] = field(default_factory=list)
    reminders: list[Reminder] = field(default_factory=list)
    preferences: Preferences = field(default_factory=Preferences)
    life_wins: dict[str, WeekWinEntry] = field(default_factory=dict)
    life_reflections: dict[str, ReflectionEntry] = field(default_factory=dict)
    task_tags: list[str] = field(default_factory=list)
    last_notification_sync: Optional[datetime] = None


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, int(value)))


def normalize_preferences(preferences: Optional[Preferences]) -> Preferences:
    """Return a copy of ``preferences`` with every value clamped into range."""

    prefs = preferences or Preferences()
    return Preferences(
        reminder_lead_minutes=_clamp(prefs.reminder_lead_minutes, 0, 720),
        default_reminder_time=prefs.default_reminder_time,
        day_fulfillment_threshold=_clamp(prefs.day_fulfillment_threshold, 10, 100),
        week_fulfillment_target=_clamp(prefs.week_fulfillment_target, 1, 7),
        progressive_tasks_per_day=_clamp(prefs.progressive_tasks_per_day, 0, 24),
        progressive_days_for_week_win=_clamp(prefs.progressive_days_for_week_win, 0, 7),
    )


def create_task_draft(default_start_time: str = "") -> TaskDraft:
    return TaskDraft(start_time=default_start_time or "")
