"""In-memory owner of the planner state.

Every mutation goes through here: task slots are validated by the allocator
before they are committed, deletions purge reminder memory in the ticker, and
progress views are recomputed from the current task set on each read.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import date, datetime
from typing import Callable, Optional

from planning_engine import allocator, progress
from planning_engine.schema import (
    TASK_STATUSES,
    AppState,
    DaySummary,
    Preferences,
    ReflectionEntry,
    Reminder,
    ReminderSchedule,
    Task,
    TaskDraft,
    UserProfile,
    WeekWinEntry,
    normalize_preferences,
)
from planning_engine.ticker import ReminderTicker, Trigger

logger = logging.getLogger(__name__)

_PLAIN_TASK_FIELDS = {"title", "description", "progressive", "tags", "status"}


class ScheduleRejected(ValueError):
    """The allocator refused a task slot; the message is meant for the user."""


def create_id() -> str:
    return uuid.uuid4().hex


class PlannerStore:
    def __init__(
        self,
        state: Optional[AppState] = None,
        ticker: Optional[ReminderTicker] = None,
        clock: Callable[[], datetime] = datetime.now,
        id_factory: Callable[[], str] = create_id,
    ) -> None:
        self.state = state or AppState()
        self.state.preferences = normalize_preferences(self.state.preferences)
        self.ticker = ticker
        self.clock = clock
        self.id_factory = id_factory

    @property
    def tasks(self) -> list[Task]:
        return self.state.tasks

    @property
    def reminders(self) -> list[Reminder]:
        return self.state.reminders

    def get_task(self, task_id: str) -> Task:
        for task in self.state.tasks:
            if task.id == task_id:
                return task
        raise KeyError(task_id)

    def get_reminder(self, reminder_id: str) -> Reminder:
        for reminder in self.state.reminders:
            if reminder.id == reminder_id:
                return reminder
        raise KeyError(reminder_id)

    def _validated_slot(self, draft: TaskDraft, exclude_id: Optional[str] = None) -> dict:
        if draft.scheduled_for:
            try:
                date.fromisoformat(draft.scheduled_for)
            except ValueError as exc:
                raise ScheduleRejected(f"Invalid day '{draft.scheduled_for}'.") from exc
        result = allocator.validate_schedule(self.state.tasks, draft.scheduled_for, draft, exclude_id)
        if "error" in result:
            logger.info("rejected slot for %r on %s: %s", draft.title, draft.scheduled_for, result["error"])
            raise ScheduleRejected(result["error"])
        return result

    def _register_tags(self, tags: list[str]) -> None:
        for tag in tags:
            self.add_task_tag(tag)

    def add_task(self, draft: TaskDraft) -> Task:
        slot = self._validated_slot(draft)
        now = self.clock()
        start_at = slot.get("start_at")
        task = Task(
            id=self.id_factory(),
            title=draft.title,
            description=draft.description or None,
            scheduled_for=draft.scheduled_for,
            start_at=start_at,
            deadline_at=slot.get("deadline_at"),
            reminder_at=allocator.build_reminder_at(start_at, self.state.preferences.reminder_lead_minutes),
            duration_minutes=slot.get("duration_minutes"),
            progressive=draft.progressive,
            status="planned",
            tags=list(draft.tags),
            created_at=now,
            updated_at=now,
        )
        self.state.tasks.append(task)
        self._register_tags(task.tags)
        logger.debug("added task %s on %s", task.id, task.scheduled_for)
        return task

    def update_task(self, task_id: str, draft: Optional[TaskDraft] = None, **changes) -> Task:
        """Edit a task.

        Timing changes come in as a ``draft`` and are re-validated against the
        rest of the day; plain fields can be passed as keyword arguments.
        """

        unknown = set(changes) - _PLAIN_TASK_FIELDS
        if unknown:
            raise ValueError(f"Unsupported task fields: {sorted(unknown)}")
        if "status" in changes and changes["status"] not in TASK_STATUSES:
            raise ValueError(f"Invalid status '{changes['status']}'")

        task = self.get_task(task_id)
        if draft is not None:
            slot = self._validated_slot(draft, exclude_id=task_id)
            start_at = slot.get("start_at")
            task = replace(
                task,
                title=draft.title,
                description=draft.description or None,
                scheduled_for=draft.scheduled_for,
                start_at=start_at,
                deadline_at=slot.get("deadline_at"),
                reminder_at=allocator.build_reminder_at(start_at, self.state.preferences.reminder_lead_minutes),
                duration_minutes=slot.get("duration_minutes"),
                progressive=draft.progressive,
                tags=list(draft.tags),
            )
        task = replace(task, **changes, updated_at=self.clock())
        self.state.tasks = [task if item.id == task_id else item for item in self.state.tasks]
        self._register_tags(task.tags)
        return task

    def set_task_status(self, task_id: str, status: str) -> Task:
        return self.update_task(task_id, status=status)

    def delete_task(self, task_id: str) -> None:
        self.get_task(task_id)
        self.state.tasks = [task for task in self.state.tasks if task.id != task_id]
        if self.ticker is not None:
            self.ticker.forget_task(task_id)
        logger.debug("deleted task %s", task_id)

    def add_reminder(self, title: str, schedule: ReminderSchedule, description: Optional[str] = None) -> Reminder:
        now = self.clock()
        reminder = Reminder(
            id=self.id_factory(),
            title=title,
            description=description,
            schedule=schedule,
            created_at=now,
            updated_at=now,
        )
        self.state.reminders.append(reminder)
        return reminder

    def update_reminder(self, reminder_id: str, **changes) -> Reminder:
        unknown = set(changes) - {"title", "description", "schedule"}
        if unknown:
            raise ValueError(f"Unsupported reminder fields: {sorted(unknown)}")
        reminder = replace(self.get_reminder(reminder_id), **changes, updated_at=self.clock())
        self.state.reminders = [reminder if item.id == reminder_id else item for item in self.state.reminders]
        return reminder

    def delete_reminder(self, reminder_id: str) -> None:
        self.get_reminder(reminder_id)
        self.state.reminders = [item for item in self.state.reminders if item.id != reminder_id]
        if self.ticker is not None:
            self.ticker.forget(reminder_id)

    def set_preferences(self, **changes) -> Preferences:
        self.state.preferences = normalize_preferences(replace(self.state.preferences, **changes))
        return self.state.preferences

    def set_profile(self, profile: UserProfile) -> None:
        date.fromisoformat(profile.date_of_birth)
        self.state.profile = profile

    def add_task_tag(self, tag: str) -> None:
        tag = tag.strip()
        if tag and tag not in self.state.task_tags:
            self.state.task_tags = sorted([*self.state.task_tags, tag])

    def remove_task_tag(self, tag: str) -> None:
        """Remove a tag from the catalogue and from every task carrying it."""

        if tag not in self.state.task_tags:
            return
        self.state.task_tags = [item for item in self.state.task_tags if item != tag]
        self.state.tasks = [
            replace(task, tags=[item for item in task.tags if item != tag]) if tag in task.tags else task
            for task in self.state.tasks
        ]

    def set_week_win_manual(self, week_id: str, fulfilled: bool) -> None:
        self.state.life_wins = progress.set_week_win_manual(self.state.life_wins, week_id, fulfilled)

    def reset_week_win(self, week_id: str) -> None:
        self.state.life_wins = progress.reset_week_win(self.state.life_wins, week_id)

    def set_life_reflection(self, week_id: str, tag: str, color: Optional[str] = None) -> None:
        """Tag a week of the life grid; the ``none`` tag clears it."""

        reflections = dict(self.state.life_reflections)
        if tag == "none":
            reflections.pop(week_id, None)
        else:
            reflections[week_id] = ReflectionEntry(tag=tag, color=color or None)
        self.state.life_reflections = reflections

    def remaining_minutes(self, scheduled_for: str, exclude_id: Optional[str] = None) -> dict:
        return allocator.remaining_minutes(self.state.tasks, scheduled_for, exclude_id)

    def day_summaries(self) -> dict[str, DaySummary]:
        anchor = self.state.profile.date_of_birth if self.state.profile else None
        return progress.compute_day_summaries(self.state.tasks, self.state.preferences, anchor)

    def auto_week_wins(self) -> set[str]:
        return progress.derive_auto_week_wins(
            self.day_summaries(), self.state.preferences.progressive_days_for_week_win
        )

    def life_wins(self) -> dict[str, WeekWinEntry]:
        return progress.merge_week_wins(self.state.life_wins, self.auto_week_wins())

    def tick(self) -> list[Trigger]:
        if self.ticker is None:
            return []
        notify_tasks = bool(self.state.profile and self.state.profile.allow_notifications)
        triggers = self.ticker.tick(self.state.reminders, self.state.tasks, notify_tasks=notify_tasks)
        self.state.last_notification_sync = self.ticker.clock()
        return triggers
