"""Periodic reminder ticker: evaluates schedules and hands triggers to a notifier."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from planning_engine.notify import Notifier
from planning_engine.recurrence import InMemoryLastFired, LastFiredStore, describe_schedule, due_now, last_fired_for
from planning_engine.schema import Reminder, Task

logger = logging.getLogger(__name__)

TICK_INTERVAL_MS = 15_000
TASK_REMINDER_GRACE = timedelta(minutes=5)
TASK_REMINDER_TITLE = "Planner reminder"


@dataclass
class Trigger:
    """One fire issued during a tick pass."""

    source_id: str
    title: str
    body: Optional[str]
    dedupe_key: str
    fired_at: datetime


def task_reminder_key(task_id: str) -> str:
    return f"task-{task_id}"


class ReminderTicker:
    """Scans reminders and task reminders on every tick.

    The last-fired timestamp is written before the notifier is called and is
    kept even when delivery fails, so a reminder fires at most once per window.
    """

    def __init__(
        self,
        notifier: Notifier,
        clock: Callable[[], datetime] = datetime.now,
        last_fired: Optional[LastFiredStore] = None,
    ) -> None:
        self.notifier = notifier
        self.clock = clock
        self.last_fired = last_fired if last_fired is not None else InMemoryLastFired()
        self._task_reminders: dict[str, datetime] = {}

    def tick(self, reminders: Iterable[Reminder], tasks: Iterable[Task] = (), notify_tasks: bool = True) -> list[Trigger]:
        now = self.clock()
        triggers = [self._fire(reminder, now) for reminder in reminders if self._is_due(reminder, now)]
        triggers.extend(self._sync_tasks(tasks, now, notify_tasks))
        return triggers

    def _is_due(self, reminder: Reminder, now: datetime) -> bool:
        return due_now(reminder.schedule, now, last_fired_for(reminder, self.last_fired))

    def _fire(self, reminder: Reminder, now: datetime) -> Trigger:
        self.last_fired.set(reminder.id, now)
        trigger = Trigger(
            source_id=reminder.id,
            title=reminder.title,
            body=describe_schedule(reminder.schedule),
            dedupe_key=f"{reminder.id}-{int(now.timestamp() * 1000)}",
            fired_at=now,
        )
        self._deliver(trigger)
        return trigger

    def _deliver(self, trigger: Trigger) -> None:
        try:
            self.notifier.deliver(trigger.title, trigger.body, trigger.dedupe_key)
        except Exception:  # noqa: BLE001
            logger.exception("delivery failed for %s", trigger.dedupe_key)

    def _cancel_task(self, task_id: str) -> None:
        if self._task_reminders.pop(task_id, None) is None:
            return
        try:
            self.notifier.cancel(task_reminder_key(task_id))
        except Exception:  # noqa: BLE001
            logger.exception("cancel failed for task %s", task_id)

    def _sync_tasks(self, tasks: Iterable[Task], now: datetime, enabled: bool) -> list[Trigger]:
        triggers = []
        for task in tasks:
            if (
                not enabled
                or task.reminder_at is None
                or task.status in ("completed", "skipped")
                or task.reminder_at < now - TASK_REMINDER_GRACE
            ):
                self._cancel_task(task.id)
                continue
            delivered_for = self._task_reminders.get(task.id)
            if task.reminder_at > now:
                # Postponed after delivery: the shown notification is stale.
                if delivered_for is not None and delivered_for != task.reminder_at:
                    self._cancel_task(task.id)
                continue
            if delivered_for == task.reminder_at:
                continue
            self._task_reminders[task.id] = task.reminder_at
            trigger = Trigger(
                source_id=task.id,
                title=TASK_REMINDER_TITLE,
                body=f"{task.title} starts soon",
                dedupe_key=task_reminder_key(task.id),
                fired_at=now,
            )
            self._deliver(trigger)
            triggers.append(trigger)
        return triggers

    def forget(self, reminder_id: str) -> None:
        """Drop the last-fired memory of a deleted reminder."""

        self.last_fired.discard(reminder_id)

    def forget_task(self, task_id: str) -> None:
        self._cancel_task(task_id)

    def prune(self, reminders: Iterable[Reminder], tasks: Iterable[Task] = ()) -> None:
        """Forget every id that no longer belongs to a live reminder or task."""

        live = {reminder.id for reminder in reminders}
        for reminder_id in self.last_fired.ids():
            if reminder_id not in live:
                self.forget(reminder_id)
        live_tasks = {task.id for task in tasks}
        for task_id in list(self._task_reminders):
            if task_id not in live_tasks:
                self.forget_task(task_id)


def run_ticks(
    callback: Callable[[], object],
    interval_ms: int = TICK_INTERVAL_MS,
    max_ticks: Optional[int] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Cooperative tick source: call ``callback`` now and then every ``interval_ms``."""

    count = 0
    while max_ticks is None or count < max_ticks:
        if count:
            sleep(interval_ms / 1000.0)
        callback()
        count += 1
    return count
