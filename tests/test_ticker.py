from datetime import datetime, timedelta

from planning_engine.notify import MemoryNotifier
from planning_engine.schema import Daily, EveryMinutes, Reminder, Task, Weekly
from planning_engine.ticker import ReminderTicker, run_ticks


class FakeClock:
    def __init__(self, start: str) -> None:
        self.now = datetime.fromisoformat(start)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FailingNotifier:
    def __init__(self) -> None:
        self.attempts = 0

    def deliver(self, title, body, dedupe_key):
        self.attempts += 1
        raise RuntimeError("channel unavailable")

    def cancel(self, dedupe_key):
        raise RuntimeError("channel unavailable")


def make_reminder(reminder_id, schedule, created):
    created_at = datetime.fromisoformat(created)
    return Reminder(id=reminder_id, title="Stretch", schedule=schedule, created_at=created_at, updated_at=created_at)


def make_task(task_id, reminder_at, status="planned"):
    created = datetime.fromisoformat("2024-01-01T00:00:00")
    return Task(
        id=task_id,
        title="Write report",
        scheduled_for="2024-01-01",
        start_at=datetime.fromisoformat("2024-01-01T09:00:00"),
        reminder_at=datetime.fromisoformat(reminder_at) if reminder_at else None,
        status=status,
        created_at=created,
        updated_at=created,
    )


def test_daily_reminder_fires_once_across_jittery_ticks():
    clock = FakeClock("2024-01-02T08:58:00")
    notifier = MemoryNotifier()
    ticker = ReminderTicker(notifier, clock=clock)
    reminders = [make_reminder("r1", Daily("09:00"), "2024-01-01T09:00:00")]

    fired = []
    while clock.now <= datetime.fromisoformat("2024-01-02T09:02:00"):
        fired.extend(ticker.tick(reminders))
        clock.advance(seconds=15)

    assert len(fired) == 1
    assert fired[0].fired_at == datetime.fromisoformat("2024-01-02T09:00:00")
    assert fired[0].body == "Daily at 09:00"
    assert ticker.last_fired.get("r1") == fired[0].fired_at
    assert len(notifier.deliveries) == 1


def test_weekly_reminder_from_previous_monday():
    clock = FakeClock("2024-01-08T08:00:00")
    ticker = ReminderTicker(MemoryNotifier(), clock=clock)
    ticker.last_fired.set("r1", datetime.fromisoformat("2024-01-01T08:00:00"))
    reminders = [make_reminder("r1", Weekly((0,), "08:00"), "2023-12-01T00:00:00")]
    assert [trigger.source_id for trigger in ticker.tick(reminders)] == ["r1"]


def test_failed_delivery_still_records_last_fired():
    clock = FakeClock("2024-01-01T09:05:00")
    notifier = FailingNotifier()
    ticker = ReminderTicker(notifier, clock=clock)
    reminders = [make_reminder("r1", EveryMinutes(5), "2024-01-01T09:00:00")]

    assert len(ticker.tick(reminders)) == 1
    assert ticker.last_fired.get("r1") == clock.now
    clock.advance(seconds=15)
    assert ticker.tick(reminders) == []
    assert notifier.attempts == 1


def test_forget_resets_timing_to_creation():
    clock = FakeClock("2024-01-01T09:05:00")
    ticker = ReminderTicker(MemoryNotifier(), clock=clock)
    reminders = [make_reminder("r1", EveryMinutes(5), "2024-01-01T09:00:00")]
    assert len(ticker.tick(reminders)) == 1
    ticker.forget("r1")
    assert ticker.last_fired.get("r1") is None
    assert len(ticker.tick(reminders)) == 1


def test_prune_drops_deleted_ids():
    clock = FakeClock("2024-01-01T09:05:00")
    ticker = ReminderTicker(MemoryNotifier(), clock=clock)
    ticker.last_fired.set("gone", clock.now)
    ticker.last_fired.set("kept", clock.now)
    ticker.prune([make_reminder("kept", EveryMinutes(5), "2024-01-01T09:00:00")])
    assert ticker.last_fired.ids() == ["kept"]


def test_task_reminder_delivered_once_then_cancelled_on_completion():
    clock = FakeClock("2024-01-01T08:44:45")
    notifier = MemoryNotifier()
    ticker = ReminderTicker(notifier, clock=clock)
    tasks = [make_task("t1", "2024-01-01T08:45:00")]

    assert ticker.tick([], tasks) == []
    clock.advance(seconds=15)
    triggers = ticker.tick([], tasks)
    assert [trigger.dedupe_key for trigger in triggers] == ["task-t1"]
    assert triggers[0].body == "Write report starts soon"
    clock.advance(seconds=15)
    assert ticker.tick([], tasks) == []

    ticker.tick([], [make_task("t1", "2024-01-01T08:45:00", status="completed")])
    assert notifier.active_keys() == []
    assert notifier.cancelled == ["task-t1"]


def test_edited_task_reminder_is_rearmed():
    clock = FakeClock("2024-01-01T08:45:00")
    ticker = ReminderTicker(MemoryNotifier(), clock=clock)
    assert len(ticker.tick([], [make_task("t1", "2024-01-01T08:45:00")])) == 1
    clock.advance(minutes=1)
    assert len(ticker.tick([], [make_task("t1", "2024-01-01T08:46:00")])) == 1



def test_postponed_task_reminder_closes_shown_notification():
    clock = FakeClock("2024-01-01T08:45:00")
    notifier = MemoryNotifier()
    ticker = ReminderTicker(notifier, clock=clock)
    assert len(ticker.tick([], [make_task("t1", "2024-01-01T08:45:00")])) == 1
    assert notifier.active_keys() == ["task-t1"]

    clock.advance(minutes=1)
    postponed = [make_task("t1", "2024-01-01T14:45:00")]
    assert ticker.tick([], postponed) == []
    assert notifier.active_keys() == []
    assert notifier.cancelled == ["task-t1"]

    clock.now = datetime.fromisoformat("2024-01-01T14:45:00")
    assert len(ticker.tick([], postponed)) == 1


def test_stale_or_disabled_task_reminders_are_skipped():
    clock = FakeClock("2024-01-01T09:00:00")
    notifier = MemoryNotifier()
    ticker = ReminderTicker(notifier, clock=clock)
    assert ticker.tick([], [make_task("t1", "2024-01-01T08:45:00")]) == []
    assert ticker.tick([], [make_task("t2", "2024-01-01T08:58:00")], notify_tasks=False) == []
    assert notifier.deliveries == []


def test_forget_task_cancels_delivered_notification():
    clock = FakeClock("2024-01-01T08:45:00")
    notifier = MemoryNotifier()
    ticker = ReminderTicker(notifier, clock=clock)
    ticker.tick([], [make_task("t1", "2024-01-01T08:45:00")])
    ticker.forget_task("t1")
    assert notifier.cancelled == ["task-t1"]


def test_run_ticks_calls_back_at_interval():
    calls = []
    sleeps = []
    count = run_ticks(lambda: calls.append(1), interval_ms=15000, max_ticks=3, sleep=sleeps.append)
    assert count == 3
    assert len(calls) == 3
    assert sleeps == [15.0, 15.0]
