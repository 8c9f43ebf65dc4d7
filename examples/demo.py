"""Demo script for planning-engine."""

import logging
import sys
from datetime import datetime, timedelta
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from planning_engine.adapters import csv_adapter, json_adapter
from planning_engine.notify import LogNotifier
from planning_engine.schema import Daily, UserProfile
from planning_engine.store import PlannerStore, ScheduleRejected
from planning_engine.ticker import ReminderTicker


class SteppingClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    clock = SteppingClock(datetime(2024, 1, 1, 8, 0))
    store = PlannerStore(ticker=ReminderTicker(LogNotifier(), clock=clock), clock=clock)
    store.set_profile(UserProfile(name="Demo", date_of_birth="1990-05-17", allow_notifications=True))

    for draft in csv_adapter.parse("examples/sample_tasks.csv"):
        try:
            store.add_task(draft)
        except ScheduleRejected as exc:
            print(f"Rejected {draft.title!r}: {exc}")

    store.add_reminder("Stretch", Daily("09:00"))
    for _ in range(3):
        clock.now += timedelta(days=1)
        clock.now = clock.now.replace(hour=9, minute=0)
        print("Triggers:", [trigger.title for trigger in store.tick()])

    print("Day summaries:", store.day_summaries())
    print("Week wins:", store.life_wins())
    json_adapter.save_state(store.state, "outputs/demo_state.json")


if __name__ == "__main__":
    main()
