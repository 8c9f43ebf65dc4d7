"""Print day summaries, week wins and capacity from a saved planner state."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from planning_engine.adapters import csv_adapter, json_adapter
from planning_engine.allocator import format_minutes
from planning_engine.schema import AppState
from planning_engine.stats import build_task_summary, period_ranges
from planning_engine.store import PlannerStore, ScheduleRejected


def _import_drafts(store: PlannerStore, csv_path: Path) -> list[dict]:
    rejected = []
    for draft in csv_adapter.parse(str(csv_path)):
        try:
            store.add_task(draft)
        except ScheduleRejected as exc:
            rejected.append({"title": draft.title, "scheduled_for": draft.scheduled_for, "error": str(exc)})
    return rejected


def build_report(store: PlannerStore) -> dict:
    summaries = store.day_summaries()
    capacity = {}
    for day in sorted({task.scheduled_for for task in store.tasks}):
        minutes = store.remaining_minutes(day)
        capacity[day] = {**minutes, "remaining_label": format_minutes(minutes["remaining"])}

    return {
        "day_summaries": {day: asdict(summary) for day, summary in sorted(summaries.items())},
        "auto_week_wins": sorted(store.auto_week_wins()),
        "life_wins": {week_id: asdict(entry) for week_id, entry in sorted(store.life_wins().items())},
        "capacity": capacity,
        "periods": {name: build_task_summary(store.tasks, period) for name, period in period_ranges().items()},
    }


def main() -> None:
    parser = argparse.ArgumentParser(description="Report planner progress from a state file")
    parser.add_argument("--state", required=True, help="Path to the JSON state file")
    parser.add_argument("--tasks-csv", help="Optional CSV of task drafts to validate and add first")
    parser.add_argument("--save", action="store_true", help="Write accepted CSV tasks back to the state file")
    parser.add_argument("--log-level", default="WARNING")
    args = parser.parse_args()

    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    state = json_adapter.load_state(args.state) or AppState()
    store = PlannerStore(state)

    rejected = _import_drafts(store, Path(args.tasks_csv)) if args.tasks_csv else []
    if args.save and args.tasks_csv:
        json_adapter.save_state(store.state, args.state)

    report = build_report(store)
    report["rejected"] = rejected
    print(json.dumps(report, indent=2))

    outputs_dir = Path("outputs")
    outputs_dir.mkdir(parents=True, exist_ok=True)
    out_path = outputs_dir / "plan_report.json"
    out_path.write_text(json.dumps(report, indent=2), encoding="utf-8")
    print(f"Saved plan report to {out_path}")


if __name__ == "__main__":
    main()
