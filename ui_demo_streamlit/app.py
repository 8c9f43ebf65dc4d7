"""Streamlit demo UI for planning-engine."""

from __future__ import annotations

import tempfile
from dataclasses import asdict
from datetime import date, datetime, time, timedelta
from pathlib import Path
from typing import Any

from planning_engine.adapters import csv_adapter, json_adapter
from planning_engine.allocator import format_minutes
from planning_engine.notify import MemoryNotifier
from planning_engine.recurrence import describe_schedule
from planning_engine.schema import AppState, UserProfile
from planning_engine.stats import build_task_summary, period_ranges
from planning_engine.store import PlannerStore, ScheduleRejected
from planning_engine.ticker import ReminderTicker


def _load_uploaded_state(uploaded_file) -> AppState:
    return json_adapter.parse_imported_payload(uploaded_file.getvalue().decode("utf-8"))


def _parse_uploaded_csv(uploaded_file) -> list:
    with tempfile.NamedTemporaryFile(delete=False, suffix=".csv") as handle:
        handle.write(uploaded_file.getbuffer())
        temp_path = handle.name
    return csv_adapter.parse(temp_path)


def preview_triggers(store: PlannerStore, start: datetime, hours: int) -> list[dict]:
    """Replay a minute-level tick over ``hours`` and collect the reminder fires."""

    clock_state = {"now": start}
    ticker = ReminderTicker(MemoryNotifier(), clock=lambda: clock_state["now"])
    fired = []
    for step in range(hours * 60):
        clock_state["now"] = start + timedelta(minutes=step)
        for trigger in ticker.tick(store.reminders):
            fired.append({"at": trigger.fired_at.strftime("%Y-%m-%d %H:%M"), "title": trigger.title, "body": trigger.body})
    return fired


def run_engine(state: AppState, drafts: list, day: date, preview_hours: int = 24) -> dict[str, Any]:
    """Run all engine steps and return a UI-friendly result payload."""

    store = PlannerStore(state)
    rejected = []
    for draft in drafts:
        try:
            store.add_task(draft)
        except ScheduleRejected as exc:
            rejected.append({"title": draft.title, "error": str(exc)})

    capacity = store.remaining_minutes(day.isoformat())
    summaries = store.day_summaries()
    periods = period_ranges(day)

    return {
        "rejected": rejected,
        "capacity": {**capacity, "remaining_label": format_minutes(capacity["remaining"])},
        "day_tasks": [
            {
                "title": task.title,
                "start": task.start_at.strftime("%H:%M") if task.start_at else "",
                "deadline": task.deadline_at.strftime("%H:%M") if task.deadline_at else "",
                "duration": format_minutes(task.duration_minutes) if task.duration_minutes else "",
                "status": task.status,
                "progressive": task.progressive,
            }
            for task in store.tasks
            if task.scheduled_for == day.isoformat()
        ],
        "day_summaries": [asdict(summary) for _, summary in sorted(summaries.items())],
        "life_wins": {week_id: asdict(entry) for week_id, entry in sorted(store.life_wins().items())},
        "week_summary": build_task_summary(store.tasks, periods["week"]),
        "reminders": [{"title": r.title, "schedule": describe_schedule(r.schedule)} for r in store.reminders],
        "triggers": preview_triggers(store, datetime.combine(day, time()), preview_hours),
    }


def main() -> None:
    import streamlit as st

    st.set_page_config(page_title="Planning Engine Demo", layout="wide")
    st.title("Planning Engine — Streamlit Demo")

    with st.sidebar:
        st.header("Controls")
        uploaded_state = st.file_uploader("Upload exported state", type=["json"])
        uploaded_tasks = st.file_uploader("Upload task drafts", type=["csv"])
        use_demo = st.checkbox("Load demo tasks", value=True)
        date_of_birth = st.date_input("Date of birth", value=date(1990, 5, 17))
        day = st.date_input("Day", value=date(2024, 1, 1))
        preview_hours = st.slider("Reminder preview hours", min_value=1, max_value=72, value=24)
        run = st.button("Run engine", type="primary")

    if not run:
        st.info("Configure inputs in the sidebar and click **Run engine**.")
        return

    try:
        state = _load_uploaded_state(uploaded_state) if uploaded_state is not None else AppState()
        if state.profile is None:
            state.profile = UserProfile(name="Demo", date_of_birth=date_of_birth.isoformat())

        if uploaded_tasks is not None:
            drafts = _parse_uploaded_csv(uploaded_tasks)
        elif use_demo:
            drafts = csv_adapter.parse("examples/sample_tasks.csv")
        else:
            drafts = []

        result = run_engine(state, drafts, day, preview_hours)

        st.subheader("A) Day Capacity")
        c1, c2 = st.columns(2)
        c1.metric("Assigned minutes", result["capacity"]["assigned"])
        c2.metric("Remaining", result["capacity"]["remaining_label"])
        st.table(result["day_tasks"] or [{"title": "No tasks on this day"}])
        if result["rejected"]:
            st.warning("Some tasks were rejected by the allocator.")
            st.table(result["rejected"])

        st.subheader("B) Progress")
        st.table(result["day_summaries"] or [{"date": "No tasks yet"}])
        st.write("**Week wins**")
        st.json(result["life_wins"])
        st.write("**This week**")
        st.table([result["week_summary"]["counts"]])

        st.subheader("C) Reminders")
        st.table(result["reminders"] or [{"title": "No reminders"}])
        st.write(result["triggers"] or "No reminders fire in the preview window.")

    except ValueError as exc:
        st.error(f"Input error: {exc}")
    except Exception:
        st.error("Something went wrong while running the demo. Please verify the input format.")


if __name__ == "__main__":
    main()
