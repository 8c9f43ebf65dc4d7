import json
from datetime import datetime

import pytest

from planning_engine.adapters.csv_adapter import parse as parse_csv
from planning_engine.adapters.json_adapter import (
    create_export_payload,
    load_state,
    parse_imported_payload,
    save_state,
    state_from_dict,
)
from planning_engine.schema import (
    AppState,
    Daily,
    ReflectionEntry,
    Reminder,
    Task,
    UserProfile,
    WeekWinEntry,
    Weekly,
)


def sample_state():
    created = datetime.fromisoformat("2024-01-01T08:00:00")
    return AppState(
        profile=UserProfile(name="Sam", date_of_birth="2000-01-01", allow_notifications=True),
        tasks=[
            Task(
                id="t1",
                title="Write report",
                scheduled_for="2024-01-01",
                start_at=datetime.fromisoformat("2024-01-01T09:00:00"),
                deadline_at=datetime.fromisoformat("2024-01-01T10:00:00"),
                reminder_at=datetime.fromisoformat("2024-01-01T08:45:00"),
                tags=["work"],
                created_at=created,
                updated_at=created,
            ),
            Task(
                id="t2",
                title="Reading",
                scheduled_for="2024-01-02",
                duration_minutes=90,
                progressive=False,
                status="completed",
                created_at=created,
                updated_at=created,
            ),
        ],
        reminders=[
            Reminder(id="r1", title="Stretch", schedule=Daily("09:00"), created_at=created, updated_at=created),
            Reminder(id="r2", title="Review", schedule=Weekly((0, 4), "17:00"), created_at=created, updated_at=created),
        ],
        life_wins={"2000-01-01-week-1252": WeekWinEntry(status="manual", fulfilled=False)},
        life_reflections={
            "2000-01-01-week-1252": ReflectionEntry("learned", "#ffcc00"),
            "2000-01-01-week-1253": ReflectionEntry("enjoyed"),
        },
        task_tags=["work"],
    )


def test_json_state_round_trip(tmp_path):
    path = tmp_path / "state.json"
    state = sample_state()
    save_state(state, str(path))

    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw["tasks"][0]["scheduledFor"] == "2024-01-01"
    assert raw["tasks"][1]["durationMinutes"] == 90
    assert "startAt" not in raw["tasks"][1]
    assert raw["reminders"][1]["schedule"] == {"type": "weekly", "daysOfWeek": [0, 4], "time": "17:00"}
    assert raw["lifeReflections"] == {
        "2000-01-01-week-1252": {"tag": "learned", "color": "#ffcc00"},
        "2000-01-01-week-1253": {"tag": "enjoyed"},
    }

    assert load_state(str(path)) == state


def test_missing_state_file_returns_none(tmp_path):
    assert load_state(str(tmp_path / "nope.json")) is None


def test_legacy_life_wins_and_default_preferences():
    state = state_from_dict({"tasks": [], "lifeWins": {"w-1": True, "w-2": False, "w-3": {"fulfilled": False}}})
    assert state.life_wins == {
        "w-1": WeekWinEntry(status="auto", fulfilled=True),
        "w-3": WeekWinEntry(status="manual", fulfilled=False),
    }
    assert state.preferences.progressive_tasks_per_day == 1
    assert state.preferences.progressive_days_for_week_win == 3
    assert state.preferences.day_fulfillment_threshold == 40
    assert state.profile is None



def test_unknown_week_win_status_is_rejected():
    with pytest.raises(ValueError, match="w-1"):
        state_from_dict({"tasks": [], "lifeWins": {"w-1": {"status": "bogus", "fulfilled": True}}})


def test_legacy_life_reflections():
    state = state_from_dict(
        {
            "tasks": [],
            "lifeReflections": {
                "w-1": "progressed",
                "w-2": "none",
                "w-3": {"tag": "advanced", "color": "#123456"},
                "w-4": {"tag": "none"},
                "w-5": None,
            },
        }
    )
    assert state.life_reflections == {
        "w-1": ReflectionEntry("progressed"),
        "w-3": ReflectionEntry("advanced", "#123456"),
    }
    with pytest.raises(ValueError, match="w-9"):
        state_from_dict({"tasks": [], "lifeReflections": {"w-9": "bored"}})


def test_null_values_fall_back_to_defaults():
    task = {"id": "t1", "title": "x", "scheduledFor": "2024-01-01", "status": "planned", "progressive": None,
            "createdAt": "2024-01-01T00:00:00", "updatedAt": "2024-01-01T00:00:00"}
    state = state_from_dict(
        {
            "tasks": [task],
            "preferences": {"reminderLeadMinutes": None, "progressiveDaysForWeekWin": None},
            "profile": {"name": "Sam", "dateOfBirth": "2000-01-01", "dayStartHour": None, "dayEndHour": None},
        }
    )
    assert state.tasks[0].progressive is True
    assert state.preferences.reminder_lead_minutes == 15
    assert state.preferences.progressive_days_for_week_win == 3
    assert (state.profile.day_start_hour, state.profile.day_end_hour) == (7, 23)


def test_malformed_profile_hours_are_rejected():
    with pytest.raises(ValueError, match="Profile"):
        state_from_dict({"tasks": [], "profile": {"dateOfBirth": "2000-01-01", "dayStartHour": [7]}})
    with pytest.raises(ValueError, match="Preferences"):
        state_from_dict({"tasks": [], "preferences": {"reminderLeadMinutes": "soon"}})


def test_json_malformed_task():
    payload = {"tasks": [{"id": "t1", "title": "x", "scheduledFor": "2024-01-01", "status": "done",
                          "createdAt": "2024-01-01T00:00:00", "updatedAt": "2024-01-01T00:00:00"}]}
    with pytest.raises(ValueError, match="Task 1"):
        state_from_dict(payload)


def test_json_malformed_schedule():
    payload = {"tasks": [], "reminders": [{"id": "r1", "title": "x", "schedule": {"type": "hourly", "minuteMark": 75},
                                           "createdAt": "2024-01-01T00:00:00", "updatedAt": "2024-01-01T00:00:00"}]}
    with pytest.raises(ValueError, match="Reminder 1"):
        state_from_dict(payload)


def test_export_and_import_payload():
    state = sample_state()
    raw = create_export_payload(state, exported_at=datetime.fromisoformat("2024-02-01T12:00:00"))
    assert json.loads(raw)["version"] == 1
    assert parse_imported_payload(raw) == state

    with pytest.raises(ValueError):
        parse_imported_payload(json.dumps({"state": {"tasks": []}}))
    with pytest.raises(ValueError):
        parse_imported_payload("not json")


def test_csv_parse_success(tmp_path):
    path = tmp_path / "tasks.csv"
    path.write_text(
        "title,scheduled_for,start_time,deadline_time,duration_minutes,progressive,tags\n"
        "Write report,2024-01-01,09:00,10:00,,true,work\n"
        "Reading,2024-01-02,,,95,no,learning;books\n",
        encoding="utf-8",
    )
    drafts = parse_csv(str(path))
    assert len(drafts) == 2
    assert (drafts[0].mode, drafts[0].start_time, drafts[0].deadline_time) == ("time", "09:00", "10:00")
    assert drafts[1].mode == "duration"
    assert (drafts[1].duration_hours, drafts[1].duration_minutes) == (1, 35)
    assert drafts[1].progressive is False
    assert drafts[1].tags == ["learning", "books"]


def test_csv_parse_invalid_row(tmp_path):
    path = tmp_path / "tasks.csv"
    path.write_text("title,scheduled_for,start_time\nWrite,2024-01-01,9am\n", encoding="utf-8")
    with pytest.raises(ValueError, match="Row 2"):
        parse_csv(str(path))


def test_csv_rejects_mixed_modes(tmp_path):
    path = tmp_path / "tasks.csv"
    path.write_text(
        "title,scheduled_for,start_time,duration_minutes\nWrite,2024-01-01,09:00,30\n", encoding="utf-8"
    )
    with pytest.raises(ValueError):
        parse_csv(str(path))
