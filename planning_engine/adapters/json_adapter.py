"""JSON adapter for the persisted planner state."""

from __future__ import annotations

import json
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional

from planning_engine.schema import (
    REFLECTION_TAGS,
    SCHEDULE_TYPES,
    TASK_STATUSES,
    WIN_STATUSES,
    AppState,
    Daily,
    EveryMinutes,
    Hourly,
    Monthly,
    Preferences,
    ReflectionEntry,
    Reminder,
    ReminderSchedule,
    Task,
    UserProfile,
    WeekWinEntry,
    Weekly,
    Yearly,
    normalize_preferences,
)

logger = logging.getLogger(__name__)

EXPORT_VERSION = 1

_REQUIRED_TASK_FIELDS = {"id", "title", "scheduledFor", "status", "createdAt", "updatedAt"}
_REQUIRED_REMINDER_FIELDS = {"id", "title", "schedule", "createdAt", "updatedAt"}


def _parse_datetime(value: Any, label: str) -> datetime:
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).replace(tzinfo=None)
    except Exception as exc:  # noqa: BLE001
        raise ValueError(f"{label}: malformed timestamp") from exc


def _optional_datetime(item: dict, key: str, label: str) -> Optional[datetime]:
    raw = item.get(key)
    if raw in (None, ""):
        return None
    return _parse_datetime(raw, label)


def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_task(item: dict, index: int) -> Task:
    label = f"Task {index}"
    missing = sorted(field for field in _REQUIRED_TASK_FIELDS if item.get(field) in (None, ""))
    if missing:
        raise ValueError(f"{label}: missing required fields {missing}")

    status = str(item["status"]).strip()
    if status not in TASK_STATUSES:
        raise ValueError(f"{label}: invalid status '{status}'")

    try:
        date.fromisoformat(str(item["scheduledFor"]))
    except ValueError as exc:
        raise ValueError(f"{label}: malformed scheduledFor") from exc

    duration_raw = item.get("durationMinutes")
    duration = None
    if duration_raw is not None:
        try:
            duration = int(duration_raw)
        except Exception as exc:  # noqa: BLE001
            raise ValueError(f"{label}: invalid durationMinutes") from exc
        if duration < 0:
            raise ValueError(f"{label}: durationMinutes must be non-negative")

    return Task(
        id=str(item["id"]),
        title=str(item["title"]),
        description=item.get("description") or None,
        scheduled_for=str(item["scheduledFor"]),
        start_at=_optional_datetime(item, "startAt", label),
        deadline_at=_optional_datetime(item, "deadlineAt", label),
        reminder_at=_optional_datetime(item, "reminderAt", label),
        duration_minutes=duration,
        progressive=bool(_value(item, "progressive", True)),
        status=status,
        tags=[str(tag) for tag in item.get("tags") or []],
        created_at=_parse_datetime(item["createdAt"], label),
        updated_at=_parse_datetime(item["updatedAt"], label),
    )


def task_to_dict(task: Task) -> dict:
    payload = {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "scheduledFor": task.scheduled_for,
        "startAt": _format_datetime(task.start_at),
        "deadlineAt": _format_datetime(task.deadline_at),
        "reminderAt": _format_datetime(task.reminder_at),
        "durationMinutes": task.duration_minutes,
        "progressive": task.progressive,
        "tags": list(task.tags),
        "status": task.status,
        "createdAt": _format_datetime(task.created_at),
        "updatedAt": _format_datetime(task.updated_at),
    }
    return {key: value for key, value in payload.items() if value is not None}


def parse_schedule(raw: dict) -> ReminderSchedule:
    """Build a schedule variant from its tagged JSON form."""

    kind = raw.get("type")
    if kind not in SCHEDULE_TYPES:
        raise ValueError(f"unknown schedule type '{kind}'")
    try:
        if kind == "every_minutes":
            return EveryMinutes(int(raw["intervalMinutes"]))
        if kind == "hourly":
            return Hourly(int(raw["minuteMark"]))
        if kind == "daily":
            return Daily(str(raw["time"]))
        if kind == "weekly":
            return Weekly(tuple(int(day) for day in raw["daysOfWeek"]), str(raw["time"]))
        if kind == "monthly":
            return Monthly(tuple(int(day) for day in raw["daysOfMonth"]), str(raw["time"]))
        return Yearly(tuple(str(value) for value in raw["dates"]), str(raw["time"]))
    except KeyError as exc:
        raise ValueError(f"{kind} schedule is missing {exc.args[0]}") from exc


def schedule_to_dict(schedule: ReminderSchedule) -> dict:
    if isinstance(schedule, EveryMinutes):
        return {"type": schedule.type, "intervalMinutes": schedule.interval_minutes}
    if isinstance(schedule, Hourly):
        return {"type": schedule.type, "minuteMark": schedule.minute_mark}
    if isinstance(schedule, Daily):
        return {"type": schedule.type, "time": schedule.time}
    if isinstance(schedule, Weekly):
        return {"type": schedule.type, "daysOfWeek": list(schedule.days_of_week), "time": schedule.time}
    if isinstance(schedule, Monthly):
        return {"type": schedule.type, "daysOfMonth": list(schedule.days_of_month), "time": schedule.time}
    return {"type": schedule.type, "dates": list(schedule.dates), "time": schedule.time}


def _parse_reminder(item: dict, index: int) -> Reminder:
    label = f"Reminder {index}"
    missing = sorted(field for field in _REQUIRED_REMINDER_FIELDS if not item.get(field))
    if missing:
        raise ValueError(f"{label}: missing required fields {missing}")
    try:
        schedule = parse_schedule(item["schedule"])
    except (ValueError, TypeError, AttributeError) as exc:
        raise ValueError(f"{label}: invalid schedule ({exc})") from exc

    return Reminder(
        id=str(item["id"]),
        title=str(item["title"]),
        description=item.get("description") or None,
        schedule=schedule,
        created_at=_parse_datetime(item["createdAt"], label),
        updated_at=_parse_datetime(item["updatedAt"], label),
    )


def reminder_to_dict(reminder: Reminder) -> dict:
    payload = {
        "id": reminder.id,
        "title": reminder.title,
        "description": reminder.description,
        "schedule": schedule_to_dict(reminder.schedule),
        "createdAt": _format_datetime(reminder.created_at),
        "updatedAt": _format_datetime(reminder.updated_at),
    }
    return {key: value for key, value in payload.items() if value is not None}


def _value(raw: dict, key: str, default: Any) -> Any:
    value = raw.get(key)
    return default if value is None else value


def _parse_preferences(raw: Optional[dict]) -> Preferences:
    raw = raw or {}
    defaults = Preferences()
    try:
        return normalize_preferences(
            Preferences(
                reminder_lead_minutes=_value(raw, "reminderLeadMinutes", defaults.reminder_lead_minutes),
                default_reminder_time=_value(raw, "defaultReminderTime", defaults.default_reminder_time),
                day_fulfillment_threshold=_value(raw, "dayFulfillmentThreshold", defaults.day_fulfillment_threshold),
                week_fulfillment_target=_value(raw, "weekFulfillmentTarget", defaults.week_fulfillment_target),
                progressive_tasks_per_day=_value(raw, "progressiveTasksPerDay", defaults.progressive_tasks_per_day),
                progressive_days_for_week_win=_value(
                    raw, "progressiveDaysForWeekWin", defaults.progressive_days_for_week_win
                ),
            )
        )
    except (TypeError, ValueError) as exc:
        raise ValueError("Preferences: values must be numbers") from exc


def _preferences_to_dict(preferences: Preferences) -> dict:
    return {
        "reminderLeadMinutes": preferences.reminder_lead_minutes,
        "defaultReminderTime": preferences.default_reminder_time,
        "dayFulfillmentThreshold": preferences.day_fulfillment_threshold,
        "weekFulfillmentTarget": preferences.week_fulfillment_target,
        "progressiveTasksPerDay": preferences.progressive_tasks_per_day,
        "progressiveDaysForWeekWin": preferences.progressive_days_for_week_win,
    }


def _parse_profile(raw: Optional[dict]) -> Optional[UserProfile]:
    if not raw:
        return None
    try:
        date.fromisoformat(str(raw["dateOfBirth"]))
    except (KeyError, ValueError) as exc:
        raise ValueError("Profile: missing or malformed dateOfBirth") from exc
    try:
        return UserProfile(
            name=str(_value(raw, "name", "")),
            date_of_birth=str(raw["dateOfBirth"]),
            allow_notifications=bool(_value(raw, "allowNotifications", False)),
            day_start_hour=int(_value(raw, "dayStartHour", 7)),
            day_end_hour=int(_value(raw, "dayEndHour", 23)),
        )
    except (TypeError, ValueError) as exc:
        raise ValueError("Profile: malformed day hours") from exc


def _profile_to_dict(profile: UserProfile) -> dict:
    return {
        "name": profile.name,
        "dateOfBirth": profile.date_of_birth,
        "allowNotifications": profile.allow_notifications,
        "dayStartHour": profile.day_start_hour,
        "dayEndHour": profile.day_end_hour,
    }


def normalize_life_wins(raw: Optional[dict]) -> dict[str, WeekWinEntry]:
    """Accept legacy boolean entries as well as ``{status, fulfilled}`` objects."""

    normalized: dict[str, WeekWinEntry] = {}
    for week_id, value in (raw or {}).items():
        if isinstance(value, bool):
            if value:
                normalized[week_id] = WeekWinEntry(status="auto", fulfilled=True)
        elif isinstance(value, dict):
            fulfilled = bool(value.get("fulfilled", False))
            status = value.get("status") or ("auto" if fulfilled else "manual")
            if status not in WIN_STATUSES:
                raise ValueError(f"Week win {week_id}: invalid status '{status}'")
            normalized[week_id] = WeekWinEntry(status=status, fulfilled=fulfilled)
    return normalized


def normalize_life_reflections(raw: Optional[dict]) -> dict[str, ReflectionEntry]:
    """Accept legacy bare tags as well as ``{tag, color}`` objects; ``none`` entries are dropped."""

    normalized: dict[str, ReflectionEntry] = {}
    for week_id, value in (raw or {}).items():
        if not value:
            continue
        if isinstance(value, dict):
            tag, color = value.get("tag"), value.get("color")
        else:
            tag, color = value, None
        if tag not in REFLECTION_TAGS:
            raise ValueError(f"Reflection {week_id}: invalid tag '{tag}'")
        if tag == "none":
            continue
        normalized[week_id] = ReflectionEntry(tag=tag, color=color or None)
    return normalized


def _reflection_to_dict(entry: ReflectionEntry) -> dict:
    payload = {"tag": entry.tag}
    if entry.color:
        payload["color"] = entry.color
    return payload


def state_from_dict(payload: Any) -> AppState:
    if not isinstance(payload, dict):
        raise ValueError("JSON payload must be an object")
    tasks = payload.get("tasks", [])
    reminders = payload.get("reminders", [])
    if not isinstance(tasks, list) or not isinstance(reminders, list):
        raise ValueError("tasks and reminders must be lists")

    sync = payload.get("lastNotificationSync")
    return AppState(
        profile=_parse_profile(payload.get("profile")),
        tasks=[_parse_task(item, i) for i, item in enumerate(tasks, start=1)],
        reminders=[_parse_reminder(item, i) for i, item in enumerate(reminders, start=1)],
        preferences=_parse_preferences(payload.get("preferences")),
        life_wins=normalize_life_wins(payload.get("lifeWins")),
        life_reflections=normalize_life_reflections(payload.get("lifeReflections")),
        task_tags=sorted({str(tag) for tag in payload.get("taskTags") or []}),
        last_notification_sync=_parse_datetime(sync, "lastNotificationSync") if sync else None,
    )


def state_to_dict(state: AppState) -> dict:
    payload = {
        "tasks": [task_to_dict(task) for task in state.tasks],
        "reminders": [reminder_to_dict(reminder) for reminder in state.reminders],
        "preferences": _preferences_to_dict(state.preferences),
        "lifeWins": {
            week_id: {"status": entry.status, "fulfilled": entry.fulfilled}
            for week_id, entry in state.life_wins.items()
        },
        "taskTags": list(state.task_tags),
    }
    if state.life_reflections:
        payload["lifeReflections"] = {
            week_id: _reflection_to_dict(entry) for week_id, entry in state.life_reflections.items()
        }
    if state.profile is not None:
        payload["profile"] = _profile_to_dict(state.profile)
    if state.last_notification_sync is not None:
        payload["lastNotificationSync"] = _format_datetime(state.last_notification_sync)
    return payload


def load_state(file_path: str) -> Optional[AppState]:
    """Load planner state from a JSON file; a missing file yields ``None``."""

    path = Path(file_path)
    if not path.exists():
        logger.info("no saved state at %s", path)
        return None
    with open(path, encoding="utf-8") as handle:
        payload = json.load(handle)
    return state_from_dict(payload)


def save_state(state: AppState, file_path: str) -> None:
    path = Path(file_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(json.dumps(state_to_dict(state), indent=2), encoding="utf-8")
    tmp_path.replace(path)
    logger.debug("saved state to %s", path)


def create_export_payload(state: AppState, exported_at: Optional[datetime] = None) -> str:
    payload = {
        "version": EXPORT_VERSION,
        "exportedAt": _format_datetime(exported_at or datetime.now()),
        "state": state_to_dict(state),
    }
    return json.dumps(payload, indent=2)


def parse_imported_payload(raw: str) -> AppState:
    """Parse an export file produced by ``create_export_payload``."""

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError("Invalid import file") from exc
    if not isinstance(payload, dict) or not isinstance(payload.get("version"), int) or payload["version"] < 1:
        raise ValueError("Invalid import file")
    if "exportedAt" not in payload or "state" not in payload:
        raise ValueError("Invalid import file")
    return state_from_dict(payload["state"])
