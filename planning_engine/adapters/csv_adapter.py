"""CSV adapter for bulk task drafts."""

from __future__ import annotations

import csv
from datetime import date

from planning_engine.allocator import combine_date_time
from planning_engine.schema import TaskDraft

_REQUIRED_FIELDS = {"title", "scheduled_for"}
_TRUE_VALUES = {"1", "true", "yes", "y"}
_FALSE_VALUES = {"0", "false", "no", "n"}


def _parse_bool(raw: str | None, row_number: int) -> bool:
    if raw in (None, ""):
        return True
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"Row {row_number}: invalid progressive flag '{raw}'")


def _parse_row(row: dict, row_number: int) -> TaskDraft:
    missing = sorted(field for field in _REQUIRED_FIELDS if not (row.get(field) or "").strip())
    if missing:
        raise ValueError(f"Row {row_number}: missing required fields {missing}")

    scheduled_for = row["scheduled_for"].strip()
    try:
        date.fromisoformat(scheduled_for)
    except Exception as exc:  # noqa: BLE001
        raise ValueError(f"Row {row_number}: malformed scheduled_for") from exc

    start_time = (row.get("start_time") or "").strip()
    deadline_time = (row.get("deadline_time") or "").strip()
    for label, value in (("start_time", start_time), ("deadline_time", deadline_time)):
        if value and combine_date_time(scheduled_for, value) is None:
            raise ValueError(f"Row {row_number}: invalid {label} '{value}'")

    duration_raw = (row.get("duration_minutes") or "").strip()
    duration = None
    if duration_raw:
        try:
            duration = int(duration_raw)
        except Exception as exc:  # noqa: BLE001
            raise ValueError(f"Row {row_number}: invalid duration_minutes") from exc
        if start_time or deadline_time:
            raise ValueError(f"Row {row_number}: use either duration_minutes or start/deadline times")

    tags_raw = row.get("tags") or ""
    tags = [tag.strip() for tag in tags_raw.split(";") if tag.strip()]

    draft = TaskDraft(
        title=row["title"].strip(),
        description=(row.get("description") or "").strip(),
        scheduled_for=scheduled_for,
        progressive=_parse_bool(row.get("progressive"), row_number),
        tags=tags,
    )
    if duration is not None:
        draft.mode = "duration"
        draft.duration_hours, draft.duration_minutes = divmod(duration, 60)
    else:
        draft.start_time = start_time
        draft.deadline_time = deadline_time
    return draft


def parse(file_path: str) -> list[TaskDraft]:
    """Parse a CSV file into task drafts, ready for allocator validation."""

    with open(file_path, newline="", encoding="utf-8") as handle:
        reader = csv.DictReader(handle)
        if not reader.fieldnames:
            return []

        drafts: list[TaskDraft] = []
        for row_number, row in enumerate(reader, start=2):
            drafts.append(_parse_row(row, row_number))
        return drafts
