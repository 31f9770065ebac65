from __future__ import annotations

from collections.abc import Container
from datetime import date, datetime, timedelta

from app.schemas.course import CourseDraft, Occurrence


def _occurrence_at(
    draft: CourseDraft,
    start: datetime,
    recurrence_id: str | None,
) -> Occurrence:
    return Occurrence(
        recurrence_id=recurrence_id,
        name=draft.name,
        subject_id=draft.subject_id,
        teacher_id=draft.teacher_id,
        room_id=draft.room_id,
        start_time=start,
        end_time=start + timedelta(minutes=draft.duration_minutes),
        duration_minutes=draft.duration_minutes,
        series_start=draft.start_time,
        description=draft.description,
        is_recurring=draft.is_recurring,
        recurrence_pattern=draft.recurrence_pattern if draft.is_recurring else None,
        recurrence_end_date=draft.recurrence_end_date if draft.is_recurring else None,
        exclude_holidays=draft.exclude_holidays,
    )


def expand(
    draft: CourseDraft,
    holidays: Container[date] = frozenset(),
    recurrence_id: str | None = None,
) -> list[Occurrence]:
    """
    Materialize a course definition into concrete occurrences.

    Rules
    -----
    - Non-recurring: exactly one occurrence [start_time, start_time + duration).
    - Recurring: every date from start_time.date to recurrence_end_date.date
      (inclusive) whose weekday is in the pattern yields one occurrence at
      that date and start_time's time of day.
    - exclude_holidays: dates contained in `holidays` are skipped. The caller
      supplies the set; nothing is looked up here.

    The result is ascending by start time and may be empty when the end date
    comes before the first matching weekday. `recurrence_id` is stamped on the
    occurrences of a recurring definition.

    Pure: the same inputs always give the same list.
    """
    if not draft.is_recurring:
        return [_occurrence_at(draft, draft.start_time, None)]

    if draft.recurrence_pattern is None or draft.recurrence_end_date is None:
        return []

    time_of_day = draft.start_time.timetz()
    first_day = draft.start_time.date()
    last_day = draft.recurrence_end_date.date()

    occurrences: list[Occurrence] = []
    current = first_day
    while current <= last_day:
        if draft.recurrence_pattern.includes(current.weekday()):
            if not (draft.exclude_holidays and current in holidays):
                start = datetime.combine(current, time_of_day)
                occurrences.append(_occurrence_at(draft, start, recurrence_id))
        current += timedelta(days=1)

    return occurrences
