# tests/test_scheduling_service.py
import asyncio
from datetime import date, datetime

import pytest
from sqlalchemy.exc import OperationalError

from app.core.exceptions import ConflictError, NotFoundError, StorageError, ValidationError
from app.db.session import AsyncSessionLocal
from app.repositories.occurrences import OccurrenceRepository
from app.schemas.course import CourseDraft
from app.schemas.series import SeriesSummary, StandaloneRow
from app.services.holiday_calendar import StaticHolidayCalendar
from app.services.locks import ResourceLocks
from app.services.scheduling import SchedulingService

from conftest import (
    MODULAR_ROOM,
    ROOM_101,
    ROOM_102,
    STUDENT,
    SUB_ROOM_A,
    SUBJECT,
    TEACHER_A,
    TEACHER_B,
)


def _single(**overrides) -> CourseDraft:
    data = {
        "name": "Course B",
        "subject_id": SUBJECT,
        "teacher_id": TEACHER_B,
        "room_id": ROOM_101,
        "start_time": datetime(2024, 1, 15, 9, 30),
        "duration_minutes": 60,
    }
    data.update(overrides)
    return CourseDraft(**data)


def _mondays(**overrides) -> CourseDraft:
    """
    Course A: Room 101, Mondays 09:00-10:00, 2024-01-01 to 2024-01-29.
    """
    data = {
        "name": "Course A",
        "subject_id": SUBJECT,
        "teacher_id": TEACHER_A,
        "room_id": ROOM_101,
        "start_time": datetime(2024, 1, 1, 9, 0),
        "duration_minutes": 60,
        "is_recurring": True,
        "recurrence_pattern": {"days": ["Monday"]},
        "recurrence_end_date": datetime(2024, 1, 29, 23, 59),
    }
    data.update(overrides)
    return CourseDraft(**data)


async def _create(service_factory, draft: CourseDraft, **kwargs):
    async with AsyncSessionLocal() as session:
        return await service_factory(session).create(draft, **kwargs)


async def _all_occurrences(service_factory):
    async with AsyncSessionLocal() as session:
        return await service_factory(session).list_occurrences()


# ---------------------------------------------------------------------------
# create
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_recurring_course_persists_every_occurrence(catalog, service_factory):
    result = await _create(service_factory, _mondays())

    assert result.committed is True
    assert result.overridden is False
    assert result.recurrence_id is not None
    assert len(result.occurrences) == 5
    assert all(occ.id is not None for occ in result.occurrences)
    assert {occ.recurrence_id for occ in result.occurrences} == {result.recurrence_id}

    stored = await _all_occurrences(service_factory)
    assert [occ.start_time.day for occ in stored] == [1, 8, 15, 22, 29]
    assert stored[0].recurrence_pattern.to_json() == '{"days": ["Monday"]}'


@pytest.mark.asyncio
async def test_create_overlapping_course_is_rejected_with_report(catalog, service_factory):
    series = await _create(service_factory, _mondays())
    third_monday = series.occurrences[2]

    with pytest.raises(ConflictError) as excinfo:
        await _create(service_factory, _single())

    report = excinfo.value.report
    assert len(report.conflicts) == 1
    entry = report.conflicts[0]
    assert entry.conflicting_occurrence_id == third_monday.id
    assert entry.room_id == ROOM_101
    assert entry.overlap_start == datetime(2024, 1, 15, 9, 30)
    assert entry.overlap_end == datetime(2024, 1, 15, 10, 0)

    # Nothing of the rejected course was written.
    assert len(await _all_occurrences(service_factory)) == 5


@pytest.mark.asyncio
async def test_create_in_other_room_succeeds(catalog, service_factory):
    await _create(service_factory, _mondays())

    result = await _create(service_factory, _single(room_id=ROOM_102))

    assert result.committed is True
    assert not result.report.has_conflicts


@pytest.mark.asyncio
async def test_override_persists_and_returns_report(catalog, service_factory):
    await _create(service_factory, _mondays())

    result = await _create(service_factory, _single(), override=True)

    assert result.committed is True
    assert result.overridden is True
    assert len(result.report.conflicts) == 1
    assert len(await _all_occurrences(service_factory)) == 6


@pytest.mark.asyncio
async def test_dry_run_reports_without_writing(catalog, service_factory):
    await _create(service_factory, _mondays())

    result = await _create(service_factory, _single(), dry_run=True)

    assert result.committed is False
    assert result.report.has_conflicts
    assert result.occurrences[0].id is None
    assert len(await _all_occurrences(service_factory)) == 5


@pytest.mark.asyncio
async def test_teacher_double_booking_in_other_room_conflicts(catalog, service_factory):
    await _create(service_factory, _mondays())

    with pytest.raises(ConflictError) as excinfo:
        await _create(service_factory, _single(room_id=ROOM_102, teacher_id=TEACHER_A))

    assert excinfo.value.report.conflicts[0].teacher_id == TEACHER_A


@pytest.mark.asyncio
async def test_modular_room_conflicts_with_its_sub_rooms(catalog, service_factory):
    await _create(service_factory, _single(room_id=SUB_ROOM_A, teacher_id=TEACHER_A))

    with pytest.raises(ConflictError):
        await _create(service_factory, _single(room_id=MODULAR_ROOM, teacher_id=TEACHER_B))


@pytest.mark.asyncio
async def test_holidays_are_skipped_when_excluded(catalog):
    async with AsyncSessionLocal() as session:
        service = SchedulingService(
            db=session,
            locks=ResourceLocks(),
            holiday_calendar=StaticHolidayCalendar({date(2024, 1, 8)}),
        )
        result = await service.create(_mondays(exclude_holidays=True))

    assert [occ.start_time.day for occ in result.occurrences] == [1, 15, 22, 29]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "draft, field",
    [
        (_single(name="  "), "name"),
        (_single(duration_minutes=10), "duration_minutes"),
        (_single(duration_minutes=481), "duration_minutes"),
        (_mondays(recurrence_pattern={"days": []}), "recurrence_pattern"),
        (_mondays(recurrence_end_date=None), "recurrence_end_date"),
        (_mondays(recurrence_end_date=datetime(2023, 12, 31)), "recurrence_end_date"),
        (_single(recurrence_pattern={"days": ["Monday"]}), "recurrence_pattern"),
        (_single(teacher_id=STUDENT), "teacher_id"),
    ],
)
async def test_invalid_definitions_name_the_offending_field(catalog, service_factory, draft, field):
    with pytest.raises(ValidationError) as excinfo:
        await _create(service_factory, draft)

    assert excinfo.value.field == field


@pytest.mark.asyncio
async def test_recurrence_without_matching_day_is_a_validation_error(catalog, service_factory):
    """
    Tuesday start, Monday-only pattern, end before the next Monday.
    """
    draft = _mondays(
        start_time=datetime(2024, 1, 2, 9, 0),
        recurrence_end_date=datetime(2024, 1, 6, 9, 0),
    )

    with pytest.raises(ValidationError) as excinfo:
        await _create(service_factory, draft)

    assert excinfo.value.field == "recurrence_end_date"
    assert await _all_occurrences(service_factory) == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides, entity",
    [
        ({"room_id": 999}, "Room"),
        ({"teacher_id": 999}, "Teacher"),
        ({"subject_id": 999}, "Subject"),
    ],
)
async def test_unknown_references_are_not_found(catalog, service_factory, overrides, entity):
    with pytest.raises(NotFoundError) as excinfo:
        await _create(service_factory, _single(**overrides))

    assert excinfo.value.entity == entity


@pytest.mark.asyncio
async def test_concurrent_overlapping_creates_let_exactly_one_through(catalog, service_factory):
    async def attempt(draft):
        try:
            await _create(service_factory, draft)
            return "created"
        except ConflictError:
            return "conflict"

    outcomes = await asyncio.gather(
        attempt(_single(name="First", teacher_id=TEACHER_A)),
        attempt(_single(name="Second", teacher_id=TEACHER_B)),
    )

    assert sorted(outcomes) == ["conflict", "created"]
    assert len(await _all_occurrences(service_factory)) == 1


# ---------------------------------------------------------------------------
# update
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_update_regenerates_series_without_self_conflict(catalog, service_factory):
    """
    Shifting a series by 30 minutes overlaps its own prior slots, which
    must not be reported.
    """
    created = await _create(service_factory, _mondays())
    target_id = created.occurrences[0].id

    async with AsyncSessionLocal() as session:
        result = await service_factory(session).update(
            target_id, _mondays(start_time=datetime(2024, 1, 1, 9, 30))
        )

    assert result.committed is True
    assert not result.report.has_conflicts
    assert result.recurrence_id == created.recurrence_id

    stored = await _all_occurrences(service_factory)
    assert len(stored) == 5
    assert all(occ.start_time.minute == 30 for occ in stored)


@pytest.mark.asyncio
async def test_update_into_an_occupied_slot_conflicts(catalog, service_factory):
    await _create(service_factory, _mondays())
    single = await _create(service_factory, _single(start_time=datetime(2024, 1, 15, 14, 0)))

    async with AsyncSessionLocal() as session:
        with pytest.raises(ConflictError):
            await service_factory(session).update(single.occurrences[0].id, _single())

    stored = await _all_occurrences(service_factory)
    assert datetime(2024, 1, 15, 14, 0) in [occ.start_time for occ in stored]


@pytest.mark.asyncio
async def test_details_only_update_keeps_occurrence_ids(catalog, service_factory):
    created = await _create(service_factory, _mondays())

    async with AsyncSessionLocal() as session:
        result = await service_factory(session).update(
            created.occurrences[2].id,
            _mondays(name="Course A (renamed)", description="Bring laptops"),
        )

    assert result.committed is True
    assert [occ.id for occ in result.occurrences] == [occ.id for occ in created.occurrences]
    assert {occ.name for occ in result.occurrences} == {"Course A (renamed)"}
    assert {occ.description for occ in result.occurrences} == {"Bring laptops"}


@pytest.mark.asyncio
async def test_details_only_update_of_single_course_returns_stored_values(catalog, service_factory):
    created = await _create(service_factory, _single(room_id=ROOM_102))
    course_id = created.occurrences[0].id

    async with AsyncSessionLocal() as session:
        result = await service_factory(session).update(
            course_id, _single(room_id=ROOM_102, name="Renamed", description="Room change pending")
        )

    async with AsyncSessionLocal() as session:
        stored = await service_factory(session).get(course_id)

    [returned] = result.occurrences
    assert returned.id == course_id
    assert returned.name == stored.name == "Renamed"
    assert returned.description == stored.description == "Room change pending"


@pytest.mark.asyncio
async def test_renaming_series_keeps_detached_dates_deleted(catalog, service_factory):
    """
    Once the first Monday is deleted on its own, renaming the series must
    neither bring it back nor regenerate the remaining occurrences.
    """
    created = await _create(service_factory, _mondays())
    first, *remaining = created.occurrences

    async with AsyncSessionLocal() as session:
        await service_factory(session).delete(first.id)

    async with AsyncSessionLocal() as session:
        result = await service_factory(session).update(
            remaining[1].id, _mondays(name="Course A (renamed)")
        )

    assert result.committed is True
    assert [occ.id for occ in result.occurrences] == [occ.id for occ in remaining]

    stored = await _all_occurrences(service_factory)
    assert [occ.start_time.day for occ in stored] == [8, 15, 22, 29]
    assert {occ.name for occ in stored} == {"Course A (renamed)"}
    assert {occ.series_start for occ in stored} == {datetime(2024, 1, 1, 9, 0)}


@pytest.mark.asyncio
async def test_rename_after_detach_does_not_conflict_with_slot_taken_meanwhile(catalog, service_factory):
    """
    A course booked into a freed date must not block a later rename of the
    series that date was detached from.
    """
    created = await _create(service_factory, _mondays())

    async with AsyncSessionLocal() as session:
        await service_factory(session).delete(created.occurrences[0].id)
    await _create(service_factory, _single(start_time=datetime(2024, 1, 1, 9, 0)))

    async with AsyncSessionLocal() as session:
        result = await service_factory(session).update(
            created.occurrences[1].id, _mondays(description="Exam prep")
        )

    assert not result.report.has_conflicts
    assert len(await _all_occurrences(service_factory)) == 5


@pytest.mark.asyncio
async def test_update_missing_course_is_not_found(catalog, service_factory):
    async with AsyncSessionLocal() as session:
        with pytest.raises(NotFoundError) as excinfo:
            await service_factory(session).update(12345, _single())

    assert excinfo.value.entity == "Course"


@pytest.mark.asyncio
async def test_failed_write_rolls_back_the_whole_update(catalog, service_factory, monkeypatch):
    created = await _create(service_factory, _mondays())

    async def failing_write(self, batch):
        raise OperationalError("INSERT INTO courses", {}, Exception("disk I/O error"))

    monkeypatch.setattr(OccurrenceRepository, "write_occurrences", failing_write)

    async with AsyncSessionLocal() as session:
        with pytest.raises(StorageError):
            await service_factory(session).update(
                created.occurrences[0].id, _mondays(start_time=datetime(2024, 1, 1, 11, 0))
            )

    stored = await _all_occurrences(service_factory)
    assert [occ.id for occ in stored] == [occ.id for occ in created.occurrences]


# ---------------------------------------------------------------------------
# delete / read
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_delete_single_occurrence_keeps_rest_of_series(catalog, service_factory):
    created = await _create(service_factory, _mondays())

    async with AsyncSessionLocal() as session:
        result = await service_factory(session).delete(created.occurrences[1].id)

    assert result.deleted_count == 1
    assert result.whole_series is False
    assert len(await _all_occurrences(service_factory)) == 4


@pytest.mark.asyncio
async def test_delete_whole_series(catalog, service_factory):
    created = await _create(service_factory, _mondays())
    await _create(service_factory, _single(room_id=ROOM_102))

    async with AsyncSessionLocal() as session:
        result = await service_factory(session).delete(
            created.occurrences[3].id, delete_whole_series=True
        )

    assert result.deleted_count == 5
    assert result.whole_series is True
    assert result.deleted_ids == sorted(occ.id for occ in created.occurrences)
    remaining = await _all_occurrences(service_factory)
    assert [occ.name for occ in remaining] == ["Course B"]


@pytest.mark.asyncio
async def test_delete_missing_course_is_not_found(catalog, service_factory):
    async with AsyncSessionLocal() as session:
        with pytest.raises(NotFoundError):
            await service_factory(session).delete(12345)


@pytest.mark.asyncio
async def test_list_filters_and_series_grouping(catalog, service_factory):
    await _create(service_factory, _mondays())
    await _create(service_factory, _single(room_id=ROOM_102))

    async with AsyncSessionLocal() as session:
        service = service_factory(session)
        window = await service.list_occurrences(
            from_date=date(2024, 1, 8), to_date=date(2024, 1, 15)
        )
        in_room_102 = await service.list_occurrences(room_id=ROOM_102)
        rows = await service.list_series()

    assert [(occ.name, occ.start_time.day) for occ in window] == [
        ("Course A", 8),
        ("Course A", 15),
        ("Course B", 15),
    ]
    assert [occ.name for occ in in_room_102] == ["Course B"]
    assert [type(row) for row in rows] == [SeriesSummary, StandaloneRow]
    assert rows[0].occurrence_count == 5


@pytest.mark.asyncio
async def test_list_rejects_inverted_window(catalog, service_factory):
    async with AsyncSessionLocal() as session:
        with pytest.raises(ValidationError) as excinfo:
            await service_factory(session).list_occurrences(
                from_date=date(2024, 2, 1), to_date=date(2024, 1, 1)
            )

    assert excinfo.value.field == "to_date"
