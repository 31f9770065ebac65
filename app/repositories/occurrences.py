from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional, Sequence

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError, StorageError
from app.models.course import Course
from app.schemas.course import Occurrence


@dataclass(frozen=True)
class OccurrenceFilter:
    """
    Selection of stored occurrences.

    - room_ids / teacher_id: resource filters. Combined with AND unless
      `any_resource` is set, in which case an occurrence matching either the
      rooms or the teacher is selected (what conflict checking needs).
    - recurrence_id: restrict to one series.
    - start / end: keep occurrences overlapping [start, end).
    """

    room_ids: Optional[frozenset[int]] = None
    teacher_id: Optional[int] = None
    recurrence_id: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    any_resource: bool = False


def _to_row(occurrence: Occurrence) -> Course:
    return Course(
        name=occurrence.name,
        subject_id=occurrence.subject_id,
        teacher_id=occurrence.teacher_id,
        room_id=occurrence.room_id,
        start_time=occurrence.start_time,
        end_time=occurrence.end_time,
        duration_minutes=occurrence.duration_minutes,
        series_start=occurrence.series_start,
        description=occurrence.description,
        is_recurring=occurrence.is_recurring,
        recurrence_id=occurrence.recurrence_id,
        recurrence_pattern=(
            occurrence.recurrence_pattern.to_json()
            if occurrence.recurrence_pattern is not None
            else None
        ),
        recurrence_end_date=occurrence.recurrence_end_date,
        exclude_holidays=occurrence.exclude_holidays,
    )


class OccurrenceRepository:
    """
    Persistence of course occurrences on top of an AsyncSession.

    The repository never commits: the caller owns the transaction so that a
    batch of writes and deletes lands all together or not at all. Driver
    errors are raised as StorageError.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def get(self, occurrence_id: int) -> Occurrence:
        try:
            row = await self._db.get(Course, occurrence_id, populate_existing=True)
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to load course {occurrence_id}: {exc}") from exc
        if row is None:
            raise NotFoundError("Course", occurrence_id)
        return Occurrence.model_validate(row)

    async def load_occurrences(self, flt: OccurrenceFilter) -> list[Occurrence]:
        """
        Return occurrences matching `flt`, ascending by start time then id.
        """
        conditions = []

        resource_conditions = []
        if flt.room_ids is not None:
            resource_conditions.append(Course.room_id.in_(sorted(flt.room_ids)))
        if flt.teacher_id is not None:
            resource_conditions.append(Course.teacher_id == flt.teacher_id)
        if resource_conditions:
            if flt.any_resource:
                conditions.append(or_(*resource_conditions))
            else:
                conditions.extend(resource_conditions)

        if flt.recurrence_id is not None:
            conditions.append(Course.recurrence_id == flt.recurrence_id)
        if flt.start is not None:
            conditions.append(Course.end_time > flt.start)
        if flt.end is not None:
            conditions.append(Course.start_time < flt.end)

        stmt = select(Course)
        if conditions:
            stmt = stmt.where(and_(*conditions))
        stmt = stmt.order_by(Course.start_time.asc(), Course.id.asc()).execution_options(
            populate_existing=True
        )

        try:
            result = await self._db.execute(stmt)
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to load occurrences: {exc}") from exc

        return [Occurrence.model_validate(row) for row in result.scalars().all()]

    async def write_occurrences(self, batch: Sequence[Occurrence]) -> list[Occurrence]:
        """
        Insert a batch of occurrences and return them with their new ids.
        """
        rows = [_to_row(occurrence) for occurrence in batch]
        try:
            self._db.add_all(rows)
            await self._db.flush()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to write {len(rows)} occurrence(s): {exc}") from exc

        return [Occurrence.model_validate(row) for row in rows]

    async def delete_occurrences(self, ids: Iterable[int]) -> int:
        """
        Delete occurrences by id; returns the number of removed rows.
        """
        id_list = sorted(set(ids))
        if not id_list:
            return 0
        try:
            result = await self._db.execute(
                delete(Course).where(Course.id.in_(id_list))
            )
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to delete occurrences {id_list}: {exc}") from exc
        return result.rowcount or 0

    async def update_details(
        self,
        ids: Iterable[int],
        *,
        name: str,
        subject_id: int,
        description: Optional[str],
    ) -> None:
        """
        Rewrite the descriptive columns of existing occurrences in place.
        """
        id_list = sorted(set(ids))
        if not id_list:
            return
        try:
            await self._db.execute(
                update(Course)
                .where(Course.id.in_(id_list))
                .values(name=name, subject_id=subject_id, description=description)
            )
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to update occurrences {id_list}: {exc}") from exc
