from __future__ import annotations

import logging
import uuid
from datetime import date as date_type
from datetime import datetime, time, timedelta
from typing import NoReturn, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictError, StorageError, ValidationError
from app.repositories.occurrences import OccurrenceFilter, OccurrenceRepository
from app.schemas.conflict import ConflictReport
from app.schemas.course import CourseDraft, CourseWriteResult, DeletionResult, Occurrence
from app.schemas.series import DisplayRow
from app.services import conflict_detector, series_grouping
from app.services.catalog import CatalogResolver
from app.services.expander import expand
from app.services.holiday_calendar import HolidayCalendar, HolidayCalendarError
from app.services.locks import LockKey, ResourceLocks, room_key, series_key, teacher_key

logger = logging.getLogger(__name__)

MIN_DURATION_MINUTES = 15
MAX_DURATION_MINUTES = 480


def validate_draft(draft: CourseDraft) -> None:
    """
    Enforce the field rules of a course definition.

    Raises ValidationError naming the first offending field.
    """
    if not draft.name or not draft.name.strip():
        raise ValidationError("name", "must not be empty")

    if not MIN_DURATION_MINUTES <= draft.duration_minutes <= MAX_DURATION_MINUTES:
        raise ValidationError(
            "duration_minutes",
            f"must be between {MIN_DURATION_MINUTES} and {MAX_DURATION_MINUTES} minutes",
        )

    if draft.is_recurring:
        if draft.recurrence_pattern is None or not draft.recurrence_pattern.days:
            raise ValidationError(
                "recurrence_pattern",
                "a recurring course needs at least one weekday",
            )
        if draft.recurrence_end_date is None:
            raise ValidationError(
                "recurrence_end_date",
                "a recurring course needs an end date",
            )
        if draft.recurrence_end_date <= draft.start_time:
            raise ValidationError(
                "recurrence_end_date",
                "must be after start_time",
            )
    else:
        if draft.recurrence_pattern is not None:
            raise ValidationError(
                "recurrence_pattern",
                "only allowed when is_recurring is true",
            )
        if draft.recurrence_end_date is not None:
            raise ValidationError(
                "recurrence_end_date",
                "only allowed when is_recurring is true",
            )


def _schedule_changed(reference: Occurrence, draft: CourseDraft) -> bool:
    """
    True if the draft moves the definition in time, room, teacher or
    recurrence, i.e. its occurrences must be regenerated.

    The start is compared with the authored start of the definition, not with
    the earliest stored occurrence, which moves when that date is deleted.
    """
    if reference.is_recurring != draft.is_recurring:
        return True
    authored_start = reference.series_start or reference.start_time
    if (
        authored_start != draft.start_time
        or reference.duration_minutes != draft.duration_minutes
        or reference.room_id != draft.room_id
        or reference.teacher_id != draft.teacher_id
    ):
        return True
    if draft.is_recurring:
        return (
            reference.recurrence_pattern != draft.recurrence_pattern
            or reference.recurrence_end_date != draft.recurrence_end_date
            or reference.exclude_holidays != draft.exclude_holidays
        )
    return False


class SchedulingService:
    """
    Create, update and delete course definitions on the shared timetable.

    Every mutation runs expand -> conflict check -> persist while holding the
    locks of the rooms, teacher and series involved, and commits its whole
    batch in one transaction: either every occurrence is written/removed or
    none is.

    Conflicts block persistence (ConflictError) unless the caller passes
    `override=True`, which is logged. `dry_run=True` returns the would-be
    result and its conflict report without writing anything.
    """

    def __init__(
        self,
        db: AsyncSession,
        locks: ResourceLocks,
        holiday_calendar: HolidayCalendar,
        catalog: Optional[CatalogResolver] = None,
        occurrences: Optional[OccurrenceRepository] = None,
    ) -> None:
        self._db = db
        self._locks = locks
        self._holiday_calendar = holiday_calendar
        self._catalog = catalog or CatalogResolver(db)
        self._occurrences = occurrences or OccurrenceRepository(db)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _resolve_references(self, draft: CourseDraft) -> set[int]:
        """
        Check that subject, teacher and room exist; return the rooms sharing
        space with the booked room.
        """
        await self._catalog.resolve_subject(draft.subject_id)

        teacher = await self._catalog.resolve_teacher(draft.teacher_id)
        if not self._catalog.is_teacher(teacher):
            raise ValidationError("teacher_id", "the selected user is not a teacher")

        await self._catalog.resolve_room(draft.room_id)
        return await self._catalog.linked_room_ids(draft.room_id)

    async def _holidays_for(self, draft: CourseDraft) -> set[date_type]:
        if not (draft.is_recurring and draft.exclude_holidays and draft.recurrence_end_date):
            return set()
        try:
            return await self._holiday_calendar.holidays_between(
                draft.start_time.date(),
                draft.recurrence_end_date.date(),
            )
        except HolidayCalendarError as exc:
            raise StorageError(f"Holiday calendar unavailable: {exc}") from exc

    async def _expand(self, draft: CourseDraft, recurrence_id: Optional[str]) -> list[Occurrence]:
        holidays = await self._holidays_for(draft)
        candidates = expand(draft, holidays, recurrence_id)
        if not candidates:
            raise ValidationError(
                "recurrence_end_date",
                "no occurrence falls on the selected weekdays before the end date",
            )
        return candidates

    async def _existing_for(
        self,
        candidates: list[Occurrence],
        room_ids: set[int],
        teacher_id: int,
    ) -> list[Occurrence]:
        """
        Stored occurrences in the candidates' rooms or with their teacher,
        within the time span of the candidates.
        """
        return await self._occurrences.load_occurrences(
            OccurrenceFilter(
                room_ids=frozenset(room_ids),
                teacher_id=teacher_id,
                start=min(candidate.start_time for candidate in candidates),
                end=max(candidate.end_time for candidate in candidates),
                any_resource=True,
            )
        )

    @staticmethod
    def _linked_map(room_id: int, linked: set[int]) -> dict[int, set[int]]:
        mapping: dict[int, set[int]] = {room_id: set(linked)}
        for other in linked:
            mapping.setdefault(other, set()).add(room_id)
        return mapping

    @staticmethod
    def _lock_keys(draft: CourseDraft, linked: set[int]) -> list[LockKey]:
        keys = [room_key(draft.room_id), teacher_key(draft.teacher_id)]
        keys.extend(room_key(room_id) for room_id in linked)
        return keys

    async def _abort(self, exc: Exception) -> NoReturn:
        """
        Roll the current transaction back and re-raise as StorageError.
        """
        await self._db.rollback()
        logger.exception("Scheduling transaction rolled back")
        if isinstance(exc, StorageError):
            raise exc
        raise StorageError(f"Storage failure: {exc}") from exc

    def _guard_conflicts(self, report: ConflictReport, override: bool, action: str) -> None:
        if not report.has_conflicts:
            return
        if not override:
            raise ConflictError(report)
        logger.warning(
            "%s persisted with %d conflict(s) by explicit override: occurrences %s",
            action,
            len(report.conflicts),
            [entry.conflicting_occurrence_id for entry in report.conflicts],
        )

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    async def create(
        self,
        draft: CourseDraft,
        *,
        override: bool = False,
        dry_run: bool = False,
    ) -> CourseWriteResult:
        """
        Expand `draft`, check it against the timetable and persist it.

        Raises
        ------
        ValidationError: malformed definition or empty expansion.
        NotFoundError:   unknown subject, teacher or room.
        ConflictError:   overlaps found and `override` is False.
        StorageError:    persistence or holiday calendar failure.
        """
        validate_draft(draft)
        linked = await self._resolve_references(draft)

        async with self._locks.hold(self._lock_keys(draft, linked)):
            recurrence_id = str(uuid.uuid4()) if draft.is_recurring else None
            candidates = await self._expand(draft, recurrence_id)

            existing = await self._existing_for(
                candidates, {draft.room_id, *linked}, draft.teacher_id
            )
            report = conflict_detector.check(
                candidates, existing, self._linked_map(draft.room_id, linked)
            )

            if dry_run:
                return CourseWriteResult(
                    committed=False,
                    recurrence_id=recurrence_id,
                    occurrences=candidates,
                    report=report,
                )

            self._guard_conflicts(report, override, f"Course '{draft.name}'")

            try:
                written = await self._occurrences.write_occurrences(candidates)
                await self._db.commit()
            except (StorageError, SQLAlchemyError) as exc:
                await self._abort(exc)

        logger.info(
            "Created course '%s' with %d occurrence(s) (recurrence_id=%s)",
            draft.name,
            len(written),
            recurrence_id,
        )
        return CourseWriteResult(
            committed=True,
            overridden=report.has_conflicts,
            recurrence_id=recurrence_id,
            occurrences=written,
            report=report,
        )

    async def _definition_of(self, target: Occurrence) -> list[Occurrence]:
        """
        Stored occurrences of the definition `target` belongs to, as currently
        persisted.
        """
        if target.recurrence_id is None:
            return [await self._occurrences.get(target.id)]
        return await self._occurrences.load_occurrences(
            OccurrenceFilter(recurrence_id=target.recurrence_id)
        )

    async def update(
        self,
        occurrence_id: int,
        draft: CourseDraft,
        *,
        override: bool = False,
        dry_run: bool = False,
    ) -> CourseWriteResult:
        """
        Replace the definition that occurrence `occurrence_id` belongs to.

        A change limited to name, subject or description rewrites those
        columns on every occurrence of the series. Any change of time, room,
        teacher or recurrence deletes the prior occurrences and writes the
        new expansion under the same recurrence_id, checking conflicts while
        ignoring the series' own prior occurrences.
        """
        validate_draft(draft)
        first_look = await self._occurrences.get(occurrence_id)
        linked = await self._resolve_references(draft)

        keys = self._lock_keys(draft, linked)
        keys += [room_key(first_look.room_id), teacher_key(first_look.teacher_id)]
        if first_look.recurrence_id is not None:
            keys.append(series_key(first_look.recurrence_id))

        async with self._locks.hold(keys):
            target = await self._occurrences.get(occurrence_id)
            prior = await self._definition_of(target)
            prior_ids = {occurrence.id for occurrence in prior}
            reference = prior[0]

            if not _schedule_changed(reference, draft):
                return await self._update_details(target, prior, draft, dry_run)

            if draft.is_recurring:
                recurrence_id = target.recurrence_id or str(uuid.uuid4())
            else:
                recurrence_id = None
            candidates = await self._expand(draft, recurrence_id)

            existing = [
                occurrence
                for occurrence in await self._existing_for(
                    candidates, {draft.room_id, *linked}, draft.teacher_id
                )
                if occurrence.id not in prior_ids
            ]
            report = conflict_detector.check(
                candidates, existing, self._linked_map(draft.room_id, linked)
            )

            if dry_run:
                return CourseWriteResult(
                    committed=False,
                    recurrence_id=recurrence_id,
                    occurrences=candidates,
                    report=report,
                )

            self._guard_conflicts(report, override, f"Update of course {occurrence_id}")

            try:
                await self._occurrences.delete_occurrences(prior_ids)
                written = await self._occurrences.write_occurrences(candidates)
                await self._db.commit()
            except (StorageError, SQLAlchemyError) as exc:
                await self._abort(exc)

        logger.info(
            "Regenerated course %s: %d prior occurrence(s) replaced by %d",
            occurrence_id,
            len(prior_ids),
            len(written),
        )
        return CourseWriteResult(
            committed=True,
            overridden=report.has_conflicts,
            recurrence_id=recurrence_id,
            occurrences=written,
            report=report,
        )

    async def _update_details(
        self,
        target: Occurrence,
        prior: list[Occurrence],
        draft: CourseDraft,
        dry_run: bool,
    ) -> CourseWriteResult:
        changes = {
            "name": draft.name,
            "subject_id": draft.subject_id,
            "description": draft.description,
        }
        if dry_run:
            return CourseWriteResult(
                committed=False,
                recurrence_id=target.recurrence_id,
                occurrences=[occurrence.model_copy(update=changes) for occurrence in prior],
            )

        try:
            await self._occurrences.update_details(
                [occurrence.id for occurrence in prior], **changes
            )
            await self._db.commit()
        except (StorageError, SQLAlchemyError) as exc:
            await self._abort(exc)

        logger.info("Updated details of %d occurrence(s) of course %s", len(prior), target.id)
        return CourseWriteResult(
            committed=True,
            recurrence_id=target.recurrence_id,
            occurrences=await self._definition_of(target),
        )

    async def delete(
        self,
        occurrence_id: int,
        *,
        delete_whole_series: bool = False,
    ) -> DeletionResult:
        """
        Delete one occurrence, or its whole series.

        With `delete_whole_series` on an occurrence that has a recurrence_id,
        every occurrence sharing it is removed. Otherwise only the targeted
        occurrence is removed and the rest of its series stays untouched.
        """
        first_look = await self._occurrences.get(occurrence_id)

        keys = [room_key(first_look.room_id), teacher_key(first_look.teacher_id)]
        if first_look.recurrence_id is not None:
            keys.append(series_key(first_look.recurrence_id))

        async with self._locks.hold(keys):
            target = await self._occurrences.get(occurrence_id)
            whole_series = delete_whole_series and target.recurrence_id is not None

            if whole_series:
                ids = [occurrence.id for occurrence in await self._definition_of(target)]
            else:
                ids = [target.id]

            try:
                await self._occurrences.delete_occurrences(ids)
                await self._db.commit()
            except (StorageError, SQLAlchemyError) as exc:
                await self._abort(exc)

        logger.info(
            "Deleted %d occurrence(s) of course %s (whole_series=%s)",
            len(ids),
            occurrence_id,
            whole_series,
        )
        return DeletionResult(
            deleted_ids=sorted(ids),
            deleted_count=len(ids),
            whole_series=whole_series,
        )

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    async def get(self, occurrence_id: int) -> Occurrence:
        return await self._occurrences.get(occurrence_id)

    async def list_occurrences(
        self,
        *,
        from_date: Optional[date_type] = None,
        to_date: Optional[date_type] = None,
        room_id: Optional[int] = None,
        teacher_id: Optional[int] = None,
    ) -> list[Occurrence]:
        """
        Stored occurrences, optionally limited to an inclusive date window,
        a room and/or a teacher.
        """
        if from_date is not None and to_date is not None and to_date < from_date:
            raise ValidationError("to_date", "must be on or after from_date")

        start: Optional[datetime] = None
        end: Optional[datetime] = None
        if from_date is not None:
            start = datetime.combine(from_date, time.min)
        if to_date is not None:
            end = datetime.combine(to_date + timedelta(days=1), time.min)

        return await self._occurrences.load_occurrences(
            OccurrenceFilter(
                room_ids=frozenset({room_id}) if room_id is not None else None,
                teacher_id=teacher_id,
                start=start,
                end=end,
            )
        )

    async def list_series(
        self,
        *,
        from_date: Optional[date_type] = None,
        to_date: Optional[date_type] = None,
        room_id: Optional[int] = None,
        teacher_id: Optional[int] = None,
    ) -> list[DisplayRow]:
        """
        Same selection as list_occurrences, grouped into series rows.
        """
        occurrences = await self.list_occurrences(
            from_date=from_date,
            to_date=to_date,
            room_id=room_id,
            teacher_id=teacher_id,
        )
        return series_grouping.group(occurrences)
