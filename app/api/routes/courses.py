from datetime import date as date_type
from http import HTTPStatus

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from app.api.dependencies.roles import require_any_role, require_scheduler_role
from app.api.dependencies.scheduling import get_scheduling_service
from app.core.exceptions import (
    ConflictError,
    NotFoundError,
    SchedulingError,
    StorageError,
    ValidationError,
)
from app.schemas.conflict import ConflictReport
from app.schemas.course import CourseDraft, CourseWriteResult, DeletionResult, Occurrence
from app.schemas.series import DisplayRow
from app.services.scheduling import SchedulingService

router = APIRouter(prefix="/courses", tags=["Courses"])


def _http_error(exc: SchedulingError) -> HTTPException:
    """
    Translate a scheduling error into the HTTP response the dashboard expects.
    """
    if isinstance(exc, ValidationError):
        return HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail={"field": exc.field, "message": exc.message},
        )
    if isinstance(exc, ConflictError):
        return HTTPException(
            status_code=HTTPStatus.CONFLICT,
            detail={
                "message": str(exc),
                "report": exc.report.model_dump(mode="json"),
            },
        )
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=HTTPStatus.NOT_FOUND, detail=str(exc))
    if isinstance(exc, StorageError):
        return HTTPException(status_code=HTTPStatus.SERVICE_UNAVAILABLE, detail=str(exc))
    return HTTPException(status_code=HTTPStatus.INTERNAL_SERVER_ERROR, detail=str(exc))


@router.post(
    "",
    response_model=CourseWriteResult,
    status_code=HTTPStatus.CREATED,
    summary="Schedule a new course (single or recurring)",
    description=(
        "Expand the course definition into concrete occurrences, check them "
        "against existing occurrences of the same room (including linked "
        "modular rooms) and the same teacher, and persist the whole batch "
        "atomically.\n\n"
        "- On conflicts, nothing is written and a 409 carries the conflict report.\n"
        "- `override=true` persists despite conflicts (administrative override, logged).\n"
        "- A recurring definition yielding no occurrence is rejected with 400."
    ),
    responses={
        400: {"description": "Malformed definition; `detail.field` names the offending field."},
        404: {"description": "Unknown subject, teacher or room."},
        409: {
            "description": "Conflicts detected; nothing was persisted.",
            "content": {
                "application/json": {
                    "example": {
                        "detail": {
                            "message": "1 scheduling conflict(s) detected",
                            "report": {
                                "has_conflicts": True,
                                "conflicts": [
                                    {
                                        "conflicting_occurrence_id": 3,
                                        "course_name": "Algorithmique L1",
                                        "room_id": 101,
                                        "teacher_id": None,
                                        "overlap_start": "2024-01-15T09:30:00",
                                        "overlap_end": "2024-01-15T10:00:00",
                                        "candidate_start": "2024-01-15T09:30:00",
                                        "candidate_end": "2024-01-15T10:30:00",
                                    }
                                ],
                            },
                        }
                    }
                }
            },
        },
        503: {"description": "Storage or holiday calendar failure; nothing was persisted."},
    },
    dependencies=[Depends(require_scheduler_role)],
)
async def create_course(
    payload: CourseDraft,
    override: bool = Query(
        default=False,
        description="Persist even if conflicts are reported.",
    ),
    service: SchedulingService = Depends(get_scheduling_service),
) -> CourseWriteResult:
    try:
        return await service.create(payload, override=override)
    except SchedulingError as exc:
        raise _http_error(exc)


@router.post(
    "/check-conflicts",
    response_model=ConflictReport,
    status_code=HTTPStatus.OK,
    summary="Preview conflicts of a course draft",
    description=(
        "Dry run of `POST /courses`: the same expansion and conflict check, "
        "without persisting anything."
    ),
    dependencies=[Depends(require_scheduler_role)],
)
async def check_conflicts(
    payload: CourseDraft,
    service: SchedulingService = Depends(get_scheduling_service),
) -> ConflictReport:
    try:
        result = await service.create(payload, dry_run=True)
    except SchedulingError as exc:
        raise _http_error(exc)
    return result.report


@router.get(
    "",
    response_model=list[Occurrence],
    summary="List course occurrences",
    description=(
        "Return stored occurrences ascending by start time, optionally limited "
        "to an inclusive date window, a room and/or a teacher."
    ),
    dependencies=[Depends(require_any_role)],
)
async def list_courses(
    from_date: date_type | None = Query(
        default=None,
        description="First day (inclusive) of the window, YYYY-MM-DD.",
        examples=["2024-01-01"],
    ),
    to_date: date_type | None = Query(
        default=None,
        description="Last day (inclusive) of the window, YYYY-MM-DD.",
        examples=["2024-01-31"],
    ),
    room_id: int | None = Query(default=None, ge=1),
    teacher_id: int | None = Query(default=None, ge=1),
    service: SchedulingService = Depends(get_scheduling_service),
) -> list[Occurrence]:
    try:
        return await service.list_occurrences(
            from_date=from_date,
            to_date=to_date,
            room_id=room_id,
            teacher_id=teacher_id,
        )
    except SchedulingError as exc:
        raise _http_error(exc)


@router.get(
    "/series",
    response_model=list[DisplayRow],
    summary="List courses grouped by series",
    description=(
        "Same selection as `GET /courses`, with the occurrences of each "
        "recurring course collapsed into one series row (count, dates, end "
        "date and weekday pattern). Single courses are returned as standalone rows."
    ),
    dependencies=[Depends(require_any_role)],
)
async def list_course_series(
    from_date: date_type | None = Query(default=None, examples=["2024-01-01"]),
    to_date: date_type | None = Query(default=None, examples=["2024-01-31"]),
    room_id: int | None = Query(default=None, ge=1),
    teacher_id: int | None = Query(default=None, ge=1),
    service: SchedulingService = Depends(get_scheduling_service),
) -> list[DisplayRow]:
    try:
        return await service.list_series(
            from_date=from_date,
            to_date=to_date,
            room_id=room_id,
            teacher_id=teacher_id,
        )
    except SchedulingError as exc:
        raise _http_error(exc)


@router.get(
    "/{course_id}",
    response_model=Occurrence,
    summary="Get a course occurrence by ID",
    responses={404: {"description": "No occurrence exists with the given ID."}},
    dependencies=[Depends(require_any_role)],
)
async def get_course(
    course_id: int = Path(..., description="Numeric ID of a stored course occurrence.", ge=1),
    service: SchedulingService = Depends(get_scheduling_service),
) -> Occurrence:
    try:
        return await service.get(course_id)
    except SchedulingError as exc:
        raise _http_error(exc)


@router.put(
    "/{course_id}",
    response_model=CourseWriteResult,
    summary="Replace the definition of a course",
    description=(
        "Replace the definition the occurrence belongs to (its whole series "
        "when recurring).\n\n"
        "- Name/subject/description changes are applied to every occurrence in place.\n"
        "- Time, room, teacher or recurrence changes regenerate the occurrences "
        "under the same series identifier; conflicts are checked against "
        "everything except the series' own prior occurrences."
    ),
    responses={
        400: {"description": "Malformed definition."},
        404: {"description": "Unknown course, subject, teacher or room."},
        409: {"description": "Conflicts detected; nothing was changed."},
    },
    dependencies=[Depends(require_scheduler_role)],
)
async def update_course(
    payload: CourseDraft,
    course_id: int = Path(..., description="Numeric ID of a stored course occurrence.", ge=1),
    override: bool = Query(
        default=False,
        description="Persist even if conflicts are reported.",
    ),
    service: SchedulingService = Depends(get_scheduling_service),
) -> CourseWriteResult:
    try:
        return await service.update(course_id, payload, override=override)
    except SchedulingError as exc:
        raise _http_error(exc)


@router.post(
    "/{course_id}/check-conflicts",
    response_model=ConflictReport,
    summary="Preview conflicts of a course edit",
    description="Dry run of `PUT /courses/{course_id}`.",
    dependencies=[Depends(require_scheduler_role)],
)
async def check_conflicts_for_update(
    payload: CourseDraft,
    course_id: int = Path(..., description="Numeric ID of a stored course occurrence.", ge=1),
    service: SchedulingService = Depends(get_scheduling_service),
) -> ConflictReport:
    try:
        result = await service.update(course_id, payload, dry_run=True)
    except SchedulingError as exc:
        raise _http_error(exc)
    return result.report


@router.delete(
    "/{course_id}",
    response_model=DeletionResult,
    summary="Delete a course occurrence or its whole series",
    description=(
        "By default only the targeted occurrence is deleted; the rest of its "
        "series is left untouched. With `delete_whole_series=true`, every "
        "occurrence sharing its series identifier is deleted in one transaction."
    ),
    responses={404: {"description": "No occurrence exists with the given ID."}},
    dependencies=[Depends(require_scheduler_role)],
)
async def delete_course(
    course_id: int = Path(..., description="Numeric ID of a stored course occurrence.", ge=1),
    delete_whole_series: bool = Query(
        default=False,
        description="Delete every occurrence of the series instead of only this one.",
    ),
    service: SchedulingService = Depends(get_scheduling_service),
) -> DeletionResult:
    try:
        return await service.delete(course_id, delete_whole_series=delete_whole_series)
    except SchedulingError as exc:
        raise _http_error(exc)
