from __future__ import annotations

from datetime import datetime

from pydantic import AliasChoices, BaseModel, Field, field_validator

from app.schemas.conflict import ConflictReport
from app.schemas.recurrence import RecurrencePattern


def _wall_clock(value: datetime | None) -> datetime | None:
    """
    Timestamps are naive wall-clock times of the school; an explicit offset
    on input is dropped, keeping the clock reading the user typed.
    """
    if value is not None and value.tzinfo is not None:
        return value.replace(tzinfo=None)
    return value


# --------------------------------------------------------------------------
# Authored definition (POST /courses, PUT /courses/{id})
# --------------------------------------------------------------------------

class CourseDraft(BaseModel):
    """
    A course definition as authored by a user, single or recurring.

    Only types are checked here; scheduling rules (duration bounds, pattern
    presence, end date ordering) are enforced by the SchedulingService so that
    violations are reported as field-level ValidationErrors.
    """

    name: str = Field(
        ...,
        description="Human-readable course name.",
        examples=["Algorithmique L1"],
    )
    subject_id: int = Field(..., description="Identifier of the taught subject.", examples=[3])
    teacher_id: int = Field(..., description="Identifier of the teaching user.", examples=[12])
    room_id: int = Field(..., description="Identifier of the booked room.", examples=[101])
    start_time: datetime = Field(
        ...,
        description="Start of the first occurrence (school wall-clock time).",
        examples=["2024-01-01T09:00:00"],
    )
    duration_minutes: int = Field(
        ...,
        validation_alias=AliasChoices("duration_minutes", "duration"),
        description="Length of each occurrence in minutes (15 to 480).",
        examples=[60],
    )
    description: str | None = Field(default=None, description="Free-text notes.")
    is_recurring: bool = Field(default=False, description="Whether the course repeats weekly.")
    recurrence_pattern: RecurrencePattern | None = Field(
        default=None,
        description=(
            "Weekdays of repetition, as an object or as its stored JSON string "
            '(`{"days": ["Monday", "Wednesday"]}`).'
        ),
    )
    recurrence_end_date: datetime | None = Field(
        default=None,
        description="Last day (inclusive) on which occurrences may be generated.",
        examples=["2024-01-29T23:59:59"],
    )
    exclude_holidays: bool = Field(
        default=False,
        description="Skip dates that the holiday calendar reports as holidays.",
    )

    @field_validator("recurrence_pattern", mode="before")
    @classmethod
    def _decode_pattern(cls, value):
        return RecurrencePattern.coerce(value)

    @field_validator("start_time", "recurrence_end_date")
    @classmethod
    def _strip_offset(cls, value: datetime | None) -> datetime | None:
        return _wall_clock(value)


# --------------------------------------------------------------------------
# Concrete timetable slot
# --------------------------------------------------------------------------

class Occurrence(BaseModel):
    """
    One concrete, bookable slot materialized from a course definition.

    Persisted occurrences carry the recurrence metadata of their definition so
    that a series can be reconstituted from its rows alone.
    """

    id: int | None = Field(
        default=None,
        description="Database identifier; None for occurrences not yet persisted.",
        examples=[42],
    )
    recurrence_id: str | None = Field(
        default=None,
        description="Identifier shared by every occurrence of one recurring definition.",
    )
    name: str = Field(..., examples=["Algorithmique L1"])
    subject_id: int = Field(..., examples=[3])
    teacher_id: int = Field(..., examples=[12])
    room_id: int = Field(..., examples=[101])
    start_time: datetime = Field(..., examples=["2024-01-15T09:00:00"])
    end_time: datetime = Field(..., examples=["2024-01-15T10:00:00"])
    duration_minutes: int = Field(..., examples=[60])
    series_start: datetime | None = Field(
        default=None,
        description=(
            "Start of the first occurrence as authored. Kept when single dates "
            "of the series are deleted."
        ),
        examples=["2024-01-01T09:00:00"],
    )
    description: str | None = None
    is_recurring: bool = False
    recurrence_pattern: RecurrencePattern | None = None
    recurrence_end_date: datetime | None = None
    exclude_holidays: bool = False

    class Config:
        from_attributes = True

    @field_validator("recurrence_pattern", mode="before")
    @classmethod
    def _decode_pattern(cls, value):
        return RecurrencePattern.coerce(value)

    @field_validator("start_time", "end_time", "series_start", "recurrence_end_date")
    @classmethod
    def _strip_offset(cls, value: datetime | None) -> datetime | None:
        return _wall_clock(value)

    @property
    def definition_key(self) -> tuple[str, object] | None:
        """
        Identity of the definition this occurrence was generated from.

        Occurrences of one recurring definition share their recurrence_id;
        a single course is its own definition. Unsaved single candidates have
        no identity yet.
        """
        if self.recurrence_id is not None:
            return ("series", self.recurrence_id)
        if self.id is not None:
            return ("occurrence", self.id)
        return None


# --------------------------------------------------------------------------
# Operation results
# --------------------------------------------------------------------------

class CourseWriteResult(BaseModel):
    """
    Outcome of a create/update (or of its dry-run preview).
    """

    committed: bool = Field(
        ...,
        description="False for dry runs; True once the occurrences are persisted.",
    )
    overridden: bool = Field(
        default=False,
        description="True if the occurrences were persisted despite reported conflicts.",
    )
    recurrence_id: str | None = Field(
        default=None,
        description="Series identifier of the written occurrences, if recurring.",
    )
    occurrences: list[Occurrence] = Field(
        default_factory=list,
        description="Occurrences created (or that would be created), ascending by start.",
    )
    report: ConflictReport = Field(
        default_factory=ConflictReport,
        description="Conflicts found against existing occurrences.",
    )


class DeletionResult(BaseModel):
    """
    Outcome of DELETE /courses/{id}.
    """

    deleted_ids: list[int] = Field(..., examples=[[7, 8, 9]])
    deleted_count: int = Field(..., examples=[3])
    whole_series: bool = Field(
        ...,
        description="True if every occurrence of the series was removed.",
    )
