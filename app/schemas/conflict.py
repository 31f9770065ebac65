from datetime import datetime

from pydantic import BaseModel, Field, computed_field


class ConflictEntry(BaseModel):
    """
    A single collision between a candidate occurrence and an existing one.

    `room_id` and/or `teacher_id` are set to the shared resource that caused
    the collision; the other is None when only one of them collided.
    """

    conflicting_occurrence_id: int | None = Field(
        ...,
        description="Identifier of the existing occurrence that is overlapped.",
        examples=[17],
    )
    course_name: str = Field(
        ...,
        description="Name of the course owning the existing occurrence.",
        examples=["Algorithmique L1"],
    )
    room_id: int | None = Field(
        default=None,
        description="Room shared by both occurrences, if the room collided.",
        examples=[101],
    )
    teacher_id: int | None = Field(
        default=None,
        description="Teacher shared by both occurrences, if the teacher collided.",
        examples=[None],
    )
    overlap_start: datetime = Field(..., examples=["2024-01-15T09:30:00"])
    overlap_end: datetime = Field(..., examples=["2024-01-15T10:00:00"])
    candidate_start: datetime = Field(
        ...,
        description="Start of the candidate occurrence that caused the collision.",
        examples=["2024-01-15T09:30:00"],
    )
    candidate_end: datetime = Field(..., examples=["2024-01-15T10:30:00"])


class ConflictReport(BaseModel):
    """
    Result of a conflict check, also the body of POST /courses/check-conflicts.
    """

    conflicts: list[ConflictEntry] = Field(
        default_factory=list,
        description="Collisions ordered by candidate start, then existing start.",
    )

    @computed_field  # type: ignore[misc]
    @property
    def has_conflicts(self) -> bool:
        return len(self.conflicts) > 0
