from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.schemas.conflict import ConflictReport


class SchedulingError(Exception):
    """Base exception for scheduling rule violations and collaborator failures."""


class ValidationError(SchedulingError):
    """
    Raised when a course definition is malformed.

    `field` names the offending attribute so the caller can point at it.
    """

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class ConflictError(SchedulingError):
    """
    Raised when a course would overlap existing occurrences on the same room
    or teacher. Carries the full report so the caller can render it or resubmit
    with an explicit override.
    """

    def __init__(self, report: ConflictReport) -> None:
        super().__init__(f"{len(report.conflicts)} scheduling conflict(s) detected")
        self.report = report


class NotFoundError(SchedulingError):
    """Raised when a course, room, teacher or subject does not exist."""

    def __init__(self, entity: str, entity_id: object) -> None:
        super().__init__(f"{entity} with id={entity_id} not found.")
        self.entity = entity
        self.entity_id = entity_id


class StorageError(SchedulingError):
    """
    Raised when a persistence or calendar collaborator fails. The current
    transaction has been rolled back; no retry is attempted.
    """