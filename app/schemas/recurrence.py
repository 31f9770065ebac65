from __future__ import annotations

import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class Weekday(str, Enum):
    """
    English weekday names, as used in the stored `{"days": [...]}` blob.

    Declared in ISO order so that `list(Weekday)[date.weekday()]` is the
    weekday of a date.
    """

    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"
    SUNDAY = "Sunday"

    @classmethod
    def from_index(cls, index: int) -> "Weekday":
        """
        Map `date.weekday()` (Monday=0) to the enum member.
        """
        return list(cls)[index]

    @property
    def index(self) -> int:
        return list(Weekday).index(self)

    @classmethod
    def _missing_(cls, value: object) -> "Weekday | None":
        # Older rows store lowercase names ("monday").
        if isinstance(value, str):
            for member in cls:
                if member.value.lower() == value.strip().lower():
                    return member
        return None


class RecurrencePattern(BaseModel):
    """
    Weekdays on which a recurring course takes place.

    Wire/storage form is `{"days": ["Monday", "Wednesday"]}`. The order in
    which days were given is kept so that decoding then encoding returns the
    same document; duplicates are dropped.
    """

    days: list[Weekday] = Field(
        ...,
        description="Weekdays on which the course repeats (English names).",
        examples=[["Monday", "Wednesday"]],
    )

    @field_validator("days", mode="before")
    @classmethod
    def _normalize_names(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple, set, frozenset)):
            return [
                Weekday(day) if isinstance(day, str) else day
                for day in value
            ]
        return value

    @field_validator("days")
    @classmethod
    def _dedupe_days(cls, value: list[Weekday]) -> list[Weekday]:
        seen: list[Weekday] = []
        for day in value:
            if day not in seen:
                seen.append(day)
        return seen

    @property
    def weekday_indexes(self) -> frozenset[int]:
        return frozenset(day.index for day in self.days)

    def includes(self, weekday_index: int) -> bool:
        return weekday_index in self.weekday_indexes

    def to_json(self) -> str:
        """
        Serialize to the stored JSON string blob.
        """
        return json.dumps({"days": [day.value for day in self.days]})

    @classmethod
    def from_json(cls, raw: str) -> "RecurrencePattern":
        """
        Decode the stored JSON string blob into the typed pattern.
        """
        return cls.model_validate(json.loads(raw))

    @classmethod
    def coerce(cls, value: Any) -> Any:
        """
        Accept the pattern either as an object or as its JSON string form.

        Used as a `mode="before"` hook by models that embed a pattern.
        """
        if isinstance(value, str):
            value = value.strip()
            if not value:
                return None
            return json.loads(value)
        return value
