from datetime import date
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from app.schemas.course import Occurrence
from app.schemas.recurrence import Weekday


class StandaloneRow(BaseModel):
    """
    A list row for an occurrence that does not belong to any series.
    """

    kind: Literal["occurrence"] = "occurrence"
    occurrence: Occurrence


class SeriesSummary(BaseModel):
    """
    A list row standing for every stored occurrence of one recurring course.
    """

    kind: Literal["series"] = "series"
    recurrence_id: str = Field(..., description="Identifier shared by the series.")
    representative: Occurrence = Field(
        ...,
        description="Earliest occurrence of the series.",
    )
    occurrence_count: int = Field(..., examples=[5])
    dates: list[date] = Field(
        ...,
        description="Dates of the occurrences, ascending.",
        examples=[["2024-01-01", "2024-01-08"]],
    )
    end_date: date = Field(
        ...,
        description="Recurrence end date, or the last occurrence date if none is stored.",
    )
    days: list[Weekday] = Field(
        ...,
        description="Weekday pattern of the series.",
        examples=[["Monday"]],
    )
    occurrences: list[Occurrence] = Field(
        ...,
        description="Member occurrences, ascending by start time.",
    )


DisplayRow = Annotated[Union[StandaloneRow, SeriesSummary], Field(discriminator="kind")]
