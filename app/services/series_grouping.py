from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence

from app.schemas.course import Occurrence
from app.schemas.recurrence import Weekday
from app.schemas.series import DisplayRow, SeriesSummary, StandaloneRow


def _start_order(occurrence: Occurrence) -> tuple:
    return (
        occurrence.start_time,
        occurrence.id if occurrence.id is not None else -1,
    )


def _summarize(recurrence_id: str, members: list[Occurrence]) -> SeriesSummary:
    members = sorted(members, key=_start_order)
    representative = members[0]

    if representative.recurrence_end_date is not None:
        end_date = representative.recurrence_end_date.date()
    else:
        end_date = members[-1].start_time.date()

    if representative.recurrence_pattern is not None:
        days = list(representative.recurrence_pattern.days)
    else:
        observed = {member.start_time.weekday() for member in members}
        days = [Weekday.from_index(index) for index in sorted(observed)]

    return SeriesSummary(
        recurrence_id=recurrence_id,
        representative=representative,
        occurrence_count=len(members),
        dates=[member.start_time.date() for member in members],
        end_date=end_date,
        days=days,
        occurrences=members,
    )


def _row_order(row: DisplayRow) -> tuple:
    if isinstance(row, StandaloneRow):
        occurrence = row.occurrence
        return (occurrence.start_time, 0, occurrence.id if occurrence.id is not None else -1, "")
    return (row.representative.start_time, 1, -1, row.recurrence_id)


def group(occurrences: Iterable[Occurrence]) -> list[DisplayRow]:
    """
    Collapse occurrences sharing a recurrence_id into one SeriesSummary each.

    - Occurrences without recurrence_id become standalone rows.
    - Every recurrence_id yields exactly one summary: earliest occurrence as
      representative, count, sorted dates, end date and weekday pattern.
      Rows that lost their stored metadata fall back to the last occurrence
      date and the observed weekdays.
    - Input order does not matter; rows come out ascending by representative
      start time (standalone rows first on ties).

    group(flatten(group(x))) == group(x).
    """
    standalone: list[DisplayRow] = []
    series: dict[str, list[Occurrence]] = defaultdict(list)

    for occurrence in occurrences:
        if occurrence.recurrence_id is None:
            standalone.append(StandaloneRow(occurrence=occurrence))
        else:
            series[occurrence.recurrence_id].append(occurrence)

    rows = standalone + [
        _summarize(recurrence_id, members) for recurrence_id, members in series.items()
    ]
    return sorted(rows, key=_row_order)


def flatten(rows: Sequence[DisplayRow]) -> list[Occurrence]:
    """
    Inverse of `group`: every occurrence carried by the rows.
    """
    flat: list[Occurrence] = []
    for row in rows:
        if isinstance(row, StandaloneRow):
            flat.append(row.occurrence)
        else:
            flat.extend(row.occurrences)
    return flat
