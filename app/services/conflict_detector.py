from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence

from app.schemas.conflict import ConflictEntry, ConflictReport
from app.schemas.course import Occurrence


def overlaps(a: Occurrence, b: Occurrence) -> bool:
    """
    Half-open interval overlap; touching endpoints do not overlap.
    """
    return a.start_time < b.end_time and b.start_time < a.end_time


def same_definition(a: Occurrence, b: Occurrence) -> bool:
    key = a.definition_key
    return key is not None and key == b.definition_key


def _rooms_sharing_space(
    room_id: int,
    linked_rooms: Mapping[int, Iterable[int]] | None,
) -> set[int]:
    rooms = {room_id}
    if linked_rooms:
        rooms.update(linked_rooms.get(room_id, ()))
    return rooms


def check(
    candidates: Sequence[Occurrence],
    existing: Sequence[Occurrence],
    linked_rooms: Mapping[int, Iterable[int]] | None = None,
) -> ConflictReport:
    """
    Report collisions between candidate occurrences and existing ones.

    Two occurrences collide when they overlap in time and share a teacher or
    a room. `linked_rooms` maps a room to the rooms occupying the same
    physical space (a modular room and its sub-rooms); a room in that map
    collides with its linked rooms as if they were the same room.

    Existing occurrences of the candidate's own definition are ignored.

    One entry is produced per colliding (candidate, existing) pair, ordered
    by candidate start, then existing start. Nothing is mutated.
    """
    by_room: dict[int, list[int]] = defaultdict(list)
    by_teacher: dict[int, list[int]] = defaultdict(list)
    for position, occurrence in enumerate(existing):
        by_room[occurrence.room_id].append(position)
        by_teacher[occurrence.teacher_id].append(position)

    # (candidate, existing, room collided, teacher collided)
    found: list[tuple[Occurrence, Occurrence, bool, bool]] = []

    for candidate in candidates:
        room_hits: set[int] = set()
        for room_id in _rooms_sharing_space(candidate.room_id, linked_rooms):
            room_hits.update(by_room.get(room_id, ()))
        teacher_hits = set(by_teacher.get(candidate.teacher_id, ()))

        for position in sorted(room_hits | teacher_hits):
            other = existing[position]
            if same_definition(candidate, other) or not overlaps(candidate, other):
                continue
            found.append((candidate, other, position in room_hits, position in teacher_hits))

    found.sort(
        key=lambda item: (
            item[0].start_time,
            item[1].start_time,
            item[1].id if item[1].id is not None else -1,
        )
    )

    conflicts = [
        ConflictEntry(
            conflicting_occurrence_id=other.id,
            course_name=other.name,
            room_id=other.room_id if room_hit else None,
            teacher_id=other.teacher_id if teacher_hit else None,
            overlap_start=max(candidate.start_time, other.start_time),
            overlap_end=min(candidate.end_time, other.end_time),
            candidate_start=candidate.start_time,
            candidate_end=candidate.end_time,
        )
        for candidate, other, room_hit, teacher_hit in found
    ]
    return ConflictReport(conflicts=conflicts)
