from __future__ import annotations

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError, StorageError
from app.models.catalog import Role, Room, Subject, User


class CatalogResolver:
    """
    Read-only lookups of rooms, teachers and subjects referenced by courses.

    Those records are owned by the rest of the dashboard; this service only
    checks that they exist and reads the room topology needed for conflict
    detection.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def _get(self, model, entity: str, entity_id: int):
        try:
            record = await self._db.get(model, entity_id)
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to load {entity} {entity_id}: {exc}") from exc
        if record is None:
            raise NotFoundError(entity, entity_id)
        return record

    async def resolve_room(self, room_id: int) -> Room:
        return await self._get(Room, "Room", room_id)

    async def resolve_teacher(self, teacher_id: int) -> User:
        return await self._get(User, "Teacher", teacher_id)

    async def resolve_subject(self, subject_id: int) -> Subject:
        return await self._get(Subject, "Subject", subject_id)

    @staticmethod
    def is_teacher(user: User) -> bool:
        return user.role == Role.TEACHER.value

    async def linked_room_ids(self, room_id: int) -> set[int]:
        """
        Rooms sharing physical space with `room_id`: its modular parent and
        its sub-rooms. The room itself is not included.
        """
        room = await self.resolve_room(room_id)

        conditions = [Room.parent_id == room.id]
        if room.parent_id is not None:
            conditions.append(Room.id == room.parent_id)

        try:
            result = await self._db.execute(select(Room.id).where(or_(*conditions)))
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to load rooms linked to {room_id}: {exc}") from exc

        return {linked_id for linked_id in result.scalars().all() if linked_id != room.id}
