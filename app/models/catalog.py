from enum import Enum

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from app.db.base import Base


class Role(str, Enum):
    """
    User roles of the school dashboard, highest privilege first.
    """

    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    TEACHER = "professeur"
    STUDENT = "etudiant"


class Room(Base):
    """
    A bookable room. A modular room can be split into sub-rooms
    (`parent_id` points at the modular parent); booking either one occupies
    the shared space.
    """

    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    building = Column(String(255), nullable=True)
    floor = Column(String(64), nullable=True)
    is_modular = Column(Boolean, nullable=False, default=False)
    parent_id = Column(
        Integer,
        ForeignKey("rooms.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    parent = relationship("Room", remote_side=[id], backref="children")

    def __repr__(self) -> str:
        return f"<Room id={self.id} name={self.name!r} parent_id={self.parent_id}>"


class User(Base):
    """
    A dashboard user; only users with the teacher role can be booked on a course.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), nullable=False, unique=True)
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False)
    role = Column(String(32), nullable=False, default=Role.STUDENT.value)

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} role={self.role}>"


class Subject(Base):
    __tablename__ = "subjects"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    code = Column(String(64), nullable=True)

    def __repr__(self) -> str:
        return f"<Subject id={self.id} name={self.name!r}>"
