from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)

from app.db.base import Base


class Course(Base):
    """
    One scheduled occurrence of a course.

    A recurring course is stored as one row per occurrence; the rows of a
    series share `recurrence_id` and repeat the recurrence metadata
    (`recurrence_pattern` as its JSON string, `recurrence_end_date`,
    `exclude_holidays`) of the definition that produced them.
    """

    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, index=True)

    name = Column(String(255), nullable=False)

    subject_id = Column(
        Integer,
        ForeignKey("subjects.id", ondelete="RESTRICT"),
        nullable=False,
    )
    teacher_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    room_id = Column(
        Integer,
        ForeignKey("rooms.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    # Authored start of the definition; unchanged when single dates are detached.
    series_start = Column(DateTime, nullable=True)

    description = Column(Text, nullable=True)

    is_recurring = Column(Boolean, nullable=False, default=False)
    recurrence_id = Column(String(36), nullable=True, index=True)
    recurrence_pattern = Column(Text, nullable=True)
    recurrence_end_date = Column(DateTime, nullable=True)
    exclude_holidays = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime,
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        Index("ix_courses_room_start", "room_id", "start_time"),
        Index("ix_courses_teacher_start", "teacher_id", "start_time"),
    )

    def __repr__(self) -> str:
        return (
            f"<Course id={self.id} name={self.name!r} room_id={self.room_id} "
            f"start={self.start_time} recurrence_id={self.recurrence_id}>"
        )
