from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models of the scheduling service.

    Model modules are imported by `app.db.session` so that Base.metadata is
    complete before any create_all/drop_all.
    """
    pass
