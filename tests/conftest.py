# tests/conftest.py
import os
import tempfile
from pathlib import Path

# Settings are cached on first use, so the test environment must be in place
# before anything from `app` is imported.
TEST_DB_PATH = Path(tempfile.gettempdir()) / f"school_schedule_test_{os.getpid()}.db"
os.environ["APP_ENV"] = "test"
os.environ["DB_URL"] = f"sqlite+aiosqlite:///{TEST_DB_PATH}"
os.environ.pop("HOLIDAY_CALENDAR_URL", None)
os.environ.pop("HOLIDAY_DATES", None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from app.db.session import create_sync_engine_for_tests, reset_schema_sync  # noqa: E402
from app.main import create_app  # noqa: E402
from app.models.catalog import Role, Room, Subject, User  # noqa: E402
from app.services.holiday_calendar import StaticHolidayCalendar  # noqa: E402
from app.services.locks import ResourceLocks  # noqa: E402
from app.services.scheduling import SchedulingService  # noqa: E402

# Catalog identifiers shared by the DB-backed tests.
ROOM_101 = 101
ROOM_102 = 102
MODULAR_ROOM = 200
SUB_ROOM_A = 201
SUB_ROOM_B = 202
TEACHER_A = 10
TEACHER_B = 11
STUDENT = 20
SUBJECT = 1


@pytest.fixture
def catalog():
    """
    Reset the schema and seed the rooms, users and subjects courses refer to.

    Uses a synchronous engine so no event loop is involved in fixture setup.
    """
    reset_schema_sync()

    engine = create_sync_engine_for_tests()
    with Session(engine) as session:
        session.add_all(
            [
                Room(id=ROOM_101, name="Salle 101", building="A", floor="1"),
                Room(id=ROOM_102, name="Salle 102", building="A", floor="1"),
                Room(id=MODULAR_ROOM, name="Amphi B", building="B", floor="0", is_modular=True),
                Room(id=SUB_ROOM_A, name="Amphi B - gauche", building="B", floor="0", parent_id=MODULAR_ROOM),
                Room(id=SUB_ROOM_B, name="Amphi B - droite", building="B", floor="0", parent_id=MODULAR_ROOM),
                User(id=TEACHER_A, email="a.martin@school.test", first_name="Alice", last_name="Martin", role=Role.TEACHER.value),
                User(id=TEACHER_B, email="b.durand@school.test", first_name="Bruno", last_name="Durand", role=Role.TEACHER.value),
                User(id=STUDENT, email="c.petit@school.test", first_name="Chloe", last_name="Petit", role=Role.STUDENT.value),
                Subject(id=SUBJECT, name="Algorithmique", code="ALGO"),
            ]
        )
        session.commit()
    engine.dispose()

    yield


@pytest.fixture
def service_factory():
    """
    Build SchedulingServices sharing one lock registry, as requests of one
    process do.
    """
    locks = ResourceLocks()

    def _build(session, holidays=()):
        return SchedulingService(
            db=session,
            locks=locks,
            holiday_calendar=StaticHolidayCalendar(holidays),
        )

    return _build


@pytest.fixture
def client(catalog) -> TestClient:
    """
    TestClient on a freshly seeded database.

    Uses the application factory so each test gets its own lock registry.
    """
    app = create_app()
    with TestClient(app) as test_client:
        yield test_client
