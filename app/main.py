from fastapi import FastAPI

from app.api.routes import courses, health
from app.core.config import get_settings
from app.core.logging_config import configure_logging
from app.db.session import init_db_for_startup
from app.services.holiday_calendar import get_holiday_calendar
from app.services.locks import ResourceLocks


def create_app() -> FastAPI:
    """
    Application factory for the School Scheduling service.
    """
    settings = get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Backend service placing single and recurring courses on the shared\n"
            "timetable of rooms and teachers, detecting room/teacher conflicts\n"
            "before anything is committed, and projecting recurring series for list views."
        ),
        version="0.1.0",
    )

    # One registry per process: every request's SchedulingService shares it.
    app.state.resource_locks = ResourceLocks()
    app.state.holiday_calendar = get_holiday_calendar()

    # Routers
    app.include_router(health.router)
    app.include_router(courses.router)

    @app.on_event("startup")
    async def on_startup() -> None:  # pragma: no cover
        await init_db_for_startup()

    return app


app = create_app()
