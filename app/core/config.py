from datetime import date
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Global application configuration.

    Values are loaded from environment variables at runtime.

    These settings drive:
    - DB connection
    - Logging verbosity
    - Holiday calendar used when expanding recurring courses
    """

    APP_NAME: str = "School Scheduling Service"
    APP_ENV: str = Field("local", description="Environment name: local/test/dev/stage/prod")

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Root log level (DEBUG, INFO, WARNING, ...).",
    )

    DB_URL: str = Field(
        "sqlite+aiosqlite:///./school_schedule.db",
        description="SQLAlchemy-compatible database URL",
    )

    # --- Holiday calendar ---
    HOLIDAY_DATES: str | None = Field(
        default=None,
        description=(
            "Comma-separated list of ISO dates (YYYY-MM-DD) treated as holidays "
            "when no remote calendar is configured."
        ),
    )
    HOLIDAY_CALENDAR_URL: str | None = Field(
        default=None,
        description=(
            "URL template of a per-year holiday document, with a `{year}` "
            "placeholder, e.g. https://calendrier.api.gouv.fr/jours-feries/metropole/{year}.json"
        ),
    )
    HOLIDAY_CALENDAR_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="HTTP timeout used when fetching the holiday calendar.",
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True

    def holiday_dates(self) -> set[date]:
        """
        Parse HOLIDAY_DATES into a set of dates; blank entries are ignored.
        """
        if not self.HOLIDAY_DATES:
            return set()
        return {
            date.fromisoformat(chunk.strip())
            for chunk in self.HOLIDAY_DATES.split(",")
            if chunk.strip()
        }


@lru_cache()
def get_settings() -> Settings:
    """
    Cached accessor for application settings.

    Using LRU cache ensures settings are read and validated only once,
    while still being easily importable across the app.
    """
    return Settings()
