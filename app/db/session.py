from collections.abc import AsyncGenerator

from sqlalchemy import create_engine as create_sync_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.core.config import get_settings
from app.db.base import Base
from app.models import catalog, course  # noqa: F401  (registers tables on Base.metadata)

settings = get_settings()

IS_TEST = settings.APP_ENV == "test"

# ---------------------------------------------------------------------------
# Main application engine + session
# ---------------------------------------------------------------------------
engine = create_async_engine(
    settings.DB_URL,
    echo=False,
    future=True,
    # Tests run each case on its own event loop; NullPool avoids handing a
    # connection opened on one loop to another.
    poolclass=NullPool if IS_TEST else None,
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    autoflush=False,
    expire_on_commit=False,
    class_=AsyncSession,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides an async SQLAlchemy session.

    The session is automatically closed when the request is completed.
    """
    async with AsyncSessionLocal() as session:
        yield session


# ---------------------------------------------------------------------------
# PRODUCTION / DEV: DB init for app startup
# ---------------------------------------------------------------------------
async def init_db_for_startup() -> None:
    """
    Create missing tables for application startup.

    Safe to call from FastAPI startup; existing tables and rows are kept.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# ---------------------------------------------------------------------------
# TESTS ONLY: reset schema using a SYNC engine
# ---------------------------------------------------------------------------

def build_sync_db_url(async_url: str) -> str:
    """
    Convert an async driver URL to its synchronous counterpart, e.g.
    'sqlite+aiosqlite:///x.db' -> 'sqlite:///x.db',
    'postgresql+asyncpg://...' -> 'postgresql://...'.
    """
    for async_driver in ("+aiosqlite", "+asyncpg"):
        if async_driver in async_url:
            return async_url.replace(async_driver, "")
    return async_url


def create_sync_engine_for_tests():
    """
    Synchronous engine on the configured database, for fixtures that seed or
    reset data outside of any event loop.
    """
    return create_sync_engine(build_sync_db_url(settings.DB_URL), future=True)


def reset_schema_sync() -> None:
    """
    Run drop_all + create_all using a synchronous SQLAlchemy engine.

    Do NOT call this from production code. Only from tests/fixtures.
    """
    sync_engine = create_sync_engine_for_tests()

    with sync_engine.begin() as conn:
        Base.metadata.drop_all(bind=conn)
        Base.metadata.create_all(bind=conn)

    sync_engine.dispose()
