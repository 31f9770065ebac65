from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.services.scheduling import SchedulingService


async def get_scheduling_service(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> SchedulingService:
    """
    Build a SchedulingService bound to the request's DB session and to the
    process-wide lock registry and holiday calendar kept on app.state.
    """
    return SchedulingService(
        db=db,
        locks=request.app.state.resource_locks,
        holiday_calendar=request.app.state.holiday_calendar,
    )
