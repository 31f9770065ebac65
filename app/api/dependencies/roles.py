from typing import Optional

from fastapi import Header, HTTPException, status

from app.core.config import get_settings
from app.models.catalog import Role

SCHEDULER_ROLES = frozenset({Role.SUPER_ADMIN, Role.ADMIN})


def _resolve_role(user_role: Optional[str]) -> Role:
    """
    Map the X-User-Role header to a Role.

    Rules
    -----
    - APP_ENV in ("local", "test"):
        - Missing header -> treated as admin (convenient for local dev).
    - APP_ENV not in ("local", "test")  [e.g. dev/stage/prod]:
        - Missing header -> 401.
    - Unknown role value -> 401 in every environment.
    """
    settings = get_settings()
    env = (settings.APP_ENV or "local").lower()

    if not user_role:
        if env in ("local", "test"):
            return Role.ADMIN
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Role header.",
        )

    try:
        return Role(user_role.strip().lower())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Unknown role '{user_role}'.",
        )


async def require_any_role(
    user_role: Optional[str] = Header(
        default=None,
        alias="X-User-Role",
        description="Role of the authenticated caller (super_admin, admin, professeur, etudiant).",
    ),
) -> Role:
    """
    Dependency for read endpoints: any known role may list the timetable.
    """
    return _resolve_role(user_role)


async def require_scheduler_role(
    user_role: Optional[str] = Header(
        default=None,
        alias="X-User-Role",
        description="Role of the authenticated caller (super_admin, admin, professeur, etudiant).",
    ),
) -> Role:
    """
    Dependency for scheduling mutations and conflict previews: only
    administrators may place, move, override or delete courses.
    """
    role = _resolve_role(user_role)
    if role not in SCHEDULER_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Role '{role.value}' may not modify the timetable.",
        )
    return role
