"""
FastAPI dependencies identifying the caller.

Authentication itself happens upstream (gateway / login service); requests
arrive with the authenticated user's id in the X-User-Id header. This module
only turns that id into a Principal carrying the user's role.
"""
from typing import Annotated, Optional
from fastapi import Depends, Header
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.permissions.errors import AccountDeactivated, StoreUnavailable
from app.features.permissions.keys import Principal
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)


async def get_current_principal(
    db: Annotated[AsyncSession, Depends(get_db)],
    x_user_id: Annotated[Optional[str], Header()] = None,
) -> Optional[Principal]:
    """
    Resolve the caller to {id, role}.

    Returns None when no user id was supplied or the id is unknown; the
    permission guard turns that into a 401. Deactivated accounts raise
    AccountDeactivated (403).

    Usage:
        @router.get("/me")
        async def get_me(principal: Principal | None = Depends(get_current_principal)):
            ...
    """
    if not x_user_id:
        return None

    try:
        result = await db.execute(select(User).where(User.id == x_user_id))
        user = result.scalar_one_or_none()
    except SQLAlchemyError as e:
        log.error(f"User lookup failed for {x_user_id}: {e}", exc_info=True)
        raise StoreUnavailable("user lookup", e) from e

    if user is None:
        log.info(f"Unknown user id {x_user_id} presented")
        return None

    if not user.is_active:
        log.info(f"Deactivated user {user.id} presented")
        raise AccountDeactivated(user.id)

    return Principal(id=user.id, role=user.role)


def get_rate_limit_key(request) -> str:
    """
    Extract the caller identity for rate limiting.
    Used with slowapi Limiter.
    """
    return request.headers.get("X-User-Id", "") or "anonymous"
