"""
Audit trail of permission changes.
"""
from typing import Any, Dict, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.features.permissions.models import PermissionAuditLog
from app.utils import get_logger


log = get_logger(__name__)


async def create_audit_log(
    session_factory: async_sessionmaker[AsyncSession],
    actor_id: Optional[str],
    action: str,
    subject_type: str,
    subject_id: str,
    details: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Record a permission change.

    Runs as a background task after the response has been sent, so it opens
    its own session. A failure here is logged; the change itself already
    succeeded and is not rolled back.

    Args:
        session_factory: Session factory bound to the application database
        actor_id: User who made the change
        action: ROLE_GRANT_SET, USER_OVERRIDE_SET, USER_OVERRIDE_CLEARED or TEMPLATE_APPLIED
        subject_type: "role" or "user"
        subject_id: Role name or user id the change applied to
        details: Additional details (key, granted, template report summary)
    """
    try:
        async with session_factory() as db:
            db.add(
                PermissionAuditLog(
                    actor_id=actor_id,
                    action=action,
                    subject_type=subject_type,
                    subject_id=subject_id,
                    details=details,
                )
            )
            await db.commit()
    except SQLAlchemyError as e:
        log.error(f"Failed to write audit log {action} for {subject_type}:{subject_id}: {e}", exc_info=True)
        return

    log.info(f"Audit: actor={actor_id} action={action} subject={subject_type}:{subject_id}")
