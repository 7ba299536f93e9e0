"""
Permission API routes.

Callers identify themselves with the X-User-Id header. Checking one's own
permissions is open to every authenticated user; everything that reads or
changes other principals' grants is reserved to the superadmin role.
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, BackgroundTasks, status
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database.engine import get_db, get_session_factory
from app.features.permissions.audit import create_audit_log
from app.features.permissions.dependencies import (
    get_permission_service,
    require_principal,
    require_superadmin,
)
from app.features.permissions.errors import StoreUnavailable
from app.features.permissions.keys import Principal
from app.features.permissions.models import PermissionAuditLog
from app.features.permissions.schemas import (
    PermissionResponse,
    TemplateResponse,
    PermissionCheckRequest,
    PermissionCheckResponse,
    EffectivePermissionsResponse,
    RoleGrantRequest,
    RoleGrantResponse,
    RoleGrantsResponse,
    UserOverrideRequest,
    UserOverridesResponse,
    MutationResponse,
    ApplyTemplateRequest,
    TemplateFailureResponse,
    TemplateReportResponse,
    AuditLogResponse,
    AuditLogListResponse,
)
from app.features.permissions.service import PermissionService
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Catalog & self-service
# ============================================================================

@router.get("", response_model=List[PermissionResponse])
async def list_permissions(
    module: Optional[str] = None,
    service: PermissionService = Depends(get_permission_service),
    principal: Principal = Depends(require_principal),
):
    """List the permission catalog, optionally for a single module."""
    return [
        PermissionResponse(key=str(key), module=key.module, action=key.action)
        for key in service.catalog.keys()
        if module is None or key.module == module
    ]


@router.get("/me", response_model=EffectivePermissionsResponse)
async def get_my_permissions(
    service: PermissionService = Depends(get_permission_service),
    principal: Principal = Depends(require_principal),
):
    """Every permission the caller currently holds (used by the UI to show/hide actions)."""
    permissions = await service.list_effective(principal.id, principal.role)
    return EffectivePermissionsResponse(
        user_id=principal.id,
        role=principal.role,
        is_superadmin=service.resolver.is_superadmin(principal),
        permissions=permissions,
    )


@router.post("/check", response_model=PermissionCheckResponse)
async def check_permission(
    check: PermissionCheckRequest,
    service: PermissionService = Depends(get_permission_service),
    principal: Principal = Depends(require_principal),
):
    """Check whether the caller may perform an action; store failures surface as 503."""
    allowed = await service.resolver.check(principal, check.module, check.action)
    return PermissionCheckResponse(module=check.module, action=check.action, allowed=allowed)


@router.get("/templates", response_model=List[TemplateResponse])
async def list_templates(
    service: PermissionService = Depends(get_permission_service),
    principal: Principal = Depends(require_superadmin),
):
    """List the bulk permission presets."""
    return [
        TemplateResponse(name=name, actions=list(actions))
        for name, actions in service.templates.templates.items()
    ]


# ============================================================================
# Role grants
# ============================================================================

@router.get("/roles/{role}", response_model=RoleGrantsResponse)
async def get_role_grants(
    role: str,
    fresh: bool = False,
    service: PermissionService = Depends(get_permission_service),
    principal: Principal = Depends(require_superadmin),
):
    """
    Permissions granted to a role.

    fresh=true bypasses the cache; use it to reconcile after a template
    application reported failures.
    """
    return RoleGrantsResponse(role=role, permissions=await service.grants_for(role, fresh=fresh))


@router.post("/roles", response_model=RoleGrantResponse)
async def set_role_grant(
    grant: RoleGrantRequest,
    background_tasks: BackgroundTasks,
    service: PermissionService = Depends(get_permission_service),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    principal: Principal = Depends(require_superadmin),
):
    """Grant or revoke a permission for every user holding a role."""
    key = await service.set_role_grant(grant.role, grant.module, grant.action, grant.granted)

    background_tasks.add_task(
        create_audit_log,
        session_factory,
        actor_id=principal.id,
        action="ROLE_GRANT_SET",
        subject_type="role",
        subject_id=grant.role,
        details={"key": str(key), "requested": f"{grant.module}:{grant.action}", "granted": grant.granted},
    )

    return RoleGrantResponse(role=grant.role, key=str(key))


@router.post("/roles/{role}/template", response_model=TemplateReportResponse)
async def apply_template(
    role: str,
    request_body: ApplyTemplateRequest,
    background_tasks: BackgroundTasks,
    service: PermissionService = Depends(get_permission_service),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    principal: Principal = Depends(require_superadmin),
):
    """
    Apply a permission template to a role.

    Always answers 200 with a per-key report; partial failures are data, not errors.
    """
    report = await service.apply_template(role, request_body.template)

    background_tasks.add_task(
        create_audit_log,
        session_factory,
        actor_id=principal.id,
        action="TEMPLATE_APPLIED",
        subject_type="role",
        subject_id=role,
        details={
            "template": report.template,
            "succeeded": len(report.succeeded),
            "failed": [failure.key for failure in report.failed],
        },
    )

    return TemplateReportResponse(
        role=report.role,
        template=report.template,
        succeeded=report.succeeded,
        failed=[TemplateFailureResponse(key=f.key, error=f.error) for f in report.failed],
    )


# ============================================================================
# User overrides
# ============================================================================

@router.get("/users/{user_id}/overrides", response_model=UserOverridesResponse)
async def get_user_overrides(
    user_id: str,
    fresh: bool = False,
    service: PermissionService = Depends(get_permission_service),
    principal: Principal = Depends(require_superadmin),
):
    """Per-user exceptions to the role defaults."""
    return UserOverridesResponse(user_id=user_id, overrides=await service.overrides_for(user_id, fresh=fresh))


@router.put("/users/{user_id}/overrides", response_model=MutationResponse)
async def set_user_override(
    user_id: str,
    override: UserOverrideRequest,
    background_tasks: BackgroundTasks,
    service: PermissionService = Depends(get_permission_service),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    principal: Principal = Depends(require_superadmin),
):
    """Grant (granted=true) or explicitly revoke (granted=false) a permission for one user."""
    key = await service.set_user_override(user_id, override.module, override.action, override.granted)

    background_tasks.add_task(
        create_audit_log,
        session_factory,
        actor_id=principal.id,
        action="USER_OVERRIDE_SET",
        subject_type="user",
        subject_id=user_id,
        details={"key": str(key), "granted": override.granted},
    )

    return MutationResponse(key=str(key))


@router.delete("/users/{user_id}/overrides/{module}/{action}", response_model=MutationResponse)
async def clear_user_override(
    user_id: str,
    module: str,
    action: str,
    background_tasks: BackgroundTasks,
    service: PermissionService = Depends(get_permission_service),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    principal: Principal = Depends(require_superadmin),
):
    """Remove a user override so the role default applies again."""
    key = await service.clear_user_override(user_id, module, action)

    background_tasks.add_task(
        create_audit_log,
        session_factory,
        actor_id=principal.id,
        action="USER_OVERRIDE_CLEARED",
        subject_type="user",
        subject_id=user_id,
        details={"key": str(key)},
    )

    return MutationResponse(key=str(key))


# ============================================================================
# Operations
# ============================================================================

@router.post("/cache/clear", status_code=status.HTTP_204_NO_CONTENT)
async def clear_permission_cache(
    service: PermissionService = Depends(get_permission_service),
    principal: Principal = Depends(require_superadmin),
):
    """Drop every cached role and user entry in this process."""
    service.clear_cache()
    log.warning(f"Permission cache cleared by {principal.id}")
    return None


@router.get("/audit-logs", response_model=AuditLogListResponse)
async def list_audit_logs(
    skip: int = 0,
    limit: int = 50,
    actor_id: Optional[str] = None,
    action: Optional[str] = None,
    subject_type: Optional[str] = None,
    subject_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_superadmin),
):
    """List permission audit logs with optional filtering."""
    stmt = select(PermissionAuditLog)

    if actor_id:
        stmt = stmt.where(PermissionAuditLog.actor_id == actor_id)
    if action:
        stmt = stmt.where(PermissionAuditLog.action == action)
    if subject_type:
        stmt = stmt.where(PermissionAuditLog.subject_type == subject_type)
    if subject_id:
        stmt = stmt.where(PermissionAuditLog.subject_id == subject_id)

    try:
        # Get total count
        count_stmt = select(func.count()).select_from(stmt.subquery())
        total = (await db.execute(count_stmt)).scalar() or 0

        # Get paginated results
        stmt = stmt.order_by(PermissionAuditLog.created_at.desc(), PermissionAuditLog.id.desc()).offset(skip).limit(limit)
        logs = (await db.execute(stmt)).scalars().all()
    except SQLAlchemyError as e:
        raise StoreUnavailable("list_audit_logs", e) from e

    pages = (total + limit - 1) // limit if limit > 0 else 0
    page = (skip // limit) + 1 if limit > 0 else 1

    return AuditLogListResponse(
        items=[AuditLogResponse.model_validate(entry) for entry in logs],
        total=total,
        page=page,
        page_size=limit,
        pages=pages
    )
