"""
FastAPI dependencies for route protection.

Usage:
    @router.post("/fuel")
    async def record_fuel(
        principal: Principal = Depends(require_permission("fuel", "create"))
    ):
        # principal may record fuel
        ...
"""
from typing import Optional, Sequence
from fastapi import Depends, Request

from app.features.permissions.errors import AuthenticationRequired, PermissionDenied, StoreUnavailable
from app.features.permissions.keys import Principal
from app.features.permissions.service import PermissionService
from app.features.users.dependencies import get_current_principal


def get_permission_service(request: Request) -> PermissionService:
    """The engine built at startup and kept on app.state."""
    service = getattr(request.app.state, "permissions", None)
    if service is None:
        raise StoreUnavailable("startup")
    return service


async def require_principal(
    principal: Optional[Principal] = Depends(get_current_principal),
) -> Principal:
    if principal is None:
        raise AuthenticationRequired()
    return principal


def require_permission(module: str, action: str):
    """
    Dependency requiring a single permission.

    Raises:
        AuthenticationRequired: no caller identity (401)
        PermissionDenied: the caller lacks module:action (403)
        StoreUnavailable: the grant could not be read (503)
    """
    async def permission_dependency(
        principal: Optional[Principal] = Depends(get_current_principal),
        service: PermissionService = Depends(get_permission_service),
    ) -> Principal:
        return await service.guard.require_one(principal, module, action)

    return permission_dependency


def require_any_permission(permissions: Sequence[tuple[str, str]]):
    """
    Dependency requiring ANY of the given (module, action) pairs.

    Usage:
        @router.get("/reports")
        async def get_reports(
            principal: Principal = Depends(require_any_permission([("reports", "view"), ("invoices", "approve")]))
        ):
            pass
    """
    permissions = list(permissions)
    if not permissions:
        raise ValueError("require_any_permission needs at least one (module, action) pair")

    async def permission_dependency(
        principal: Optional[Principal] = Depends(get_current_principal),
        service: PermissionService = Depends(get_permission_service),
    ) -> Principal:
        return await service.guard.require_any(principal, permissions)

    return permission_dependency


def require_all_permissions(permissions: Sequence[tuple[str, str]]):
    """Dependency requiring ALL of the given (module, action) pairs."""
    permissions = list(permissions)
    if not permissions:
        raise ValueError("require_all_permissions needs at least one (module, action) pair")

    async def permission_dependency(
        principal: Optional[Principal] = Depends(get_current_principal),
        service: PermissionService = Depends(get_permission_service),
    ) -> Principal:
        return await service.guard.require_all(principal, permissions)

    return permission_dependency


async def require_superadmin(
    principal: Principal = Depends(require_principal),
    service: PermissionService = Depends(get_permission_service),
) -> Principal:
    """Permission management is reserved to the superadmin role."""
    if not service.resolver.is_superadmin(principal):
        raise PermissionDenied(
            "permissions",
            "manage",
            message="Only Super Administrators can manage permissions",
        )
    return principal
