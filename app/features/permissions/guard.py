"""
Enforcement of permission requirements in front of protected operations.
"""
from typing import Optional, Sequence

from app.features.permissions.errors import AuthenticationRequired, PermissionDenied
from app.features.permissions.keys import Principal
from app.features.permissions.resolver import PermissionResolver


class PermissionGuard:
    """
    Raises instead of returning False:
    - AuthenticationRequired when there is no principal (the resolver is not consulted)
    - PermissionDenied naming the missing module/action
    - StoreUnavailable, untouched, when the stores cannot be read
    """

    def __init__(self, resolver: PermissionResolver):
        self.resolver = resolver

    @staticmethod
    def _authenticated(principal: Optional[Principal]) -> Principal:
        if principal is None:
            raise AuthenticationRequired()
        return principal

    async def require_one(self, principal: Optional[Principal], module: str, action: str) -> Principal:
        principal = self._authenticated(principal)
        if not await self.resolver.check(principal, module, action):
            raise PermissionDenied(module, action)
        return principal

    async def require_any(self, principal: Optional[Principal], permissions: Sequence[tuple[str, str]]) -> Principal:
        if not permissions:
            raise ValueError("require_any needs at least one (module, action) pair")
        principal = self._authenticated(principal)
        for module, action in permissions:
            if await self.resolver.check(principal, module, action):
                return principal
        module, action = permissions[0]
        alternatives = ", ".join(f"{a} {m}" for m, a in permissions)
        raise PermissionDenied(
            module,
            action,
            required=permissions,
            message=f"You don't have permission to perform this action (requires one of: {alternatives})",
        )

    async def require_all(self, principal: Optional[Principal], permissions: Sequence[tuple[str, str]]) -> Principal:
        if not permissions:
            raise ValueError("require_all needs at least one (module, action) pair")
        principal = self._authenticated(principal)
        for module, action in permissions:
            if not await self.resolver.check(principal, module, action):
                raise PermissionDenied(module, action, required=permissions, message=f"Missing permission: {action} {module}")
        return principal
