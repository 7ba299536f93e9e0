"""
Errors raised by the permission engine.

The HTTP layer maps them to responses in app.main:
AuthenticationRequired -> 401, PermissionDenied / AccountDeactivated -> 403,
UnknownPermissionKey / UnknownTemplate -> 404, StoreUnavailable -> 503.
"""
from typing import Optional, Sequence


class AuthorizationError(Exception):
    """Base class for permission engine errors."""


class AuthenticationRequired(AuthorizationError):
    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class AccountDeactivated(AuthorizationError):
    """The caller is known but their account has been switched off."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__("User account is deactivated")


class PermissionDenied(AuthorizationError):
    """
    The principal lacks a capability.

    module/action name the first missing permission; required lists every
    (module, action) pair the guard was asked about.
    """

    def __init__(
        self,
        module: str,
        action: str,
        required: Optional[Sequence[tuple[str, str]]] = None,
        message: Optional[str] = None,
    ):
        self.module = module
        self.action = action
        self.required = list(required) if required else [(module, action)]
        if message is None:
            message = f"You don't have permission to {action} {module}"
        super().__init__(message)

    @property
    def message(self) -> str:
        return str(self)


class UnknownPermissionKey(AuthorizationError):
    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Unknown permission: {key}")


class UnknownTemplate(AuthorizationError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown permission template: {name}")


class StoreUnavailable(AuthorizationError):
    """A repository read or write failed or timed out."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Permission store unavailable during {operation}{detail}")
