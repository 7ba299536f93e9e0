"""
Persistence models for the permission engine.

Three tables carry the authorization data:
- permissions: the catalog of valid (module, action) pairs, seeded at deploy time
- role_permissions: explicit grant/revoke rows per role (absence means deny)
- user_permissions: sparse per-user overrides that win over the role default

Rows in role_permissions and user_permissions always reference canonical
permissions; legacy action names are translated before anything is written.
"""
from typing import Any, Dict
from sqlalchemy import String, ForeignKey, Boolean, JSON, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database.base import Base, TimestampMixin, generate_ulid


class Permission(Base, TimestampMixin):
    """
    A (module, action) pair from the permission catalog.

    Examples:
    - module="trucks", action="view"
    - module="fuel", action="record"
    - module="invoices", action="approve"
    """
    __tablename__ = "permissions"
    __table_args__ = (UniqueConstraint("module", "action", name="uq_permissions_module_action"),)

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    module: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def key(self) -> str:
        return f"{self.module}:{self.action}"

    def __repr__(self) -> str:
        return f"<Permission(id={self.id}, key={self.key!r})>"


class RolePermission(Base, TimestampMixin):
    """
    Default grant for every principal holding a role.

    Rows are never deleted, only flipped between granted and revoked.
    """
    __tablename__ = "role_permissions"
    __table_args__ = (UniqueConstraint("role", "permission_id", name="uq_role_permissions_role_permission"),)

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    role: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    permission_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("permissions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    granted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    permission: Mapped["Permission"] = relationship("Permission", lazy="joined")

    def __repr__(self) -> str:
        return f"<RolePermission(role={self.role!r}, permission_id={self.permission_id}, granted={self.granted})>"


class UserPermission(Base, TimestampMixin):
    """
    Per-user exception to the role default.

    granted=False is an explicit revoke; deleting the row falls back to the role.
    """
    __tablename__ = "user_permissions"
    __table_args__ = (UniqueConstraint("user_id", "permission_id", name="uq_user_permissions_user_permission"),)

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    user_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)
    permission_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("permissions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    granted: Mapped[bool] = mapped_column(Boolean, nullable=False)

    permission: Mapped["Permission"] = relationship("Permission", lazy="joined")

    def __repr__(self) -> str:
        return f"<UserPermission(user_id={self.user_id}, permission_id={self.permission_id}, granted={self.granted})>"


class PermissionAuditLog(Base, TimestampMixin):
    """
    Audit trail of permission changes.

    Tracks who changed which grant, override or template, and when.
    """
    __tablename__ = "permission_audit_logs"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    # Actor
    actor_id: Mapped[str | None] = mapped_column(String(26), nullable=True, index=True)

    # e.g. ROLE_GRANT_SET, USER_OVERRIDE_SET, USER_OVERRIDE_CLEARED, TEMPLATE_APPLIED
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    # "role" or "user"
    subject_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    subject_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    details: Mapped[Dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<PermissionAuditLog(id={self.id}, actor_id={self.actor_id}, action={self.action}, subject={self.subject_type}:{self.subject_id})>"
