"""
SQLAlchemy declarative base and shared column helpers.

Every table of the service (users, the permission catalog, role grants,
user overrides, the permission audit trail) inherits from Base.
"""
from datetime import datetime
from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from ulid import ULID


def generate_ulid() -> str:
    """Generate a new ULID string (26 characters, sortable by creation time)."""
    return str(ULID())


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    Usage:
        from app.core.database.base import Base

        class Permission(Base):
            __tablename__ = "permissions"

            id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
            module: Mapped[str] = mapped_column(String(50))
    """
    pass


class TimestampMixin:
    """
    Adds created_at and updated_at columns maintained by the database.
    """
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
