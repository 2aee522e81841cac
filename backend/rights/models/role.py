"""
Role and Assignment Models

Roles are administrator-defined capability bundles. Users reach a permission
either through a role grant or through a per-user override.
"""

from datetime import datetime
from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from rights.core.database import Base
from rights.core.flags import Flag


class Role(Base):
    """Role table

    Deactivated roles stay in place so their grant rows remain auditable.
    """

    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(Flag, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class RolePermission(Base):
    """Role grant table

    A missing row means the same as is_allowed = false.
    """

    __tablename__ = "role_permissions"

    role_id: Mapped[int] = mapped_column(ForeignKey('roles.id', ondelete='CASCADE'), primary_key=True)
    permission_id: Mapped[int] = mapped_column(ForeignKey('permissions.id'), primary_key=True)
    is_allowed: Mapped[bool] = mapped_column(Flag, default=False, nullable=False)
    granted_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


class UserRole(Base):
    """User-Role association table

    Many-to-many relationship between users and roles.
    """

    __tablename__ = "user_roles"

    user_id: Mapped[int] = mapped_column(ForeignKey('users.id', ondelete='CASCADE'), primary_key=True)
    role_id: Mapped[int] = mapped_column(ForeignKey('roles.id', ondelete='CASCADE'), primary_key=True, index=True)
    assigned_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)


class UserPermission(Base):
    """Per-user override table

    Sparse: a row exists only for permissions an administrator overrode for
    that user. The row's presence wins over every role grant, including when
    is_allowed is false.
    """

    __tablename__ = "user_permissions"

    user_id: Mapped[int] = mapped_column(ForeignKey('users.id', ondelete='CASCADE'), primary_key=True)
    permission_id: Mapped[int] = mapped_column(ForeignKey('permissions.id'), primary_key=True)
    is_allowed: Mapped[bool] = mapped_column(Flag, nullable=False)
    assigned_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
