"""
Catalog Models

The static universe of protectable operations: pages and the page-scoped
permissions (one page x one action) that roles and overrides refer to.
"""

from datetime import datetime
from enum import Enum
from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from rights.core.database import Base
from rights.core.flags import Flag


class ActionKey(str, Enum):
    """Closed action vocabulary. Extending it requires a catalog migration."""

    VIEW = "View"
    CREATE = "Create"
    UPDATE = "Update"
    DELETE = "Delete"

    @classmethod
    def parse(cls, value: "str | ActionKey") -> "ActionKey":
        """Case-insensitive lookup; raises ValueError for anything outside the vocabulary."""
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        for member in cls:
            if member.value.lower() == normalized:
                return member
        raise ValueError(f"Unknown action key: {value!r}")


class Page(Base):
    """Page table

    A protectable area of the application (a route / screen).
    """

    __tablename__ = "pages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    page_key: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    page_name: Mapped[str] = mapped_column(String(200), nullable=False)
    route_path: Mapped[str] = mapped_column(String(300), nullable=False)
    section_key: Mapped[str | None] = mapped_column(String(100), nullable=True)
    sort_order: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Flag, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    permissions: Mapped[list["Permission"]] = relationship(back_populates="page")


class Permission(Base):
    """Permission table

    The atomic unit of authorization: one action on one page.
    """

    __tablename__ = "permissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    perm_key: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    page_id: Mapped[int] = mapped_column(ForeignKey('pages.id'), nullable=False, index=True)
    action_key: Mapped[str] = mapped_column(String(20), nullable=False)
    is_active: Mapped[bool] = mapped_column(Flag, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    page: Mapped[Page] = relationship(back_populates="permissions")

    __table_args__ = (UniqueConstraint('page_id', 'action_key', name='uq_permission_page_action'),)
