"""
Permission model for RBAC.
"""

from sqlalchemy import Integer, String, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from src.kernel.models.base import Base, TimestampMixin


class Permission(Base, TimestampMixin):
    """
    A named ability, granted to principals directly or through roles.

    With wildcard matching enabled the name is read as a segmented pattern
    (e.g. ``posts.*.edit``).
    """

    __tablename__ = "permissions"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    guard_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    tenant_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("name", "guard_name", "tenant_id", name="uq_permissions_name_guard_tenant"),
        Index("ix_permissions_tenant_guard", "tenant_id", "guard_name"),
    )

    def __repr__(self) -> str:
        return f"<Permission {self.name} guard={self.guard_name} tenant={self.tenant_id}>"
