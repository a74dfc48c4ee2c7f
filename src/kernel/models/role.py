"""
Role model.
"""

from sqlalchemy import Integer, String, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from src.kernel.models.base import Base, TimestampMixin


class Role(Base, TimestampMixin):
    """
    A named bundle of permissions within one guard and one tenant.

    Permissions and principals are linked through the assignment tables;
    there are no ORM relationships, repositories load them explicitly.
    """

    __tablename__ = "roles"

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
        UniqueConstraint("name", "guard_name", "tenant_id", name="uq_roles_name_guard_tenant"),
        Index("ix_roles_tenant_guard", "tenant_id", "guard_name"),
    )

    def __repr__(self) -> str:
        return f"<Role {self.name} guard={self.guard_name} tenant={self.tenant_id}>"
