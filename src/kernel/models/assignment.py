"""
Assignment join tables.

Rows have no identity beyond the pair they link and are removed with
either endpoint (ON DELETE CASCADE on the role/permission side, explicit
deletion on the principal side).
"""

from sqlalchemy import ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from src.kernel.models.base import Base


class RoleHasPermission(Base):
    """Permission granted to a role."""

    __tablename__ = "role_has_permissions"

    role_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("roles.id", ondelete="CASCADE"),
        primary_key=True,
    )
    permission_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("permissions.id", ondelete="CASCADE"),
        primary_key=True,
    )


class ModelHasRole(Base):
    """Role assigned to a principal."""

    __tablename__ = "model_has_roles"

    role_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("roles.id", ondelete="CASCADE"),
        primary_key=True,
    )
    model_type: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
    )
    model_id: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
    )
    tenant_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_model_has_roles_model", "tenant_id", "model_type", "model_id"),
    )


class ModelHasPermission(Base):
    """Permission granted directly to a principal."""

    __tablename__ = "model_has_permissions"

    permission_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("permissions.id", ondelete="CASCADE"),
        primary_key=True,
    )
    model_type: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
    )
    model_id: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
    )
    tenant_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_model_has_permissions_model", "tenant_id", "model_type", "model_id"),
    )
