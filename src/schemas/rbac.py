"""
Role and permission read schemas.

Instances are immutable snapshots detached from any database session, so
they can live in the shared permission cache and be handed to callers for
display.
"""

from pydantic import BaseModel, ConfigDict


class PermissionRead(BaseModel):
    """Permission snapshot."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    name: str
    guard_name: str
    tenant_id: str


class RoleRead(BaseModel):
    """Role snapshot."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    name: str
    guard_name: str
    tenant_id: str
