"""
Assignment repository: principal <-> role, principal <-> permission and
role <-> permission links.
"""

from typing import Iterable, List, Optional, Set, Tuple

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.kernel.errors import RoleDoesNotExist
from src.kernel.identity.principal import Principal
from src.kernel.models import ModelHasPermission, ModelHasRole, Permission, Role, RoleHasPermission
from src.kernel.store.base import insert_many_if_absent


class AssignmentRepository:
    """
    Link table access, always filtered by tenant.

    Principals are addressed by (model_type, model_id); the repository never
    needs to know what a principal is beyond that pair.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    # ------------------------------------------------------------------
    # Principal -> roles
    # ------------------------------------------------------------------

    async def role_ids_for(self, tenant_id: str, principal: Principal) -> Set[int]:
        query = select(ModelHasRole.role_id).where(
            ModelHasRole.tenant_id == str(tenant_id),
            ModelHasRole.model_type == principal.type,
            ModelHasRole.model_id == principal.key,
        )
        result = await self.session.execute(query)
        return set(result.scalars().all())

    async def attach_roles(self, tenant_id: str, principal: Principal, role_ids: Iterable[int]) -> None:
        rows = [
            {
                "role_id": role_id,
                "model_type": principal.type,
                "model_id": principal.key,
                "tenant_id": str(tenant_id),
            }
            for role_id in set(role_ids)
        ]
        await insert_many_if_absent(
            self.session, ModelHasRole, rows, ("role_id", "model_type", "model_id")
        )

    async def detach_roles(
        self,
        tenant_id: str,
        principal: Principal,
        role_ids: Optional[Iterable[int]] = None,
    ) -> int:
        """Remove role links; all of them when ``role_ids`` is None."""
        stmt = delete(ModelHasRole).where(
            ModelHasRole.tenant_id == str(tenant_id),
            ModelHasRole.model_type == principal.type,
            ModelHasRole.model_id == principal.key,
        )
        if role_ids is not None:
            stmt = stmt.where(ModelHasRole.role_id.in_(list(role_ids)))
        result = await self.session.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount

    async def principals_for_role(
        self,
        tenant_id: str,
        role_id: int,
        model_type: Optional[str] = None,
    ) -> List[Tuple[str, str]]:
        """(model_type, model_id) pairs holding a role."""
        query = select(ModelHasRole.model_type, ModelHasRole.model_id).where(
            ModelHasRole.tenant_id == str(tenant_id),
            ModelHasRole.role_id == role_id,
        )
        if model_type is not None:
            query = query.where(ModelHasRole.model_type == model_type)
        result = await self.session.execute(query.order_by(ModelHasRole.model_id))
        return [(row[0], row[1]) for row in result.all()]

    # ------------------------------------------------------------------
    # Principal -> direct permissions
    # ------------------------------------------------------------------

    async def permission_ids_for(self, tenant_id: str, principal: Principal) -> Set[int]:
        query = select(ModelHasPermission.permission_id).where(
            ModelHasPermission.tenant_id == str(tenant_id),
            ModelHasPermission.model_type == principal.type,
            ModelHasPermission.model_id == principal.key,
        )
        result = await self.session.execute(query)
        return set(result.scalars().all())

    async def attach_permissions(
        self,
        tenant_id: str,
        principal: Principal,
        permission_ids: Iterable[int],
    ) -> None:
        rows = [
            {
                "permission_id": permission_id,
                "model_type": principal.type,
                "model_id": principal.key,
                "tenant_id": str(tenant_id),
            }
            for permission_id in set(permission_ids)
        ]
        await insert_many_if_absent(
            self.session, ModelHasPermission, rows, ("permission_id", "model_type", "model_id")
        )

    async def detach_permissions(
        self,
        tenant_id: str,
        principal: Principal,
        permission_ids: Optional[Iterable[int]] = None,
    ) -> int:
        stmt = delete(ModelHasPermission).where(
            ModelHasPermission.tenant_id == str(tenant_id),
            ModelHasPermission.model_type == principal.type,
            ModelHasPermission.model_id == principal.key,
        )
        if permission_ids is not None:
            stmt = stmt.where(ModelHasPermission.permission_id.in_(list(permission_ids)))
        result = await self.session.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount

    async def delete_for_principal(self, tenant_id: str, principal: Principal) -> int:
        """Cascade for a removed principal: drop every link it holds."""
        removed = await self.detach_roles(tenant_id, principal)
        removed += await self.detach_permissions(tenant_id, principal)
        return removed

    # ------------------------------------------------------------------
    # Role -> permissions
    # ------------------------------------------------------------------

    def _tenant_roles(self, tenant_id: str):
        return select(Role.id).where(Role.tenant_id == str(tenant_id))

    async def grant_to_role(self, tenant_id: str, role_id: int, permission_ids: Iterable[int]) -> None:
        owned = await self.session.execute(
            select(Role.id).where(Role.tenant_id == str(tenant_id), Role.id == role_id)
        )
        if owned.scalar_one_or_none() is None:
            raise RoleDoesNotExist.with_id(role_id)
        rows = [
            {"role_id": role_id, "permission_id": permission_id}
            for permission_id in set(permission_ids)
        ]
        await insert_many_if_absent(
            self.session, RoleHasPermission, rows, ("role_id", "permission_id")
        )

    async def revoke_from_role(
        self,
        tenant_id: str,
        role_id: int,
        permission_ids: Optional[Iterable[int]] = None,
    ) -> int:
        stmt = delete(RoleHasPermission).where(
            RoleHasPermission.role_id == role_id,
            RoleHasPermission.role_id.in_(self._tenant_roles(tenant_id)),
        )
        if permission_ids is not None:
            stmt = stmt.where(RoleHasPermission.permission_id.in_(list(permission_ids)))
        result = await self.session.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount

    # ------------------------------------------------------------------
    # Catalog loading
    # ------------------------------------------------------------------

    async def load_catalog_rows(
        self,
        tenant_id: str,
        guard_name: str,
    ) -> Tuple[List[Permission], List[Role], List[Tuple[int, int]]]:
        """Every permission, role and role grant of one tenant/guard scope."""
        permissions = await self.session.execute(
            select(Permission)
            .where(Permission.tenant_id == str(tenant_id), Permission.guard_name == guard_name)
            .order_by(Permission.id)
        )
        roles = await self.session.execute(
            select(Role)
            .where(Role.tenant_id == str(tenant_id), Role.guard_name == guard_name)
            .order_by(Role.id)
        )
        grants = await self.session.execute(
            select(RoleHasPermission.role_id, RoleHasPermission.permission_id)
            .join(Role, Role.id == RoleHasPermission.role_id)
            .where(Role.tenant_id == str(tenant_id), Role.guard_name == guard_name)
        )
        return (
            list(permissions.scalars().all()),
            list(roles.scalars().all()),
            [(row[0], row[1]) for row in grants.all()],
        )
