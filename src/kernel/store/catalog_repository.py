"""
Role and permission repositories.

Every method takes the tenant id explicitly; no query runs unscoped.
"""

from abc import ABC, abstractmethod
from typing import Generic, List, Optional, Type, TypeVar

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.kernel.errors import (
    AlreadyExists,
    NotFound,
    PermissionAlreadyExists,
    PermissionDoesNotExist,
    RoleAlreadyExists,
    RoleDoesNotExist,
)
from src.kernel.models import ModelHasPermission, ModelHasRole, Permission, Role, RoleHasPermission
from src.kernel.store.base import insert_if_absent
from src.logging_config import get_logger

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", Role, Permission)

UNIQUE_COLUMNS = ("name", "guard_name", "tenant_id")


class CatalogRepository(ABC, Generic[ModelT]):
    """Shared CRUD for the two named, guard-scoped catalog entities."""

    model: Type[ModelT]
    entity: str

    def __init__(self, session: AsyncSession):
        self.session = session

    # Error factories, one set per entity
    @abstractmethod
    def _missing_name(self, name: str, guard_name: Optional[str]) -> NotFound:
        ...

    @abstractmethod
    def _missing_id(self, entity_id: int, guard_name: Optional[str]) -> NotFound:
        ...

    @abstractmethod
    def _duplicate(self, name: str, guard_name: str) -> AlreadyExists:
        ...

    async def create(self, tenant_id: str, name: str, guard_name: str) -> ModelT:
        """
        Create a record.

        Raises:
            AlreadyExists: If (name, guard_name) is taken in the tenant
        """
        new_id = await insert_if_absent(
            self.session,
            self.model,
            {"name": name, "guard_name": guard_name, "tenant_id": str(tenant_id)},
            UNIQUE_COLUMNS,
        )
        if new_id is None:
            raise self._duplicate(name, guard_name)

        logger.info(
            "%s created", self.entity.capitalize(),
            extra={"entity_id": new_id, "entity_name": name, "guard_name": guard_name},
        )
        return await self.find_by_id(tenant_id, new_id)

    async def get_by_name(self, tenant_id: str, name: str, guard_name: str) -> Optional[ModelT]:
        query = select(self.model).where(
            self.model.tenant_id == str(tenant_id),
            self.model.name == name,
            self.model.guard_name == guard_name,
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def find_by_name(self, tenant_id: str, name: str, guard_name: str) -> ModelT:
        """
        Raises:
            NotFound: If no record matches in the tenant
        """
        record = await self.get_by_name(tenant_id, name, guard_name)
        if record is None:
            raise self._missing_name(name, guard_name)
        return record

    async def find_by_id(
        self,
        tenant_id: str,
        entity_id: int,
        guard_name: Optional[str] = None,
    ) -> ModelT:
        """
        Raises:
            NotFound: If no record with that id exists in the tenant (and guard)
        """
        query = select(self.model).where(
            self.model.tenant_id == str(tenant_id),
            self.model.id == entity_id,
        )
        if guard_name is not None:
            query = query.where(self.model.guard_name == guard_name)
        result = await self.session.execute(query)
        record = result.scalar_one_or_none()
        if record is None:
            raise self._missing_id(entity_id, guard_name)
        return record

    async def find_or_create(self, tenant_id: str, name: str, guard_name: str) -> ModelT:
        """Return the existing record or create it; safe under concurrent callers."""
        record = await self.get_by_name(tenant_id, name, guard_name)
        if record is not None:
            return record

        new_id = await insert_if_absent(
            self.session,
            self.model,
            {"name": name, "guard_name": guard_name, "tenant_id": str(tenant_id)},
            UNIQUE_COLUMNS,
        )
        if new_id is not None:
            logger.info(
                "%s created", self.entity.capitalize(),
                extra={"entity_id": new_id, "entity_name": name, "guard_name": guard_name},
            )
            return await self.find_by_id(tenant_id, new_id)

        # Lost the race: another transaction inserted it first
        return await self.find_by_name(tenant_id, name, guard_name)

    async def list(self, tenant_id: str, guard_name: Optional[str] = None) -> List[ModelT]:
        query = select(self.model).where(self.model.tenant_id == str(tenant_id))
        if guard_name is not None:
            query = query.where(self.model.guard_name == guard_name)
        result = await self.session.execute(query.order_by(self.model.id))
        return list(result.scalars().all())

    async def delete(self, tenant_id: str, entity_id: int) -> bool:
        """Delete a record and its assignments. Returns False if it did not exist."""
        owned = await self.session.execute(
            select(self.model.id).where(
                self.model.tenant_id == str(tenant_id),
                self.model.id == entity_id,
            )
        )
        if owned.scalar_one_or_none() is None:
            return False

        await self._delete_links(entity_id)
        result = await self.session.execute(
            delete(self.model).where(
                self.model.tenant_id == str(tenant_id),
                self.model.id == entity_id,
            )
        )
        return result.rowcount > 0

    @abstractmethod
    async def _delete_links(self, entity_id: int) -> None:
        """Remove every assignment row pointing at the record."""


class RoleRepository(CatalogRepository[Role]):
    model = Role
    entity = "role"

    def _missing_name(self, name, guard_name):
        return RoleDoesNotExist.named(name, guard_name)

    def _missing_id(self, entity_id, guard_name):
        return RoleDoesNotExist.with_id(entity_id, guard_name)

    def _duplicate(self, name, guard_name):
        return RoleAlreadyExists.create(name, guard_name)

    async def _delete_links(self, entity_id: int) -> None:
        await self.session.execute(
            delete(ModelHasRole)
            .where(ModelHasRole.role_id == entity_id)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(
            delete(RoleHasPermission)
            .where(RoleHasPermission.role_id == entity_id)
            .execution_options(synchronize_session=False)
        )


class PermissionRepository(CatalogRepository[Permission]):
    model = Permission
    entity = "permission"

    def _missing_name(self, name, guard_name):
        return PermissionDoesNotExist.create(name, guard_name)

    def _missing_id(self, entity_id, guard_name):
        return PermissionDoesNotExist.with_id(entity_id, guard_name)

    def _duplicate(self, name, guard_name):
        return PermissionAlreadyExists.create(name, guard_name)

    async def _delete_links(self, entity_id: int) -> None:
        await self.session.execute(
            delete(ModelHasPermission)
            .where(ModelHasPermission.permission_id == entity_id)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(
            delete(RoleHasPermission)
            .where(RoleHasPermission.permission_id == entity_id)
            .execution_options(synchronize_session=False)
        )

