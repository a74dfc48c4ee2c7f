"""Integration tests for the tenant-scoped entity store (SQLite)."""

import asyncio

import pytest
from sqlalchemy import func, select

from src.kernel.errors import (
    PermissionDoesNotExist,
    RoleAlreadyExists,
    RoleDoesNotExist,
)
from src.kernel.identity.principal import Principal
from src.kernel.models import ModelHasRole, Role, RoleHasPermission
from src.kernel.store import (
    AssignmentRepository,
    CatalogRepository,
    PermissionRepository,
    RoleRepository,
)


async def _count_roles(session, name: str) -> int:
    result = await session.execute(select(func.count()).select_from(Role).where(Role.name == name))
    return result.scalar_one()


class TestCatalogRepository:
    """Create/find/delete for roles and permissions."""

    @pytest.mark.asyncio
    async def test_create_and_find(self, db_session):
        repo = RoleRepository(db_session)
        role = await repo.create("acme", "editor", "web")

        assert role.id is not None
        assert role.tenant_id == "acme"
        assert (await repo.find_by_name("acme", "editor", "web")).id == role.id
        assert (await repo.find_by_id("acme", role.id)).name == "editor"

    @pytest.mark.asyncio
    async def test_duplicate_create_raises_and_keeps_one_row(self, db_session):
        repo = RoleRepository(db_session)
        await repo.create("acme", "editor", "web")

        with pytest.raises(RoleAlreadyExists) as exc_info:
            await repo.create("acme", "editor", "web")

        assert exc_info.value.http_status == 409
        assert await _count_roles(db_session, "editor") == 1

    @pytest.mark.asyncio
    async def test_same_name_allowed_in_other_guard_and_tenant(self, db_session):
        repo = RoleRepository(db_session)
        web = await repo.create("acme", "editor", "web")
        api = await repo.create("acme", "editor", "api")
        other = await repo.create("globex", "editor", "web")

        assert len({web.id, api.id, other.id}) == 3

    @pytest.mark.asyncio
    async def test_missing_records_raise_not_found(self, db_session):
        repo = PermissionRepository(db_session)

        with pytest.raises(PermissionDoesNotExist):
            await repo.find_by_name("acme", "posts.edit", "web")
        with pytest.raises(PermissionDoesNotExist):
            await repo.find_by_id("acme", 999)
        assert await repo.get_by_name("acme", "posts.edit", "web") is None

    @pytest.mark.asyncio
    async def test_lookups_never_cross_tenants(self, db_session):
        repo = PermissionRepository(db_session)
        permission = await repo.create("acme", "posts.edit", "web")

        with pytest.raises(PermissionDoesNotExist):
            await repo.find_by_id("globex", permission.id)
        with pytest.raises(PermissionDoesNotExist):
            await repo.find_by_name("globex", "posts.edit", "web")
        assert await repo.list("globex") == []

    @pytest.mark.asyncio
    async def test_find_by_id_with_guard_filter(self, db_session):
        repo = PermissionRepository(db_session)
        permission = await repo.create("acme", "posts.edit", "api")

        assert (await repo.find_by_id("acme", permission.id, "api")).id == permission.id
        with pytest.raises(PermissionDoesNotExist):
            await repo.find_by_id("acme", permission.id, "web")

    @pytest.mark.asyncio
    async def test_find_or_create_is_idempotent(self, db_session):
        repo = RoleRepository(db_session)
        first = await repo.find_or_create("acme", "editor", "web")
        second = await repo.find_or_create("acme", "editor", "web")

        assert first.id == second.id
        assert await _count_roles(db_session, "editor") == 1

    @pytest.mark.asyncio
    async def test_find_or_create_after_losing_insert_race(self, session_maker, monkeypatch):
        """The lookup misses, the insert collides, the winner's row is returned."""
        async with session_maker() as session:
            winner = await RoleRepository(session).create("acme", "editor", "web")
            await session.commit()

        async with session_maker() as session:
            repo = RoleRepository(session)
            real_lookup = repo.get_by_name
            calls = []

            async def stale_lookup(*args):
                calls.append(args)
                if len(calls) == 1:
                    return None
                return await real_lookup(*args)

            monkeypatch.setattr(repo, "get_by_name", stale_lookup)
            role = await repo.find_or_create("acme", "editor", "web")

            assert role.id == winner.id
            assert len(calls) == 2
            assert await _count_roles(session, "editor") == 1

    @pytest.mark.asyncio
    async def test_concurrent_find_or_create_yields_one_record(self, session_maker):
        async def find_or_create() -> int:
            async with session_maker() as session:
                role = await RoleRepository(session).find_or_create("acme", "editor", "web")
                await session.commit()
                return role.id

        ids = await asyncio.gather(find_or_create(), find_or_create())

        assert ids[0] == ids[1]
        async with session_maker() as session:
            assert await _count_roles(session, "editor") == 1

    @pytest.mark.asyncio
    async def test_list_filters_by_guard(self, db_session):
        repo = PermissionRepository(db_session)
        await repo.create("acme", "posts.edit", "web")
        await repo.create("acme", "tokens.issue", "api")

        assert [p.name for p in await repo.list("acme")] == ["posts.edit", "tokens.issue"]
        assert [p.name for p in await repo.list("acme", "api")] == ["tokens.issue"]

    @pytest.mark.asyncio
    async def test_delete_cascades_to_assignments(self, db_session):
        roles = RoleRepository(db_session)
        permissions = PermissionRepository(db_session)
        links = AssignmentRepository(db_session)
        principal = Principal("user", 1)

        role = await roles.create("acme", "editor", "web")
        permission = await permissions.create("acme", "posts.edit", "web")
        await links.grant_to_role("acme", role.id, [permission.id])
        await links.attach_roles("acme", principal, [role.id])
        await links.attach_permissions("acme", principal, [permission.id])

        assert await permissions.delete("acme", permission.id) is True
        assert await links.permission_ids_for("acme", principal) == set()
        grants = await db_session.execute(select(RoleHasPermission))
        assert grants.scalars().all() == []

        assert await roles.delete("acme", role.id) is True
        assert await links.role_ids_for("acme", principal) == set()

    @pytest.mark.asyncio
    async def test_delete_in_other_tenant_is_a_no_op(self, db_session):
        roles = RoleRepository(db_session)
        links = AssignmentRepository(db_session)
        role = await roles.create("acme", "editor", "web")
        await links.attach_roles("acme", Principal("user", 1), [role.id])

        assert await roles.delete("globex", role.id) is False
        assert await links.role_ids_for("acme", Principal("user", 1)) == {role.id}


class TestAssignmentRepository:
    """Link table operations."""

    @pytest.mark.asyncio
    async def test_attach_is_idempotent(self, db_session):
        role = await RoleRepository(db_session).create("acme", "editor", "web")
        links = AssignmentRepository(db_session)
        principal = Principal("user", 1)

        await links.attach_roles("acme", principal, [role.id])
        await links.attach_roles("acme", principal, [role.id, role.id])

        rows = await db_session.execute(select(ModelHasRole))
        assert len(rows.scalars().all()) == 1

    @pytest.mark.asyncio
    async def test_principal_ids_are_stored_as_strings(self, db_session):
        role = await RoleRepository(db_session).create("acme", "editor", "web")
        links = AssignmentRepository(db_session)

        await links.attach_roles("acme", Principal("user", 7), [role.id])

        assert await links.role_ids_for("acme", Principal("user", "7")) == {role.id}
        assert await links.principals_for_role("acme", role.id) == [("user", "7")]

    @pytest.mark.asyncio
    async def test_principals_for_role_filters_type(self, db_session):
        role = await RoleRepository(db_session).create("acme", "editor", "web")
        links = AssignmentRepository(db_session)
        await links.attach_roles("acme", Principal("user", 1), [role.id])
        await links.attach_roles("acme", Principal("service", 1), [role.id])

        assert await links.principals_for_role("acme", role.id, "user") == [("user", "1")]
        assert len(await links.principals_for_role("acme", role.id)) == 2

    @pytest.mark.asyncio
    async def test_detach_selected_and_all(self, db_session):
        roles = RoleRepository(db_session)
        editor = await roles.create("acme", "editor", "web")
        writer = await roles.create("acme", "writer", "web")
        links = AssignmentRepository(db_session)
        principal = Principal("user", 1)
        await links.attach_roles("acme", principal, [editor.id, writer.id])

        assert await links.detach_roles("acme", principal, [editor.id]) == 1
        assert await links.role_ids_for("acme", principal) == {writer.id}
        assert await links.detach_roles("acme", principal) == 1
        assert await links.role_ids_for("acme", principal) == set()

    @pytest.mark.asyncio
    async def test_grant_to_role_of_other_tenant_rejected(self, db_session):
        role = await RoleRepository(db_session).create("globex", "editor", "web")
        permission = await PermissionRepository(db_session).create("acme", "posts.edit", "web")

        with pytest.raises(RoleDoesNotExist):
            await AssignmentRepository(db_session).grant_to_role("acme", role.id, [permission.id])

    @pytest.mark.asyncio
    async def test_delete_for_principal(self, db_session):
        role = await RoleRepository(db_session).create("acme", "editor", "web")
        permission = await PermissionRepository(db_session).create("acme", "posts.edit", "web")
        links = AssignmentRepository(db_session)
        principal = Principal("user", 1)
        await links.attach_roles("acme", principal, [role.id])
        await links.attach_permissions("acme", principal, [permission.id])

        assert await links.delete_for_principal("acme", principal) == 2
        assert await links.role_ids_for("acme", principal) == set()
        assert await links.permission_ids_for("acme", principal) == set()

    @pytest.mark.asyncio
    async def test_load_catalog_rows_scoped_to_tenant_and_guard(self, db_session):
        roles = RoleRepository(db_session)
        permissions = PermissionRepository(db_session)
        links = AssignmentRepository(db_session)
        editor = await roles.create("acme", "editor", "web")
        edit = await permissions.create("acme", "posts.edit", "web")
        await permissions.create("acme", "tokens.issue", "api")
        await permissions.create("globex", "posts.edit", "web")
        await links.grant_to_role("acme", editor.id, [edit.id])

        perms, role_rows, grants = await links.load_catalog_rows("acme", "web")

        assert [p.name for p in perms] == ["posts.edit"]
        assert [r.name for r in role_rows] == ["editor"]
        assert grants == [(editor.id, edit.id)]


class TestCatalogRepositoryContract:
    """Entity repositories must supply their error factories and link cleanup."""

    def test_base_repository_cannot_be_instantiated(self, db_session):
        with pytest.raises(TypeError):
            CatalogRepository(db_session)

    def test_subclass_missing_hooks_cannot_be_instantiated(self, db_session):
        class HalfRoleRepository(CatalogRepository[Role]):
            model = Role
            entity = "role"

            def _missing_name(self, name, guard_name):
                return RoleDoesNotExist.named(name, guard_name)

        with pytest.raises(TypeError):
            HalfRoleRepository(db_session)

    def test_concrete_repositories_instantiate(self, db_session):
        assert RoleRepository(db_session).entity == "role"
        assert PermissionRepository(db_session).entity == "permission"
