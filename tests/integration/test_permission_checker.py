"""Integration tests for the FastAPI permission dependency and error handlers."""

from typing import Annotated

import pytest
import pytest_asyncio
from fastapi import Depends, Request
from httpx import ASGITransport, AsyncClient

from src.api.deps import Engine, PermissionChecker, require_permission
from src.config import get_settings
from src.database import get_db
from src.kernel.cache import get_permission_cache
from src.kernel.identity.principal import AuthContext, Principal
from src.kernel.permissions.authorization_engine import AuthorizationEngine
from src.main import create_app


@pytest_asyncio.fixture
async def seeded(session_maker, settings, alice):
    """acme: alice is an editor (posts.view, posts.edit); posts.delete exists unassigned."""
    async with session_maker() as session:
        engine = AuthorizationEngine(session, AuthContext(principal=alice), settings, get_permission_cache())
        for name in ("posts.view", "posts.edit", "posts.delete"):
            await engine.create_permission(name)
        await engine.create_role("editor")
        await engine.give_permission_to_role("editor", "posts.view", "posts.edit")
        await engine.assign_role(alice, "editor")
        await session.commit()


def build_app(session_maker, settings):
    app = create_app(settings, create_tables=False)

    @app.middleware("http")
    async def authenticate(request: Request, call_next):
        # X-Principal: <type>:<id>:<tenant>
        header = request.headers.get("X-Principal")
        if header:
            principal_type, principal_id, tenant_id = header.split(":")
            request.state.principal = Principal(principal_type, principal_id, tenant_id=tenant_id)
        return await call_next(request)

    @app.get("/posts", dependencies=[require_permission("posts.view|posts.manage")])
    async def list_posts():
        return {"posts": []}

    @app.delete("/posts/1", dependencies=[require_permission(["posts.delete"])])
    async def delete_post():
        return {"deleted": True}

    @app.get("/archive", dependencies=[require_permission("posts.archive|posts.edit")])
    async def archive():
        return {"archived": True}

    @app.get("/admin", dependencies=[require_permission("posts.view", guard="admin")])
    async def admin_area():
        return {"ok": True}

    @app.get("/comments", dependencies=[require_permission("comments.edit")])
    async def edit_comments():
        return {"ok": True}

    @app.get("/me")
    async def me(principal: Annotated[Principal, Depends(PermissionChecker("posts.view"))]):
        return {"principal": str(principal)}

    @app.post("/roles/{name}")
    async def create_role(name: str, engine: Engine):
        role = await engine.create_role(name)
        return {"id": role.id, "name": role.name}

    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    return app


@pytest.fixture
def app(session_maker, settings):
    return build_app(session_maker, settings)


@pytest_asyncio.fixture
async def client(app, seeded):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


ALICE = {"X-Principal": "user:1:acme"}
BOB = {"X-Principal": "user:2:acme"}
MALLORY = {"X-Principal": "user:3:globex"}


class TestPermissionChecker:
    """Tests for require_permission / PermissionChecker."""

    @pytest.mark.asyncio
    async def test_guest_gets_401(self, client: AsyncClient):
        response = await client.get("/posts")

        assert response.status_code == 401
        assert response.json()["code"] == "unauthenticated"
        assert response.headers["www-authenticate"] == "Bearer"

    @pytest.mark.asyncio
    async def test_holder_is_allowed(self, client: AsyncClient):
        response = await client.get("/posts", headers=ALICE)

        assert response.status_code == 200
        assert response.json() == {"posts": []}

    @pytest.mark.asyncio
    async def test_missing_permission_gets_403_listing_requirements(self, client: AsyncClient):
        response = await client.get("/posts", headers=BOB)

        assert response.status_code == 403
        data = response.json()
        assert data["code"] == "forbidden"
        assert data["required_permissions"] == ["posts.view", "posts.manage"]

    @pytest.mark.asyncio
    async def test_existing_but_unassigned_permission_is_denied(self, client: AsyncClient):
        response = await client.delete("/posts/1", headers=ALICE)

        assert response.status_code == 403
        assert response.json()["required_permissions"] == ["posts.delete"]

    @pytest.mark.asyncio
    async def test_unknown_permission_in_list_counts_as_not_held(self, client: AsyncClient):
        response = await client.get("/archive", headers=ALICE)

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_other_tenant_is_denied(self, client: AsyncClient):
        response = await client.get("/posts", headers=MALLORY)

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_guard_the_principal_does_not_use_gets_401(self, client: AsyncClient):
        response = await client.get("/admin", headers=ALICE)

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_checker_returns_principal(self, client: AsyncClient):
        response = await client.get("/me", headers=ALICE)

        assert response.status_code == 200
        assert response.json() == {"principal": "user:1"}

    @pytest.mark.asyncio
    async def test_unsplittable_stored_grant_counts_as_not_held(self, session_maker, settings, seeded, alice):
        """A name stored before wildcard mode was switched on must not turn checks into errors."""
        async with session_maker() as session:
            engine = AuthorizationEngine(session, AuthContext(principal=alice), settings, get_permission_cache())
            await engine.create_permission("posts.")
            await engine.create_permission("comments.edit")
            await engine.give_permission_to(alice, "posts.")
            await session.commit()

        wildcard_app = build_app(session_maker, settings.model_copy(update={"wildcard_enabled": True}))
        async with AsyncClient(transport=ASGITransport(app=wildcard_app), base_url="http://test") as client:
            response = await client.get("/comments", headers=ALICE)

        assert response.status_code == 403
        assert response.json()["required_permissions"] == ["comments.edit"]


class TestErrorHandlers:
    """Engine errors raised inside routes map to HTTP statuses."""

    @pytest.mark.asyncio
    async def test_duplicate_role_gets_409(self, client: AsyncClient):
        created = await client.post("/roles/writer", headers=ALICE)
        duplicate = await client.post("/roles/writer", headers=ALICE)

        assert created.status_code == 200
        assert created.json()["name"] == "writer"
        assert duplicate.status_code == 409
        assert duplicate.json()["code"] == "role_already_exists"

    @pytest.mark.asyncio
    async def test_engine_without_principal_gets_401(self, client: AsyncClient):
        response = await client.post("/roles/writer")

        assert response.status_code == 401
