"""
tests/conftest.py -- Shared test fixtures for Taskboard unit and integration tests.

This module provides:
  - engine / services: a fresh in-memory database and fully wired Services
    per test (built-in roles already seeded)
  - register: factory that creates an account through AuthService
  - team: a project with an owner, an admin-role member, a manager, a plain
    member and an outsider
  - api_client: TestClient over the real app with a patched lifespan

Design: unit tests use plain sqlite:///:memory:. SQLAlchemy gives an
in-memory URL a SingletonThreadPool, so every connection in the test thread
sees the same database. The API fixture instead uses a named shared-memory
URI because TestClient runs sync route handlers in a thread pool, and a
plain :memory: DB would present a blank schema to each worker thread.

DEBUG, BCRYPT_ROUNDS and ALLOWED_HOSTS must be set before any taskboard
import so get_settings() auto-generates secrets, hashing stays fast and the
TrustedHostMiddleware accepts TestClient requests.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
# TestClient sends Host: testserver; the shipped default only trusts localhost.
os.environ.setdefault("ALLOWED_HOSTS", '["testserver"]')

import pytest
from fastapi.testclient import TestClient

from api.container import Services, build_services
from api.limiter import limiter
from api.main import app
from core.config import get_settings
from core.db import create_db_engine

PASSWORD = "correct-horse-9"


# ---------------------------------------------------------------------------
# Service-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def engine():
    eng = create_db_engine("sqlite:///:memory:")
    yield eng
    eng.dispose()


@pytest.fixture
def services(engine, settings) -> Services:
    return build_services(engine, settings)


@pytest.fixture
def register(services):
    """Return a factory: register("alice") -> (User, TokenPair)."""

    def _register(name: str, password: str = PASSWORD):
        return services.auth.register(f"{name}@example.com", password, name.title())

    return _register


@dataclass
class Team:
    project_id: int
    owner: int
    admin: int
    manager: int
    member: int
    outsider: int


@pytest.fixture
def team(services, register) -> Team:
    """A project owned by `owner` with one member per built-in role plus an outsider."""
    ids = {name: register(name)[0].id for name in ("owner", "admin", "manager", "member", "outsider")}
    project = services.projects.create_project(ids["owner"], "Apollo", "Moon shot")
    for name in ("admin", "manager", "member"):
        role = services.catalog.get_by_name(name)
        services.projects.add_member(project.id, ids["owner"], ids[name], role.id)
    return Team(project_id=project.id, **ids)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(services: Services):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-built test services into app.state so TestClient routes see an
    isolated database rather than the configured one.

    The purge_task is a long-sleeping coroutine that keeps asyncio happy
    (a real asyncio.Task is required; MagicMock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.services = services
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, token, user_id) for API integration tests.

    Each test module gets its own named in-memory database. The first user is
    registered before the client starts and its access token is returned for
    use in Authorization headers. Rate limiting is switched off so tests can
    register and log in freely; tests that exercise it switch it back on.
    """
    db_name = request.module.__name__.rsplit(".", 1)[-1]
    eng = create_db_engine(f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")
    services = build_services(eng, get_settings())
    user, pair = services.auth.register("apiadmin@example.com", PASSWORD, "Api Admin")

    app.router.lifespan_context = _patch_lifespan(services)
    limiter.enabled = False

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, pair.access_token, user.id

    limiter.enabled = True
    eng.dispose()