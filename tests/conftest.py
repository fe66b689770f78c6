"""
tests/conftest.py -- Shared test fixtures for TokenVault.

This module provides:
  - db / service: a fresh in-memory store and facade per test
  - _patch_lifespan(): wires a test service into app.state, bypassing real startup
  - api_client: TestClient over the real FastAPI app for integration tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the API client because TestClient runs sync route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to each
worker thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

The hashing cost env vars must be set before any project import so
get_settings() picks up cheap bcrypt/Argon2 parameters. Production defaults
would make every registration take a noticeable fraction of a second.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set cheap hashing costs before any auth/core import.
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("KDF_TIME_COST", "1")
os.environ.setdefault("KDF_MEMORY_COST", "64")
os.environ.setdefault("KDF_PARALLELISM", "1")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.db import Database
from auth.service import AuthService

ROOT_SECRET = "test-root-secret-0123456789abcdef"


# ---------------------------------------------------------------------------
# Per-test store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def db() -> Generator[Database, None, None]:
    """Isolated in-memory Database. Foreign keys are on (see auth/db.py)."""
    database = Database("sqlite:///:memory:")
    yield database
    database.close()


@pytest.fixture
def service(db: Database) -> AuthService:
    """AuthService over the test db with a known root secret."""
    return AuthService(db, root_secret=ROOT_SECRET)


@pytest.fixture
def alice(service: AuthService) -> tuple[str, str]:
    """Register alice/secret1. Returns (user_id, code)."""
    return service.register_with_code("alice", "secret1")


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(service: AuthService):
    """Return an async context manager that replaces the real lifespan.

    Wires the pre-created test service into app.state so TestClient routes see
    an isolated test DB and a known root secret.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.service = service
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, AuthService], None, None]:
    """Yield (client, service) for API integration tests.

    One shared-memory DB per test module (named after the module) so modules
    never see each other's users.
    """
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    database = Database(f"sqlite:///file:test_{suffix}?mode=memory&cache=shared&uri=true")
    service = AuthService(database, root_secret=ROOT_SECRET)

    app.router.lifespan_context = _patch_lifespan(service)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, service

    database.close()
