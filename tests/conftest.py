# tests/conftest.py

"""
Pytest configuration and shared fixtures for testing.
"""

import pytest
from fastapi.testclient import TestClient
from typing import Generator

from main import create_app
from core.rate_limiter import reset_rate_limits
from core.supabase_client import get_backend
from models.enums import Role
from fakes import InMemoryBackend, install_role_rpcs


@pytest.fixture
def backend() -> InMemoryBackend:
    """In-memory backend with role RPCs and one user of each role."""
    fake = install_role_rpcs(InMemoryBackend())
    fake.add_user("customer-1", Role.user)
    fake.add_user("customer-2", Role.user)
    fake.add_user("agent-1", Role.agent)
    fake.add_user("agent-2", Role.agent)
    fake.add_user("admin-1", Role.admin)
    return fake


@pytest.fixture(scope="function")
def app(backend):
    """Create a test FastAPI application wired to the in-memory backend."""
    app = create_app()
    app.dependency_overrides[get_backend] = lambda: backend
    yield app
    app.dependency_overrides = {}


@pytest.fixture(scope="function")
def client(app) -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI application."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture(autouse=True)
def reset_limits():
    """Reset rate limits before each test."""
    reset_rate_limits()
    yield
    reset_rate_limits()
