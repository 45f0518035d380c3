# tests/test_permissions.py

"""
Tests for permission checks and access control.
"""

import pytest
from fastapi.testclient import TestClient

from core.permissions import ROLE_PERMISSIONS, has_permission
from models.enums import Role
from fakes import auth_headers, seed_request


def test_every_role_has_an_entry():
    assert set(ROLE_PERMISSIONS) == set(Role)


def test_admin_only_permissions():
    for permission in ("requests:assign", "payments:process", "fees:update", "users:manage"):
        assert has_permission(Role.admin, permission)
        assert not has_permission(Role.agent, permission)
        assert not has_permission(Role.user, permission)


def test_unknown_or_missing_role_has_nothing():
    assert not has_permission(None, "requests:create")
    assert not has_permission("superuser", "requests:read_all")


def test_role_strings_are_accepted():
    assert has_permission("agent", "requests:complete")


def test_customer_sees_only_own_requests(client: TestClient, backend):
    seed_request(backend, id="r1", user_id="customer-1")
    seed_request(backend, id="r2", user_id="customer-2")

    response = client.get("/requests", headers=auth_headers("customer-1"))

    assert response.status_code == 200
    assert [r["id"] for r in response.json()] == ["r1"]


def test_customer_cannot_read_someone_elses_request(client: TestClient, backend):
    seed_request(backend, id="r2", user_id="customer-2")

    response = client.get("/requests/r2", headers=auth_headers("customer-1"))

    assert response.status_code == 404


def test_agent_reads_any_request(client: TestClient, backend):
    seed_request(backend, id="r2", user_id="customer-2")

    response = client.get("/requests/r2", headers=auth_headers("agent-1"))

    assert response.status_code == 200
    assert response.json()["id"] == "r2"


@pytest.mark.parametrize("user_id,expected", [
    ("customer-1", 403),
    ("agent-1", 200),
    ("admin-1", 200),
])
def test_stats_is_for_agents_with_admin_override(client: TestClient, backend, user_id, expected):
    seed_request(backend, id="r1")

    response = client.get("/requests/stats", headers=auth_headers(user_id))

    assert response.status_code == expected


@pytest.mark.parametrize("user_id,expected", [
    ("customer-1", 403),
    ("agent-1", 403),
    ("admin-1", 200),
])
def test_admin_routes_require_admin(client: TestClient, user_id, expected):
    response = client.get("/admin/users/counts", headers=auth_headers(user_id))

    assert response.status_code == expected
