# tests/test_admin_api.py

"""
Tests for admin user management endpoints.
"""

from fastapi.testclient import TestClient

from fakes import auth_headers


def test_count_users_by_role(client: TestClient):
    response = client.get("/admin/users/counts", headers=auth_headers("admin-1"))

    assert response.status_code == 200
    assert response.json()["data"] == {"admin": 1, "agent": 2, "user": 2}


def test_list_users_filtered_by_role(client: TestClient):
    response = client.get("/admin/users?role=agent", headers=auth_headers("admin-1"))

    assert response.status_code == 200
    assert {u["id"] for u in response.json()["data"]} == {"agent-1", "agent-2"}


def test_list_all_users(client: TestClient):
    response = client.get("/admin/users", headers=auth_headers("admin-1"))

    assert len(response.json()["data"]) == 5


def test_list_users_invalid_role(client: TestClient):
    response = client.get("/admin/users?role=superuser", headers=auth_headers("admin-1"))
    assert response.status_code == 400


def test_change_role(client: TestClient, backend):
    response = client.patch(
        "/admin/users/customer-2/role", json={"role": "agent"}, headers=auth_headers("admin-1")
    )

    assert response.status_code == 200
    row = next(r for r in backend.tables["user_roles"] if r["user_id"] == "customer-2")
    assert row["role"] == "agent"


def test_change_role_backend_failure(client: TestClient, backend):
    backend.fail("rpc:update_user_role", "permission denied")

    response = client.patch(
        "/admin/users/customer-2/role", json={"role": "agent"}, headers=auth_headers("admin-1")
    )

    assert response.status_code == 500


def test_agent_cannot_change_roles(client: TestClient, backend):
    response = client.patch(
        "/admin/users/customer-2/role", json={"role": "admin"}, headers=auth_headers("agent-1")
    )

    assert response.status_code == 403
    assert backend.calls_to("rpc", "update_user_role") == []


def test_create_user_with_role(client: TestClient, backend):
    response = client.post(
        "/admin/users",
        json={"email": "thoko@example.com", "password": "password123", "full_name": "Thoko Phiri", "role": "agent"},
        headers=auth_headers("admin-1"),
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["role"] == "agent"
    assert {"user_id": data["user_id"], "role": "agent"} in backend.tables["user_roles"]


def test_create_user_short_password(client: TestClient):
    response = client.post(
        "/admin/users",
        json={"email": "thoko@example.com", "password": "short", "role": "agent"},
        headers=auth_headers("admin-1"),
    )
    assert response.status_code == 422
