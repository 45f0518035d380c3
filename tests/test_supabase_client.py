# tests/test_supabase_client.py

"""
Tests for Supabase client wiring: user sessions never land on the shared
service-role client.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

import core.supabase_client as supabase_client
from core.supabase_client import get_backend


def make_client(key: str) -> MagicMock:
    """Stand-in AsyncClient whose sign-in rewrites its own headers, as supabase-py does."""
    client = MagicMock()
    client.key = key
    client.options.headers = {"Authorization": f"Bearer {key}"}

    async def sign_in(credentials):
        client.options.headers["Authorization"] = "Bearer customer-jwt"
        user = SimpleNamespace(id="customer-1", email=credentials["email"],
                               email_confirmed_at=None, last_sign_in_at=None)
        return SimpleNamespace(session=SimpleNamespace(access_token="customer-jwt", user=user))

    client.auth.sign_in_with_password = AsyncMock(side_effect=sign_in)
    client.auth.sign_out = AsyncMock()
    client.auth.admin.sign_out = AsyncMock()
    return client


@pytest.fixture
def created(monkeypatch):
    """Every client handed out by acreate_client, in order."""
    clients = []

    async def fake_create(url, key, options=None):
        clients.append(make_client(key))
        return clients[-1]

    monkeypatch.setattr(supabase_client, "_client", None)
    monkeypatch.setattr(supabase_client, "acreate_client", fake_create)
    with patch.object(supabase_client, "settings") as mock_settings:
        mock_settings.SUPABASE_URL = "https://stazama.supabase.co"
        mock_settings.SUPABASE_SERVICE_ROLE_KEY = "service-role-key"
        mock_settings.SUPABASE_ANON_KEY = "anon-key"
        yield clients


@pytest.mark.asyncio
async def test_login_leaves_service_role_client_untouched(created):
    backend = await get_backend()

    result = await backend.sign_in_with_password("customer-1@example.com", "password123")

    assert result.ok
    assert result.data.access_token == "customer-jwt"

    shared = (await get_backend()).client
    assert shared is backend.client
    assert shared.options.headers["Authorization"] == "Bearer service-role-key"
    shared.auth.sign_in_with_password.assert_not_called()


@pytest.mark.asyncio
async def test_each_login_gets_its_own_anon_client(created):
    backend = await get_backend()

    await backend.sign_in_with_password("customer-1@example.com", "password123")
    await backend.sign_in_with_password("customer-2@example.com", "password123")

    assert [c.key for c in created] == ["service-role-key", "anon-key", "anon-key"]
    assert created[1] is not created[2]


@pytest.mark.asyncio
async def test_sign_out_revokes_only_the_given_token(created):
    backend = await get_backend()

    result = await backend.sign_out("customer-jwt")

    assert result.ok
    backend.client.auth.admin.sign_out.assert_awaited_once_with("customer-jwt")
    backend.client.auth.sign_out.assert_not_called()


@pytest.mark.asyncio
async def test_sign_out_without_token_calls_nothing(created):
    backend = await get_backend()

    result = await backend.sign_out()

    assert result.ok
    backend.client.auth.admin.sign_out.assert_not_called()
    backend.client.auth.sign_out.assert_not_called()
