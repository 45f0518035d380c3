# tests/test_access_guard.py

"""
Tests for view gating on the session store.
"""

import pytest

from models.enums import Role
from models.user import AuthSession, Principal
from services.access_guard import (
    AccessGuard,
    DenialReason,
    GuardState,
    decide_access,
)
from services.session_store import SessionState, SessionStore


def signed_in(role, user_id="u-1"):
    return SessionState(loading=False, principal=Principal(id=user_id), role=role)


# ============================================================
# decide_access
# ============================================================
def test_loading_session_is_loading():
    assert decide_access(SessionState(loading=True)).state == GuardState.loading


def test_no_principal_is_denied_not_authenticated():
    decision = decide_access(SessionState(loading=False), Role.user)

    assert decision.state == GuardState.denied
    assert decision.reason == DenialReason.not_authenticated
    assert decision.message == "Please log in to access this page."


def test_unresolved_role_with_required_role_is_loading():
    assert decide_access(signed_in(None), Role.agent).state == GuardState.loading


def test_unresolved_role_without_required_role_is_authorized():
    assert decide_access(signed_in(None)).state == GuardState.authorized


@pytest.mark.parametrize("role", [Role.user, Role.agent])
@pytest.mark.parametrize("required", list(Role))
def test_non_admin_denied_for_other_roles(role, required):
    decision = decide_access(signed_in(role), required)

    if role == required:
        assert decision.state == GuardState.authorized
    else:
        assert decision.state == GuardState.denied
        assert decision.reason == DenialReason.insufficient_permission
        assert decision.message == "You don't have permission to access this page."


@pytest.mark.parametrize("required", [None, Role.user, Role.agent, Role.admin])
def test_admin_passes_every_gate(required):
    assert decide_access(signed_in(Role.admin), required).state == GuardState.authorized


# ============================================================
# AccessGuard lifecycle
# ============================================================
class StubStore(SessionStore):
    """SessionStore whose state is pushed by the test."""

    def __init__(self):
        super().__init__(None)

    def push(self, **changes):
        self._set_state(**changes)


def test_denial_fires_once_per_mount():
    store = StubStore()
    denials = []
    guard = AccessGuard(store, Role.agent, on_deny=lambda reason, msg: denials.append(reason))

    assert guard.mount() == GuardState.loading
    store.push(loading=False)
    store.push(loading=False)
    store.push(loading=False)

    assert guard.state == GuardState.denied
    assert denials == [DenialReason.not_authenticated]
    assert guard.redirect_to == "/"
    assert len([n for n in guard.notifier.history if n.title == "Access Denied"]) == 1


def test_remount_can_deny_again():
    store = StubStore()
    denials = []
    guard = AccessGuard(store, on_deny=lambda reason, msg: denials.append(reason))

    store.push(loading=False)
    guard.mount()
    guard.unmount()
    guard.mount()

    assert len(denials) == 2


def test_principal_change_resets_to_loading_then_reevaluates():
    store = StubStore()
    states = []
    guard = AccessGuard(store, Role.agent)
    guard.mount()

    store.push(loading=False, principal=Principal(id="agent-1"), role=Role.agent)
    states.append(guard.state)

    # New principal arrives before its role is known
    store.push(principal=Principal(id="agent-2"), role=None)
    states.append(guard.state)

    store.push(role=Role.agent)
    states.append(guard.state)

    assert states == [GuardState.authorized, GuardState.loading, GuardState.authorized]


def test_unmounted_guard_ignores_updates():
    store = StubStore()
    denials = []
    guard = AccessGuard(store, on_deny=lambda reason, msg: denials.append(reason))
    guard.mount()
    guard.unmount()

    store.push(loading=False)

    assert guard.state == GuardState.loading
    assert denials == []


def test_insufficient_role_redirects_to_configured_path():
    store = StubStore()
    messages = []
    guard = AccessGuard(
        store,
        Role.admin,
        on_deny=lambda reason, msg: messages.append(msg),
        redirect_path="/welcome",
    )
    guard.mount()
    store.push(loading=False, principal=Principal(id="customer-1"), role=Role.user)

    assert guard.state == GuardState.denied
    assert guard.redirect_to == "/welcome"
    assert messages == ["You don't have permission to access this page."]


@pytest.mark.asyncio
async def test_guard_follows_real_session_store(backend):
    store = SessionStore(backend)
    guard = AccessGuard(store, Role.agent)
    guard.mount()

    backend.session = AuthSession(access_token="token-agent-1", principal=Principal(id="agent-1"))
    await store.start()

    assert guard.state == GuardState.authorized
    await store.stop()
