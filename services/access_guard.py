# services/access_guard.py

from typing import Callable, Optional

from pydantic import BaseModel

from core.config import settings
from core.logging_config import logger
from core.notifications import Notifier
from models.enums import BaseStrEnum, Role
from services.session_store import SessionState, SessionStore


class GuardState(BaseStrEnum):
    loading = "loading"
    authorized = "authorized"
    denied = "denied"


class DenialReason(BaseStrEnum):
    not_authenticated = "not_authenticated"
    insufficient_permission = "insufficient_permission"


DENIAL_MESSAGES = {
    DenialReason.not_authenticated: "Please log in to access this page.",
    DenialReason.insufficient_permission: "You don't have permission to access this page.",
}


class GuardDecision(BaseModel):
    state: GuardState
    reason: Optional[DenialReason] = None
    message: Optional[str] = None

    model_config = {"frozen": True}


def decide_access(snapshot: SessionState, required_role: Optional[Role] = None) -> GuardDecision:
    """
    Pure gating policy. admin passes every role gate; an unresolved role
    for a signed-in principal keeps the decision pending.
    """
    if snapshot.loading:
        return GuardDecision(state=GuardState.loading)

    if snapshot.principal is not None and required_role is not None and snapshot.role is None:
        return GuardDecision(state=GuardState.loading)

    if snapshot.principal is None:
        reason = DenialReason.not_authenticated
        return GuardDecision(state=GuardState.denied, reason=reason, message=DENIAL_MESSAGES[reason])

    if required_role is not None and snapshot.role not in (Role.parse(required_role), Role.admin):
        reason = DenialReason.insufficient_permission
        return GuardDecision(state=GuardState.denied, reason=reason, message=DENIAL_MESSAGES[reason])

    return GuardDecision(state=GuardState.authorized)


DenyCallback = Callable[[DenialReason, str], None]


class AccessGuard:
    """
    Gates one protected view on the session store.

    While mounted it re-evaluates on every session change. The deny side
    effect (notification, redirect, on_deny) fires at most once per mount.
    """

    def __init__(
        self,
        session_store: SessionStore,
        required_role: Optional[Role] = None,
        on_deny: Optional[DenyCallback] = None,
        redirect_path: Optional[str] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.session_store = session_store
        self.required_role = Role.parse(required_role) if required_role is not None else None
        self.on_deny = on_deny
        self.redirect_path = redirect_path or settings.PUBLIC_LANDING_PATH
        self.notifier = notifier or Notifier()

        self.state = GuardState.loading
        self.redirect_to: Optional[str] = None
        self._denial_fired = False
        self._mounted = False
        self._principal_id: Optional[str] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def mounted(self) -> bool:
        return self._mounted

    def mount(self) -> GuardState:
        self._mounted = True
        self._denial_fired = False
        self.redirect_to = None
        self.state = GuardState.loading
        self._unsubscribe = self.session_store.subscribe(self.evaluate)
        return self.evaluate(self.session_store.state)

    def unmount(self):
        self._mounted = False
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def evaluate(self, snapshot: SessionState) -> GuardState:
        if not self._mounted:
            return self.state

        principal_id = snapshot.principal.id if snapshot.principal else None
        if principal_id != self._principal_id:
            self._principal_id = principal_id
            self.state = GuardState.loading

        decision = decide_access(snapshot, self.required_role)
        self.state = decision.state

        if decision.state == GuardState.denied:
            self._deny(decision)
        return self.state

    def _deny(self, decision: GuardDecision):
        if self._denial_fired:
            return
        self._denial_fired = True
        self.redirect_to = self.redirect_path

        logger.info(f"Access denied ({decision.reason}); redirecting to {self.redirect_path}")
        self.notifier.failure("Access Denied", decision.message, error="access_denied")
        if self.on_deny is not None:
            self.on_deny(decision.reason, decision.message)
