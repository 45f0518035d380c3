# services/session_store.py

import asyncio
from typing import Callable, List, Optional, Set

from pydantic import BaseModel

from core.backend import Backend
from core.config import settings
from core.errors import ActionResult, ErrorKind
from core.logging_config import logger
from core.rate_limiter import check_rate_limit
from models.enums import Role
from models.user import AuthSession, Principal, Profile
from services.role_service import RoleResolver


SessionListener = Callable[["SessionState"], None]

RATE_LIMITED_MESSAGE = "Too many authentication attempts. Please try again later."


class SessionState(BaseModel):
    """Immutable snapshot of who is signed in."""

    loading: bool = True
    principal: Optional[Principal] = None
    access_token: Optional[str] = None
    profile: Optional[Profile] = None
    role: Optional[Role] = None

    model_config = {"frozen": True}

    @property
    def authenticated(self) -> bool:
        return self.principal is not None


class SessionStore:
    """
    Owns the current session, profile and role for one consumer.

    Constructed explicitly and passed to whatever needs it. `start()`
    subscribes to the backend's auth channel and loads the initial session;
    `stop()` unsubscribes. Without a reachable auth backend the store settles
    on an unauthenticated state and every operation reports auth_unavailable.
    """

    def __init__(self, backend: Optional[Backend], role_resolver: Optional[RoleResolver] = None):
        self.backend = backend
        self.role_resolver = role_resolver or RoleResolver(backend)
        self._state = SessionState()
        self._listeners: List[SessionListener] = []
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._pending: Set[asyncio.Task] = set()
        self._generation = 0
        self._stopped = False

    # ============================================================
    # State & listeners
    # ============================================================
    @property
    def state(self) -> SessionState:
        return self._state

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, **changes):
        if self._stopped:
            return
        self._state = self._state.model_copy(update=changes)
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception as e:
                logger.error(f"Session listener failed: {e}", exc_info=True)

    # ============================================================
    # Lifecycle
    # ============================================================
    async def start(self):
        self._stopped = False
        if self.backend is None:
            logger.warning("Auth backend not available. Authentication features are disabled.")
            self._set_state(loading=False, principal=None, access_token=None, profile=None, role=None)
            return

        try:
            self._unsubscribe = self.backend.on_auth_state_change(self._on_auth_state_change)
        except Exception as e:
            logger.error(f"Could not subscribe to auth changes: {e}")

        await self.refresh()

    async def stop(self):
        self._stopped = True
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        for task in list(self._pending):
            task.cancel()
        self._pending.clear()

    def _on_auth_state_change(self, event: str, session: Optional[AuthSession]):
        if self._stopped:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"Auth event {event} received outside an event loop; ignored")
            return

        task = loop.create_task(self.apply_auth_event(event, session))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    # ============================================================
    # Session loading
    # ============================================================
    async def apply_auth_event(self, event: str, session: Optional[AuthSession]):
        """Adopt `session` (or its absence) and load the matching profile and role."""
        if self._stopped:
            return

        logger.info(f"Auth event: {event}")
        await self._adopt(session)

    async def refresh(self):
        if self.backend is None:
            self._set_state(loading=False, principal=None, access_token=None, profile=None, role=None)
            return

        result = await self.backend.get_session()
        if self._stopped:
            return

        if not result.ok:
            logger.error(f"Error getting session: {result.error}")
            self._set_state(loading=False, principal=None, access_token=None, profile=None, role=None)
            return

        await self._adopt(result.data)

    async def _adopt(self, session: Optional[AuthSession]):
        self._generation += 1
        generation = self._generation

        if session is None:
            self._set_state(loading=False, principal=None, access_token=None, profile=None, role=None)
            return

        principal = session.principal
        if principal != self._state.principal:
            # A new principal's role is unknown until loaded
            self._set_state(principal=principal, access_token=session.access_token, profile=None, role=None)
        else:
            self._set_state(access_token=session.access_token)

        profile, role = await self._load_user_data(principal)

        # Ignore results overtaken by a newer session or by teardown
        if self._stopped or generation != self._generation:
            return
        self._set_state(loading=False, profile=profile, role=role)

    async def _load_user_data(self, principal: Principal):
        profile = Profile(id=principal.id, email=principal.email or "")

        try:
            result = await self.backend.select(
                "profiles",
                {"id": principal.id},
                columns="full_name, phone, address, avatar_url",
                single=True,
            )
            if result.ok and result.data:
                profile = profile.model_copy(update={
                    field: result.data.get(field)
                    for field in ("full_name", "phone", "address", "avatar_url")
                })
            elif not result.ok:
                logger.error(f"Error fetching profile for {principal.id}: {result.error}")
        except Exception as e:
            logger.error(f"Error fetching profile for {principal.id}: {e}")

        try:
            role = await self.role_resolver.resolve_role(principal.id)
        except Exception as e:
            logger.error(f"Error resolving role for {principal.id}: {e}")
            role = Role.user

        return profile, role

    # ============================================================
    # Auth operations
    # ============================================================
    async def sign_in(self, email: str, password: str) -> ActionResult:
        if self.backend is None:
            return ActionResult.failure(ErrorKind.auth_unavailable, "Authentication is not available")

        allowed, _ = check_rate_limit(
            f"auth:{email.strip().lower()}",
            max_requests=settings.AUTH_RATE_LIMIT_MAX_ATTEMPTS,
            window_seconds=settings.AUTH_RATE_LIMIT_WINDOW_SECONDS,
        )
        if not allowed:
            logger.warning("Sign-in rate limit reached")
            return ActionResult.failure(ErrorKind.access_denied, RATE_LIMITED_MESSAGE)

        result = await self.backend.sign_in_with_password(email, password)
        if not result.ok or result.data is None:
            logger.warning(f"Sign-in failed: {result.error}")
            return ActionResult.failure(ErrorKind.access_denied, "Invalid email or password", detail=result.error)

        await self._adopt(result.data)
        return ActionResult.success(result.data, message="Signed in")

    async def sign_up(self, email: str, password: str, full_name: Optional[str] = None) -> ActionResult:
        if self.backend is None:
            return ActionResult.failure(ErrorKind.auth_unavailable, "Authentication is not available")

        result = await self.backend.sign_up(email, password, {"full_name": full_name or ""})
        if not result.ok:
            logger.warning(f"Sign-up failed: {result.error}")
            return ActionResult.failure(ErrorKind.invalid_input, "Could not create account", detail=result.error)

        logger.info("New account registered")
        return ActionResult.success(result.data, message="Account created. Check your email to confirm it.")

    async def sign_out(self, access_token: Optional[str] = None) -> ActionResult:
        """Ends the given session, or the one this store holds. Local state is always cleared."""
        token = access_token or self._state.access_token
        self._generation += 1

        if self.backend is None:
            self._set_state(loading=False, principal=None, access_token=None, profile=None, role=None)
            return ActionResult.failure(ErrorKind.auth_unavailable, "Authentication is not available")

        result = await self.backend.sign_out(token)
        self._set_state(loading=False, principal=None, access_token=None, profile=None, role=None)
        if not result.ok:
            logger.error(f"Sign-out failed: {result.error}")
            return ActionResult.failure(ErrorKind.auth_unavailable, "Sign out could not reach the server", detail=result.error)
        return ActionResult.success(message="Signed out")
