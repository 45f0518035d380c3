# core/backend.py

"""
The one seam between this service and the data platform.

Everything above this module talks to a `Backend`: row access against named
relations, remote procedures, and auth. `SupabaseBackend` is the production
implementation on top of `supabase.AsyncClient`; tests provide an in-memory
implementation of the same protocol.

Every call returns a `BackendResult` instead of raising, mirroring the
`{ data, error }` shape of the platform's own client libraries.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

from supabase import AsyncClient

from core.errors import extract_supabase_error
from core.logging_config import logger
from models.user import AuthSession, Principal


AuthListener = Callable[[str, Optional[AuthSession]], None]
SessionClientFactory = Callable[[], Awaitable[Optional[AsyncClient]]]


# ============================================================
# Result shape
# ============================================================
class BackendResult:
    """Result of one backend call: either `data` or an `error` message."""

    def __init__(self, data: Any = None, error: Optional[str] = None):
        self.data = data
        self.error = error

    @property
    def ok(self) -> bool:
        return self.error is None

    def __repr__(self) -> str:
        return f"BackendResult(data={self.data!r}, error={self.error!r})"


# ============================================================
# Contract
# ============================================================
class Backend(Protocol):
    # ---- rows -------------------------------------------------
    async def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        *,
        columns: str = "*",
        order_by: Optional[str] = None,
        desc: bool = False,
        single: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> BackendResult: ...

    async def insert(self, table: str, data: Dict[str, Any]) -> BackendResult: ...

    async def update(self, table: str, filters: Dict[str, Any], data: Dict[str, Any]) -> BackendResult: ...

    async def upsert(self, table: str, data: Dict[str, Any]) -> BackendResult: ...

    # ---- remote procedures -----------------------------------
    async def rpc(self, name: str, params: Optional[Dict[str, Any]] = None) -> BackendResult: ...

    # ---- auth -------------------------------------------------
    async def get_session(self) -> BackendResult: ...

    async def get_user(self, access_token: str) -> BackendResult: ...

    async def sign_in_with_password(self, email: str, password: str) -> BackendResult: ...

    async def sign_up(self, email: str, password: str, metadata: Optional[Dict[str, Any]] = None) -> BackendResult: ...

    async def sign_out(self, access_token: Optional[str] = None) -> BackendResult: ...

    def on_auth_state_change(self, callback: AuthListener) -> Callable[[], None]: ...


# ============================================================
# Supabase conversions
# ============================================================
def principal_from_supabase_user(user: Any) -> Optional[Principal]:
    if user is None:
        return None
    return Principal(
        id=str(user.id),
        email=getattr(user, "email", None),
        email_verified=getattr(user, "email_confirmed_at", None) is not None,
        last_sign_in=getattr(user, "last_sign_in_at", None),
    )


def session_from_supabase(session: Any) -> Optional[AuthSession]:
    if session is None or getattr(session, "user", None) is None:
        return None
    return AuthSession(
        access_token=getattr(session, "access_token", None),
        principal=principal_from_supabase_user(session.user),
    )


def _apply_filters(query, filters: Optional[Dict[str, Any]]):
    for key, val in (filters or {}).items():
        if isinstance(val, (list, tuple, set)):
            query = query.in_(key, list(val))
        elif val is None:
            query = query.is_(key, "null")
        else:
            query = query.eq(key, val)
    return query


# ============================================================
# Supabase implementation
# ============================================================
class SupabaseBackend:
    """
    `Backend` on top of an already-created `supabase.AsyncClient`.

    `client` is the shared service-role client. Calls that would start a
    user session (sign in, sign up) run on a throwaway client from
    `session_client_factory`, because the client that makes them switches
    its own Authorization header to the user's JWT.
    """

    def __init__(self, client: AsyncClient, session_client_factory: Optional[SessionClientFactory] = None):
        self.client = client
        self.session_client_factory = session_client_factory

    async def _session_client(self) -> AsyncClient:
        if self.session_client_factory is None:
            raise RuntimeError("No session client configured for user sign-in")
        client = await self.session_client_factory()
        if client is None:
            raise RuntimeError("Supabase session client could not be created")
        return client

    # ---- rows -------------------------------------------------
    async def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        *,
        columns: str = "*",
        order_by: Optional[str] = None,
        desc: bool = False,
        single: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> BackendResult:
        try:
            query = _apply_filters(self.client.table(table).select(columns), filters)
            if order_by:
                query = query.order(order_by, desc=desc)
            if limit is not None:
                query = query.range(offset, offset + limit - 1)

            if single:
                response = await query.maybe_single().execute()
                # maybe_single() yields no response at all when nothing matched
                return BackendResult(data=response.data if response is not None else None)

            response = await query.execute()
            return BackendResult(data=response.data or [])
        except Exception as e:
            return BackendResult(error=extract_supabase_error(e))

    async def insert(self, table: str, data: Dict[str, Any]) -> BackendResult:
        try:
            response = await self.client.table(table).insert(data).execute()
            return BackendResult(data=response.data[0] if response.data else None)
        except Exception as e:
            return BackendResult(error=extract_supabase_error(e))

    async def update(self, table: str, filters: Dict[str, Any], data: Dict[str, Any]) -> BackendResult:
        try:
            query = _apply_filters(self.client.table(table).update(data), filters)
            response = await query.execute()
            return BackendResult(data=response.data or [])
        except Exception as e:
            return BackendResult(error=extract_supabase_error(e))

    async def upsert(self, table: str, data: Dict[str, Any]) -> BackendResult:
        try:
            response = await self.client.table(table).upsert(data).execute()
            return BackendResult(data=response.data[0] if response.data else None)
        except Exception as e:
            return BackendResult(error=extract_supabase_error(e))

    # ---- remote procedures -----------------------------------
    async def rpc(self, name: str, params: Optional[Dict[str, Any]] = None) -> BackendResult:
        try:
            response = await self.client.rpc(name, params or {}).execute()
            return BackendResult(data=response.data)
        except Exception as e:
            return BackendResult(error=extract_supabase_error(e))

    # ---- auth -------------------------------------------------
    async def get_session(self) -> BackendResult:
        try:
            session = await self.client.auth.get_session()
            return BackendResult(data=session_from_supabase(session))
        except Exception as e:
            return BackendResult(error=extract_supabase_error(e))

    async def get_user(self, access_token: str) -> BackendResult:
        try:
            response = await self.client.auth.get_user(access_token)
            user = response.user if response else None
            return BackendResult(data=principal_from_supabase_user(user))
        except Exception as e:
            return BackendResult(error=extract_supabase_error(e))

    async def sign_in_with_password(self, email: str, password: str) -> BackendResult:
        try:
            session_client = await self._session_client()
            response = await session_client.auth.sign_in_with_password(
                {"email": email, "password": password}
            )
            return BackendResult(data=session_from_supabase(response.session))
        except Exception as e:
            return BackendResult(error=extract_supabase_error(e))

    async def sign_up(self, email: str, password: str, metadata: Optional[Dict[str, Any]] = None) -> BackendResult:
        try:
            session_client = await self._session_client()
            response = await session_client.auth.sign_up(
                {
                    "email": email,
                    "password": password,
                    "options": {"data": metadata or {}},
                }
            )
            return BackendResult(data=principal_from_supabase_user(response.user))
        except Exception as e:
            return BackendResult(error=extract_supabase_error(e))

    async def sign_out(self, access_token: Optional[str] = None) -> BackendResult:
        """Revoke the caller's own session. Without a token there is nothing to end."""
        if not access_token:
            return BackendResult()
        try:
            await self.client.auth.admin.sign_out(access_token)
            return BackendResult()
        except Exception as e:
            return BackendResult(error=extract_supabase_error(e))

    def on_auth_state_change(self, callback: AuthListener) -> Callable[[], None]:
        def relay(event, session):
            callback(str(event), session_from_supabase(session))

        subscription = self.client.auth.on_auth_state_change(relay)

        def unsubscribe():
            try:
                subscription.unsubscribe()
            except Exception as e:
                logger.warning(f"Auth unsubscribe failed: {e}")

        return unsubscribe


def rows(result: BackendResult) -> List[Dict[str, Any]]:
    """Normalise `result.data` to a list of rows."""
    if not result.ok or result.data is None:
        return []
    if isinstance(result.data, list):
        return result.data
    return [result.data]
