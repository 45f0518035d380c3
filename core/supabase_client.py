# core/supabase_client.py

from typing import Optional

from supabase import AsyncClient, acreate_client
from supabase.lib.client_options import AsyncClientOptions

from core.backend import Backend, SupabaseBackend
from core.config import settings
from core.logging_config import logger


_client: Optional[AsyncClient] = None


def _client_options() -> AsyncClientOptions:
    # Server-side clients never keep or refresh a user session
    return AsyncClientOptions(auto_refresh_token=False, persist_session=False)


# ============================================================
# Supabase Client Factory (ALWAYS service role)
# ============================================================

async def get_supabase_client() -> Optional[AsyncClient]:
    """
    Creates (once) an async Supabase client using the SERVICE ROLE KEY.
    Used for rows, RPCs and auth.admin calls only; no user ever signs in
    on this client, so its Authorization header stays the service role's.

    Returns None when credentials are missing or the client cannot be
    created; callers treat that as "auth/backend unavailable".
    """
    global _client
    if _client is not None:
        return _client

    try:
        supabase_url = settings.SUPABASE_URL
        supabase_key = settings.SUPABASE_SERVICE_ROLE_KEY  # MUST be service-role

        if not supabase_url or not supabase_key:
            logger.error("Missing Supabase credentials")
            logger.error(f"   URL: {supabase_url}")
            logger.error(f"   SERVICE ROLE KEY: {'SET' if supabase_key else 'MISSING'}")
            return None

        _client = await acreate_client(supabase_url, supabase_key, options=_client_options())
        return _client

    except Exception as e:
        logger.error(f"Supabase Init Error: {e}", exc_info=True)
        return None


# ============================================================
# Session Client Factory (fresh per call)
# ============================================================

async def create_session_client() -> Optional[AsyncClient]:
    """
    Creates a new, uncached client for sign-in and sign-up.
    Those calls attach the user's JWT to whichever client made them, so
    each one gets its own client that is dropped afterwards.
    Prefers the anon key; falls back to the service role key.
    """
    try:
        supabase_url = settings.SUPABASE_URL
        supabase_key = settings.SUPABASE_ANON_KEY or settings.SUPABASE_SERVICE_ROLE_KEY

        if not supabase_url or not supabase_key:
            logger.error("Missing Supabase credentials for session client")
            return None

        return await acreate_client(supabase_url, supabase_key, options=_client_options())

    except Exception as e:
        logger.error(f"Supabase session client init error: {e}", exc_info=True)
        return None


# ============================================================
# FastAPI dependency: the Backend used by every service
# ============================================================

async def get_backend() -> Optional[SupabaseBackend]:
    client = await get_supabase_client()
    if client is None:
        return None
    return SupabaseBackend(client, session_client_factory=create_session_client)


# ============================================================
# Ping Supabase for health checks
# ============================================================

async def ping_supabase(backend: Optional[Backend]) -> dict:
    """
    Simple connectivity check against the tables this service owns.
    Does NOT query auth tables.
    """
    if backend is None:
        return {"service": "Supabase", "status": "not_configured"}

    tables = ["profiles", "user_roles", "inspection_requests"]
    results = {}

    for t in tables:
        result = await backend.select(t, limit=1)
        if result.ok:
            results[t] = {"status": "ok", "rows_found": len(result.data or [])}
        else:
            results[t] = {"status": "error", "detail": result.error}

    overall = "ok" if all(r["status"] == "ok" for r in results.values()) else "degraded"
    return {
        "service": "Supabase",
        "status": overall,
        "tables": results,
    }
