from typing import Optional

from fastapi import APIRouter, HTTPException, Depends, Request
from pydantic import BaseModel, Field

from core.backend import Backend
from core.config import settings
from core.errors import ErrorKind
from core.logging_config import logger
from core.rate_limiter import require_rate_limit
from core.supabase_client import get_backend
from dependencies.auth import get_current_user, get_role_resolver, CurrentUser
from models.roles import PermissionSnapshot
from services.role_service import RoleResolver
from services.session_store import RATE_LIMITED_MESSAGE, SessionStore


router = APIRouter(
    prefix="/auth",
    tags=["Auth"],
)


# ============================================================
# MODELS
# ============================================================
class LoginRequest(BaseModel):
    email: str
    password: str


class SignupRequest(BaseModel):
    email: str
    password: str = Field(..., min_length=8)
    full_name: Optional[str] = None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: Optional[str] = None


class MeResponse(BaseModel):
    user: CurrentUser
    permissions: PermissionSnapshot


# ============================================================
# LOGIN (SUPABASE AUTH)
# ============================================================
@router.post("/login", response_model=TokenResponse, summary="Authenticate user")
async def login(
    payload: LoginRequest,
    request: Request,
    backend: Optional[Backend] = Depends(get_backend),
):
    email = payload.email.strip().lower()

    # Per-IP guard on top of the per-email limit inside the session store
    require_rate_limit(
        request,
        max_requests=settings.AUTH_RATE_LIMIT_MAX_ATTEMPTS * 4,
        window_seconds=settings.AUTH_RATE_LIMIT_WINDOW_SECONDS,
    )

    store = SessionStore(backend)
    result = await store.sign_in(email, payload.password)

    if not result:
        if result.error == ErrorKind.auth_unavailable:
            raise HTTPException(503, result.message)
        if result.message == RATE_LIMITED_MESSAGE:
            raise HTTPException(429, result.message)
        logger.warning(f"Login attempt failed for {email}")
        raise HTTPException(status_code=401, detail="Invalid email or password")

    session = result.value
    if not session.access_token:
        raise HTTPException(401, "Invalid email or password")

    return TokenResponse(
        access_token=session.access_token,
        role=str(store.state.role) if store.state.role else None,
    )


# ============================================================
# SIGNUP
# ============================================================
@router.post("/signup", summary="Create a customer account")
async def signup(payload: SignupRequest, backend: Optional[Backend] = Depends(get_backend)):
    store = SessionStore(backend)
    result = await store.sign_up(payload.email.strip().lower(), payload.password, payload.full_name)

    if not result:
        if result.error == ErrorKind.auth_unavailable:
            raise HTTPException(503, result.message)
        raise HTTPException(400, result.message)

    principal = result.value
    return {
        "success": True,
        "message": result.message,
        "user_id": principal.id if principal else None,
    }


# ============================================================
# LOGOUT
# ============================================================
@router.post("/logout", summary="End the current session")
async def logout(
    current_user: CurrentUser = Depends(get_current_user),
    backend: Optional[Backend] = Depends(get_backend),
):
    result = await SessionStore(backend).sign_out(current_user.access_token)
    if not result:
        logger.warning(f"Logout for {current_user.id} did not reach the server: {result.detail}")
    return {"success": True}


# ============================================================
# CURRENT USER
# ============================================================
@router.get("/me", response_model=MeResponse, summary="Current authenticated user")
async def read_me(
    current_user: CurrentUser = Depends(get_current_user),
    resolver: RoleResolver = Depends(get_role_resolver),
):
    permissions = await resolver.check_all_permissions(current_user.id)
    return MeResponse(user=current_user, permissions=permissions)
