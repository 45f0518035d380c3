from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel

from core.backend import Backend
from core.supabase_client import get_backend
from core.logging_config import logger
from models.enums import Role
from services.access_guard import DenialReason, GuardState, decide_access
from services.role_service import RoleResolver
from services.session_store import SessionState


bearer_scheme = HTTPBearer(auto_error=False)


# ============================================================
# Current User Model
# ============================================================
class CurrentUser(BaseModel):
    id: str
    email: Optional[str] = None
    role: Role = Role.user
    access_token: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.admin


def get_role_resolver(backend: Optional[Backend] = Depends(get_backend)) -> RoleResolver:
    return RoleResolver(backend)


# ============================================================
# AUTH DECODING (Supabase: validates JWT, resolves role)
# ============================================================
async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    backend: Optional[Backend] = Depends(get_backend),
) -> CurrentUser:

    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Please log in to access this page.",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None or not credentials.credentials:
        raise unauthorized

    if backend is None:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Authentication is not available")

    token = credentials.credentials

    # ---------------------------------------------------------
    # Validate JWT via Supabase GoTrue
    # ---------------------------------------------------------
    result = await backend.get_user(token)
    if not result.ok:
        logger.warning(f"Token validation failed: {result.error}")
        raise unauthorized

    principal = result.data
    role = await RoleResolver(backend).resolve_role(principal.id) if principal else None

    snapshot = SessionState(loading=False, principal=principal, access_token=token, role=role)
    decision = decide_access(snapshot)
    if decision.state != GuardState.authorized:
        raise unauthorized

    return CurrentUser(id=principal.id, email=principal.email, role=role, access_token=token)


# ============================================================
# ROLE CHECKER (admin passes every gate)
# ============================================================
def require_role(required_role: Role):
    async def checker(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        snapshot = SessionState(
            loading=False,
            principal={"id": current_user.id, "email": current_user.email},
            role=current_user.role,
        )
        decision = decide_access(snapshot, required_role)
        if decision.state != GuardState.authorized:
            detail = decision.message or "You don't have permission to access this page."
            if decision.reason == DenialReason.not_authenticated:
                raise HTTPException(status.HTTP_401_UNAUTHORIZED, detail)
            raise HTTPException(status.HTTP_403_FORBIDDEN, detail)
        return current_user
    return checker


def require_any_role(*roles: Role):
    """Passes when the caller holds any of `roles` (admin always passes)."""
    async def checker(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if current_user.role != Role.admin and current_user.role not in roles:
            raise HTTPException(status.HTTP_403_FORBIDDEN, "You don't have permission to access this page.")
        return current_user
    return checker
