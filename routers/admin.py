# routers/admin.py

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from dependencies.auth import (
    get_role_resolver,
    require_role,
    CurrentUser,
)

from core.errors import http_exception_for
from core.logging_config import logger
from models.enums import Role
from models.user import AdminCreateUser, RoleUpdate
from services.role_service import RoleResolver


router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
)


# -----------------------------------------------------
# Allowed System Roles
# -----------------------------------------------------
ALLOWED_ROLES = Role.list()


# -----------------------------------------------------
# 1️⃣ CREATE USER (with role)
# -----------------------------------------------------
@router.post(
    "/users",
    status_code=201,
    summary="Admin: Create user account with a role",
)
async def create_user(
    payload: AdminCreateUser,
    current_user: CurrentUser = Depends(require_role(Role.admin)),
    resolver: RoleResolver = Depends(get_role_resolver),
):
    result = await resolver.create_user_with_role(
        payload.email,
        payload.password,
        payload.full_name,
        payload.phone,
        payload.role,
    )
    if not result:
        raise http_exception_for(result, show_detail=True)

    logger.info(f"Admin {current_user.id} created {payload.role} account {result.value}")
    return {"success": True, "data": {"user_id": result.value, "email": payload.email, "role": payload.role}}


# -----------------------------------------------------
# 2️⃣ LIST USERS (optionally by role)
# -----------------------------------------------------
@router.get(
    "/users",
    summary="Admin: List users",
)
async def list_users(
    role: Optional[str] = None,
    current_user: CurrentUser = Depends(require_role(Role.admin)),
    resolver: RoleResolver = Depends(get_role_resolver),
):
    if role and role not in ALLOWED_ROLES:
        raise HTTPException(400, f"Invalid role filter: {role}")

    roles = [Role(role)] if role else list(Role)
    results = []
    for r in roles:
        results.extend(await resolver.get_users_by_role(r))

    results.sort(key=lambda u: u.created_at.isoformat() if u.created_at else "", reverse=True)
    return {"success": True, "data": results}


# -----------------------------------------------------
# 3️⃣ COUNT USERS BY ROLE
# -----------------------------------------------------
@router.get(
    "/users/counts",
    summary="Admin: Count users per role",
)
async def count_users(
    current_user: CurrentUser = Depends(require_role(Role.admin)),
    resolver: RoleResolver = Depends(get_role_resolver),
):
    counts = {str(r): 0 for r in Role}
    for row in await resolver.count_users_by_role():
        counts[str(row.role)] = row.count
    return {"success": True, "data": counts}


# -----------------------------------------------------
# 4️⃣ CHANGE ROLE
# -----------------------------------------------------
@router.patch(
    "/users/{user_id}/role",
    summary="Admin: Change a user's role",
)
async def change_role(
    user_id: str,
    payload: RoleUpdate,
    current_user: CurrentUser = Depends(require_role(Role.admin)),
    resolver: RoleResolver = Depends(get_role_resolver),
):
    updated = await resolver.update_user_role(current_user.id, user_id, payload.role)
    if not updated:
        raise HTTPException(500, "Failed to update user role")

    return {"success": True, "data": {"user_id": user_id, "role": payload.role}}
