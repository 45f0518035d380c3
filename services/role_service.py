# services/role_service.py

from typing import List, Optional

from core.backend import Backend
from core.concurrency import gather_fail_closed
from core.errors import ActionResult, ErrorKind
from core.logging_config import logger
from models.enums import Role
from models.roles import PermissionSnapshot, RoleCheckResult
from models.user import UserCountByRole, UserWithRole


# -----------------------------------------------------
# Fail-closed defaults used when a check cannot be evaluated
# -----------------------------------------------------
ROLE_CHECK_DEFAULTS = {
    "is_admin": False,
    "is_agent": False,
    "is_user": True,
    "role": Role.user,
}

PERMISSION_CHECK_DEFAULTS = {
    name: False for name in PermissionSnapshot.model_fields
}


class RoleResolver:
    """
    Resolves a user's role and permissions through the backend's RPCs.

    Every predicate fails closed: an error, an exception or a missing answer
    yields the least-privileged result and is logged, never raised.
    """

    def __init__(self, backend: Optional[Backend]):
        self.backend = backend

    # ============================================================
    # Low-level RPC helper
    # ============================================================
    async def _rpc_bool(self, name: str, params: dict, label: str, default: bool = False) -> bool:
        """`default` is returned for any error; callers pass the least-privileged answer."""
        if self.backend is None:
            logger.warning(f"Backend unavailable, {label} check denied")
            return default

        try:
            result = await self.backend.rpc(name, params)
        except Exception as e:
            logger.error(f"Unexpected error checking {label}: {e}")
            return default

        if not result.ok:
            logger.error(f"Error checking {label}: {result.error}")
            return default
        return result.data is True

    # ============================================================
    # Role checks
    # ============================================================
    async def is_admin(self, user_id: str) -> bool:
        return await self._rpc_bool("is_admin", {"user_id_param": user_id}, "admin role")

    async def is_agent(self, user_id: str) -> bool:
        return await self._rpc_bool("is_agent", {"user_id_param": user_id}, "agent role")

    async def is_user(self, user_id: str) -> bool:
        # `user` is the fallback role, so an unanswerable check says yes
        return await self._rpc_bool("is_user", {"user_id_param": user_id}, "user role", default=True)

    async def get_user_role(self, user_id: str) -> Optional[Role]:
        """The stored role, or None when it is missing, unreadable or not a known role."""
        if self.backend is None:
            return None

        try:
            result = await self.backend.rpc("get_user_role", {"user_id_param": user_id})
        except Exception as e:
            logger.error(f"Unexpected error getting role for {user_id}: {e}")
            return None

        if not result.ok:
            logger.error(f"Error getting role for {user_id}: {result.error}")
            return None

        role = Role.parse(result.data)
        if role is None and result.data is not None:
            logger.warning(f"Ignoring unknown role {result.data!r} for {user_id}")
        return role

    async def resolve_role(self, user_id: str) -> Role:
        """Never fails: no readable role means `user`."""
        return await self.get_user_role(user_id) or Role.user

    async def check_all_roles(self, user_id: str) -> RoleCheckResult:
        results = await gather_fail_closed(
            {
                "is_admin": lambda: self.is_admin(user_id),
                "is_agent": lambda: self.is_agent(user_id),
                "is_user": lambda: self.is_user(user_id),
                "role": lambda: self.get_user_role(user_id),
            },
            ROLE_CHECK_DEFAULTS,
            context=f"roles of {user_id}",
        )
        results["role"] = results["role"] or Role.user
        return RoleCheckResult(**results)

    # ============================================================
    # Permission checks
    # ============================================================
    async def can_manage_users(self, user_id: str) -> bool:
        return await self._rpc_bool("can_manage_users", {"user_id_param": user_id}, "manage users permission")

    async def can_view_dashboard(self, user_id: str) -> bool:
        return await self._rpc_bool("can_view_dashboard", {"user_id_param": user_id}, "view dashboard permission")

    async def can_create_request(self, user_id: str) -> bool:
        return await self._rpc_bool("can_create_request", {"user_id_param": user_id}, "create request permission")

    async def can_view_all_requests(self, user_id: str) -> bool:
        return await self._rpc_bool("can_view_all_requests", {"user_id_param": user_id}, "view all requests permission")

    async def can_manage_payments(self, user_id: str) -> bool:
        return await self._rpc_bool("can_manage_payments", {"user_id_param": user_id}, "manage payments permission")

    async def can_manage_request(self, user_id: str, request_id: str) -> bool:
        return await self._rpc_bool(
            "can_manage_request",
            {"user_id_param": user_id, "request_id_param": request_id},
            "manage request permission",
        )

    async def can_view_request(self, user_id: str, request_id: str) -> bool:
        return await self._rpc_bool(
            "can_view_request",
            {"user_id_param": user_id, "request_id_param": request_id},
            "view request permission",
        )

    async def check_all_permissions(self, user_id: str) -> PermissionSnapshot:
        results = await gather_fail_closed(
            {
                "can_manage_users": lambda: self.can_manage_users(user_id),
                "can_view_dashboard": lambda: self.can_view_dashboard(user_id),
                "can_create_request": lambda: self.can_create_request(user_id),
                "can_view_all_requests": lambda: self.can_view_all_requests(user_id),
                "can_manage_payments": lambda: self.can_manage_payments(user_id),
            },
            PERMISSION_CHECK_DEFAULTS,
            context=f"permissions of {user_id}",
        )
        return PermissionSnapshot(**results)

    async def resolve_permissions(self, user_id: str) -> PermissionSnapshot:
        return await self.check_all_permissions(user_id)

    # ============================================================
    # User management
    # ============================================================
    async def create_user_with_role(
        self,
        email: str,
        password: str,
        full_name: str,
        phone: Optional[str],
        role: Role,
    ) -> ActionResult:
        if self.backend is None:
            return ActionResult.failure(ErrorKind.auth_unavailable, "User management is not available at the moment")

        result = await self.backend.rpc(
            "create_user_with_role",
            {
                "email_param": email,
                "password_param": password,
                "full_name_param": full_name,
                "phone_param": phone,
                "role_param": str(role),
            },
        )
        if not result.ok:
            logger.error(f"Error creating user {email} with role {role}: {result.error}")
            return ActionResult.failure(ErrorKind.update_failed, "Failed to create user", detail=result.error)

        logger.info(f"Created user {result.data} with role {role}")
        return ActionResult.success(str(result.data), message="User created")

    async def update_user_role(self, admin_user_id: str, target_user_id: str, new_role: Role) -> bool:
        """
        Only a principal whose resolved role is admin may change roles.
        The backend enforces the same rule; this check avoids the call entirely.
        """
        if await self.resolve_role(admin_user_id) != Role.admin:
            logger.warning(f"Role change for {target_user_id} refused: {admin_user_id} is not an admin")
            return False

        if self.backend is None:
            return False

        try:
            result = await self.backend.rpc(
                "update_user_role",
                {
                    "admin_user_id": admin_user_id,
                    "target_user_id": target_user_id,
                    "new_role": str(new_role),
                },
            )
        except Exception as e:
            logger.error(f"Unexpected error updating role of {target_user_id}: {e}")
            return False

        if not result.ok:
            logger.error(f"Error updating role of {target_user_id}: {result.error}")
            return False

        logger.info(f"Admin {admin_user_id} set role of {target_user_id} to {new_role}")
        return result.data is not False

    async def get_users_by_role(self, role: Role) -> List[UserWithRole]:
        if self.backend is None:
            return []

        result = await self.backend.rpc("get_users_by_role", {"role_param": str(role)})
        if not result.ok:
            logger.error(f"Error getting users by role {role}: {result.error}")
            return []
        return [UserWithRole.model_validate(row) for row in result.data or []]

    async def count_users_by_role(self) -> List[UserCountByRole]:
        if self.backend is None:
            return []

        result = await self.backend.rpc("count_users_by_role")
        if not result.ok:
            logger.error(f"Error counting users by role: {result.error}")
            return []

        counts = []
        for row in result.data or []:
            role = Role.parse(row.get("role"))
            if role is not None:
                counts.append(UserCountByRole(role=role, count=int(row.get("count") or 0)))
        return counts
