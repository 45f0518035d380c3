# ============================================
# CENTRALIZED ROLE → PERMISSIONS MAP
# ============================================
# Local mirror of what each role may do. The backend re-checks every
# mutation through its own policies; this map only decides whether a
# call is worth making at all.

from typing import Optional

from models.enums import Role


ROLE_PERMISSIONS = {

    # =====================================================
    # ADMIN: assignment, payments, fees, users
    # =====================================================
    Role.admin: [
        "requests:read_all",
        "requests:assign",
        "requests:update_status",
        "payments:process",
        "fees:update",
        "receipts:reissue",
        "users:manage",
    ],

    # =====================================================
    # AGENT: works the requests it picks up
    # =====================================================
    Role.agent: [
        "requests:read_all",
        "requests:assign_self",
        "requests:update_status",
        "requests:complete",
        "requests:cancel",
        "payments:mark_received",
        "receipts:reissue",
    ],

    # =====================================================
    # USER: customers: own requests only
    # =====================================================
    Role.user: [
        "requests:create",
        "requests:read_own",
    ],
}


def has_permission(role: Optional[Role], permission: str) -> bool:
    """Role-based check only; an unknown or missing role has no permissions."""
    if role is None:
        return False
    return permission in ROLE_PERMISSIONS.get(Role.parse(role), [])
