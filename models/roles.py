# models/roles.py

from pydantic import BaseModel

from models.enums import Role


class RoleCheckResult(BaseModel):
    """Result of checking every role predicate for one user."""

    is_admin: bool = False
    is_agent: bool = False
    is_user: bool = True
    role: Role = Role.user

    model_config = {"frozen": True}


class PermissionSnapshot(BaseModel):
    """
    Derived, never persisted. Every field defaults to False (fail closed).
    can_manage_request is per-request and stays False in a user-level snapshot.
    """

    can_manage_users: bool = False
    can_view_dashboard: bool = False
    can_create_request: bool = False
    can_manage_request: bool = False
    can_view_all_requests: bool = False
    can_manage_payments: bool = False

    model_config = {"frozen": True}
