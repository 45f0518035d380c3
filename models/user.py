# models/user.py

from typing import Optional
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field

from models.enums import Role


# ===============================================================
# SUPABASE AUTH IDENTITY
# ===============================================================

class Principal(BaseModel):
    """
    An authenticated identity, as reported by Supabase Auth.
    Read-only to this service.
    """
    id: str
    email: Optional[str] = None
    email_verified: bool = False
    last_sign_in: Optional[datetime] = None

    model_config = {"frozen": True}


class AuthSession(BaseModel):
    """A live auth session: bearer token plus the principal it belongs to."""
    access_token: Optional[str] = None
    principal: Principal


# ===============================================================
# PROFILE / ROLE ROWS
# ===============================================================

class Profile(BaseModel):
    """
    Mirrors public.profiles (one-to-one with the auth user).
    """
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    avatar_url: Optional[str] = None


class RoleAssignment(BaseModel):
    """
    Mirrors public.user_roles. Only the active row is consulted.
    """
    user_id: str
    role: Role = Role.user
    assigned_at: Optional[datetime] = None
    assigned_by: Optional[str] = None


# ===============================================================
# BULK LOOKUPS (RPC results)
# ===============================================================

class UserWithRole(BaseModel):
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None
    role: Role = Role.user
    is_active: bool = True
    email_verified: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_login: Optional[datetime] = None


class UserCountByRole(BaseModel):
    role: Role
    count: int = 0


# ===============================================================
# ADMIN PAYLOADS
# ===============================================================

class AdminCreateUser(BaseModel):
    """
    Payload used by admins when provisioning a user with a role.
    Provisioning runs through the create_user_with_role RPC.
    """
    email: EmailStr
    password: str = Field(..., min_length=8)
    full_name: str = ""
    phone: Optional[str] = None

    # Default role; admin can override this
    role: Role = Role.user


class RoleUpdate(BaseModel):
    role: Role
