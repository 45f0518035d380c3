# core/errors.py

from typing import Any, Generic, Optional, TypeVar

from fastapi import HTTPException
from pydantic import BaseModel

from models.enums import BaseStrEnum


T = TypeVar("T")


# ============================================================
# Error taxonomy
# ============================================================
class ErrorKind(BaseStrEnum):
    access_denied = "access_denied"
    auth_unavailable = "auth_unavailable"
    update_failed = "update_failed"
    receipt_generation_failed = "receipt_generation_failed"
    invalid_input = "invalid_input"
    not_found = "not_found"
    invalid_transition = "invalid_transition"


ERROR_STATUS_CODES = {
    ErrorKind.access_denied: 403,
    ErrorKind.auth_unavailable: 503,
    ErrorKind.update_failed: 500,
    ErrorKind.receipt_generation_failed: 500,
    ErrorKind.invalid_input: 400,
    ErrorKind.not_found: 404,
    ErrorKind.invalid_transition: 409,
}


class ReceiptPersistenceError(Exception):
    """Raised when a receipt (or its verification code) could not be saved."""


# ============================================================
# Result type returned by every workflow / session action
# ============================================================
class ActionResult(BaseModel, Generic[T]):
    """
    Outcome of an action. Truthy on success.

    `message` is always safe to show to the caller.
    `detail` carries the raw backend error text and is only
    surfaced to admins.
    """

    ok: bool
    value: Optional[T] = None
    error: Optional[ErrorKind] = None
    message: str = ""
    detail: Optional[str] = None

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls, value: Any = None, message: str = "") -> "ActionResult":
        return cls(ok=True, value=value, message=message)

    @classmethod
    def failure(cls, error: ErrorKind, message: str, detail: Optional[str] = None) -> "ActionResult":
        return cls(ok=False, error=error, message=message, detail=detail)


def extract_supabase_error(error: Any) -> str:
    """
    Safely extract readable details from Supabase Python client errors.
    Handles:
      • PostgREST errors
      • GoTrue (Auth) errors
      • Plain strings / generic Python exceptions
    """
    if error is None:
        return "Unknown Supabase error"

    if isinstance(error, str):
        return error

    # Case 1: Supabase Auth / GoTrue / PostgREST APIError
    message = getattr(error, "message", None)
    if message:
        return str(message)

    # Case 2: Supabase errors with args (common)
    if getattr(error, "args", None):
        return str(error.args[0])

    # Case 3: Plain string fallback
    return str(error) or "Unknown Supabase error"


def http_exception_for(result: ActionResult, show_detail: bool = False) -> HTTPException:
    """
    Convert a failed ActionResult into an HTTPException.
    Returns (doesn't raise) so the caller can re-raise.
    """
    status_code = ERROR_STATUS_CODES.get(result.error, 500)
    detail = result.message or "Request failed"
    if show_detail and result.detail:
        detail = f"{detail}: {result.detail}"
    return HTTPException(status_code=status_code, detail=detail)
