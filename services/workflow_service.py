# services/workflow_service.py

import math
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from core.backend import Backend
from core.config import settings
from core.errors import ActionResult, ErrorKind
from core.logging_config import logger
from core.notifications import Notifier
from core.permissions import has_permission
from models.enums import RequestStatus, Role
from models.inspection_request import InspectionRequest
from services.receipt_service import ReceiptIssuer
from services.request_repository import TABLE, RequestRepository


# -----------------------------------------------------
# Legal status transitions
# -----------------------------------------------------
ALLOWED_TRANSITIONS = {
    RequestStatus.pending: {RequestStatus.assigned, RequestStatus.cancelled},
    RequestStatus.assigned: {
        RequestStatus.pending,
        RequestStatus.assigned,
        RequestStatus.in_progress,
        RequestStatus.completed,
        RequestStatus.cancelled,
    },
    RequestStatus.in_progress: {RequestStatus.completed, RequestStatus.cancelled},
    RequestStatus.completed: {RequestStatus.archived},
    RequestStatus.cancelled: set(),
    RequestStatus.archived: set(),
}


def can_transition(current: RequestStatus, target: RequestStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


def parse_amount(value: Any) -> Optional[float]:
    """A finite float, or None when `value` is not numeric."""
    try:
        amount = float(str(value).strip())
    except (TypeError, ValueError):
        return None
    return amount if math.isfinite(amount) else None


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class WorkflowActionService:
    """
    The request state machine, bound to one caller.

    Each action checks the caller's role before touching the backend,
    records exactly one notification and returns an ActionResult.
    Backend errors are logged and returned, never raised.
    """

    def __init__(
        self,
        backend: Optional[Backend],
        user_role: Optional[Role],
        current_user_id: Optional[str],
        notifier: Optional[Notifier] = None,
        receipt_issuer: Optional[ReceiptIssuer] = None,
    ):
        self.backend = backend
        self.user_role = Role.parse(user_role) if user_role is not None else None
        self.current_user_id = current_user_id
        self.notifier = notifier or Notifier()
        self.receipt_issuer = receipt_issuer or ReceiptIssuer(backend)
        self.repository = RequestRepository(backend, self.notifier)

    # ============================================================
    # Result helpers (one notification each)
    # ============================================================
    def _deny(self, description: str) -> ActionResult:
        logger.warning(f"Denied for {self.current_user_id} ({self.user_role}): {description}")
        self.notifier.failure("Access Denied", description, error=str(ErrorKind.access_denied))
        return ActionResult.failure(ErrorKind.access_denied, description)

    def _fail(self, kind: ErrorKind, description: str, detail: Optional[str] = None) -> ActionResult:
        self.notifier.failure("Error", description, error=str(kind))
        return ActionResult.failure(kind, description, detail=detail)

    def _ok(self, title: str, description: str, value: Any = None) -> ActionResult:
        self.notifier.success(title, description)
        return ActionResult.success(value, message=description)

    def _unavailable(self, feature: str) -> ActionResult:
        logger.error(f"Backend unavailable for {feature}")
        return self._fail(ErrorKind.auth_unavailable, f"{feature} is not available at the moment")

    # ============================================================
    # Shared mutation paths
    # ============================================================
    async def _transition(
        self,
        request_id: str,
        target: RequestStatus,
        changes: Dict[str, Any],
        operation: str,
        failure_message: str,
    ):
        """
        Read the request, check the transition, then apply one update
        conditioned on the status that was read.

        Returns (updated request, None) or (None, failed ActionResult).
        """
        current = await self.repository.get_request(request_id)
        if current is None:
            return None, self._fail(ErrorKind.not_found, "Request not found")

        if not can_transition(current.status, target):
            description = f"Cannot change a {current.status} request to {target}"
            logger.warning(f"{operation} on {request_id} rejected: {current.status} -> {target}")
            return None, self._fail(ErrorKind.invalid_transition, description)

        result = await self.backend.update(
            TABLE,
            {"id": request_id, "status": str(current.status)},
            {**changes, "status": str(target)},
        )
        if not result.ok:
            logger.error(f"Error in {operation} for request {request_id}: {result.error}")
            return None, self._fail(ErrorKind.update_failed, failure_message, detail=result.error)
        if not result.data:
            logger.error(f"{operation} for request {request_id} matched no row; status changed concurrently")
            return None, self._fail(
                ErrorKind.update_failed, failure_message, detail="Request was modified by someone else"
            )

        return InspectionRequest.from_row(result.data[0]), None

    async def _update_fields(self, request_id: str, changes: Dict[str, Any], operation: str, failure_message: str):
        result = await self.backend.update(TABLE, {"id": request_id}, changes)
        if not result.ok:
            logger.error(f"Error in {operation} for request {request_id}: {result.error}")
            return None, self._fail(ErrorKind.update_failed, failure_message, detail=result.error)
        if not result.data:
            logger.error(f"{operation} for request {request_id} matched no row")
            return None, self._fail(ErrorKind.update_failed, failure_message, detail="Request not found")
        return InspectionRequest.from_row(result.data[0]), None

    # ============================================================
    # Admin actions
    # ============================================================
    async def assign_agent(self, request_id: str, agent_id: Optional[str]) -> ActionResult:
        if not has_permission(self.user_role, "requests:assign"):
            return self._deny("Only admins can assign agents")
        if self.backend is None:
            return self._unavailable("Agent assignment")

        target = RequestStatus.assigned if agent_id else RequestStatus.pending
        updated, failure = await self._transition(
            request_id,
            target,
            {"assigned_agent_id": agent_id or None},
            "assign_agent",
            "Failed to assign agent",
        )
        if failure is not None:
            return failure

        logger.info(f"Request {request_id} assigned to {agent_id or 'nobody'} by {self.current_user_id}")
        return self._ok(
            "Agent Assigned",
            "Request has been assigned to agent" if agent_id else "Request unassigned",
            updated,
        )

    async def process_payment(self, request_id: str, amount: str, method: str) -> ActionResult:
        if not has_permission(self.user_role, "payments:process"):
            return self._deny("Only admins can process payments")

        value = parse_amount(amount)
        if value is None or value <= 0:
            return self._fail(ErrorKind.invalid_input, "Please enter a valid payment amount")
        if self.backend is None:
            return self._unavailable("Payment processing")

        receipt_number = f"REC-{int(time.time() * 1000)}"
        updated, failure = await self._update_fields(
            request_id,
            {
                "payment_received": True,
                "payment_method": method,
                "service_fee": value,
                "receipt_number": receipt_number,
                "receipt_uploaded_at": _now_iso(),
            },
            "process_payment",
            "Failed to process payment",
        )
        if failure is not None:
            return failure

        logger.info(f"Payment {receipt_number} recorded for request {request_id}")
        return self._ok("Payment Processed", f"Payment of {settings.CURRENCY} {amount} marked as received", updated)

    async def update_fees(self, request_id: str, fee_amount: str, additional_fees: str, notes: str) -> ActionResult:
        if not has_permission(self.user_role, "fees:update"):
            return self._deny("Only admins can update fees")

        fee = parse_amount(fee_amount)
        additional = parse_amount(additional_fees if additional_fees not in (None, "") else "0")
        if fee is None or additional is None:
            return self._fail(ErrorKind.invalid_input, "Fee amounts must be numbers")
        if self.backend is None:
            return self._unavailable("Fee update")

        total = fee + additional
        updated, failure = await self._update_fields(
            request_id,
            {"service_fee": total, "fee_notes": notes, "updated_at": _now_iso()},
            "update_fees",
            "Failed to update fees",
        )
        if failure is not None:
            return failure

        return self._ok("Fees Updated", f"Total amount updated to {settings.CURRENCY} {total:.2f}", updated)

    # ============================================================
    # Agent actions
    # ============================================================
    async def assign_self(self, request_id: str) -> ActionResult:
        if self.user_role != Role.agent or not self.current_user_id:
            return self._deny("Only agents can assign themselves to requests")
        if self.backend is None:
            return self._unavailable("Self assignment")

        updated, failure = await self._transition(
            request_id,
            RequestStatus.assigned,
            {"assigned_agent_id": self.current_user_id},
            "assign_self",
            "Failed to assign yourself to this request",
        )
        if failure is not None:
            return failure

        logger.info(f"Agent {self.current_user_id} took request {request_id}")
        return self._ok("Success", "You have been assigned to this request", updated)

    async def mark_payment_received(self, request_id: str) -> ActionResult:
        """
        The backend marks the payment and assigns the receipt number in one
        procedure; the verification code is issued afterwards. A failure in
        the second step leaves the payment recorded.
        """
        if self.user_role != Role.agent:
            return self._deny("Only agents can mark payments as received")
        if self.backend is None:
            return self._unavailable("Payment marking")

        result = await self.backend.rpc("generate_receipt_data", {"request_id": request_id})
        if not result.ok or not result.data:
            logger.error(f"Error marking payment for request {request_id}: {result.error or 'no receipt data'}")
            return self._fail(ErrorKind.update_failed, "Failed to mark payment", detail=result.error)

        receipt_number = result.data.get("receipt_number") if isinstance(result.data, dict) else None

        try:
            request = await self.repository.get_request(request_id)
            if request is None:
                raise LookupError(f"Request {request_id} not readable after payment")
            bundle = await self.receipt_issuer.build_receipt(request)
            await self.receipt_issuer.save_receipt_to_database(
                request_id, bundle.verification_code, bundle.receipt_data
            )
        except Exception as e:
            logger.error(f"Receipt generation failed for request {request_id}: {e}", exc_info=True)
            return self._fail(
                ErrorKind.receipt_generation_failed,
                "Payment recorded but receipt could not be issued",
                detail=str(e),
            )

        receipt_number = receipt_number or request.receipt_number
        return self._ok(
            "Payment Marked",
            f"Payment has been marked as received. Receipt: {receipt_number}",
            {"receipt_number": receipt_number, "verification_code": bundle.verification_code},
        )

    async def complete_request(self, request_id: str) -> ActionResult:
        if self.user_role != Role.agent:
            return self._deny("Only agents can complete requests")
        if self.backend is None:
            return self._unavailable("Request completion")

        updated, failure = await self._transition(
            request_id, RequestStatus.completed, {}, "complete_request", "Failed to complete request"
        )
        if failure is not None:
            return failure
        return self._ok("Request Completed", "Request has been marked as completed", updated)

    async def cancel_request(self, request_id: str) -> ActionResult:
        if self.user_role != Role.agent:
            return self._deny("Only agents can cancel requests")
        if self.backend is None:
            return self._unavailable("Request cancellation")

        updated, failure = await self._transition(
            request_id, RequestStatus.cancelled, {}, "cancel_request", "Failed to cancel request"
        )
        if failure is not None:
            return failure
        return self._ok("Request Cancelled", "Request has been cancelled", updated)

    # ============================================================
    # Agent or admin
    # ============================================================
    async def update_request_status(self, request_id: str, status: str) -> ActionResult:
        if not has_permission(self.user_role, "requests:update_status"):
            return self._deny("Only agents and admins can update request status")

        target = RequestStatus.parse(status)
        if target is None:
            return self._fail(ErrorKind.invalid_input, f"Unknown status: {status}")
        if self.backend is None:
            return self._unavailable("Status update")

        updated, failure = await self._transition(
            request_id, target, {}, "update_request_status", "Failed to update request status"
        )
        if failure is not None:
            return failure
        return self._ok("Status Updated", f"Request status updated to {target}", updated)

    async def reissue_receipt(self, request_id: str) -> ActionResult:
        if not has_permission(self.user_role, "receipts:reissue"):
            return self._deny("Only agents and admins can reissue receipts")
        if self.backend is None:
            return self._unavailable("Receipt reissue")

        try:
            code = await self.receipt_issuer.request_receipt_reissue(request_id)
        except Exception as e:
            logger.error(f"Receipt reissue failed for request {request_id}: {e}")
            return self._fail(ErrorKind.receipt_generation_failed, "Failed to reissue receipt", detail=str(e))

        return self._ok("Receipt Reissued", "A new verification code has been issued", {"verification_code": code})
