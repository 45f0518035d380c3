# routers/requests.py

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.encoders import jsonable_encoder

from core.backend import Backend
from core.config import settings
from core.errors import ActionResult, ReceiptPersistenceError, http_exception_for
from core.logging_config import logger
from core.notifications import Notifier
from core.permissions import has_permission
from core.supabase_client import get_backend
from dependencies.auth import CurrentUser, get_current_user, get_role_resolver, require_any_role
from models.enums import Role
from models.inspection_request import (
    AssignAgentPayload,
    EmailReceiptPayload,
    InspectionRequest,
    InspectionRequestCreate,
    ProcessPaymentPayload,
    StatusUpdatePayload,
    UpdateFeesPayload,
)
from services.receipt_service import ReceiptIssuer
from services.request_repository import RequestRepository
from services.role_service import RoleResolver
from services.workflow_service import WorkflowActionService

router = APIRouter(
    prefix="/requests",
    tags=["Inspection Requests"],
)


# -----------------------------------------------------
# Per-request service wiring
# -----------------------------------------------------
def get_repository(backend: Optional[Backend] = Depends(get_backend)) -> RequestRepository:
    return RequestRepository(backend)


def get_workflow(
    current_user: CurrentUser = Depends(get_current_user),
    backend: Optional[Backend] = Depends(get_backend),
) -> WorkflowActionService:
    return WorkflowActionService(backend, current_user.role, current_user.id, notifier=Notifier())


def action_response(result: ActionResult, notifier: Notifier, current_user: CurrentUser) -> dict:
    """Success body, or the mapped HTTP error. Backend detail is shown to admins only."""
    if not result:
        raise http_exception_for(result, show_detail=current_user.is_admin)

    notification = notifier.last
    return {
        "success": True,
        "notification": notification.model_dump() if notification else None,
        "data": jsonable_encoder(result.value),
    }


async def load_visible_request(
    request_id: str, current_user: CurrentUser, repository: RequestRepository
) -> InspectionRequest:
    """Owners, agents and admins may read a request; anyone else gets a 404."""
    request = await repository.get_request(request_id)
    if request is None:
        raise HTTPException(404, "Request not found")

    if request.user_id != current_user.id and not has_permission(current_user.role, "requests:read_all"):
        raise HTTPException(404, "Request not found")
    return request


# -----------------------------------------------------
# GET /requests: role-scoped listing
# -----------------------------------------------------
@router.get("", summary="List inspection requests visible to the caller")
async def list_requests(
    limit: Optional[int] = Query(None, ge=1, le=settings.REQUEST_PAGE_SIZE_MAX),
    offset: int = Query(0, ge=0),
    current_user: CurrentUser = Depends(get_current_user),
    repository: RequestRepository = Depends(get_repository),
    resolver: RoleResolver = Depends(get_role_resolver),
):
    permissions = None
    if current_user.role in (Role.agent, Role.admin):
        permissions = await resolver.check_all_permissions(current_user.id)

    items = await repository.fetch_requests(current_user.id, current_user.role, permissions, limit, offset)

    failure = repository.notifier.last
    if failure is not None and failure.variant == "destructive":
        raise HTTPException(500, failure.description)

    return items


# -----------------------------------------------------
# GET /requests/stats: dashboard figures
# -----------------------------------------------------
@router.get("/stats", summary="Dashboard statistics")
async def request_stats(
    current_user: CurrentUser = Depends(require_any_role(Role.agent)),
    repository: RequestRepository = Depends(get_repository),
    resolver: RoleResolver = Depends(get_role_resolver),
):
    permissions = await resolver.check_all_permissions(current_user.id)
    await repository.fetch_requests(current_user.id, current_user.role, permissions)
    return repository.stats


# -----------------------------------------------------
# POST /requests: submit a new inspection request
# -----------------------------------------------------
@router.post("", status_code=201, summary="Submit an inspection request")
async def create_request(
    payload: InspectionRequestCreate,
    current_user: CurrentUser = Depends(get_current_user),
    repository: RequestRepository = Depends(get_repository),
):
    result = await repository.create_request(current_user.id, payload)
    return action_response(result, repository.notifier, current_user)


@router.get("/{request_id}", response_model=InspectionRequest, summary="Get one inspection request")
async def get_request(
    request_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    repository: RequestRepository = Depends(get_repository),
):
    return await load_visible_request(request_id, current_user, repository)


# ============================================================
# Workflow actions
# ============================================================
@router.post("/{request_id}/assign", summary="Assign (or unassign) an agent")
async def assign_agent(
    request_id: str,
    payload: AssignAgentPayload,
    current_user: CurrentUser = Depends(get_current_user),
    workflow: WorkflowActionService = Depends(get_workflow),
):
    result = await workflow.assign_agent(request_id, payload.agent_id)
    return action_response(result, workflow.notifier, current_user)


@router.post("/{request_id}/assign-self", summary="Agent takes a request")
async def assign_self(
    request_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    workflow: WorkflowActionService = Depends(get_workflow),
):
    result = await workflow.assign_self(request_id)
    return action_response(result, workflow.notifier, current_user)


@router.post("/{request_id}/status", summary="Change request status")
async def update_status(
    request_id: str,
    payload: StatusUpdatePayload,
    current_user: CurrentUser = Depends(get_current_user),
    workflow: WorkflowActionService = Depends(get_workflow),
):
    result = await workflow.update_request_status(request_id, payload.status)
    return action_response(result, workflow.notifier, current_user)


@router.post("/{request_id}/payment-received", summary="Agent confirms payment and issues a receipt")
async def mark_payment_received(
    request_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    workflow: WorkflowActionService = Depends(get_workflow),
):
    result = await workflow.mark_payment_received(request_id)
    return action_response(result, workflow.notifier, current_user)


@router.post("/{request_id}/payment", summary="Admin records a payment")
async def process_payment(
    request_id: str,
    payload: ProcessPaymentPayload,
    current_user: CurrentUser = Depends(get_current_user),
    workflow: WorkflowActionService = Depends(get_workflow),
):
    result = await workflow.process_payment(request_id, payload.amount, payload.method)
    return action_response(result, workflow.notifier, current_user)


@router.post("/{request_id}/fees", summary="Admin adjusts fees")
async def update_fees(
    request_id: str,
    payload: UpdateFeesPayload,
    current_user: CurrentUser = Depends(get_current_user),
    workflow: WorkflowActionService = Depends(get_workflow),
):
    result = await workflow.update_fees(request_id, payload.fee_amount, payload.additional_fees, payload.notes)
    return action_response(result, workflow.notifier, current_user)


@router.post("/{request_id}/complete", summary="Agent completes a request")
async def complete_request(
    request_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    workflow: WorkflowActionService = Depends(get_workflow),
):
    result = await workflow.complete_request(request_id)
    return action_response(result, workflow.notifier, current_user)


@router.post("/{request_id}/cancel", summary="Agent cancels a request")
async def cancel_request(
    request_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    workflow: WorkflowActionService = Depends(get_workflow),
):
    result = await workflow.cancel_request(request_id)
    return action_response(result, workflow.notifier, current_user)


# ============================================================
# Receipts
# ============================================================
@router.get("/{request_id}/receipt", summary="Download the receipt (PDF or JSON)")
async def download_receipt(
    request_id: str,
    format: str = Query("pdf", pattern="^(pdf|json)$"),
    current_user: CurrentUser = Depends(get_current_user),
    repository: RequestRepository = Depends(get_repository),
):
    request = await load_visible_request(request_id, current_user, repository)
    if not request.payment_received:
        raise HTTPException(409, "No payment has been recorded for this request")

    try:
        content, filename, media_type = await ReceiptIssuer(repository.backend).download_receipt(request, format)
    except ReceiptPersistenceError as e:
        logger.error(f"Receipt download failed for request {request_id}: {e}")
        raise HTTPException(500, "Failed to generate receipt")

    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/{request_id}/receipt/reissue", summary="Invalidate the receipt code and issue a new one")
async def reissue_receipt(
    request_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    workflow: WorkflowActionService = Depends(get_workflow),
):
    result = await workflow.reissue_receipt(request_id)
    return action_response(result, workflow.notifier, current_user)


@router.post("/{request_id}/receipt/email", summary="Email the receipt PDF")
async def email_receipt(
    request_id: str,
    payload: EmailReceiptPayload,
    current_user: CurrentUser = Depends(get_current_user),
    repository: RequestRepository = Depends(get_repository),
):
    request = await load_visible_request(request_id, current_user, repository)
    if not request.payment_received:
        raise HTTPException(409, "No payment has been recorded for this request")

    try:
        sent = await ReceiptIssuer(repository.backend).email_receipt(request, payload.email)
    except Exception as e:
        logger.error(f"Receipt email failed for request {request_id}: {e}")
        raise HTTPException(500, "Failed to send receipt email")

    if not sent:
        raise HTTPException(503, "Email delivery is not configured")
    return {"success": True, "sent_to": payload.email}
