# models/inspection_request.py

from typing import Any, Dict, Optional
from datetime import datetime
from pydantic import BaseModel, Field

from models.enums import RequestStatus, ServiceTier


WHATSAPP_PATTERN = r"^\+?[1-9]\d{1,14}$"


class InspectionRequest(BaseModel):
    """Row of public.inspection_requests."""

    id: str
    user_id: Optional[str] = None

    # Customer
    customer_name: str = ""
    whatsapp: str = ""
    customer_address: Optional[str] = None

    # What is being inspected
    store_name: str = ""
    store_location: str = ""
    product_details: str = ""
    expected_price: Optional[float] = None
    delivery_notes: Optional[str] = None

    # Service & fees
    service_tier: ServiceTier = ServiceTier.inspection
    service_fee: float = 0
    fee_notes: Optional[str] = None

    # Workflow
    status: RequestStatus = RequestStatus.pending
    assigned_agent_id: Optional[str] = None

    # Payment & receipt
    payment_received: bool = False
    payment_method: Optional[str] = None
    receipt_number: Optional[str] = None
    receipt_verification_code: Optional[str] = None
    receipt_issued_at: Optional[datetime] = None
    receipt_data: Optional[Dict[str, Any]] = None
    receipt_uploaded_at: Optional[datetime] = None

    tracking_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "InspectionRequest":
        # The column is nullable upstream; treat null as "not paid"
        data = dict(row)
        if data.get("payment_received") is None:
            data["payment_received"] = False
        if data.get("service_fee") is None:
            data["service_fee"] = 0
        return cls.model_validate(data)


class InspectionRequestCreate(BaseModel):
    """Submission from the request form. Tracking id and fee are assigned server-side."""

    customer_name: str = Field(..., min_length=2, max_length=100)
    whatsapp: str = Field(..., pattern=WHATSAPP_PATTERN)
    customer_address: Optional[str] = None
    store_name: str = Field(..., min_length=2, max_length=100)
    store_location: str = Field(..., min_length=5, max_length=200)
    product_details: str = Field(..., min_length=10, max_length=1000)
    service_tier: ServiceTier = ServiceTier.inspection
    expected_price: Optional[float] = Field(None, ge=0)
    delivery_notes: Optional[str] = None
    payment_method: Optional[str] = None


class PublicRequestView(BaseModel):
    """What an unauthenticated tracker may see, keyed by tracking id only."""

    tracking_id: str
    customer_name: str
    store_name: str
    store_location: str
    product_details: str
    service_tier: ServiceTier
    service_fee: float = 0
    status: RequestStatus
    payment_received: bool = False
    receipt_number: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_request(cls, request: InspectionRequest) -> "PublicRequestView":
        return cls(
            tracking_id=request.tracking_id,
            customer_name=request.customer_name,
            store_name=request.store_name,
            store_location=request.store_location,
            product_details=request.product_details,
            service_tier=request.service_tier,
            service_fee=request.service_fee,
            status=request.status,
            payment_received=request.payment_received,
            receipt_number=request.receipt_number,
            created_at=request.created_at,
        )


class DashboardStats(BaseModel):
    total_requests: int = 0
    active_requests: int = 0
    completed_requests: int = 0
    pending_requests: int = 0
    cancelled_requests: int = 0
    unassigned_requests: int = 0


# -----------------------------------------------------
# Action payloads
# -----------------------------------------------------
class AssignAgentPayload(BaseModel):
    agent_id: Optional[str] = Field(None, description="Agent to assign; null unassigns")


class StatusUpdatePayload(BaseModel):
    status: str


class ProcessPaymentPayload(BaseModel):
    amount: str
    method: str


class UpdateFeesPayload(BaseModel):
    fee_amount: str
    additional_fees: str = "0"
    notes: str = ""


class EmailReceiptPayload(BaseModel):
    email: str
