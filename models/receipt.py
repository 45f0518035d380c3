# models/receipt.py

from pydantic import BaseModel


class ReceiptSummary(BaseModel):
    """Structured receipt data stored alongside the request (receipt_data column)."""

    transaction_id: str
    date: str
    time: str
    amount: float
    payment_method: str
    verification_code: str
    customer_name: str
    service_details: str


class ReceiptBundle(BaseModel):
    """A rendered receipt plus the data it was rendered from."""

    pdf: bytes
    verification_code: str
    receipt_data: ReceiptSummary
