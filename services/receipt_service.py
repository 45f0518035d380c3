# services/receipt_service.py

import json
import secrets
import string
from datetime import datetime, timezone
from io import BytesIO
from typing import Callable, Optional, Tuple

from fastapi.concurrency import run_in_threadpool
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from xml.sax.saxutils import escape

from core.backend import Backend
from core.config import settings
from core.errors import ReceiptPersistenceError
from core.logging_config import logger
from core.notifications import send_email
from models.enums import SERVICE_TIER_LABELS
from models.inspection_request import InspectionRequest
from models.receipt import ReceiptBundle, ReceiptSummary


CODE_ALPHABET = string.ascii_uppercase + string.digits


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================
# Verification codes
# ============================================================
def generate_verification_code(length: Optional[int] = None) -> str:
    """
    Random upper-case alphanumeric token. Uniqueness is probabilistic:
    36^8 combinations make collisions negligible, not impossible.
    """
    length = length or settings.VERIFICATION_CODE_LENGTH
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def format_amount(amount: float) -> str:
    return f"{settings.CURRENCY} {amount:,.2f}".replace(".00", "")


# ============================================================
# PDF rendering
# ============================================================
def render_receipt_pdf(request: InspectionRequest, summary: ReceiptSummary, issued_at: datetime) -> bytes:
    buffer = BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4, title=f"Stazama receipt {request.receipt_number or ''}")
    styles = getSampleStyleSheet()
    story = []

    centered = ParagraphStyle("Centered", parent=styles["Normal"], alignment=TA_CENTER)
    brand_style = ParagraphStyle(
        "Brand",
        parent=styles["Heading1"],
        fontSize=20,
        alignment=TA_CENTER,
        spaceAfter=4,
    )
    footer_style = ParagraphStyle(
        "Footer",
        parent=centered,
        fontSize=8,
        fontName="Helvetica-Oblique",
        textColor=colors.HexColor("#555555"),
    )

    # Branding
    story.append(Paragraph("STAZAMA", brand_style))
    story.append(Paragraph("Professional Inspection Services", centered))
    story.append(Paragraph("Quality Assurance &amp; Trust Verification", centered))
    story.append(Spacer(1, 0.3 * inch))
    story.append(Paragraph("OFFICIAL PAYMENT RECEIPT", ParagraphStyle(
        "ReceiptTitle", parent=styles["Heading2"], alignment=TA_CENTER,
    )))
    story.append(Spacer(1, 0.2 * inch))

    def section(title, rows):
        story.append(Paragraph(title, styles["Heading4"]))
        table = Table([[label, escape(str(value))] for label, value in rows], colWidths=[1.8 * inch, 4.4 * inch])
        table.setStyle(TableStyle([
            ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 10),
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
        ]))
        story.append(table)
        story.append(Spacer(1, 0.15 * inch))

    section("RECEIPT", [
        ("Receipt Number", request.receipt_number or "N/A"),
        ("Transaction ID", summary.transaction_id),
        ("Date", summary.date),
        ("Time", summary.time),
    ])

    # Verification code
    story.append(Paragraph("VERIFICATION CODE", styles["Heading4"]))
    story.append(Paragraph(f"<font size=14><b>{summary.verification_code}</b></font>", styles["Normal"]))
    story.append(Spacer(1, 0.05 * inch))
    story.append(Paragraph("This code verifies the authenticity of your receipt", styles["Normal"]))
    story.append(Spacer(1, 0.15 * inch))

    customer_rows = [("Name", request.customer_name), ("Phone", request.whatsapp)]
    if request.customer_address:
        customer_rows.append(("Address", request.customer_address))
    section("CUSTOMER DETAILS", customer_rows)

    section("SERVICE DETAILS", [
        ("Store", request.store_name),
        ("Location", request.store_location),
        ("Service Tier", SERVICE_TIER_LABELS.get(request.service_tier, str(request.service_tier))),
        ("Product", request.product_details),
    ])

    section("PAYMENT DETAILS", [
        ("Amount", format_amount(summary.amount)),
        ("Payment Method", summary.payment_method),
        ("Status", "PAID" if request.payment_received else "PENDING"),
    ])

    # Footer
    story.append(Spacer(1, 0.2 * inch))
    for line in (
        "Thank you for choosing Stazama for your inspection needs.",
        "This receipt serves as proof of payment and service completion.",
        f"For any inquiries, please contact us at {settings.RECEIPT_SUPPORT_EMAIL}",
        f"Receipt generated on: {issued_at.strftime('%Y-%m-%d %H:%M:%S %Z')}",
        f"Verification Code: {summary.verification_code}",
    ):
        story.append(Paragraph(escape(line), footer_style))

    doc.build(story)
    buffer.seek(0)
    return buffer.read()


# ============================================================
# Receipt Issuer
# ============================================================
class ReceiptIssuer:
    """
    Produces verification codes and receipt documents bound to one request.

    Generation and persistence are separate steps: `generate_receipt_data`
    never writes, `save_receipt_to_database` commits a code.
    """

    def __init__(self, backend: Optional[Backend], clock: Callable[[], datetime] = utc_now):
        self.backend = backend
        self.clock = clock

    def generate_verification_code(self) -> str:
        return generate_verification_code()

    def generate_receipt_data(self, request: InspectionRequest) -> ReceiptBundle:
        """Reuses the request's existing verification code; mints one only if it has none."""
        verification_code = request.receipt_verification_code or self.generate_verification_code()

        now = self.clock()
        summary = ReceiptSummary(
            transaction_id=request.tracking_id or request.id,
            date=now.strftime("%Y-%m-%d"),
            time=now.strftime("%H:%M:%S"),
            amount=request.service_fee,
            payment_method=request.payment_method or "N/A",
            verification_code=verification_code,
            customer_name=request.customer_name,
            service_details=f"{request.service_tier} - {request.product_details}",
        )
        pdf = render_receipt_pdf(request, summary, now)

        return ReceiptBundle(pdf=pdf, verification_code=verification_code, receipt_data=summary)

    async def build_receipt(self, request: InspectionRequest) -> ReceiptBundle:
        """`generate_receipt_data` on a worker thread; the PDF render is CPU bound."""
        return await run_in_threadpool(self.generate_receipt_data, request)

    async def save_receipt_to_database(self, request_id: str, verification_code: str, receipt_data: ReceiptSummary):
        if self.backend is None:
            raise ReceiptPersistenceError("Database not available")

        result = await self.backend.update(
            "inspection_requests",
            {"id": request_id},
            {
                "receipt_verification_code": verification_code,
                "receipt_issued_at": self.clock().isoformat(),
                "receipt_data": receipt_data.model_dump(),
            },
        )
        if not result.ok:
            logger.error(f"Error saving receipt for request {request_id}: {result.error}")
            raise ReceiptPersistenceError(result.error)
        if not result.data:
            raise ReceiptPersistenceError(f"Request {request_id} not found")

    async def download_receipt(self, request: InspectionRequest, fmt: str = "pdf") -> Tuple[bytes, str, str]:
        """
        Generate, persist and return (content, filename, media_type).
        """
        if fmt not in ("pdf", "json"):
            raise ValueError(f"Unsupported receipt format: {fmt}")

        bundle = await self.build_receipt(request)
        await self.save_receipt_to_database(request.id, bundle.verification_code, bundle.receipt_data)

        filename = f"stazama-receipt-{request.receipt_number}.{fmt}"
        if fmt == "pdf":
            return bundle.pdf, filename, "application/pdf"

        content = json.dumps(bundle.receipt_data.model_dump(), indent=2).encode("utf-8")
        return content, filename, "application/json"

    async def email_receipt(self, request: InspectionRequest, email: str) -> bool:
        """
        Persist first, then send, so the emailed code is the stored one.
        The SMTP exchange blocks and runs on a worker thread.
        """
        bundle = await self.build_receipt(request)
        await self.save_receipt_to_database(request.id, bundle.verification_code, bundle.receipt_data)

        return await run_in_threadpool(
            send_email,
            subject=f"Your Stazama receipt {request.receipt_number or ''}".strip(),
            body=(
                f"Hello {request.customer_name},\n\n"
                f"Attached is your receipt for {bundle.receipt_data.service_details}.\n"
                f"Verification code: {bundle.verification_code}\n\n"
                "Thank you for choosing Stazama."
            ),
            recipients=[email],
            attachments=[{
                "filename": f"stazama-receipt-{request.receipt_number}.pdf",
                "content": bundle.pdf,
            }],
        )

    async def request_receipt_reissue(self, request_id: str) -> str:
        """
        Always mints a fresh code and overwrites the previous code and its
        issuance time. This is the only way an issued code is invalidated.
        """
        if self.backend is None:
            raise ReceiptPersistenceError("Database not available")

        new_code = self.generate_verification_code()
        result = await self.backend.update(
            "inspection_requests",
            {"id": request_id},
            {
                "receipt_verification_code": new_code,
                "receipt_issued_at": self.clock().isoformat(),
            },
        )
        if not result.ok:
            logger.error(f"Error reissuing receipt for request {request_id}: {result.error}")
            raise ReceiptPersistenceError(result.error)
        if not result.data:
            raise ReceiptPersistenceError(f"Request {request_id} not found")

        logger.info(f"Reissued receipt code for request {request_id}")
        return new_code
