# routers/public.py

import re

from fastapi import APIRouter, Depends, HTTPException, Request
from typing import Optional

from core.backend import Backend
from core.rate_limiter import require_rate_limit
from core.supabase_client import get_backend
from models.inspection_request import PublicRequestView
from services.request_repository import RequestRepository

# STZ-<base36 millis>-<9 base36 chars>, case-insensitive on input
TRACKING_ID_PATTERN = re.compile(r"^STZ-[0-9A-Z]+-[0-9A-Z]{9}$", re.IGNORECASE)


def is_tracking_id(identifier: str) -> bool:
    return bool(TRACKING_ID_PATTERN.match(identifier.strip()))


router = APIRouter(
    prefix="/public",
    tags=["Public"],
)


# ============================================================
# GET: Track a request by its public tracking id
# ============================================================
@router.get(
    "/track/{tracking_id}",
    response_model=PublicRequestView,
    summary="Track an inspection request (public)",
)
async def track_request(
    tracking_id: str,
    request: Request,
    backend: Optional[Backend] = Depends(get_backend),
):
    """
    Unauthenticated status lookup. Only the tracking id is accepted and only
    the public subset of the request is returned: no internal, owner or
    agent ids.
    """
    require_rate_limit(request, max_requests=30, window_seconds=60)

    if not is_tracking_id(tracking_id):
        raise HTTPException(400, "Invalid tracking ID")

    view = await RequestRepository(backend).find_by_tracking_id(tracking_id)
    if view is None:
        raise HTTPException(404, "No request found with that tracking ID")
    return view
