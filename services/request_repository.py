# services/request_repository.py

import secrets
import string
import time
from typing import List, Optional

from core.backend import Backend, rows
from core.errors import ActionResult, ErrorKind
from core.logging_config import logger
from core.notifications import Notifier
from models.enums import RequestStatus, Role, SERVICE_FEES
from models.inspection_request import (
    DashboardStats,
    InspectionRequest,
    InspectionRequestCreate,
    PublicRequestView,
)
from models.roles import PermissionSnapshot


TABLE = "inspection_requests"
BASE36 = string.digits + string.ascii_uppercase


# -----------------------------------------------------
# Tracking ids
# -----------------------------------------------------
def to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(BASE36[rem])
    return "".join(reversed(digits))


def generate_tracking_id() -> str:
    """STZ-<base36 epoch millis>-<9 random base36 chars>, upper case."""
    millis = int(time.time() * 1000)
    suffix = "".join(secrets.choice(BASE36) for _ in range(9))
    return f"STZ-{to_base36(millis)}-{suffix}"


class RequestRepository:
    """
    Role-scoped, in-memory view of inspection requests.

    Mutations to the collection happen only here. After `close()` any
    in-flight fetch or refresh finishes without writing.
    """

    def __init__(self, backend: Optional[Backend], notifier: Optional[Notifier] = None):
        self.backend = backend
        self.notifier = notifier or Notifier()
        self._requests: List[InspectionRequest] = []
        self._loading = False
        self._closed = False

    @property
    def requests(self) -> List[InspectionRequest]:
        return list(self._requests)

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self):
        self._closed = True

    # ============================================================
    # Collection loading
    # ============================================================
    async def fetch_requests(
        self,
        caller_id: Optional[str],
        role: Optional[Role],
        permissions: Optional[PermissionSnapshot] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[InspectionRequest]:
        """
        Load the requests the caller may see, newest first.

        users see their own; agents and admins holding can_view_all_requests
        see everything; anyone else gets an empty list without a backend call.
        """
        role = Role.parse(role) if role is not None else None
        permissions = permissions or PermissionSnapshot()

        if role == Role.user and caller_id:
            filters = {"user_id": caller_id}
        elif role in (Role.agent, Role.admin) and permissions.can_view_all_requests:
            filters = None
        else:
            if not self._closed:
                self._requests = []
                self._loading = False
            return []

        if self.backend is None:
            logger.error("Backend unavailable, cannot load requests")
            self._fail_load("Database not available")
            return self.requests

        self._loading = True
        result = await self.backend.select(
            TABLE,
            filters,
            order_by="created_at",
            desc=True,
            limit=limit,
            offset=offset,
        )

        if self._closed:
            return self.requests

        if not result.ok:
            logger.error(f"Error fetching requests for {caller_id} ({role}): {result.error}")
            self._fail_load(result.error)
            return self.requests

        self._requests = [InspectionRequest.from_row(row) for row in rows(result)]
        self._loading = False
        return self.requests

    def _fail_load(self, error: Optional[str]):
        # Keep the previous collection; stale data beats an empty list
        self._loading = False
        self.notifier.failure("Error", "Failed to load requests", error=str(ErrorKind.update_failed))

    async def refresh_one(self, request_id: str) -> Optional[InspectionRequest]:
        """Re-read one record and swap it in place. Last write wins."""
        fresh = await self.get_request(request_id)
        if fresh is None or self._closed:
            return fresh

        for index, existing in enumerate(self._requests):
            if existing.id == request_id:
                self._requests[index] = fresh
                break
        return fresh

    # ============================================================
    # Point reads
    # ============================================================
    async def get_request(self, request_id: str) -> Optional[InspectionRequest]:
        if self.backend is None:
            return None

        result = await self.backend.select(TABLE, {"id": request_id}, single=True)
        if not result.ok:
            logger.error(f"Error fetching request {request_id}: {result.error}")
            return None
        if not result.data:
            return None
        return InspectionRequest.from_row(result.data)

    async def find_by_tracking_id(self, tracking_id: str) -> Optional[PublicRequestView]:
        if self.backend is None or not tracking_id:
            return None

        result = await self.backend.select(
            TABLE, {"tracking_id": tracking_id.strip().upper()}, single=True
        )
        if not result.ok:
            logger.error(f"Error tracking request {tracking_id}: {result.error}")
            return None
        if not result.data:
            return None
        return PublicRequestView.from_request(InspectionRequest.from_row(result.data))

    # ============================================================
    # Creation
    # ============================================================
    async def create_request(
        self, owner_id: Optional[str], payload: InspectionRequestCreate
    ) -> ActionResult:
        if self.backend is None:
            self.notifier.failure("Error", "Failed to submit request", error=str(ErrorKind.update_failed))
            return ActionResult.failure(ErrorKind.update_failed, "Failed to submit request", detail="Database not available")

        data = payload.model_dump(mode="json", exclude_none=True)
        data.update({
            "user_id": owner_id,
            "tracking_id": generate_tracking_id(),
            "service_fee": SERVICE_FEES[payload.service_tier],
            "status": str(RequestStatus.pending),
            "assigned_agent_id": None,
            "payment_received": False,
        })

        result = await self.backend.insert(TABLE, data)
        if not result.ok or not result.data:
            logger.error(f"Error creating request for {owner_id}: {result.error}")
            self.notifier.failure("Error", "Failed to submit request", error=str(ErrorKind.update_failed))
            return ActionResult.failure(ErrorKind.update_failed, "Failed to submit request", detail=result.error)

        created = InspectionRequest.from_row(result.data)
        if not self._closed:
            self._requests.insert(0, created)

        logger.info(f"Created inspection request {created.id} ({created.tracking_id})")
        self.notifier.success("Request submitted", f"Your tracking ID is {created.tracking_id}")
        return ActionResult.success(created, message="Request submitted")

    # ============================================================
    # Dashboard figures
    # ============================================================
    @property
    def stats(self) -> DashboardStats:
        items = self._requests
        return DashboardStats(
            total_requests=len(items),
            active_requests=sum(
                1 for r in items
                if r.assigned_agent_id
                and r.status in (RequestStatus.assigned, RequestStatus.in_progress)
            ),
            completed_requests=sum(1 for r in items if r.status == RequestStatus.completed),
            pending_requests=sum(1 for r in items if not r.assigned_agent_id),
            cancelled_requests=sum(1 for r in items if r.status == RequestStatus.cancelled),
            unassigned_requests=sum(
                1 for r in items
                if not r.assigned_agent_id and r.status == RequestStatus.pending
            ),
        )
