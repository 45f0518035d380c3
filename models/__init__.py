# -------------------------
# Enums
# -------------------------
from .enums import (
    BaseStrEnum,
    Role,
    RequestStatus,
    ServiceTier,
    SERVICE_FEES,
    SERVICE_TIER_LABELS,
    TERMINAL_STATUSES,
)

# -------------------------
# User / Auth Models
# -------------------------
from .user import (
    Principal,
    AuthSession,
    Profile,
    RoleAssignment,
    UserWithRole,
    UserCountByRole,
    AdminCreateUser,
    RoleUpdate,
)

# -------------------------
# Role / Permission Snapshots
# -------------------------
from .roles import (
    RoleCheckResult,
    PermissionSnapshot,
)

# -------------------------
# Inspection Request Models
# -------------------------
from .inspection_request import (
    InspectionRequest,
    InspectionRequestCreate,
    PublicRequestView,
    DashboardStats,
    AssignAgentPayload,
    StatusUpdatePayload,
    ProcessPaymentPayload,
    UpdateFeesPayload,
    EmailReceiptPayload,
)

# -------------------------
# Receipt Models
# -------------------------
from .receipt import (
    ReceiptSummary,
    ReceiptBundle,
)
