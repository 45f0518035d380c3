from enum import Enum


class BaseStrEnum(str, Enum):
    """
    Base enum that serializes cleanly to a string
    and provides a .list() method for UI dropdowns.
    """

    def __str__(self):
        return str(self.value)

    @classmethod
    def list(cls):
        return [item.value for item in cls]

    @classmethod
    def parse(cls, value):
        """Return the member for `value`, or None when it is not a known value."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


# -----------------------------------------------------
# ROLE
# -----------------------------------------------------
class Role(BaseStrEnum):
    """The single active role of a user. admin overrides every role gate on views."""

    user = "user"
    agent = "agent"
    admin = "admin"


# -----------------------------------------------------
# INSPECTION REQUEST STATUS
# -----------------------------------------------------
class RequestStatus(BaseStrEnum):
    """Workflow state for an inspection request."""

    pending = "pending"
    assigned = "assigned"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"
    archived = "archived"


TERMINAL_STATUSES = frozenset(
    {RequestStatus.completed, RequestStatus.cancelled, RequestStatus.archived}
)


# -----------------------------------------------------
# SERVICE TIER
# -----------------------------------------------------
class ServiceTier(BaseStrEnum):
    """Service package chosen by the customer."""

    inspection = "inspection"
    inspection_payment = "inspection-payment"
    full_service = "full-service"


SERVICE_TIER_LABELS = {
    ServiceTier.inspection: "Inspection Only",
    ServiceTier.inspection_payment: "Inspection + Payment",
    ServiceTier.full_service: "Full Service",
}

# Base fee per tier. Full service starts at this amount; admins adjust it with update_fees.
SERVICE_FEES = {
    ServiceTier.inspection: 7000,
    ServiceTier.inspection_payment: 10000,
    ServiceTier.full_service: 10000,
}
