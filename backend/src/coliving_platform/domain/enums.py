"""Domain enumerations for the coliving platform.

All enums use the (str, Enum) pattern to ensure JSON serialization compatibility.
"""

from enum import Enum


class UserRole(str, Enum):
    """Role of a platform user."""

    PROPERTY_OWNER = "property_owner"
    PROPERTY_MANAGER = "property_manager"
    TENANT = "tenant"


# ---------------------------------------------------------------------------
# Reimbursements
# ---------------------------------------------------------------------------


class ReimbursementStatus(str, Enum):
    """Lifecycle of an expense reimbursement request."""

    REQUESTED = "Requested"
    APPROVED = "Approved"
    PAID = "Paid"
    DENIED = "Denied"


class ApprovalAction(str, Enum):
    """Decision taken on a requested reimbursement."""

    APPROVE = "approve"
    DENY = "deny"


class PaymentMethod(str, Enum):
    """Channel used to pay out a reimbursement."""

    STRIPE = "Stripe"
    PAYPAL = "PayPal"
    VENMO = "Venmo"
    WISE = "Wise"
    REVOLUT = "Revolut"
    WIRE = "Wire"
    CASH = "Cash"


# ---------------------------------------------------------------------------
# Agreements
# ---------------------------------------------------------------------------


class AgreementStatus(str, Enum):
    """Status of a lease agreement sent for signature."""

    SENT = "Sent"
    VIEWED = "Viewed"
    SIGNED = "Signed"
    COMPLETED = "Completed"
    EXPIRED = "Expired"
    CANCELLED = "Cancelled"


class AgreementTrigger(str, Enum):
    """Origin of an agreement status change."""

    SYSTEM = "system"
    WEBHOOK = "webhook"
    MANUAL = "manual"
    PROSPECT = "prospect"


class TemplateVariableType(str, Enum):
    """Input type of an agreement template variable."""

    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    SELECT = "select"


# ---------------------------------------------------------------------------
# Tenants
# ---------------------------------------------------------------------------


class TenantStatus(str, Enum):
    """Occupancy status of a tenant."""

    ACTIVE = "Active"
    MOVING_OUT = "Moving Out"
    MOVED_OUT = "Moved Out"


class TenantDocumentType(str, Enum):
    """Kind of document attached to a tenant profile."""

    ID = "ID"
    PASSPORT = "Passport"
    LEASE = "Lease"
    REFERENCE = "Reference"
    OTHER = "Other"


# ---------------------------------------------------------------------------
# Communications
# ---------------------------------------------------------------------------


class CommunicationType(str, Enum):
    """Channel or nature of a tenant communication."""

    EMAIL = "Email"
    PHONE = "Phone"
    IN_PERSON = "In Person"
    WHATSAPP = "WhatsApp"
    TEXT = "Text"
    MAINTENANCE_REQUEST = "Maintenance Request"
    COMPLAINT = "Complaint"
    GENERAL = "General"


class CommunicationPriority(str, Enum):
    """Urgency of a communication."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    URGENT = "Urgent"


class CommunicationStatus(str, Enum):
    """Handling status of a communication."""

    OPEN = "Open"
    IN_PROGRESS = "In Progress"
    RESOLVED = "Resolved"
    CLOSED = "Closed"


class CommunicationDirection(str, Enum):
    """Whether the communication was sent to or received from the tenant."""

    OUTGOING = "outgoing"
    INCOMING = "incoming"


class CommunicationSource(str, Enum):
    """What produced the communication record."""

    MANUAL = "manual"
    PAYMENT_REMINDER = "payment_reminder"
    AGREEMENT_REMINDER = "agreement_reminder"
    TENANT_REPLY = "tenant_reply"


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------


class MaintenanceStatus(str, Enum):
    """Status of a maintenance record."""

    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class MaintenancePriority(str, Enum):
    """Priority of a maintenance record."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    URGENT = "Urgent"


# ---------------------------------------------------------------------------
# Payments / Expenses
# ---------------------------------------------------------------------------


class PaymentType(str, Enum):
    """Kind of income received from a tenant."""

    RENT = "rent"
    DEPOSIT = "deposit"
    FEE = "fee"
    OTHER = "other"


class PaymentStatus(str, Enum):
    """Settlement status of a tenant payment."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class ReportType(str, Enum):
    """Period type of a financial report."""

    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class PeriodGrouping(str, Enum):
    """Bucket size for profit and loss breakdowns."""

    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"
