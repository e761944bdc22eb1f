"""SQLAlchemy ORM models for the coliving platform.

All models use SQLite-compatible types:
- String(36) for UUID primary keys
- JSON for structured data (no JSONB)
- DateTime for timestamps, stored as naive UTC
- Integer cents for money
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from coliving_platform.domain.enums import (
    AgreementStatus,
    CommunicationDirection,
    CommunicationPriority,
    CommunicationSource,
    CommunicationStatus,
    MaintenancePriority,
    MaintenanceStatus,
    PaymentStatus,
    PaymentType,
    ReimbursementStatus,
    TenantStatus,
    UserRole,
)
from coliving_platform.infra.database import Base


def utcnow() -> datetime:
    """Naive UTC now, matching what SQLite hands back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime | None) -> datetime | None:
    """Convert an aware datetime to naive UTC; naive values pass through."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _uuid() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Auth / User
# ---------------------------------------------------------------------------


class User(Base):
    """Platform user for authentication."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    role = Column(String(30), nullable=False, default=UserRole.PROPERTY_MANAGER.value)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)
    last_login_at = Column(DateTime, nullable=True)


# ---------------------------------------------------------------------------
# Property / Tenant
# ---------------------------------------------------------------------------


class Property(Base):
    """Coliving house managed on the platform."""

    __tablename__ = "properties"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    street = Column(String(255))
    city = Column(String(100))
    state = Column(String(50))
    postal_code = Column(String(20))
    country = Column(String(50), default="US")
    total_rooms = Column(Integer, default=0)
    purchase_price_cents = Column(Integer, nullable=True)
    land_value_cents = Column(Integer, nullable=True)
    owner_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class Tenant(Base):
    """Tenant profile, including contacts, documents and lease history."""

    __tablename__ = "tenants"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), nullable=False, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone = Column(String(50), nullable=False, default="")
    profile_photo = Column(String(500), nullable=True)
    status = Column(String(20), nullable=False, default=TenantStatus.ACTIVE.value, index=True)
    property_id = Column(String(36), ForeignKey("properties.id"), nullable=False, index=True)
    room_number = Column(String(20), nullable=True)
    lease_start = Column(DateTime, nullable=True)
    lease_end = Column(DateTime, nullable=True)
    monthly_rent_cents = Column(Integer, nullable=True)
    deposit_cents = Column(Integer, nullable=True)
    # Lists of dicts; always reassign to flag the column dirty.
    emergency_contacts = Column(JSON, default=list)
    documents = Column(JSON, default=list)
    lease_history = Column(JSON, default=list)
    current_lease_id = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime, nullable=True)


# ---------------------------------------------------------------------------
# Income / Expenses
# ---------------------------------------------------------------------------


class Payment(Base):
    """Income received for a property (rent, deposits, fees)."""

    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=_uuid)
    property_id = Column(String(36), ForeignKey("properties.id"), nullable=False, index=True)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=True)
    amount_cents = Column(Integer, nullable=False)
    type = Column(String(20), nullable=False, default=PaymentType.RENT.value)
    method = Column(String(30), nullable=True)
    status = Column(String(20), nullable=False, default=PaymentStatus.COMPLETED.value)
    date = Column(DateTime, nullable=False, default=utcnow, index=True)
    description = Column(Text, nullable=True)
    # Pending rent is chased against due_date; paid_date is stamped on settlement
    due_date = Column(DateTime, nullable=True, index=True)
    paid_date = Column(DateTime, nullable=True)
    reminders_sent = Column(Integer, nullable=False, default=0)
    last_reminder_date = Column(DateTime, nullable=True)
    refund_of_id = Column(String(36), ForeignKey("payments.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow)


class Expense(Base):
    """Property expense, optionally reimbursable to whoever paid it."""

    __tablename__ = "expenses"

    id = Column(String(36), primary_key=True, default=_uuid)
    property_id = Column(String(36), ForeignKey("properties.id"), nullable=False, index=True)
    amount_cents = Column(Integer, nullable=False)
    category = Column(String(50), nullable=False, default="uncategorized")
    description = Column(Text, nullable=True)
    date = Column(DateTime, nullable=False, default=utcnow, index=True)
    receipt_url = Column(String(500), nullable=True)
    is_reimbursable = Column(Boolean, default=False)
    created_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=utcnow)


# ---------------------------------------------------------------------------
# Reimbursements
# ---------------------------------------------------------------------------


class ReimbursementRequest(Base):
    """Expense claim moving through approval and payment."""

    __tablename__ = "reimbursement_requests"

    id = Column(String(36), primary_key=True, default=_uuid)
    expense_id = Column(String(36), nullable=False, index=True)
    requestor_id = Column(String(36), nullable=False, index=True)
    property_id = Column(String(36), nullable=False, index=True)
    amount_cents = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    status = Column(String(20), nullable=False, default=ReimbursementStatus.REQUESTED.value, index=True)
    request_date = Column(DateTime, nullable=False, default=utcnow)
    approved_by = Column(String(36), nullable=True)
    approved_date = Column(DateTime, nullable=True)
    paid_date = Column(DateTime, nullable=True)
    payment_method = Column(String(20), nullable=True)
    payment_reference = Column(String(255), nullable=True)
    denied_reason = Column(Text, nullable=True)
    comments = Column(JSON, default=list)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime, nullable=True)

    status_history = relationship(
        "ReimbursementStatusChange",
        back_populates="request",
        order_by="ReimbursementStatusChange.changed_at",
        lazy="selectin",
        cascade="all, delete-orphan",
    )


class ReimbursementStatusChange(Base):
    """Audit trail entry for a reimbursement status change."""

    __tablename__ = "reimbursement_status_changes"

    id = Column(String(36), primary_key=True, default=_uuid)
    request_id = Column(
        String(36), ForeignKey("reimbursement_requests.id"), nullable=False, index=True
    )
    from_status = Column(String(20), nullable=True)
    to_status = Column(String(20), nullable=False)
    changed_by = Column(String(36), nullable=False)
    changed_at = Column(DateTime, nullable=False, default=utcnow)
    comment = Column(Text, nullable=True)
    reason = Column(Text, nullable=True)

    request = relationship("ReimbursementRequest", back_populates="status_history")


# ---------------------------------------------------------------------------
# Agreements
# ---------------------------------------------------------------------------


class AgreementTemplate(Base):
    """Lease text with {{variable}} placeholders and typed variable declarations."""

    __tablename__ = "agreement_templates"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    property_id = Column(String(36), ForeignKey("properties.id"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    variables = Column(JSON, default=list)
    version = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, default=True)
    legal_review_date = Column(DateTime, nullable=True)
    legal_reviewed_by = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=False, default="Standard Lease")
    created_by = Column(String(36), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime, nullable=True)


class Agreement(Base):
    """Agreement sent to a prospect for signature."""

    __tablename__ = "agreements"

    id = Column(String(36), primary_key=True, default=_uuid)
    template_id = Column(String(36), ForeignKey("agreement_templates.id"), nullable=False, index=True)
    property_id = Column(String(36), ForeignKey("properties.id"), nullable=False, index=True)
    prospect_email = Column(String(255), nullable=False, index=True)
    prospect_name = Column(String(255), nullable=False)
    prospect_phone = Column(String(50), nullable=True)

    status = Column(String(20), nullable=False, default=AgreementStatus.SENT.value, index=True)
    sent_date = Column(DateTime, nullable=False, default=utcnow)
    viewed_date = Column(DateTime, nullable=True)
    signed_date = Column(DateTime, nullable=True)
    completed_date = Column(DateTime, nullable=True)
    expiration_date = Column(DateTime, nullable=False)

    # Signing provider
    envelope_id = Column(String(100), nullable=True, index=True)
    document_url = Column(String(500), nullable=True)
    signed_document_url = Column(String(500), nullable=True)
    signature_name = Column(String(255), nullable=True)
    signer_ip = Column(String(64), nullable=True)

    # Reminder tracking
    reminders_sent = Column(Integer, nullable=False, default=0)
    last_reminder_date = Column(DateTime, nullable=True)
    next_reminder_date = Column(DateTime, nullable=True)

    agreement_data = Column(JSON, default=dict)

    # Lease terms extracted from agreement_data
    room_number = Column(String(20), nullable=True)
    lease_start_date = Column(DateTime, nullable=True)
    lease_end_date = Column(DateTime, nullable=True)
    monthly_rent_cents = Column(Integer, nullable=True)
    deposit_cents = Column(Integer, nullable=True)

    tenant_created = Column(Boolean, default=False)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=True)

    created_by = Column(String(36), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime, nullable=True)


class AgreementStatusHistory(Base):
    """Audit trail entry for an agreement status change."""

    __tablename__ = "agreement_status_history"

    id = Column(String(36), primary_key=True, default=_uuid)
    agreement_id = Column(String(36), ForeignKey("agreements.id"), nullable=False, index=True)
    previous_status = Column(String(20), nullable=True)
    new_status = Column(String(20), nullable=False)
    timestamp = Column(DateTime, nullable=False, default=utcnow)
    notes = Column(Text, nullable=True)
    triggered_by = Column(String(20), nullable=True)
    # "metadata" is reserved on declarative classes
    event_metadata = Column("metadata", JSON, default=dict)


# ---------------------------------------------------------------------------
# Communications
# ---------------------------------------------------------------------------


class Communication(Base):
    """Logged interaction with a tenant (email, call, note, complaint)."""

    __tablename__ = "communications"

    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    property_id = Column(String(36), nullable=False, index=True)
    type = Column(String(30), nullable=False)
    subject = Column(String(500), nullable=False)
    content = Column(Text, nullable=False)
    timestamp = Column(DateTime, nullable=False, default=utcnow, index=True)
    duration = Column(Integer, nullable=True)  # minutes, calls/meetings
    priority = Column(String(10), nullable=False, default=CommunicationPriority.MEDIUM.value)
    status = Column(String(20), nullable=False, default=CommunicationStatus.OPEN.value)
    created_by = Column(String(36), nullable=False)
    assigned_to = Column(String(36), nullable=True)
    attachments = Column(JSON, default=list)
    tags = Column(JSON, default=list)
    direction = Column(String(10), nullable=False, default=CommunicationDirection.OUTGOING.value)
    source = Column(String(30), nullable=False, default=CommunicationSource.MANUAL.value)
    payment_id = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class IssueEscalation(Base):
    """Hand-off of a communication issue to another staff member."""

    __tablename__ = "issue_escalations"

    id = Column(String(36), primary_key=True, default=_uuid)
    communication_id = Column(String(36), ForeignKey("communications.id"), nullable=False, index=True)
    escalated_from = Column(String(36), nullable=False)
    escalated_to = Column(String(36), nullable=False)
    reason = Column(Text, nullable=False)
    timestamp = Column(DateTime, nullable=False, default=utcnow)
    resolved = Column(Boolean, default=False)
    resolved_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)


class CommunicationTemplate(Base):
    """Reusable message with {{variable}} placeholders in subject and body."""

    __tablename__ = "communication_templates"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    category = Column(String(100), nullable=False, index=True)
    subject = Column(String(500), nullable=False)
    content = Column(Text, nullable=False)
    variables = Column(JSON, default=list)
    language = Column(String(10), nullable=False, default="en")
    usage_count = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True)
    created_by = Column(String(36), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------


class MaintenanceRecord(Base):
    """Repair or upkeep task for a room or common area."""

    __tablename__ = "maintenance_records"

    id = Column(String(36), primary_key=True, default=_uuid)
    property_id = Column(String(36), ForeignKey("properties.id"), nullable=False, index=True)
    room_number = Column(String(20), nullable=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    priority = Column(String(10), nullable=False, default=MaintenancePriority.MEDIUM.value)
    status = Column(String(20), nullable=False, default=MaintenanceStatus.PENDING.value, index=True)
    reported_date = Column(DateTime, nullable=False, default=utcnow)
    scheduled_date = Column(DateTime, nullable=True)
    completed_date = Column(DateTime, nullable=True)
    cost_cents = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime, nullable=True)


# ---------------------------------------------------------------------------
# Photos
# ---------------------------------------------------------------------------


class Photo(Base):
    """Uploaded receipt or property photo with its processed variants."""

    __tablename__ = "photos"

    id = Column(String(36), primary_key=True, default=_uuid)
    property_id = Column(String(36), ForeignKey("properties.id"), nullable=False, index=True)
    expense_id = Column(String(36), ForeignKey("expenses.id"), nullable=True)
    uploaded_by = Column(String(36), nullable=False)
    original_url = Column(String(500), nullable=False)
    compressed_url = Column(String(500), nullable=False)
    thumbnail_urls = Column(JSON, default=dict)
    width = Column(Integer)
    height = Column(Integer)
    size_bytes = Column(Integer)
    ocr_result = Column(JSON, nullable=True)
    ocr_confidence = Column(Float, nullable=True)
    created_at = Column(DateTime, default=utcnow)
