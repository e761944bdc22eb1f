"""Pydantic v2 schemas for API request/response validation."""

from datetime import datetime
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field

from coliving_platform.domain.enums import (
    AgreementStatus,
    ApprovalAction,
    CommunicationDirection,
    CommunicationPriority,
    CommunicationSource,
    CommunicationStatus,
    CommunicationType,
    MaintenancePriority,
    MaintenanceStatus,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    ReimbursementStatus,
    TemplateVariableType,
    TenantStatus,
    UserRole,
)
from coliving_platform.domain.models import to_naive_utc

# Incoming timestamps are stored as naive UTC
UtcDatetime = Annotated[datetime, AfterValidator(to_naive_utc)]


def _reject_null(value):
    if value is None:
        raise ValueError("Field cannot be null")
    return value


# Optional on PATCH, but an explicit null is refused for NOT NULL columns
NotNull = AfterValidator(_reject_null)


class InputModel(BaseModel):
    """Base for request bodies: enum members are stored as their values."""

    model_config = ConfigDict(use_enum_values=True)


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class UserCreate(InputModel):
    """Schema for registering a new user."""

    email: EmailStr
    password: str = Field(min_length=8)
    name: str = Field(min_length=1)
    role: UserRole = UserRole.PROPERTY_MANAGER
    phone: str | None = None


class UserLogin(BaseModel):
    """Schema for user login."""

    email: str
    password: str


class UserResponse(BaseModel):
    """Schema for user API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: str
    role: str
    phone: str | None = None
    is_active: bool


class TokenResponse(BaseModel):
    """Schema for JWT token responses."""

    access_token: str
    token_type: str = "bearer"
    user: UserResponse


# ---------------------------------------------------------------------------
# Property / Payment / Expense
# ---------------------------------------------------------------------------


class PropertyBase(InputModel):
    """Base property fields shared across create and response."""

    name: str = Field(min_length=1)
    street: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str = "US"
    total_rooms: int = Field(default=0, ge=0)
    purchase_price_cents: int | None = Field(default=None, ge=0)
    land_value_cents: int | None = Field(default=None, ge=0)


class PropertyCreate(PropertyBase):
    """Schema for creating a property."""

    pass


class PropertyResponse(PropertyBase):
    """Schema for property API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_id: str | None = None
    created_at: datetime


class PaymentCreate(InputModel):
    """Schema for recording income against a property."""

    property_id: str
    tenant_id: str | None = None
    amount_cents: int = Field(gt=0)
    type: PaymentType = PaymentType.RENT
    method: PaymentMethod | None = None
    status: PaymentStatus = PaymentStatus.COMPLETED
    date: UtcDatetime | None = None
    description: str | None = None
    due_date: UtcDatetime | None = None


class PaymentResponse(BaseModel):
    """Schema for payment API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    property_id: str
    tenant_id: str | None = None
    amount_cents: int
    type: str
    method: str | None = None
    status: str
    date: datetime
    description: str | None = None
    due_date: datetime | None = None
    paid_date: datetime | None = None
    reminders_sent: int = 0
    last_reminder_date: datetime | None = None
    refund_of_id: str | None = None


class MarkPaidRequest(InputModel):
    """Settle a pending payment. Both fields are optional."""

    method: PaymentMethod | None = None
    paid_date: UtcDatetime | None = None


class BulkPaymentRequest(InputModel):
    payment_ids: list[str] = Field(min_length=1)


class BulkPaymentFailure(BaseModel):
    id: str
    error: str


class BulkPaymentResult(BaseModel):
    """Per-payment outcome of a bulk action; one failure never aborts the rest."""

    successful: list[str] = []
    failed: list[BulkPaymentFailure] = []


class RefundRequest(InputModel):
    """Refund all of a completed payment, or part of it when amount_cents is set."""

    amount_cents: int | None = Field(default=None, gt=0)
    reason: str = Field(min_length=1)
    notes: str | None = None


class RefundResponse(BaseModel):
    refund: PaymentResponse
    original_payment: PaymentResponse


class ExpenseCreate(InputModel):
    """Schema for recording a property expense."""

    property_id: str
    amount_cents: int = Field(gt=0)
    category: str = "uncategorized"
    description: str | None = None
    date: UtcDatetime | None = None
    receipt_url: str | None = None
    is_reimbursable: bool = False


class ExpenseResponse(BaseModel):
    """Schema for expense API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    property_id: str
    amount_cents: int
    category: str
    description: str | None = None
    date: datetime
    receipt_url: str | None = None
    is_reimbursable: bool
    created_by: str | None = None


# ---------------------------------------------------------------------------
# Reimbursements
# ---------------------------------------------------------------------------


class ReimbursementCreate(InputModel):
    """Schema for submitting a reimbursement request."""

    expense_id: str
    property_id: str
    amount_cents: int = Field(gt=0)
    currency: str = Field(default="USD", pattern=r"^[A-Z]{3}$")
    requestor_id: str | None = None
    comment: str | None = None


class ReimbursementUpdate(InputModel):
    """Schema for editing a reimbursement request. All fields optional."""

    amount_cents: Annotated[int | None, NotNull] = Field(default=None, gt=0)
    currency: Annotated[str | None, NotNull] = Field(default=None, pattern=r"^[A-Z]{3}$")
    payment_method: PaymentMethod | None = None
    payment_reference: str | None = None
    comments: list[str] | None = None


class ReimbursementStatusChangeResponse(BaseModel):
    """One entry of a reimbursement's status history."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    from_status: str | None = None
    to_status: str
    changed_by: str
    changed_at: datetime
    comment: str | None = None
    reason: str | None = None


class ReimbursementResponse(BaseModel):
    """Schema for reimbursement API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    expense_id: str
    requestor_id: str
    property_id: str
    amount_cents: int
    currency: str
    status: ReimbursementStatus
    request_date: datetime
    approved_by: str | None = None
    approved_date: datetime | None = None
    paid_date: datetime | None = None
    payment_method: str | None = None
    payment_reference: str | None = None
    denied_reason: str | None = None
    comments: list[str] = []
    status_history: list[ReimbursementStatusChangeResponse] = []
    created_at: datetime
    updated_at: datetime | None = None


class ApprovalRequest(InputModel):
    """Approve or deny a requested reimbursement."""

    action: ApprovalAction
    comment: str = Field(min_length=1)


class BatchApprovalRequest(ApprovalRequest):
    """Apply one approval decision to several requests."""

    request_ids: list[str] = Field(min_length=1)


class PaymentRecordRequest(InputModel):
    """Record payout of an approved reimbursement."""

    payment_method: PaymentMethod
    payment_reference: str | None = None
    paid_date: UtcDatetime | None = None
    notes: str | None = None


# ---------------------------------------------------------------------------
# Agreement templates
# ---------------------------------------------------------------------------


class TemplateVariable(InputModel):
    """Typed placeholder declared by an agreement template."""

    id: str | None = None
    name: str
    label: str
    type: TemplateVariableType = TemplateVariableType.TEXT
    required: bool = False
    default_value: Any = None
    select_options: list[str] | None = None
    placeholder: str | None = None
    validation: str | None = None
    description: str | None = None


class AgreementTemplateCreate(InputModel):
    """Schema for creating an agreement template."""

    name: str = Field(min_length=1)
    property_id: str
    content: str
    variables: list[TemplateVariable] = []
    description: str | None = None
    category: str = "Standard Lease"
    legal_review_date: UtcDatetime | None = None
    legal_reviewed_by: str | None = None


class AgreementTemplateUpdate(InputModel):
    """Schema for editing an agreement template. All fields optional."""

    name: str | None = None
    content: str | None = None
    variables: list[TemplateVariable] | None = None
    description: str | None = None
    category: str | None = None
    is_active: bool | None = None
    legal_review_date: UtcDatetime | None = None
    legal_reviewed_by: str | None = None


class AgreementTemplateResponse(BaseModel):
    """Schema for agreement template API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    property_id: str
    content: str
    variables: list[dict] = []
    version: int
    is_active: bool
    legal_review_date: datetime | None = None
    legal_reviewed_by: str | None = None
    description: str | None = None
    category: str
    created_by: str
    created_at: datetime
    updated_at: datetime | None = None


class CloneTemplateRequest(BaseModel):
    """Copy a template under a new name, optionally to another property."""

    new_name: str = Field(min_length=1)
    property_id: str | None = None


class TemplateValuesRequest(BaseModel):
    """Variable values used to preview or render a template."""

    values: dict[str, Any] = {}


# ---------------------------------------------------------------------------
# Agreements
# ---------------------------------------------------------------------------


class SendAgreementRequest(InputModel):
    """Send an agreement built from a template to a prospect."""

    template_id: str
    property_id: str | None = None
    prospect_email: EmailStr
    prospect_name: str = Field(min_length=1)
    prospect_phone: str | None = None
    agreement_data: dict[str, Any] = {}
    expiration_days: int | None = Field(default=None, ge=1, le=90)


class SendAgreementResponse(BaseModel):
    """Result of sending an agreement."""

    agreement_id: str
    agreement_url: str
    expiration_date: datetime
    email_sent: bool


class AgreementResponse(BaseModel):
    """Schema for agreement API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    template_id: str
    property_id: str
    prospect_email: str
    prospect_name: str
    prospect_phone: str | None = None
    status: AgreementStatus
    sent_date: datetime
    viewed_date: datetime | None = None
    signed_date: datetime | None = None
    completed_date: datetime | None = None
    expiration_date: datetime
    envelope_id: str | None = None
    document_url: str | None = None
    signed_document_url: str | None = None
    signature_name: str | None = None
    signer_ip: str | None = None
    reminders_sent: int
    last_reminder_date: datetime | None = None
    next_reminder_date: datetime | None = None
    agreement_data: dict = {}
    room_number: str | None = None
    lease_start_date: datetime | None = None
    lease_end_date: datetime | None = None
    monthly_rent_cents: int | None = None
    deposit_cents: int | None = None
    tenant_created: bool = False
    tenant_id: str | None = None
    created_by: str
    created_at: datetime


class AgreementStatusHistoryResponse(BaseModel):
    """One entry of an agreement's status history."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    agreement_id: str
    previous_status: str | None = None
    new_status: str
    timestamp: datetime
    notes: str | None = None
    triggered_by: str | None = None
    metadata: dict = Field(default={}, validation_alias="event_metadata")


class SignAgreementRequest(BaseModel):
    """Signature submitted by the prospect."""

    signature_name: str = Field(min_length=1)
    envelope_id: str | None = None
    signed_document_url: str | None = None


class CancelAgreementRequest(BaseModel):
    """Reason for cancelling an agreement."""

    reason: str = Field(min_length=1)


class SigningWebhookEvent(InputModel):
    """Event posted by the signing provider."""

    event: str
    envelope_id: str | None = None
    agreement_id: str | None = None
    signature_name: str | None = None
    signer_ip: str | None = None
    signed_document_url: str | None = None


# ---------------------------------------------------------------------------
# Tenants
# ---------------------------------------------------------------------------


class EmergencyContact(BaseModel):
    """Person to contact in an emergency."""

    id: str | None = None
    name: str = Field(min_length=1)
    relationship: str
    phone: str
    email: str | None = None
    is_primary: bool = False


class TenantCreate(InputModel):
    """Schema for creating a tenant."""

    email: EmailStr
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    phone: str = ""
    property_id: str
    room_number: str | None = None
    status: TenantStatus = TenantStatus.ACTIVE
    lease_start: UtcDatetime | None = None
    lease_end: UtcDatetime | None = None
    monthly_rent_cents: int | None = Field(default=None, ge=0)
    deposit_cents: int | None = Field(default=None, ge=0)
    profile_photo: str | None = None
    emergency_contacts: list[EmergencyContact] = []


class TenantUpdate(InputModel):
    """Schema for editing a tenant. All fields optional."""

    email: Annotated[EmailStr | None, NotNull] = None
    first_name: Annotated[str | None, NotNull] = None
    last_name: Annotated[str | None, NotNull] = None
    phone: Annotated[str | None, NotNull] = None
    room_number: str | None = None
    status: Annotated[TenantStatus | None, NotNull] = None
    lease_start: UtcDatetime | None = None
    lease_end: UtcDatetime | None = None
    monthly_rent_cents: int | None = Field(default=None, ge=0)
    deposit_cents: int | None = Field(default=None, ge=0)
    profile_photo: str | None = None


class TenantResponse(BaseModel):
    """Schema for tenant API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    first_name: str
    last_name: str
    phone: str
    profile_photo: str | None = None
    status: str
    property_id: str
    room_number: str | None = None
    lease_start: datetime | None = None
    lease_end: datetime | None = None
    monthly_rent_cents: int | None = None
    deposit_cents: int | None = None
    emergency_contacts: list[dict] = []
    documents: list[dict] = []
    lease_history: list[dict] = []
    current_lease_id: str | None = None
    created_at: datetime


# ---------------------------------------------------------------------------
# Communications
# ---------------------------------------------------------------------------


class CommunicationCreate(InputModel):
    """Schema for logging a communication with a tenant."""

    tenant_id: str
    property_id: str
    type: CommunicationType
    subject: str = Field(min_length=1)
    content: str = Field(min_length=1)
    timestamp: UtcDatetime | None = None
    duration: int | None = Field(default=None, ge=0)
    priority: CommunicationPriority = CommunicationPriority.MEDIUM
    status: CommunicationStatus = CommunicationStatus.OPEN
    assigned_to: str | None = None
    attachments: list[str] = []
    tags: list[str] = []
    direction: CommunicationDirection = CommunicationDirection.OUTGOING
    source: CommunicationSource = CommunicationSource.MANUAL
    payment_id: str | None = None
    send_email: bool = False


class CommunicationUpdate(InputModel):
    """Schema for editing a communication. All fields optional."""

    subject: Annotated[str | None, NotNull] = None
    content: Annotated[str | None, NotNull] = None
    priority: Annotated[CommunicationPriority | None, NotNull] = None
    status: Annotated[CommunicationStatus | None, NotNull] = None
    assigned_to: str | None = None
    tags: list[str] | None = None
    attachments: list[str] | None = None


class CommunicationResponse(BaseModel):
    """Schema for communication API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    property_id: str
    type: str
    subject: str
    content: str
    timestamp: datetime
    duration: int | None = None
    priority: str
    status: str
    created_by: str
    assigned_to: str | None = None
    attachments: list[str] = []
    tags: list[str] = []
    direction: str
    source: str
    payment_id: str | None = None


class CommunicationListResponse(BaseModel):
    """Page of communications plus the unpaged total."""

    items: list[CommunicationResponse]
    total: int


class EscalationRequest(BaseModel):
    """Hand a communication off to another staff member."""

    escalated_to: str
    reason: str = Field(min_length=1)
    notes: str | None = None


class EscalationResponse(BaseModel):
    """Schema for escalation API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    communication_id: str
    escalated_from: str
    escalated_to: str
    reason: str
    timestamp: datetime
    resolved: bool
    resolved_at: datetime | None = None
    notes: str | None = None


class CommunicationTemplateCreate(BaseModel):
    """Schema for creating a communication template."""

    name: str = Field(min_length=1)
    category: str = Field(min_length=1)
    subject: str = Field(min_length=1)
    content: str = Field(min_length=1)
    variables: list[str] | None = None
    language: str = "en"


class CommunicationTemplateUpdate(BaseModel):
    """Schema for editing a communication template. All fields optional."""

    name: Annotated[str | None, NotNull] = None
    category: Annotated[str | None, NotNull] = None
    subject: Annotated[str | None, NotNull] = None
    content: Annotated[str | None, NotNull] = None
    language: Annotated[str | None, NotNull] = None
    is_active: Annotated[bool | None, NotNull] = None


class CommunicationTemplateResponse(BaseModel):
    """Schema for communication template API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    category: str
    subject: str
    content: str
    variables: list[str] = []
    language: str
    usage_count: int
    is_active: bool
    created_by: str


class RenderedTemplateResponse(BaseModel):
    """Template subject and body with values substituted."""

    subject: str
    content: str


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------


class MaintenanceCreate(InputModel):
    """Schema for reporting a maintenance task."""

    property_id: str
    room_number: str | None = None
    title: str = Field(min_length=1)
    description: str | None = None
    priority: MaintenancePriority = MaintenancePriority.MEDIUM
    reported_date: UtcDatetime | None = None
    scheduled_date: UtcDatetime | None = None
    cost_cents: int | None = Field(default=None, ge=0)
    notes: str | None = None


class MaintenanceUpdate(InputModel):
    """Schema for editing a maintenance task. Status changes go through /status."""

    room_number: str | None = None
    title: Annotated[str | None, NotNull] = None
    description: str | None = None
    priority: Annotated[MaintenancePriority | None, NotNull] = None
    scheduled_date: UtcDatetime | None = None
    cost_cents: int | None = Field(default=None, ge=0)
    notes: str | None = None


class MaintenanceStatusUpdate(InputModel):
    """Move a maintenance task to a new status."""

    status: MaintenanceStatus
    cost_cents: int | None = Field(default=None, ge=0)
    notes: str | None = None


class MaintenanceResponse(BaseModel):
    """Schema for maintenance API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    property_id: str
    room_number: str | None = None
    title: str
    description: str | None = None
    priority: str
    status: str
    reported_date: datetime
    scheduled_date: datetime | None = None
    completed_date: datetime | None = None
    cost_cents: int | None = None
    notes: str | None = None


# ---------------------------------------------------------------------------
# Photos
# ---------------------------------------------------------------------------


class SecureUrlRequest(BaseModel):
    """Request a time-limited signed URL for a stored photo."""

    photo_url: str
    property_id: str
    expires_in: int | None = Field(default=None, ge=60, le=7 * 24 * 3600)
    operations: list[str] = ["view"]
    restrict_to_ip: bool = False


class SecureUrlResponse(BaseModel):
    """Signed photo URL and when it stops working."""

    url: str
    token: str
    expires_at: datetime


class PhotoResponse(BaseModel):
    """Stored photo with its processed variants and OCR result."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    property_id: str
    expense_id: str | None = None
    uploaded_by: str
    original_url: str
    compressed_url: str
    thumbnail_urls: dict[str, str] = {}
    width: int | None = None
    height: int | None = None
    size_bytes: int | None = None
    ocr_result: dict | None = None
    ocr_confidence: float | None = None
    created_at: datetime
