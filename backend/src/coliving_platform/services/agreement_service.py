"""Agreement signing flow: send, remind, view, sign, complete, cancel.

Every status change is validated by AgreementStateMachine and recorded as an
AgreementStatusHistory row. Emails are best-effort: a failed send never
rolls back the status change.
"""

import logging
import math
import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from coliving_platform.app.config import get_settings
from coliving_platform.domain.enums import AgreementStatus, AgreementTrigger, TenantStatus
from coliving_platform.domain.errors import (
    AgreementUnavailableError,
    NotFoundError,
    ValidationError,
)
from coliving_platform.domain.models import (
    Agreement,
    AgreementStatusHistory,
    Property,
    Tenant,
    to_naive_utc,
    utcnow,
)
from coliving_platform.domain.schemas import SendAgreementRequest, SigningWebhookEvent
from coliving_platform.services import email_service, template_renderer
from coliving_platform.services.agreement_state_machine import (
    SIGNABLE_STATES,
    AgreementStateMachine,
)
from coliving_platform.services.agreement_template_service import get_template
from coliving_platform.services.tenant_service import get_tenant_by_email

logger = logging.getLogger(__name__)

state_machine = AgreementStateMachine()

S = AgreementStatus
T = AgreementTrigger

FIRST_REMINDER_AFTER = timedelta(days=3)
FIRST_REMINDER_BEFORE_EXPIRY = timedelta(days=2)
REMINDER_INTERVAL = timedelta(days=2)
LAST_REMINDER_BEFORE_EXPIRY = timedelta(days=1)
DEFAULT_LEASE_LENGTH = timedelta(days=365)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def agreement_url(agreement_id: str) -> str:
    """Public signing page for an agreement."""
    return f"{get_settings().app_url.rstrip('/')}/agreements/sign/{agreement_id}"


def format_property_address(prop: Property | None) -> str:
    if prop is None or not prop.street:
        return "Address not available"
    return f"{prop.street}, {prop.city}, {prop.state} {prop.postal_code}, {prop.country}"


def dollars_to_cents(value) -> int | None:
    """Parse '1,250.50', '$900' or 900 into integer cents."""
    if value is None or value == "":
        return None
    try:
        amount = Decimal(str(value).replace("$", "").replace(",", "").strip())
    except InvalidOperation:
        return None
    return int((amount * 100).quantize(Decimal("1")))


def parse_date(value) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    try:
        return to_naive_utc(datetime.fromisoformat(str(value)))
    except ValueError:
        return None


def extract_lease_terms(values: dict) -> dict:
    """Lease columns derived from template variable values."""
    room = values.get("room_number")
    return {
        "room_number": str(room) if room not in (None, "") else None,
        "lease_start_date": parse_date(values.get("lease_start_date")),
        "lease_end_date": parse_date(values.get("lease_end_date")),
        "monthly_rent_cents": dollars_to_cents(values.get("monthly_rent")),
        "deposit_cents": dollars_to_cents(values.get("security_deposit")),
    }


def days_until(expiration: datetime, now: datetime) -> int:
    """Whole days left before expiry, rounded up."""
    return math.ceil((expiration - now).total_seconds() / 86400)


def first_reminder_date(sent_at: datetime, expiration: datetime) -> datetime:
    """Three days after sending or two days before expiry, whichever is sooner."""
    return min(sent_at + FIRST_REMINDER_AFTER, expiration - FIRST_REMINDER_BEFORE_EXPIRY)


def next_reminder_date(
    last_reminder: datetime,
    expiration: datetime,
    reminder_number: int,
    max_reminders: int | None = None,
) -> datetime | None:
    """When to send the following reminder, or None once reminders stop."""
    if max_reminders is None:
        max_reminders = get_settings().agreement_max_reminders
    if reminder_number >= max_reminders or days_until(expiration, last_reminder) <= 1:
        return None
    return min(last_reminder + REMINDER_INTERVAL, expiration - LAST_REMINDER_BEFORE_EXPIRY)


def _transition(
    db: AsyncSession,
    agreement: Agreement,
    target: AgreementStatus,
    trigger: AgreementTrigger,
    notes: str | None = None,
    metadata: dict | None = None,
) -> None:
    """Validate, apply and record a status change. Caller commits."""
    previous = agreement.status
    state_machine.validate_transition(previous, target, trigger, agreement)
    agreement.status = target.value
    db.add(
        AgreementStatusHistory(
            agreement_id=agreement.id,
            previous_status=previous,
            new_status=target.value,
            timestamp=utcnow(),
            notes=notes,
            triggered_by=trigger.value,
            event_metadata=metadata or {},
        )
    )
    logger.info("Agreement %s: %s -> %s (%s)", agreement.id, previous, target.value, trigger.value)


async def get_agreement(db: AsyncSession, agreement_id: str) -> Agreement | None:
    result = await db.execute(
        select(Agreement).where(Agreement.id == agreement_id, Agreement.deleted_at.is_(None))
    )
    return result.scalar_one_or_none()


async def get_agreement_or_raise(db: AsyncSession, agreement_id: str) -> Agreement:
    agreement = await get_agreement(db, agreement_id)
    if agreement is None:
        raise NotFoundError("Agreement", agreement_id)
    return agreement


async def _get_property(db: AsyncSession, property_id: str) -> Property | None:
    result = await db.execute(select(Property).where(Property.id == property_id))
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Sending & reminders
# ---------------------------------------------------------------------------


async def send_agreement(db: AsyncSession, request: SendAgreementRequest, created_by: str) -> dict:
    """Create an agreement from a template and email the signing link."""
    template = await get_template(db, request.template_id)
    if template is None:
        raise NotFoundError("Agreement template", request.template_id)
    if not template.is_active:
        raise ValidationError("Agreement template is not active")

    property_id = request.property_id or template.property_id
    prop = await _get_property(db, property_id)
    if prop is None:
        raise NotFoundError("Property", property_id)

    values = {
        "property_name": prop.name,
        "property_address": format_property_address(prop),
        "tenant_name": request.prospect_name,
        "tenant_email": request.prospect_email,
        "tenant_phone": request.prospect_phone or "",
        **request.agreement_data,
    }
    values = template_renderer.validate_values(template.variables, values)

    settings = get_settings()
    now = utcnow()
    expiration_days = request.expiration_days or settings.agreement_expiration_days
    expiration = now + timedelta(days=expiration_days)

    agreement = Agreement(
        id=str(uuid.uuid4()),
        template_id=template.id,
        property_id=property_id,
        prospect_email=request.prospect_email,
        prospect_name=request.prospect_name,
        prospect_phone=request.prospect_phone,
        status=S.SENT.value,
        sent_date=now,
        expiration_date=expiration,
        reminders_sent=0,
        next_reminder_date=first_reminder_date(now, expiration),
        agreement_data=values,
        created_by=created_by,
        **extract_lease_terms(values),
    )
    db.add(agreement)
    db.add(
        AgreementStatusHistory(
            agreement_id=agreement.id,
            previous_status=None,
            new_status=S.SENT.value,
            timestamp=now,
            notes="Agreement sent",
            triggered_by=T.MANUAL.value,
            event_metadata={"template_id": template.id, "template_version": template.version},
        )
    )
    await db.commit()
    logger.info("Agreement %s sent to %s", agreement.id, agreement.prospect_email)

    url = agreement_url(agreement.id)
    email_sent = await email_service.send_agreement_email(
        agreement.prospect_email, agreement.prospect_name, prop.name, url, expiration
    )
    return {
        "agreement_id": agreement.id,
        "agreement_url": url,
        "expiration_date": expiration,
        "email_sent": email_sent,
    }


async def resend_agreement(db: AsyncSession, agreement_id: str) -> bool:
    agreement = await get_agreement_or_raise(db, agreement_id)
    if S(agreement.status) not in SIGNABLE_STATES:
        raise ValidationError(f"Agreement cannot be resent in status {agreement.status}")
    prop = await _get_property(db, agreement.property_id)
    return await email_service.send_agreement_email(
        agreement.prospect_email,
        agreement.prospect_name,
        prop.name if prop else "your new home",
        agreement_url(agreement.id),
        agreement.expiration_date,
    )


async def send_reminder(db: AsyncSession, agreement_id: str, now: datetime | None = None) -> bool:
    """Email a signing reminder. Returns False when no reminder applies."""
    agreement = await get_agreement_or_raise(db, agreement_id)
    if S(agreement.status) not in SIGNABLE_STATES:
        return False

    now = now or utcnow()
    remaining = days_until(agreement.expiration_date, now)
    if remaining <= 0:
        _transition(db, agreement, S.EXPIRED, T.SYSTEM, notes="Expired before reminder")
        await db.commit()
        return False

    reminder_number = (agreement.reminders_sent or 0) + 1
    prop = await _get_property(db, agreement.property_id)
    await email_service.send_agreement_reminder(
        agreement.prospect_email,
        agreement.prospect_name,
        prop.name if prop else "your new home",
        agreement_url(agreement.id),
        reminder_number,
        remaining,
    )

    agreement.reminders_sent = reminder_number
    agreement.last_reminder_date = now
    agreement.next_reminder_date = next_reminder_date(
        now, agreement.expiration_date, reminder_number
    )
    await db.commit()
    logger.info("Agreement %s reminder #%d sent", agreement.id, reminder_number)
    return True


async def process_due_reminders(db: AsyncSession, now: datetime | None = None) -> int:
    """Send every reminder that is due. Returns how many were sent."""
    now = now or utcnow()
    result = await db.execute(
        select(Agreement.id).where(
            Agreement.deleted_at.is_(None),
            Agreement.status.in_([s.value for s in SIGNABLE_STATES]),
            or_(
                Agreement.next_reminder_date <= now,
                (Agreement.expiration_date < now) & (Agreement.reminders_sent == 0),
            ),
        )
    )
    sent = 0
    for agreement_id in result.scalars().all():
        try:
            if await send_reminder(db, agreement_id, now=now):
                sent += 1
        except Exception:
            logger.exception("Failed to process reminder for agreement %s", agreement_id)
            await db.rollback()
    return sent


async def expire_overdue(db: AsyncSession, now: datetime | None = None) -> int:
    """Move Sent/Viewed agreements past their expiration date to Expired."""
    now = now or utcnow()
    result = await db.execute(
        select(Agreement).where(
            Agreement.deleted_at.is_(None),
            Agreement.status.in_([s.value for s in SIGNABLE_STATES]),
            Agreement.expiration_date < now,
        )
    )
    agreements = result.scalars().all()
    for agreement in agreements:
        _transition(db, agreement, S.EXPIRED, T.SYSTEM, notes="Signing deadline passed")
    if agreements:
        await db.commit()
    return len(agreements)


# ---------------------------------------------------------------------------
# Prospect actions
# ---------------------------------------------------------------------------


async def mark_viewed(
    db: AsyncSession, agreement_id: str, trigger: AgreementTrigger = T.PROSPECT
) -> Agreement:
    """Sent -> Viewed. Any other status (or an expired agreement) is left alone."""
    agreement = await get_agreement_or_raise(db, agreement_id)
    if agreement.status != S.SENT.value or state_machine.check_deadline(agreement):
        return agreement
    _transition(db, agreement, S.VIEWED, trigger, notes="Agreement opened")
    agreement.viewed_date = utcnow()
    await db.commit()
    return agreement


def _ensure_signable(agreement: Agreement) -> None:
    if state_machine.check_deadline(agreement):
        raise AgreementUnavailableError(agreement.id, "This agreement has expired")
    if S(agreement.status) not in SIGNABLE_STATES:
        raise AgreementUnavailableError(
            agreement.id, f"This agreement is no longer available for signing ({agreement.status})"
        )


async def get_signing_view(db: AsyncSession, agreement_id: str) -> dict:
    """Everything the signing page needs. Marks the agreement as viewed."""
    agreement = await get_agreement_or_raise(db, agreement_id)
    _ensure_signable(agreement)

    template = await get_template(db, agreement.template_id)
    prop = await _get_property(db, agreement.property_id)
    content = template_renderer.render(template.content, agreement.agreement_data or {}) if template else ""

    agreement = await mark_viewed(db, agreement.id)
    return {
        "agreement": agreement,
        "template": template,
        "property": prop,
        "content": content,
    }


async def sign_agreement(
    db: AsyncSession,
    agreement_id: str,
    signature_name: str,
    signer_ip: str | None = None,
    envelope_id: str | None = None,
    signed_document_url: str | None = None,
    trigger: AgreementTrigger = T.PROSPECT,
) -> Agreement:
    agreement = await get_agreement_or_raise(db, agreement_id)
    _ensure_signable(agreement)
    if not signature_name or not signature_name.strip():
        raise ValidationError("Signature name is required")

    now = utcnow()
    _transition(
        db,
        agreement,
        S.SIGNED,
        trigger,
        notes=f"Signed by {signature_name.strip()}",
        metadata={"signer_ip": signer_ip} if signer_ip else None,
    )
    if agreement.viewed_date is None:
        agreement.viewed_date = now
    agreement.signed_date = now
    agreement.signature_name = signature_name.strip()
    agreement.signer_ip = signer_ip
    agreement.next_reminder_date = None
    if envelope_id:
        agreement.envelope_id = envelope_id
    if signed_document_url:
        agreement.signed_document_url = signed_document_url
    await db.commit()
    return agreement


# ---------------------------------------------------------------------------
# Owner / manager actions
# ---------------------------------------------------------------------------


async def complete_agreement(
    db: AsyncSession, agreement_id: str, trigger: AgreementTrigger = T.MANUAL
) -> Agreement:
    agreement = await get_agreement_or_raise(db, agreement_id)
    _transition(db, agreement, S.COMPLETED, trigger, notes="Agreement completed")
    agreement.completed_date = utcnow()
    await db.commit()

    prop = await _get_property(db, agreement.property_id)
    await email_service.send_agreement_completed(
        agreement.prospect_email,
        agreement.prospect_name,
        prop.name if prop else "your new home",
    )
    return agreement


async def cancel_agreement(
    db: AsyncSession, agreement_id: str, reason: str, trigger: AgreementTrigger = T.MANUAL
) -> Agreement:
    agreement = await get_agreement_or_raise(db, agreement_id)
    _transition(db, agreement, S.CANCELLED, trigger, notes=reason)
    agreement.next_reminder_date = None
    await db.commit()
    return agreement


async def handle_signing_event(db: AsyncSession, event: SigningWebhookEvent) -> Agreement:
    """Apply a signing-provider event (viewed / signed / completed)."""
    agreement = None
    if event.agreement_id:
        agreement = await get_agreement(db, event.agreement_id)
    if agreement is None and event.envelope_id:
        result = await db.execute(
            select(Agreement).where(
                Agreement.envelope_id == event.envelope_id,
                Agreement.deleted_at.is_(None),
            )
        )
        agreement = result.scalar_one_or_none()
    if agreement is None:
        raise NotFoundError("Agreement", event.agreement_id or event.envelope_id or "")

    trigger = T.WEBHOOK
    kind = event.event.lower()
    if kind == "viewed":
        return await mark_viewed(db, agreement.id, trigger)
    if kind in ("signed", "completed") and S(agreement.status) in SIGNABLE_STATES:
        agreement = await sign_agreement(
            db,
            agreement.id,
            event.signature_name or agreement.prospect_name,
            signer_ip=event.signer_ip,
            envelope_id=event.envelope_id,
            signed_document_url=event.signed_document_url,
            trigger=trigger,
        )
    if kind == "completed":
        return await complete_agreement(db, agreement.id, trigger)
    if kind in ("signed", "completed"):
        return agreement
    raise ValidationError(f"Unsupported signing event: {event.event}")


# ---------------------------------------------------------------------------
# Tracking
# ---------------------------------------------------------------------------


async def track_agreements(
    db: AsyncSession,
    property_id: str | None = None,
    status: str | None = None,
    search: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> dict:
    """Filtered agreements plus per-status counts and completion rate."""
    query = select(Agreement).where(Agreement.deleted_at.is_(None))
    if property_id:
        query = query.where(Agreement.property_id == property_id)
    if status:
        query = query.where(Agreement.status == status)
    if search:
        pattern = f"%{search.lower()}%"
        query = query.where(
            or_(
                func.lower(Agreement.prospect_name).like(pattern),
                func.lower(Agreement.prospect_email).like(pattern),
            )
        )
    if date_from:
        query = query.where(Agreement.sent_date >= to_naive_utc(date_from))
    if date_to:
        query = query.where(Agreement.sent_date <= to_naive_utc(date_to))

    result = await db.execute(query.order_by(Agreement.sent_date.desc()))
    agreements = list(result.scalars().all())

    summary = {s.value: 0 for s in AgreementStatus}
    for a in agreements:
        summary[a.status] = summary.get(a.status, 0) + 1
    total = len(agreements)
    signed = summary[S.SIGNED.value] + summary[S.COMPLETED.value]

    return {
        "agreements": agreements,
        "summary": {
            "total": total,
            "by_status": summary,
            "completion_rate": round(signed / total * 100, 2) if total else 0,
        },
    }


async def get_status_history(db: AsyncSession, agreement_id: str) -> list[AgreementStatusHistory]:
    await get_agreement_or_raise(db, agreement_id)
    result = await db.execute(
        select(AgreementStatusHistory)
        .where(AgreementStatusHistory.agreement_id == agreement_id)
        .order_by(AgreementStatusHistory.timestamp)
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Tenant onboarding
# ---------------------------------------------------------------------------


def _split_name(full_name: str) -> tuple[str, str]:
    parts = full_name.strip().split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


async def create_tenant_from_agreement(db: AsyncSession, agreement_id: str) -> Tenant:
    """Create (or reuse) the tenant profile for a signed agreement."""
    agreement = await get_agreement_or_raise(db, agreement_id)
    if agreement.status not in (S.SIGNED.value, S.COMPLETED.value):
        raise ValidationError("Agreement must be signed to create a tenant profile")

    tenant = await get_tenant_by_email(db, agreement.prospect_email)
    if tenant is not None:
        logger.info("Tenant already exists for %s, linking agreement %s", tenant.email, agreement.id)
    else:
        data = agreement.agreement_data or {}
        first_name, last_name = _split_name(agreement.prospect_name)
        lease_start = agreement.lease_start_date or agreement.signed_date or utcnow()
        lease_end = agreement.lease_end_date or lease_start + DEFAULT_LEASE_LENGTH
        lease_id = str(uuid.uuid4())

        contacts = []
        if data.get("emergency_contact_name") and data.get("emergency_contact_phone"):
            contacts.append({
                "id": str(uuid.uuid4()),
                "name": data["emergency_contact_name"],
                "relationship": data.get("emergency_contact_relationship") or "Emergency Contact",
                "phone": data["emergency_contact_phone"],
                "email": data.get("emergency_contact_email"),
                "is_primary": True,
            })

        tenant = Tenant(
            email=agreement.prospect_email,
            first_name=first_name,
            last_name=last_name,
            phone=agreement.prospect_phone or "",
            status=TenantStatus.ACTIVE.value,
            property_id=agreement.property_id,
            room_number=agreement.room_number,
            lease_start=lease_start,
            lease_end=lease_end,
            monthly_rent_cents=agreement.monthly_rent_cents,
            deposit_cents=agreement.deposit_cents,
            emergency_contacts=contacts,
            documents=[{
                "id": str(uuid.uuid4()),
                "type": "Lease",
                "filename": "Signed Lease Agreement",
                "url": agreement.signed_document_url or "",
                "upload_date": (agreement.signed_date or utcnow()).isoformat(),
            }],
            lease_history=[{
                "id": lease_id,
                "agreement_id": agreement.id,
                "start_date": lease_start.isoformat(),
                "end_date": lease_end.isoformat(),
                "monthly_rent_cents": agreement.monthly_rent_cents or 0,
                "deposit_cents": agreement.deposit_cents or 0,
                "is_active": True,
            }],
            current_lease_id=lease_id,
        )
        db.add(tenant)
        await db.flush()
        logger.info("Tenant %s created from agreement %s", tenant.id, agreement.id)

    agreement.tenant_id = tenant.id
    agreement.tenant_created = True
    await db.commit()
    return tenant
