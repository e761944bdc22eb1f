"""Rent payment lifecycle: settlement, refunds and tenant reminders."""

import logging
from datetime import date, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coliving_platform.app.config import get_settings
from coliving_platform.domain.enums import (
    CommunicationPriority,
    CommunicationSource,
    CommunicationType,
    PaymentStatus,
    TenantStatus,
)
from coliving_platform.domain.errors import InvalidTransitionError, NotFoundError, ValidationError
from coliving_platform.domain.models import Communication, Payment, Tenant, utcnow
from coliving_platform.domain.schemas import CommunicationCreate, RefundRequest
from coliving_platform.services import (
    communication_service,
    email_service,
    property_service,
    tenant_service,
)

logger = logging.getLogger(__name__)

P = PaymentStatus

PAYMENT_REMINDER_TEMPLATE = "Payment Reminder"
SYSTEM_ACTOR = "system"
LATE_FEE_GRACE_DAYS = 5

# Only unsettled payments can be marked paid
PAYABLE_STATES = frozenset({P.PENDING, P.FAILED})


async def get_payment(db: AsyncSession, payment_id: str) -> Payment | None:
    result = await db.execute(select(Payment).where(Payment.id == payment_id))
    return result.scalar_one_or_none()


async def get_payment_or_raise(db: AsyncSession, payment_id: str) -> Payment:
    payment = await get_payment(db, payment_id)
    if payment is None:
        raise NotFoundError("Payment", payment_id)
    return payment


async def _payment_tenant(db: AsyncSession, payment: Payment) -> Tenant | None:
    if not payment.tenant_id:
        return None
    return await tenant_service.get_tenant(db, payment.tenant_id)


async def _property_name(db: AsyncSession, property_id: str) -> str:
    prop = await property_service.get_property(db, property_id)
    return prop.name if prop else "your home"


def _tenant_name(tenant: Tenant) -> str:
    return f"{tenant.first_name} {tenant.last_name}".strip()


# ---------------------------------------------------------------------------
# Settlement
# ---------------------------------------------------------------------------


async def mark_paid(
    db: AsyncSession,
    payment_id: str,
    method: str | None = None,
    paid_date: datetime | None = None,
) -> Payment:
    """Pending/Failed -> Completed, stamping the paid date and emailing a receipt."""
    payment = await get_payment_or_raise(db, payment_id)
    if payment.status not in PAYABLE_STATES:
        raise InvalidTransitionError(
            payment.status, P.COMPLETED, "Only pending or failed payments can be marked paid"
        )

    paid_at = paid_date or utcnow()
    payment.status = P.COMPLETED.value
    payment.paid_date = paid_at
    # Income is reported on the day it was received
    payment.date = paid_at
    if method:
        payment.method = method
    await db.commit()
    logger.info("Payment %s marked paid", payment.id)

    tenant = await _payment_tenant(db, payment)
    if tenant is not None:
        await email_service.send_payment_confirmation(
            tenant.email,
            _tenant_name(tenant),
            await _property_name(db, payment.property_id),
            payment.amount_cents,
            paid_at,
        )
    return payment


async def bulk_mark_paid(db: AsyncSession, payment_ids: list[str], method: str | None = None) -> dict:
    """Mark each payment paid independently; collect per-id failures."""
    successful: list[str] = []
    failed: list[dict] = []
    for payment_id in dict.fromkeys(payment_ids):
        try:
            await mark_paid(db, payment_id, method=method)
            successful.append(payment_id)
        except (NotFoundError, InvalidTransitionError) as e:
            failed.append({"id": payment_id, "error": str(e)})
    logger.info("Bulk mark paid: %d succeeded, %d failed", len(successful), len(failed))
    return {"successful": successful, "failed": failed}


async def refund_payment(db: AsyncSession, payment_id: str, request: RefundRequest) -> dict:
    """Refund a completed payment in full or in part.

    A full refund moves the payment to Refunded. A partial refund lowers the
    completed amount so income reports stay net of it. Either way a
    Refunded record linked to the original carries the refunded amount.
    """
    original = await get_payment_or_raise(db, payment_id)
    if original.status != P.COMPLETED.value:
        raise InvalidTransitionError(original.status, P.REFUNDED, "Only completed payments can be refunded")

    amount = request.amount_cents or original.amount_cents
    if amount > original.amount_cents:
        raise ValidationError("Refund amount cannot exceed the original payment amount")

    now = utcnow()
    notes = f"Reason: {request.reason}"
    if request.notes:
        notes += f". Notes: {request.notes}"
    refund = Payment(
        property_id=original.property_id,
        tenant_id=original.tenant_id,
        amount_cents=amount,
        type=original.type,
        method=original.method,
        status=P.REFUNDED.value,
        date=now,
        paid_date=now,
        description=f"Refund of payment {original.id}. {notes}",
        refund_of_id=original.id,
    )
    db.add(refund)
    if amount == original.amount_cents:
        original.status = P.REFUNDED.value
    else:
        original.amount_cents -= amount
    await db.commit()
    logger.info("Refunded %d cents of payment %s", amount, original.id)

    tenant = await _payment_tenant(db, original)
    if tenant is not None:
        await email_service.send_refund_confirmation(
            tenant.email,
            _tenant_name(tenant),
            await _property_name(db, original.property_id),
            amount,
            request.reason,
        )
    return {"refund": refund, "original_payment": original}


# ---------------------------------------------------------------------------
# Reminders
# ---------------------------------------------------------------------------


def reminder_kind(
    due_date: datetime,
    today: date,
    days_before: list[int],
    days_after: list[int],
) -> str | None:
    """upcoming / due / overdue when a reminder is scheduled for ``today``, else None."""
    days = (due_date.date() - today).days
    if days > 0:
        return "upcoming" if days in days_before else None
    if -days not in days_after:
        return None
    return "due" if days == 0 else "overdue"


def _reminder_values(payment: Payment, tenant: Tenant, property_name: str) -> dict:
    due = payment.due_date or payment.date
    return {
        "tenant_name": _tenant_name(tenant),
        "property_name": property_name,
        "month_year": due.strftime("%B %Y"),
        "due_date": due.strftime("%B %d, %Y"),
        "amount_due": email_service.format_currency(payment.amount_cents),
        "late_fee_date": (due + timedelta(days=LATE_FEE_GRACE_DAYS)).strftime("%B %d, %Y"),
        "manager_name": get_settings().email_from_name,
    }


async def send_payment_reminder(
    db: AsyncSession,
    payment_id: str,
    created_by: str = SYSTEM_ACTOR,
    now: datetime | None = None,
) -> Communication:
    """Email the tenant a rent reminder and log it as a communication."""
    now = now or utcnow()
    payment = await get_payment_or_raise(db, payment_id)
    if payment.status != P.PENDING.value:
        raise ValidationError("Only pending payments can be reminded")
    tenant = await _payment_tenant(db, payment)
    if tenant is None:
        raise ValidationError("Payment has no tenant to remind")
    if tenant.status == TenantStatus.MOVED_OUT.value:
        raise ValidationError("Tenant has moved out")

    values = _reminder_values(payment, tenant, await _property_name(db, payment.property_id))
    rendered = await communication_service.render_named_template(db, PAYMENT_REMINDER_TEMPLATE, values)
    overdue = (payment.due_date or payment.date).date() < now.date()
    communication = await communication_service.log_communication(
        db,
        CommunicationCreate(
            tenant_id=tenant.id,
            property_id=payment.property_id,
            type=CommunicationType.EMAIL,
            subject=rendered["subject"],
            content=rendered["content"],
            priority=CommunicationPriority.HIGH if overdue else CommunicationPriority.MEDIUM,
            tags=["payment", "reminder"],
            source=CommunicationSource.PAYMENT_REMINDER,
            payment_id=payment.id,
            send_email=True,
        ),
        created_by=created_by,
    )

    payment.reminders_sent = (payment.reminders_sent or 0) + 1
    payment.last_reminder_date = now
    await db.commit()
    return communication


async def bulk_send_reminders(db: AsyncSession, payment_ids: list[str], created_by: str) -> dict:
    successful: list[str] = []
    failed: list[dict] = []
    for payment_id in dict.fromkeys(payment_ids):
        try:
            await send_payment_reminder(db, payment_id, created_by=created_by)
            successful.append(payment_id)
        except (NotFoundError, ValidationError) as e:
            failed.append({"id": payment_id, "error": str(e)})
    return {"successful": successful, "failed": failed}


async def process_payment_reminders(db: AsyncSession, now: datetime | None = None) -> int:
    """Send the scheduled rent reminders for today. Returns how many were sent.

    A payment gets at most one reminder a day and no more than the
    configured maximum overall.
    """
    settings = get_settings()
    now = now or utcnow()
    today = now.date()
    result = await db.execute(
        select(Payment).where(
            Payment.status == P.PENDING.value,
            Payment.tenant_id.is_not(None),
            Payment.reminders_sent < settings.payment_reminder_max,
        )
    )
    due: list[tuple[str, str]] = []
    for payment in result.scalars().all():
        if payment.last_reminder_date and payment.last_reminder_date.date() == today:
            continue
        kind = reminder_kind(
            payment.due_date or payment.date,
            today,
            settings.payment_reminder_days_before,
            settings.payment_reminder_days_after,
        )
        if kind is not None:
            due.append((payment.id, kind))

    sent = 0
    for payment_id, kind in due:
        try:
            await send_payment_reminder(db, payment_id, now=now)
            sent += 1
            logger.info("Sent %s rent reminder for payment %s", kind, payment_id)
        except ValidationError as e:
            logger.info("Skipped rent reminder for payment %s: %s", payment_id, e)
        except Exception:
            logger.exception("Failed to send rent reminder for payment %s", payment_id)
            await db.rollback()
    return sent
