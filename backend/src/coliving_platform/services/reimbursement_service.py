"""Reimbursement workflow: request, approve/deny, pay, report.

Status changes go through ReimbursementStateMachine and always append a
ReimbursementStatusChange row. Email notifications are best-effort.
"""

import logging
from collections import defaultdict
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coliving_platform.domain.enums import ApprovalAction, ReimbursementStatus
from coliving_platform.domain.errors import InvalidTransitionError, NotFoundError, ValidationError
from coliving_platform.domain.models import (
    ReimbursementRequest,
    ReimbursementStatusChange,
    User,
    to_naive_utc,
    utcnow,
)
from coliving_platform.domain.schemas import ReimbursementCreate
from coliving_platform.services import email_service
from coliving_platform.services.reimbursement_state_machine import ReimbursementStateMachine

logger = logging.getLogger(__name__)

state_machine = ReimbursementStateMachine()

UPDATABLE_FIELDS = {"amount_cents", "currency", "payment_method", "payment_reference", "comments"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _fetch(db: AsyncSession, request_id: str) -> ReimbursementRequest | None:
    result = await db.execute(
        select(ReimbursementRequest)
        .where(
            ReimbursementRequest.id == request_id,
            ReimbursementRequest.deleted_at.is_(None),
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _get_or_raise(db: AsyncSession, request_id: str) -> ReimbursementRequest:
    request = await _fetch(db, request_id)
    if request is None:
        raise NotFoundError("Reimbursement request", request_id)
    return request


def _add_history(
    request: ReimbursementRequest,
    to_status: ReimbursementStatus,
    changed_by: str,
    comment: str | None = None,
    reason: str | None = None,
    from_status: str | None = None,
    changed_at: datetime | None = None,
) -> None:
    request.status_history.append(
        ReimbursementStatusChange(
            from_status=from_status,
            to_status=to_status.value,
            changed_by=changed_by,
            changed_at=changed_at or utcnow(),
            comment=comment,
            reason=reason,
        )
    )


async def _notify(
    db: AsyncSession,
    request: ReimbursementRequest,
    event: str,
    comment: str | None = None,
) -> bool:
    """Email the requestor about a status change. Never raises."""
    try:
        result = await db.execute(select(User).where(User.id == request.requestor_id))
        requestor = result.scalar_one_or_none()
        if requestor is None:
            logger.info("No user for requestor %s, skipping %s notification", request.requestor_id, event)
            return False
        return await email_service.send_reimbursement_notification(
            requestor.email,
            event,
            request.amount_cents,
            request.id,
            comment=comment,
            payment_method=request.payment_method,
        )
    except Exception:
        logger.exception("Failed to send %s notification for reimbursement %s", event, request.id)
        return False


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


async def create_request(
    db: AsyncSession, data: ReimbursementCreate, requestor_id: str
) -> ReimbursementRequest:
    """Create a request in Requested status with its initial history entry."""
    now = utcnow()
    request = ReimbursementRequest(
        expense_id=data.expense_id,
        requestor_id=data.requestor_id or requestor_id,
        property_id=data.property_id,
        amount_cents=data.amount_cents,
        currency=data.currency,
        status=ReimbursementStatus.REQUESTED.value,
        request_date=now,
        comments=[data.comment] if data.comment else [],
    )
    _add_history(
        request,
        ReimbursementStatus.REQUESTED,
        changed_by=request.requestor_id,
        comment="Reimbursement request created",
        changed_at=now,
    )
    db.add(request)
    await db.commit()
    logger.info("Reimbursement %s requested: %d cents", request.id, request.amount_cents)

    await _notify(db, request, "requested")
    return request


async def get_request(db: AsyncSession, request_id: str) -> ReimbursementRequest | None:
    return await _fetch(db, request_id)


async def list_requests(
    db: AsyncSession,
    property_id: str | None = None,
    requestor_id: str | None = None,
    status: list[str] | str | None = None,
    approved_by: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    min_amount_cents: int | None = None,
    max_amount_cents: int | None = None,
    payment_method: str | None = None,
) -> list[ReimbursementRequest]:
    """List non-deleted requests matching every given filter, newest first."""
    query = select(ReimbursementRequest).where(ReimbursementRequest.deleted_at.is_(None))
    if property_id:
        query = query.where(ReimbursementRequest.property_id == property_id)
    if requestor_id:
        query = query.where(ReimbursementRequest.requestor_id == requestor_id)
    if status:
        statuses = [status] if isinstance(status, str) else list(status)
        query = query.where(ReimbursementRequest.status.in_([getattr(s, "value", s) for s in statuses]))
    if approved_by:
        query = query.where(ReimbursementRequest.approved_by == approved_by)
    if date_from:
        query = query.where(ReimbursementRequest.request_date >= to_naive_utc(date_from))
    if date_to:
        query = query.where(ReimbursementRequest.request_date <= to_naive_utc(date_to))
    if min_amount_cents is not None:
        query = query.where(ReimbursementRequest.amount_cents >= min_amount_cents)
    if max_amount_cents is not None:
        query = query.where(ReimbursementRequest.amount_cents <= max_amount_cents)
    if payment_method:
        query = query.where(ReimbursementRequest.payment_method == payment_method)

    result = await db.execute(query.order_by(ReimbursementRequest.request_date.desc()))
    return list(result.scalars().all())


async def get_pending(db: AsyncSession, property_id: str | None = None) -> list[ReimbursementRequest]:
    """Requests awaiting an approval decision."""
    return await list_requests(db, property_id=property_id, status=ReimbursementStatus.REQUESTED.value)


async def get_outstanding(db: AsyncSession, property_id: str | None = None) -> list[ReimbursementRequest]:
    """Requests not yet paid or denied, oldest first."""
    requests = await list_requests(
        db,
        property_id=property_id,
        status=[ReimbursementStatus.REQUESTED.value, ReimbursementStatus.APPROVED.value],
    )
    return sorted(requests, key=lambda r: r.request_date)


async def update_request(db: AsyncSession, request_id: str, fields: dict) -> ReimbursementRequest:
    """Update editable fields. Status is only changed through the workflow."""
    request = await _get_or_raise(db, request_id)
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError("Fields cannot be updated", sorted(unknown))
    for key, value in fields.items():
        if key == "comments":
            value = list(value or [])
        setattr(request, key, value)
    await db.commit()
    return request


async def delete_request(db: AsyncSession, request_id: str) -> None:
    request = await _get_or_raise(db, request_id)
    request.deleted_at = utcnow()
    await db.commit()
    logger.info("Reimbursement %s soft-deleted", request_id)


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------


async def process_approval(
    db: AsyncSession,
    request_id: str,
    action: ApprovalAction | str,
    comment: str,
    approved_by: str,
    role: str | None = None,
) -> ReimbursementRequest:
    """Approve or deny a Requested reimbursement."""
    action = ApprovalAction(action)
    if not comment or not comment.strip():
        raise ValidationError("A comment is required to approve or deny a reimbursement")

    request = await _get_or_raise(db, request_id)
    target = (
        ReimbursementStatus.APPROVED
        if action == ApprovalAction.APPROVE
        else ReimbursementStatus.DENIED
    )
    current = request.status
    state_machine.validate_transition(current, target, role)

    now = utcnow()
    request.status = target.value
    request.approved_by = approved_by
    request.approved_date = now
    request.comments = [*(request.comments or []), comment]
    if target == ReimbursementStatus.DENIED:
        request.denied_reason = comment
    _add_history(
        request,
        target,
        changed_by=approved_by,
        comment=comment,
        reason=comment if target == ReimbursementStatus.DENIED else None,
        from_status=current,
        changed_at=now,
    )
    await db.commit()
    logger.info("Reimbursement %s %s by %s", request.id, target.value, approved_by)

    await _notify(db, request, "approved" if target == ReimbursementStatus.APPROVED else "denied", comment)
    return request


async def process_batch_approval(
    db: AsyncSession,
    request_ids: list[str],
    action: ApprovalAction | str,
    comment: str,
    approved_by: str,
    role: str | None = None,
) -> list[ReimbursementRequest]:
    """Apply one decision to many requests. Failures are logged and skipped."""
    if not comment or not comment.strip():
        raise ValidationError("A comment is required to approve or deny a reimbursement")

    processed: list[ReimbursementRequest] = []
    for request_id in request_ids:
        try:
            processed.append(
                await process_approval(db, request_id, action, comment, approved_by, role)
            )
        except (NotFoundError, InvalidTransitionError, ValidationError) as e:
            logger.warning("Batch approval skipped %s: %s", request_id, e)
    return processed


async def record_payment(
    db: AsyncSession,
    request_id: str,
    payment_method: str,
    paid_by: str,
    payment_reference: str | None = None,
    paid_date: datetime | None = None,
    notes: str | None = None,
    role: str | None = None,
) -> ReimbursementRequest:
    """Mark an Approved reimbursement as Paid."""
    request = await _get_or_raise(db, request_id)
    current = request.status
    state_machine.validate_transition(current, ReimbursementStatus.PAID, role)

    paid_at = to_naive_utc(paid_date) or utcnow()
    request.status = ReimbursementStatus.PAID.value
    request.paid_date = paid_at
    request.payment_method = getattr(payment_method, "value", payment_method)
    request.payment_reference = payment_reference
    if notes:
        request.comments = [*(request.comments or []), notes]
    _add_history(
        request,
        ReimbursementStatus.PAID,
        changed_by=paid_by,
        comment=notes or "Payment recorded",
        from_status=current,
    )
    await db.commit()
    logger.info("Reimbursement %s paid via %s", request.id, request.payment_method)

    await _notify(db, request, "paid", notes)
    return request


def get_allowed_transitions(request: ReimbursementRequest, role: str | None = None) -> list[str]:
    return [s.value for s in state_machine.get_allowed_transitions(request.status, role)]


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------


async def get_statistics(
    db: AsyncSession,
    property_id: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> dict:
    """Counts and totals by status and by request month (YYYY-MM)."""
    requests = await list_requests(db, property_id=property_id, date_from=date_from, date_to=date_to)

    by_status: dict[str, dict] = {
        s.value: {"count": 0, "amount_cents": 0} for s in ReimbursementStatus
    }
    by_month: dict[str, dict] = defaultdict(lambda: {"count": 0, "amount_cents": 0})
    processing_days: list[float] = []

    for r in requests:
        bucket = by_status.setdefault(r.status, {"count": 0, "amount_cents": 0})
        bucket["count"] += 1
        bucket["amount_cents"] += r.amount_cents

        month = by_month[r.request_date.strftime("%Y-%m")]
        month["count"] += 1
        month["amount_cents"] += r.amount_cents

        if r.paid_date:
            processing_days.append((r.paid_date - r.request_date).total_seconds() / 86400)

    return {
        "total_count": len(requests),
        "total_amount_cents": sum(r.amount_cents for r in requests),
        "paid_amount_cents": by_status[ReimbursementStatus.PAID.value]["amount_cents"],
        "average_processing_days": (
            round(sum(processing_days) / len(processing_days), 1) if processing_days else 0
        ),
        "by_status": by_status,
        "by_month": dict(sorted(by_month.items())),
    }
