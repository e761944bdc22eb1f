"""Reimbursement routes: request, approve, pay, report and export."""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from coliving_platform.app.routes.auth import get_current_user_dep, require_staff
from coliving_platform.domain.models import User, utcnow
from coliving_platform.domain.schemas import (
    ApprovalRequest,
    BatchApprovalRequest,
    PaymentRecordRequest,
    ReimbursementCreate,
    ReimbursementResponse,
    ReimbursementUpdate,
)
from coliving_platform.infra.database import get_db
from coliving_platform.services import reimbursement_export, reimbursement_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reimbursements", tags=["reimbursements"])


def _serialize(requests) -> list[dict]:
    return [ReimbursementResponse.model_validate(r).model_dump(mode="json") for r in requests]


@router.get("")
async def list_reimbursements(
    property_id: str | None = Query(None),
    requestor_id: str | None = Query(None),
    status: list[str] | None = Query(None),
    approved_by: str | None = Query(None),
    date_from: datetime | None = Query(None),
    date_to: datetime | None = Query(None),
    min_amount_cents: int | None = Query(None, ge=0),
    max_amount_cents: int | None = Query(None, ge=0),
    payment_method: str | None = Query(None),
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    requests = await reimbursement_service.list_requests(
        db,
        property_id=property_id,
        requestor_id=requestor_id,
        status=status,
        approved_by=approved_by,
        date_from=date_from,
        date_to=date_to,
        min_amount_cents=min_amount_cents,
        max_amount_cents=max_amount_cents,
        payment_method=payment_method,
    )
    return {"data": _serialize(requests), "count": len(requests)}


@router.post("", response_model=ReimbursementResponse, status_code=201)
async def create_reimbursement(
    data: ReimbursementCreate,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    return await reimbursement_service.create_request(db, data, requestor_id=user.id)


@router.get("/pending", response_model=list[ReimbursementResponse])
async def pending_reimbursements(
    property_id: str | None = Query(None),
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await reimbursement_service.get_pending(db, property_id)


@router.get("/outstanding", response_model=list[ReimbursementResponse])
async def outstanding_reimbursements(
    property_id: str | None = Query(None),
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await reimbursement_service.get_outstanding(db, property_id)


@router.get("/statistics")
async def reimbursement_statistics(
    property_id: str | None = Query(None),
    date_from: datetime | None = Query(None),
    date_to: datetime | None = Query(None),
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await reimbursement_service.get_statistics(db, property_id, date_from, date_to)


@router.get("/export")
async def export_reimbursements(
    format: str = Query("csv", pattern="^(csv|json)$"),
    property_id: str | None = Query(None),
    status: list[str] | None = Query(None),
    date_from: datetime | None = Query(None),
    date_to: datetime | None = Query(None),
    include_comments: bool = Query(False),
    include_history: bool = Query(False),
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    requests = await reimbursement_service.list_requests(
        db, property_id=property_id, status=status, date_from=date_from, date_to=date_to
    )
    if format == "json":
        return reimbursement_export.export_json(requests, include_history)

    content = reimbursement_export.export_csv(requests, include_comments, include_history)
    filename = f"reimbursements_{utcnow():%Y-%m-%d}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/batch-approve", response_model=list[ReimbursementResponse])
async def batch_approve(
    data: BatchApprovalRequest,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await reimbursement_service.process_batch_approval(
        db, data.request_ids, data.action, data.comment, approved_by=user.id, role=user.role
    )


@router.get("/{request_id}", response_model=ReimbursementResponse)
async def get_reimbursement(
    request_id: str,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    request = await reimbursement_service.get_request(db, request_id)
    if request is None:
        raise HTTPException(status_code=404, detail="Reimbursement request not found")
    return request


@router.patch("/{request_id}", response_model=ReimbursementResponse)
async def update_reimbursement(
    request_id: str,
    data: ReimbursementUpdate,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    return await reimbursement_service.update_request(
        db, request_id, data.model_dump(exclude_unset=True)
    )


@router.delete("/{request_id}", status_code=204)
async def delete_reimbursement(
    request_id: str,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    await reimbursement_service.delete_request(db, request_id)
    return Response(status_code=204)


@router.post("/{request_id}/approve", response_model=ReimbursementResponse)
async def approve_reimbursement(
    request_id: str,
    data: ApprovalRequest,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await reimbursement_service.process_approval(
        db, request_id, data.action, data.comment, approved_by=user.id, role=user.role
    )


@router.post("/{request_id}/payment", response_model=ReimbursementResponse)
async def record_reimbursement_payment(
    request_id: str,
    data: PaymentRecordRequest,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await reimbursement_service.record_payment(
        db,
        request_id,
        payment_method=data.payment_method,
        paid_by=user.id,
        payment_reference=data.payment_reference,
        paid_date=data.paid_date,
        notes=data.notes,
        role=user.role,
    )


@router.get("/{request_id}/allowed-transitions")
async def allowed_transitions(
    request_id: str,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    request = await reimbursement_service.get_request(db, request_id)
    if request is None:
        raise HTTPException(status_code=404, detail="Reimbursement request not found")
    return {
        "current_status": request.status,
        "allowed_transitions": reimbursement_service.get_allowed_transitions(request, user.role),
    }
