"""Property, payment and expense routes, including the rent payment lifecycle."""

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from coliving_platform.app.routes.auth import get_current_user_dep, require_staff
from coliving_platform.domain.models import User, to_naive_utc
from coliving_platform.domain.schemas import (
    BulkPaymentRequest,
    BulkPaymentResult,
    CommunicationResponse,
    ExpenseCreate,
    ExpenseResponse,
    MarkPaidRequest,
    PaymentCreate,
    PaymentResponse,
    PropertyCreate,
    PropertyResponse,
    RefundRequest,
    RefundResponse,
)
from coliving_platform.infra.database import get_db
from coliving_platform.services import payment_service, property_service

router = APIRouter(prefix="/api/properties", tags=["properties"])
payments_router = APIRouter(prefix="/api/payments", tags=["payments"])
expenses_router = APIRouter(prefix="/api/expenses", tags=["expenses"])


@router.get("", response_model=list[PropertyResponse])
async def list_properties(
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    return await property_service.list_properties(db)


@router.post("", response_model=PropertyResponse, status_code=201)
async def create_property(
    data: PropertyCreate,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await property_service.create_property(db, data, owner_id=user.id)


@router.get("/{property_id}", response_model=PropertyResponse)
async def get_property(
    property_id: str,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    return await property_service.get_property_or_raise(db, property_id)


@payments_router.get("", response_model=list[PaymentResponse])
async def list_payments(
    property_id: str | None = Query(None),
    date_from: datetime | None = Query(None),
    date_to: datetime | None = Query(None),
    status: str | None = Query(None),
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await property_service.list_payments(
        db, property_id, to_naive_utc(date_from), to_naive_utc(date_to), status
    )


@payments_router.post("", response_model=PaymentResponse, status_code=201)
async def create_payment(
    data: PaymentCreate,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await property_service.record_payment(db, data)


# Bulk routes are declared before /{payment_id} so they are matched first.


@payments_router.post("/bulk-mark-paid", response_model=BulkPaymentResult)
async def bulk_mark_paid(
    data: BulkPaymentRequest,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await payment_service.bulk_mark_paid(db, data.payment_ids)


@payments_router.post("/bulk-remind", response_model=BulkPaymentResult)
async def bulk_remind(
    data: BulkPaymentRequest,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await payment_service.bulk_send_reminders(db, data.payment_ids, created_by=user.id)


@payments_router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(
    payment_id: str,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await payment_service.get_payment_or_raise(db, payment_id)


@payments_router.post("/{payment_id}/mark-paid", response_model=PaymentResponse)
async def mark_paid(
    payment_id: str,
    data: MarkPaidRequest,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await payment_service.mark_paid(db, payment_id, method=data.method, paid_date=data.paid_date)


@payments_router.post("/{payment_id}/remind", response_model=CommunicationResponse, status_code=201)
async def send_reminder(
    payment_id: str,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await payment_service.send_payment_reminder(db, payment_id, created_by=user.id)


@payments_router.post("/{payment_id}/refund", response_model=RefundResponse, status_code=201)
async def refund_payment(
    payment_id: str,
    data: RefundRequest,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    result = await payment_service.refund_payment(db, payment_id, data)
    return RefundResponse(
        refund=PaymentResponse.model_validate(result["refund"]),
        original_payment=PaymentResponse.model_validate(result["original_payment"]),
    )


@expenses_router.get("", response_model=list[ExpenseResponse])
async def list_expenses(
    property_id: str | None = Query(None),
    date_from: datetime | None = Query(None),
    date_to: datetime | None = Query(None),
    category: str | None = Query(None),
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    return await property_service.list_expenses(
        db, property_id, to_naive_utc(date_from), to_naive_utc(date_to), category
    )


@expenses_router.post("", response_model=ExpenseResponse, status_code=201)
async def create_expense(
    data: ExpenseCreate,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    return await property_service.record_expense(db, data, created_by=user.id)
