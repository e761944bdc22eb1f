"""Reporting routes: financial, P&L, cash flow, tax summary and exports."""

import logging
from datetime import date, datetime

from fastapi import APIRouter, Depends, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from coliving_platform.app.routes.auth import require_staff
from coliving_platform.domain.enums import PeriodGrouping, ReportType
from coliving_platform.domain.errors import ValidationError
from coliving_platform.domain.models import User
from coliving_platform.infra.database import get_db
from coliving_platform.services import (
    financial_reports,
    property_service,
    reimbursement_service,
    report_exports,
    tax_summary,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reports", tags=["reports"])


def _range(date_from: date, date_to: date) -> tuple[datetime, datetime]:
    start = financial_reports.as_period_start(date_from)
    end = financial_reports.as_period_end(date_to)
    if start > end:
        raise ValidationError("date_from must be on or before date_to")
    return start, end


def _tax_year_range(tax_year: int) -> tuple[datetime, datetime]:
    return _range(date(tax_year, 1, 1), date(tax_year, 12, 31))


async def _financial(db, property_id, start, end, report_type, include_comparison) -> dict:
    load_from = financial_reports.previous_period(start, end)[0] if include_comparison else start
    payments, expenses, _ = await property_service.load_report_inputs(db, property_id, load_from, end)
    return financial_reports.generate_financial_report(
        payments, expenses, start, end, report_type, include_comparison
    )


async def _profit_loss(db, property_id, start, end, group_by) -> dict:
    payments, expenses, properties = await property_service.load_report_inputs(
        db, property_id, start, end
    )
    return financial_reports.generate_profit_loss(
        payments, expenses, properties, start, end, group_by
    )


async def _cash_flow(db, property_id, start, end, include_forecast) -> dict:
    payments, expenses, _ = await property_service.load_report_inputs(db, property_id, start, end)
    return financial_reports.generate_cash_flow_analysis(
        payments, expenses, start, end, include_forecast
    )


async def _tax(db, property_id, tax_year, include_receipts) -> dict:
    start, end = _tax_year_range(tax_year)
    payments, expenses, properties = await property_service.load_report_inputs(
        db, property_id, start, end
    )
    return tax_summary.generate_tax_summary(
        payments, expenses, properties, tax_year, include_receipts
    )


@router.get("/financial")
async def financial_report(
    date_from: date = Query(...),
    date_to: date = Query(...),
    property_id: str | None = Query(None),
    report_type: ReportType = Query(ReportType.MONTHLY),
    include_comparison: bool = Query(False),
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    start, end = _range(date_from, date_to)
    return await _financial(db, property_id, start, end, report_type.value, include_comparison)


@router.get("/profit-loss")
async def profit_loss(
    date_from: date = Query(...),
    date_to: date = Query(...),
    property_id: str | None = Query(None),
    group_by: PeriodGrouping = Query(PeriodGrouping.MONTH),
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    start, end = _range(date_from, date_to)
    return await _profit_loss(db, property_id, start, end, group_by.value)


@router.get("/cash-flow")
async def cash_flow(
    date_from: date = Query(...),
    date_to: date = Query(...),
    property_id: str | None = Query(None),
    include_forecast: bool = Query(False),
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    start, end = _range(date_from, date_to)
    return await _cash_flow(db, property_id, start, end, include_forecast)


@router.get("/tax-summary")
async def tax_summary_report(
    tax_year: int = Query(..., ge=1900, le=2100),
    property_id: str | None = Query(None),
    include_receipts: bool = Query(True),
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await _tax(db, property_id, tax_year, include_receipts)


@router.get("/reimbursements")
async def reimbursement_report(
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    property_id: str | None = Query(None),
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    start = financial_reports.as_period_start(date_from) if date_from else None
    end = financial_reports.as_period_end(date_to) if date_to else None
    return await reimbursement_service.get_statistics(db, property_id, start, end)


@router.get("/export")
async def export_report(
    report: str = Query(..., pattern="^(financial|profit-loss|cash-flow|tax-summary)$"),
    format: str = Query("csv", pattern="^(csv|json)$"),
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    tax_year: int | None = Query(None, ge=1900, le=2100),
    property_id: str | None = Query(None),
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Download a report as CSV or JSON."""
    if report == "tax-summary":
        if tax_year is None:
            raise ValidationError("tax_year is required for the tax summary export")
        start, end = _tax_year_range(tax_year)
        data = await _tax(db, property_id, tax_year, True)
    else:
        if date_from is None or date_to is None:
            raise ValidationError("date_from and date_to are required")
        start, end = _range(date_from, date_to)
        if report == "financial":
            data = await _financial(db, property_id, start, end, ReportType.MONTHLY.value, False)
        elif report == "profit-loss":
            data = await _profit_loss(db, property_id, start, end, PeriodGrouping.MONTH.value)
        else:
            data = await _cash_flow(db, property_id, start, end, False)

    filename = report_exports.export_file_name(report, format, start, end)
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    logger.info("Exporting %s report as %s for %s", report, format, property_id or "all properties")
    if format == "json":
        return JSONResponse(content=jsonable_encoder(data), headers=headers)
    return Response(
        content=report_exports.export_report_csv(report, data),
        media_type="text/csv",
        headers=headers,
    )
