"""CSV rendering of financial, profit-and-loss, cash-flow and tax reports."""

import csv
import io
from datetime import datetime

from coliving_platform.domain.errors import ValidationError
from coliving_platform.domain.models import utcnow

REPORT_NAMES = {
    "financial": "Financial-Report",
    "profit-loss": "Profit-Loss-Statement",
    "cash-flow": "Cash-Flow-Analysis",
    "tax-summary": "Tax-Summary",
}


def _dollars(cents: int | float | None) -> str:
    return f"{(cents or 0) / 100:.2f}"


def _period(period: dict) -> list[str]:
    return ["Period", f"{period['start']:%Y-%m-%d} to {period['end']:%Y-%m-%d}"]


def _flow_rows(rows: list[dict]) -> list[list]:
    return [["Month", "Income", "Expenses", "Net Flow", "Cumulative"]] + [
        [
            r["date"],
            _dollars(r["income_cents"]),
            _dollars(r["expenses_cents"]),
            _dollars(r["net_flow_cents"]),
            _dollars(r["cumulative_flow_cents"]),
        ]
        for r in rows
    ]


def _financial_rows(data: dict) -> list[list]:
    income, expenses = data["income"], data["expenses"]
    rows = [
        ["Financial Report Summary"],
        _period(data["period"]),
        [],
        ["Income Summary"],
        ["Total Revenue", _dollars(income["total_revenue_cents"])],
        ["Rent Revenue", _dollars(income["rent_revenue_cents"])],
        ["Other Revenue", _dollars(income["other_revenue_cents"])],
        [],
        ["Expense Summary"],
        ["Total Expenses", _dollars(expenses["total_expenses_cents"])],
        ["Operating Expenses", _dollars(expenses["operating_expenses_cents"])],
        ["Reimbursements", _dollars(expenses["reimbursements_cents"])],
        [],
        ["Net Income", _dollars(data["net_income_cents"])],
        ["Profit Margin (%)", data["profit_margin"]],
        [],
        ["Payment Method Breakdown"],
        ["Method", "Amount", "Count", "Percentage"],
    ]
    rows += [
        [m["method"], _dollars(m["amount_cents"]), m["count"], m["percentage"]]
        for m in income["payment_method_breakdown"]
    ]
    rows += [[], ["Expense Category Breakdown"], ["Category", "Amount", "Count", "Percentage"]]
    rows += [
        [c["category"], _dollars(c["amount_cents"]), c["count"], c["percentage"]]
        for c in expenses["category_breakdown"]
    ]
    rows += [[], ["Monthly Cash Flow"]] + _flow_rows(data["cash_flow"])
    return rows


def _profit_loss_rows(data: dict) -> list[list]:
    revenue, expenses, margins = data["revenue"], data["expenses"], data["margins"]
    rows = [
        ["Profit & Loss Statement"],
        _period(data["period"]),
        [],
        ["Revenue"],
        ["Rent Income", _dollars(revenue["rent_income_cents"])],
        ["Other Income", _dollars(revenue["other_income_cents"])],
        ["Total Revenue", _dollars(revenue["total_revenue_cents"])],
        [],
        ["Operating Expenses"],
    ]
    rows += [[c["category"], _dollars(c["amount_cents"])] for c in expenses["operating_expenses"]]
    rows += [
        ["Total Operating Expenses", _dollars(expenses["total_operating_expenses_cents"])],
        [],
        ["Other Expenses"],
        ["Depreciation", _dollars(expenses["depreciation_cents"])],
        ["Total Expenses", _dollars(expenses["total_expenses_cents"])],
        [],
        ["Profit Summary"],
        ["Gross Profit", _dollars(data["gross_profit_cents"])],
        ["Operating Income", _dollars(data["operating_income_cents"])],
        ["Net Income", _dollars(data["net_income_cents"])],
        [],
        ["Margins"],
        ["Gross Margin (%)", margins["gross"]],
        ["Operating Margin (%)", margins["operating"]],
        ["Net Margin (%)", margins["net"]],
    ]
    return rows


def _cash_flow_rows(data: dict) -> list[list]:
    summary, trends = data["summary"], data["trends"]
    rows = [
        ["Cash Flow Analysis"],
        _period(data["period"]),
        [],
        ["Summary"],
        ["Total Inflow", _dollars(summary["total_inflow_cents"])],
        ["Total Outflow", _dollars(summary["total_outflow_cents"])],
        ["Net Cash Flow", _dollars(summary["net_cash_flow_cents"])],
        ["Average Monthly Flow", _dollars(summary["average_monthly_flow_cents"])],
        [],
        ["Trends"],
        ["Inflow Trend", trends["inflow_trend"]],
        ["Outflow Trend", trends["outflow_trend"]],
        ["Net Flow Trend", trends["net_flow_trend"]],
        [],
        ["Monthly Data"],
    ]
    rows += _flow_rows(data["monthly_data"])
    if data.get("forecast"):
        rows += [[], ["Forecast (Projected)"]] + _flow_rows(data["forecast"])
    return rows


def _tax_rows(data: dict) -> list[list]:
    income, deductions = data["income"], data["deductions"]
    rows = [
        ["Tax Summary"],
        ["Tax Year", data["tax_year"]],
        [],
        ["Income Summary"],
        ["Total Rental Income", _dollars(income["total_rental_income_cents"])],
        ["Other Income", _dollars(income["other_income_cents"])],
        ["Total Income", _dollars(income["total_income_cents"])],
        [],
        ["Deductions"],
        ["Category", "Schedule E Line", "Amount", "Count", "Deductible"],
    ]
    rows += [
        [
            d["category"],
            d["schedule_e_line"],
            _dollars(d["amount_cents"]),
            d["count"],
            "Yes" if d["deductible"] else "No",
        ]
        for d in deductions["operating_expenses"]
    ]
    rows += [
        ["Depreciation", "Depreciation expense", _dollars(deductions["depreciation_cents"]), 1, "Yes"],
        ["Total Deductions", "", _dollars(deductions["total_deductions_cents"]), "", ""],
        [],
        ["Tax Calculation"],
        ["Net Rental Income", _dollars(data["net_rental_income_cents"])],
        ["Taxable Income", _dollars(data["taxable_income_cents"])],
        [],
        ["Recommendations"],
        ["Priority", "Type", "Title", "Potential Savings"],
    ]
    rows += [
        [r["priority"], r["type"], r["title"], _dollars(r["potential_savings_cents"])]
        for r in data["recommendations"]
    ]
    return rows


ROW_BUILDERS = {
    "financial": _financial_rows,
    "profit-loss": _profit_loss_rows,
    "cash-flow": _cash_flow_rows,
    "tax-summary": _tax_rows,
}


def export_report_csv(report: str, data: dict) -> str:
    """Render a generated report as quoted CSV sections."""
    builder = ROW_BUILDERS.get(report)
    if builder is None:
        raise ValidationError(f"Unsupported report type: {report}")
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerows(builder(data))
    return buffer.getvalue().rstrip("\n")


def export_file_name(report: str, file_format: str, start: datetime, end: datetime) -> str:
    name = REPORT_NAMES.get(report, "Report")
    stamp = utcnow().strftime("%Y%m%d-%H%M%S")
    return f"{name}_{start:%Y-%m-%d}_{end:%Y-%m-%d}_{stamp}.{file_format}"
