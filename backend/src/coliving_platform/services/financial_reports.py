"""Financial reporting over payments and expenses.

All functions here are pure: callers load Payment, Expense and Property rows
and pass them in. Money is integer cents, percentages are floats rounded to
two places. A record belongs to a period when its date falls within
[start, end]; only completed payments count as revenue.
"""

import logging
from collections import defaultdict
from datetime import date, datetime, time, timedelta

from coliving_platform.domain.enums import PaymentStatus, PaymentType, PeriodGrouping, ReportType
from coliving_platform.domain.models import Expense, Payment, Property

logger = logging.getLogger(__name__)

DEPRECIATION_YEARS = 27.5
LAND_VALUE_SHARE = 0.20
TREND_BAND = 0.05
TREND_WINDOW_MONTHS = 3
FORECAST_MONTHS = 6
FORECAST_HISTORY_MONTHS = 6


# ---------------------------------------------------------------------------
# Period helpers
# ---------------------------------------------------------------------------


def as_period_start(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def as_period_end(value: date | datetime) -> datetime:
    """Dates are inclusive: a bare date ends at the last microsecond of that day."""
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.max)


def previous_period(start: datetime, end: datetime) -> tuple[datetime, datetime]:
    """Period of the same number of days ending the day before start."""
    length = end.date() - start.date()
    prev_end = datetime.combine(start.date() - timedelta(days=1), time.max)
    prev_start = datetime.combine(prev_end.date() - length, time.min)
    return prev_start, prev_end


def _in_range(record, start: datetime, end: datetime) -> bool:
    return record.date is not None and start <= record.date <= end


def _month_key(value: datetime) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def _quarter_key(value: datetime) -> str:
    return f"{value.year:04d}-Q{(value.month - 1) // 3 + 1}"


def _year_key(value: datetime) -> str:
    return f"{value.year:04d}"


PERIOD_KEYS = {
    PeriodGrouping.MONTH: _month_key,
    PeriodGrouping.QUARTER: _quarter_key,
    PeriodGrouping.YEAR: _year_key,
}


def iter_months(start: datetime, end: datetime):
    """First day of every month from start's month to end's month inclusive."""
    current = datetime(start.year, start.month, 1)
    while current <= end:
        yield current
        if current.month == 12:
            current = datetime(current.year + 1, 1, 1)
        else:
            current = datetime(current.year, current.month + 1, 1)


def _period_keys(start: datetime, end: datetime, group_by: PeriodGrouping) -> list[str]:
    key = PERIOD_KEYS[group_by]
    keys: list[str] = []
    for month in iter_months(start, end):
        k = key(month)
        if k not in keys:
            keys.append(k)
    return keys


def _percentage(part: int | float, whole: int | float) -> float:
    return round(part / whole * 100, 2) if whole else 0.0


def growth_rate(previous: int | float, current: int | float) -> float:
    """Percent change; 100 when growing from zero, 0 when both are zero."""
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return round((current - previous) / abs(previous) * 100, 2)


def _trend(recent: float, earlier: float, up: str, down: str) -> str:
    band = abs(earlier) * TREND_BAND
    if recent > earlier + band:
        return up
    if recent < earlier - band:
        return down
    return "stable"


# ---------------------------------------------------------------------------
# Filters and aggregates
# ---------------------------------------------------------------------------


def _is_completed(payment: Payment) -> bool:
    return (payment.status or PaymentStatus.COMPLETED.value) == PaymentStatus.COMPLETED.value


def _is_rent(payment: Payment) -> bool:
    return (payment.type or PaymentType.RENT.value) == PaymentType.RENT.value


def revenue_payments(payments: list[Payment], start: datetime, end: datetime) -> list[Payment]:
    return [p for p in payments if _is_completed(p) and _in_range(p, start, end)]


def period_expenses(expenses: list[Expense], start: datetime, end: datetime) -> list[Expense]:
    return [e for e in expenses if _in_range(e, start, end)]


def income_metrics(payments: list[Payment]) -> dict:
    total = sum(p.amount_cents for p in payments)
    rent = sum(p.amount_cents for p in payments if _is_rent(p))

    by_method: dict[str, dict] = defaultdict(lambda: {"amount_cents": 0, "count": 0})
    for p in payments:
        bucket = by_method[p.method or "unknown"]
        bucket["amount_cents"] += p.amount_cents
        bucket["count"] += 1

    return {
        "total_revenue_cents": total,
        "rent_revenue_cents": rent,
        "other_revenue_cents": total - rent,
        "payment_method_breakdown": [
            {
                "method": method,
                "amount_cents": data["amount_cents"],
                "count": data["count"],
                "percentage": _percentage(data["amount_cents"], total),
            }
            for method, data in by_method.items()
        ],
    }


def expense_categories(expenses: list[Expense], previous: list[Expense] | None = None) -> list[dict]:
    """Per-category totals, largest first.

    With previous-period expenses the trend compares category amounts using
    the same 5% band as cash-flow trends; without them every trend is stable.
    """
    total = sum(e.amount_cents for e in expenses)
    by_category: dict[str, dict] = defaultdict(lambda: {"amount_cents": 0, "count": 0})
    for e in expenses:
        bucket = by_category[e.category or "uncategorized"]
        bucket["amount_cents"] += e.amount_cents
        bucket["count"] += 1

    previous_amounts: dict[str, int] = defaultdict(int)
    for e in previous or []:
        previous_amounts[e.category or "uncategorized"] += e.amount_cents

    categories = []
    for category, data in by_category.items():
        trend = "stable"
        if previous is not None:
            trend = _trend(data["amount_cents"], previous_amounts[category], "up", "down")
        categories.append(
            {
                "category": category,
                "amount_cents": data["amount_cents"],
                "count": data["count"],
                "percentage": _percentage(data["amount_cents"], total),
                "trend": trend,
            }
        )
    categories.sort(key=lambda c: c["amount_cents"], reverse=True)
    return categories


def expense_metrics(expenses: list[Expense], previous: list[Expense] | None = None) -> dict:
    total = sum(e.amount_cents for e in expenses)
    reimbursable = sum(e.amount_cents for e in expenses if e.is_reimbursable)
    return {
        "total_expenses_cents": total,
        "category_breakdown": expense_categories(expenses, previous),
        "reimbursements_cents": reimbursable,
        "operating_expenses_cents": total - reimbursable,
    }


def monthly_cash_flow(
    payments: list[Payment], expenses: list[Expense], start: datetime, end: datetime
) -> list[dict]:
    """One row per month in range, empty months included as zeros."""
    income: dict[str, int] = defaultdict(int)
    outflow: dict[str, int] = defaultdict(int)
    for p in payments:
        income[_month_key(p.date)] += p.amount_cents
    for e in expenses:
        outflow[_month_key(e.date)] += e.amount_cents

    rows = []
    cumulative = 0
    for month in iter_months(start, end):
        key = _month_key(month)
        net = income[key] - outflow[key]
        cumulative += net
        rows.append(
            {
                "date": key,
                "income_cents": income[key],
                "expenses_cents": outflow[key],
                "net_flow_cents": net,
                "cumulative_flow_cents": cumulative,
            }
        )
    return rows


def _annual_depreciation(properties: list[Property]) -> float:
    """Straight-line residential depreciation per year.

    Land is not depreciable; when its value is unknown it is taken as 20% of
    the purchase price.
    """
    total = 0.0
    for prop in properties:
        price = prop.purchase_price_cents or 0
        land = prop.land_value_cents
        if land is None:
            land = price * LAND_VALUE_SHARE
        basis = price - land
        if basis > 0:
            total += basis / DEPRECIATION_YEARS
    return total


def annual_depreciation(properties: list[Property]) -> int:
    return round(_annual_depreciation(properties))


def calculate_depreciation(properties: list[Property], start: datetime, end: datetime) -> int:
    """Annual depreciation pro-rated by the days in range."""
    days = (end.date() - start.date()).days + 1
    if days <= 0:
        return 0
    return round(_annual_depreciation(properties) * days / 365)


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


def generate_financial_report(
    payments: list[Payment],
    expenses: list[Expense],
    start: date | datetime,
    end: date | datetime,
    report_type: str = ReportType.MONTHLY.value,
    include_comparison: bool = False,
) -> dict:
    """Income, expenses, net income and monthly cash flow for a period.

    With include_comparison the same report is built for the previous period
    (payments and expenses must cover it) and growth rates are added.
    """
    start, end = as_period_start(start), as_period_end(end)
    period_payments = revenue_payments(payments, start, end)
    period_exp = period_expenses(expenses, start, end)

    prev_start, prev_end = previous_period(start, end)
    previous_exp = period_expenses(expenses, prev_start, prev_end) if include_comparison else None

    income = income_metrics(period_payments)
    expense_summary = expense_metrics(period_exp, previous_exp)
    revenue = income["total_revenue_cents"]
    net_income = revenue - expense_summary["total_expenses_cents"]

    report = {
        "period": {"start": start, "end": end, "type": ReportType(report_type).value},
        "income": income,
        "expenses": expense_summary,
        "net_income_cents": net_income,
        "profit_margin": _percentage(net_income, revenue),
        "cash_flow": monthly_cash_flow(period_payments, period_exp, start, end),
        "comparison": None,
    }

    if include_comparison:
        previous = generate_financial_report(payments, expenses, prev_start, prev_end, report_type)
        report["comparison"] = {
            "previous_period": previous,
            "growth": {
                "revenue": growth_rate(previous["income"]["total_revenue_cents"], revenue),
                "expenses": growth_rate(
                    previous["expenses"]["total_expenses_cents"],
                    expense_summary["total_expenses_cents"],
                ),
                "net_income": growth_rate(previous["net_income_cents"], net_income),
            },
        }

    logger.info(
        "Financial report %s..%s: revenue=%d expenses=%d",
        start.date(), end.date(), revenue, expense_summary["total_expenses_cents"],
    )
    return report


def period_breakdown(
    payments: list[Payment],
    expenses: list[Expense],
    start: datetime,
    end: datetime,
    group_by: str = PeriodGrouping.MONTH.value,
) -> list[dict]:
    grouping = PeriodGrouping(group_by)
    key = PERIOD_KEYS[grouping]
    revenue: dict[str, int] = defaultdict(int)
    outflow: dict[str, int] = defaultdict(int)
    for p in payments:
        revenue[key(p.date)] += p.amount_cents
    for e in expenses:
        outflow[key(e.date)] += e.amount_cents
    return [
        {
            "period": k,
            "revenue_cents": revenue[k],
            "expenses_cents": outflow[k],
            "net_income_cents": revenue[k] - outflow[k],
        }
        for k in _period_keys(start, end, grouping)
    ]


def generate_profit_loss(
    payments: list[Payment],
    expenses: list[Expense],
    properties: list[Property],
    start: date | datetime,
    end: date | datetime,
    group_by: str = PeriodGrouping.MONTH.value,
) -> dict:
    """Profit and loss statement with depreciation and a period breakdown."""
    start, end = as_period_start(start), as_period_end(end)
    period_payments = revenue_payments(payments, start, end)
    period_exp = period_expenses(expenses, start, end)

    income = income_metrics(period_payments)
    total_revenue = income["total_revenue_cents"]
    operating = expense_categories(period_exp)
    total_operating = sum(c["amount_cents"] for c in operating)
    depreciation = calculate_depreciation(properties, start, end)

    gross_profit = total_revenue - total_operating
    operating_income = gross_profit - depreciation
    net_income = operating_income

    return {
        "period": {"start": start, "end": end},
        "revenue": {
            "rent_income_cents": income["rent_revenue_cents"],
            "other_income_cents": income["other_revenue_cents"],
            "total_revenue_cents": total_revenue,
        },
        "expenses": {
            "operating_expenses": operating,
            "total_operating_expenses_cents": total_operating,
            "depreciation_cents": depreciation,
            "total_expenses_cents": total_operating + depreciation,
        },
        "gross_profit_cents": gross_profit,
        "operating_income_cents": operating_income,
        "net_income_cents": net_income,
        "margins": {
            "gross": _percentage(gross_profit, total_revenue),
            "operating": _percentage(operating_income, total_revenue),
            "net": _percentage(net_income, total_revenue),
        },
        "breakdown": period_breakdown(period_payments, period_exp, start, end, group_by),
    }


def cash_flow_trends(monthly: list[dict]) -> dict:
    """Average of the last three months against the first three."""
    if len(monthly) < 2:
        return {"inflow_trend": "stable", "outflow_trend": "stable", "net_flow_trend": "stable"}

    recent = monthly[-TREND_WINDOW_MONTHS:]
    earlier = monthly[:TREND_WINDOW_MONTHS]

    def avg(rows: list[dict], field: str) -> float:
        return sum(r[field] for r in rows) / len(rows)

    return {
        "inflow_trend": _trend(
            avg(recent, "income_cents"), avg(earlier, "income_cents"), "increasing", "decreasing"
        ),
        "outflow_trend": _trend(
            avg(recent, "expenses_cents"), avg(earlier, "expenses_cents"), "increasing", "decreasing"
        ),
        "net_flow_trend": _trend(
            avg(recent, "net_flow_cents"), avg(earlier, "net_flow_cents"), "improving", "declining"
        ),
    }


def cash_flow_forecast(monthly: list[dict], months: int = FORECAST_MONTHS) -> list[dict]:
    """Project the average of the recent months forward. Needs two months of history."""
    if len(monthly) < 2:
        return []
    recent = monthly[-FORECAST_HISTORY_MONTHS:]
    avg_income = round(sum(r["income_cents"] for r in recent) / len(recent))
    avg_expenses = round(sum(r["expenses_cents"] for r in recent) / len(recent))
    net = avg_income - avg_expenses

    year, month = (int(part) for part in monthly[-1]["date"].split("-"))
    cumulative = monthly[-1]["cumulative_flow_cents"]
    forecast = []
    for _ in range(months):
        month += 1
        if month > 12:
            year, month = year + 1, 1
        cumulative += net
        forecast.append(
            {
                "date": f"{year:04d}-{month:02d}",
                "income_cents": avg_income,
                "expenses_cents": avg_expenses,
                "net_flow_cents": net,
                "cumulative_flow_cents": cumulative,
            }
        )
    return forecast


def generate_cash_flow_analysis(
    payments: list[Payment],
    expenses: list[Expense],
    start: date | datetime,
    end: date | datetime,
    include_forecast: bool = False,
) -> dict:
    start, end = as_period_start(start), as_period_end(end)
    monthly = monthly_cash_flow(
        revenue_payments(payments, start, end), period_expenses(expenses, start, end), start, end
    )
    net = sum(r["net_flow_cents"] for r in monthly)
    return {
        "period": {"start": start, "end": end},
        "summary": {
            "total_inflow_cents": sum(r["income_cents"] for r in monthly),
            "total_outflow_cents": sum(r["expenses_cents"] for r in monthly),
            "net_cash_flow_cents": net,
            "average_monthly_flow_cents": round(net / len(monthly)) if monthly else 0,
        },
        "monthly_data": monthly,
        "trends": cash_flow_trends(monthly),
        "forecast": cash_flow_forecast(monthly) if include_forecast else None,
    }
