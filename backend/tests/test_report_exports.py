"""Tests for report CSV exports."""

import csv
import io
from datetime import date, datetime
from types import SimpleNamespace

import pytest

from coliving_platform.domain.errors import ValidationError
from coliving_platform.services.financial_reports import (
    generate_cash_flow_analysis,
    generate_financial_report,
    generate_profit_loss,
)
from coliving_platform.services.report_exports import export_file_name, export_report_csv
from coliving_platform.services.tax_summary import generate_tax_summary

PAYMENTS = [
    SimpleNamespace(amount_cents=120_000, date=datetime(2025, 1, 3), type="rent", method="Stripe",
                    status="completed"),
    SimpleNamespace(amount_cents=120_000, date=datetime(2025, 2, 3), type="rent", method="Wise",
                    status="completed"),
]
EXPENSES = [
    SimpleNamespace(id="e1", amount_cents=15_000, date=datetime(2025, 1, 15), category="utilities",
                    is_reimbursable=False, receipt_url=None, description="Electricity bill"),
]


def _rows(content: str) -> list[list[str]]:
    return list(csv.reader(io.StringIO(content)))


def _lookup(rows: list[list[str]], label: str) -> list[str]:
    return next(row for row in rows if row and row[0] == label)


class TestCsv:
    def test_financial(self):
        data = generate_financial_report(PAYMENTS, EXPENSES, date(2025, 1, 1), date(2025, 2, 28))
        rows = _rows(export_report_csv("financial", data))

        assert rows[0] == ["Financial Report Summary"]
        assert rows[1] == ["Period", "2025-01-01 to 2025-02-28"]
        assert _lookup(rows, "Total Revenue") == ["Total Revenue", "2400.00"]
        assert _lookup(rows, "Net Income") == ["Net Income", "2250.00"]
        assert _lookup(rows, "2025-02") == ["2025-02", "1200.00", "0.00", "1200.00", "2250.00"]

    def test_profit_loss(self):
        data = generate_profit_loss(PAYMENTS, EXPENSES, [], date(2025, 1, 1), date(2025, 1, 31))
        rows = _rows(export_report_csv("profit-loss", data))
        assert _lookup(rows, "utilities") == ["utilities", "150.00"]
        assert _lookup(rows, "Depreciation") == ["Depreciation", "0.00"]
        assert _lookup(rows, "Gross Margin (%)") == ["Gross Margin (%)", "87.5"]

    def test_cash_flow_with_forecast(self):
        data = generate_cash_flow_analysis(
            PAYMENTS, EXPENSES, date(2025, 1, 1), date(2025, 2, 28), include_forecast=True
        )
        rows = _rows(export_report_csv("cash-flow", data))
        assert ["Forecast (Projected)"] in rows
        assert _lookup(rows, "Inflow Trend") == ["Inflow Trend", "stable"]
        assert _lookup(rows, "2025-08")[1] == "1200.00"

    def test_tax_summary(self):
        data = generate_tax_summary(PAYMENTS, EXPENSES, [], 2025)
        rows = _rows(export_report_csv("tax-summary", data))
        assert _lookup(rows, "Tax Year") == ["Tax Year", "2025"]
        assert _lookup(rows, "utilities") == ["utilities", "Utilities", "150.00", "1", "No"]
        assert _lookup(rows, "Taxable Income") == ["Taxable Income", "2250.00"]

    def test_every_cell_quoted(self):
        data = generate_financial_report(PAYMENTS, EXPENSES, date(2025, 1, 1), date(2025, 1, 31))
        content = export_report_csv("financial", data)
        assert content.startswith('"Financial Report Summary"\n"Period"')
        assert not content.endswith("\n")

    def test_unknown_report(self):
        with pytest.raises(ValidationError):
            export_report_csv("balance-sheet", {})


def test_file_name():
    name = export_file_name("profit-loss", "csv", datetime(2025, 1, 1), datetime(2025, 3, 31))
    assert name.startswith("Profit-Loss-Statement_2025-01-01_2025-03-31_")
    assert name.endswith(".csv")
