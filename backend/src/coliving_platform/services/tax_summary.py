"""Rental-property tax summary: Schedule E categories, deductions, recommendations."""

import logging
from collections import defaultdict
from datetime import datetime

from coliving_platform.domain.enums import PaymentType
from coliving_platform.domain.models import Expense, Payment, Property
from coliving_platform.services.financial_reports import (
    annual_depreciation,
    period_expenses,
    revenue_payments,
)

logger = logging.getLogger(__name__)

RECEIPT_THRESHOLD_CENTS = 7_500
ESTIMATED_TAX_RATE = 0.25
MIN_MAINTENANCE_SHARE = 0.05
DEPRECIATION_SAVINGS_CENTS = 500_000
YEAR_END_PLANNING_INCOME_CENTS = 2_000_000
PROFESSIONAL_ADVICE_INCOME_CENTS = 5_000_000
PROFESSIONAL_ADVICE_SAVINGS_CENTS = 200_000
MIN_DESCRIPTION_LENGTH = 5

NON_DEDUCTIBLE_CATEGORIES = {"personal", "capital_improvement", "loan_principal"}

PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}

SCHEDULE_E_CATEGORIES = [
    {
        "business_category": "maintenance",
        "schedule_e_line": "Repairs and maintenance",
        "description": "Ordinary repairs that keep property in good operating condition",
        "requirements": [
            "Must be ordinary and necessary",
            "Cannot add value or extend life",
            "Receipts required",
        ],
    },
    {
        "business_category": "utilities",
        "schedule_e_line": "Utilities",
        "description": "Gas, electricity, water, trash, internet for rental property",
        "requirements": ["Property-related only", "Receipts or statements required"],
    },
    {
        "business_category": "insurance",
        "schedule_e_line": "Insurance",
        "description": "Property insurance, liability insurance",
        "requirements": ["Property-related coverage", "Policy documents required"],
    },
    {
        "business_category": "supplies",
        "schedule_e_line": "Other expenses",
        "description": "Cleaning supplies, small tools, office supplies",
        "requirements": ["Business use only", "Receipts required"],
    },
    {
        "business_category": "professional",
        "schedule_e_line": "Legal and other professional fees",
        "description": "Attorney fees, accounting fees, property management",
        "requirements": ["Business-related services", "Invoices required"],
    },
    {
        "business_category": "advertising",
        "schedule_e_line": "Advertising",
        "description": "Marketing costs to find tenants",
        "requirements": ["Rental-related advertising", "Receipts required"],
    },
    {
        "business_category": "travel",
        "schedule_e_line": "Travel",
        "description": "Travel expenses for property management",
        "requirements": ["Business purpose", "Mileage logs", "Receipts for expenses"],
    },
]

_BY_CATEGORY = {c["business_category"]: c for c in SCHEDULE_E_CATEGORIES}


def is_deductible(category: str, expenses: list[Expense]) -> bool:
    """Deductible when the category qualifies and the expenses are documented.

    Documented means at least one receipt and a business-purpose description
    on every expense.
    """
    if category in NON_DEDUCTIBLE_CATEGORIES:
        return False
    has_receipt = any(e.receipt_url for e in expenses)
    has_purpose = all(
        e.description and len(e.description) > MIN_DESCRIPTION_LENGTH for e in expenses
    )
    return has_receipt and has_purpose


def categorize_deductions(expenses: list[Expense]) -> list[dict]:
    grouped: dict[str, list[Expense]] = defaultdict(list)
    for e in expenses:
        grouped[e.category or "uncategorized"].append(e)

    deductions = []
    for category, items in grouped.items():
        mapping = _BY_CATEGORY.get(category)
        deductions.append(
            {
                "category": category,
                "schedule_e_line": mapping["schedule_e_line"] if mapping else "Other expenses",
                "amount_cents": sum(e.amount_cents for e in items),
                "count": len(items),
                "receipts_count": sum(1 for e in items if e.receipt_url),
                "deductible": is_deductible(category, items),
                "description": mapping["description"] if mapping else f"{category} expenses",
            }
        )
    return deductions


def receipts_summary(expenses: list[Expense]) -> list[dict]:
    """Expenses that have, or legally need, a receipt. Largest first."""
    receipts = [
        {
            "expense_id": e.id,
            "date": e.date,
            "amount_cents": e.amount_cents,
            "category": e.category,
            "description": e.description,
            "receipt_url": e.receipt_url,
            "deductible": is_deductible(e.category, [e]),
        }
        for e in expenses
        if e.receipt_url or e.amount_cents > RECEIPT_THRESHOLD_CENTS
    ]
    receipts.sort(key=lambda r: r["amount_cents"], reverse=True)
    return receipts


def recommendations(
    rental_income_cents: int,
    deductions: list[dict],
    depreciation_cents: int,
    expenses: list[Expense],
) -> list[dict]:
    found = []

    missing = [e for e in expenses if not e.receipt_url and e.amount_cents > RECEIPT_THRESHOLD_CENTS]
    if missing:
        at_risk = sum(e.amount_cents for e in missing)
        found.append(
            {
                "type": "documentation",
                "title": "Missing Receipt Documentation",
                "description": (
                    f"{len(missing)} expenses over $75 lack receipt documentation. "
                    "IRS requires receipts for audit protection."
                ),
                "potential_savings_cents": round(at_risk * ESTIMATED_TAX_RATE),
                "priority": "high",
            }
        )

    by_category = {d["category"]: d for d in deductions}
    maintenance = by_category.get("maintenance")
    if maintenance and maintenance["amount_cents"] < rental_income_cents * MIN_MAINTENANCE_SHARE:
        found.append(
            {
                "type": "deduction",
                "title": "Low Maintenance Deductions",
                "description": (
                    "Your maintenance expenses are unusually low. Consider if you're "
                    "missing deductible repairs and maintenance."
                ),
                "potential_savings_cents": None,
                "priority": "medium",
            }
        )

    if depreciation_cents == 0 and rental_income_cents > 0:
        found.append(
            {
                "type": "deduction",
                "title": "Missing Depreciation Deduction",
                "description": (
                    "You may be eligible for depreciation deductions on your rental property. "
                    "This is often the largest tax benefit for rental property owners."
                ),
                "potential_savings_cents": DEPRECIATION_SAVINGS_CENTS,
                "priority": "high",
            }
        )

    q4_expenses = [e for e in expenses if e.date and e.date.month >= 10]
    if not q4_expenses and rental_income_cents > YEAR_END_PLANNING_INCOME_CENTS:
        found.append(
            {
                "type": "timing",
                "title": "Year-End Tax Planning",
                "description": (
                    "Consider accelerating deductible expenses before year-end to maximize "
                    "current year deductions."
                ),
                "potential_savings_cents": None,
                "priority": "medium",
            }
        )

    if "professional" not in by_category and rental_income_cents > PROFESSIONAL_ADVICE_INCOME_CENTS:
        found.append(
            {
                "type": "strategy",
                "title": "Professional Tax Consultation",
                "description": (
                    "With significant rental income, professional tax advice could identify "
                    "additional deductions and strategies."
                ),
                "potential_savings_cents": PROFESSIONAL_ADVICE_SAVINGS_CENTS,
                "priority": "medium",
            }
        )

    found.sort(key=lambda r: PRIORITY_ORDER[r["priority"]])
    return found


def generate_tax_summary(
    payments: list[Payment],
    expenses: list[Expense],
    properties: list[Property],
    tax_year: int,
    include_receipts: bool = True,
) -> dict:
    """Tax-year summary for Schedule E preparation.

    Depreciation is the full annual amount for every property passed in.
    Taxable income never goes below zero.
    """
    start = datetime(tax_year, 1, 1)
    end = datetime(tax_year, 12, 31, 23, 59, 59, 999999)
    year_payments = revenue_payments(payments, start, end)
    year_expenses = period_expenses(expenses, start, end)

    total_income = sum(p.amount_cents for p in year_payments)
    rental_income = sum(
        p.amount_cents
        for p in year_payments
        if (p.type or PaymentType.RENT.value) == PaymentType.RENT.value
    )

    deductions = categorize_deductions(year_expenses)
    depreciation = annual_depreciation(properties)
    total_deductions = sum(d["amount_cents"] for d in deductions) + depreciation
    net_rental_income = total_income - total_deductions

    logger.info(
        "Tax summary %d: income=%d deductions=%d", tax_year, total_income, total_deductions
    )
    return {
        "tax_year": tax_year,
        "period": {"start": start, "end": end},
        "income": {
            "total_rental_income_cents": rental_income,
            "other_income_cents": total_income - rental_income,
            "total_income_cents": total_income,
        },
        "deductions": {
            "operating_expenses": deductions,
            "depreciation_cents": depreciation,
            "total_deductions_cents": total_deductions,
        },
        "net_rental_income_cents": net_rental_income,
        "taxable_income_cents": max(0, net_rental_income),
        "receipts": receipts_summary(year_expenses) if include_receipts else [],
        "recommendations": recommendations(rental_income, deductions, depreciation, year_expenses),
        "schedule_e_categories": SCHEDULE_E_CATEGORIES,
    }
