"""Properties and their ledger: payments received and expenses incurred."""

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coliving_platform.domain.enums import PaymentStatus
from coliving_platform.domain.errors import NotFoundError
from coliving_platform.domain.models import Expense, Payment, Property, utcnow
from coliving_platform.domain.schemas import ExpenseCreate, PaymentCreate, PropertyCreate

logger = logging.getLogger(__name__)


async def get_property(db: AsyncSession, property_id: str) -> Property | None:
    result = await db.execute(select(Property).where(Property.id == property_id))
    return result.scalar_one_or_none()


async def get_property_or_raise(db: AsyncSession, property_id: str) -> Property:
    prop = await get_property(db, property_id)
    if prop is None:
        raise NotFoundError("Property", property_id)
    return prop


async def create_property(db: AsyncSession, data: PropertyCreate, owner_id: str | None) -> Property:
    prop = Property(**data.model_dump(), owner_id=owner_id)
    db.add(prop)
    await db.commit()
    logger.info("Property %s created (%s)", prop.id, prop.name)
    return prop


async def list_properties(db: AsyncSession, owner_id: str | None = None) -> list[Property]:
    query = select(Property)
    if owner_id:
        query = query.where(Property.owner_id == owner_id)
    result = await db.execute(query.order_by(Property.name))
    return list(result.scalars().all())


async def record_payment(db: AsyncSession, data: PaymentCreate) -> Payment:
    await get_property_or_raise(db, data.property_id)
    fields = data.model_dump()
    fields["date"] = fields.get("date") or utcnow()
    if fields["status"] == PaymentStatus.PENDING.value:
        fields["due_date"] = fields.get("due_date") or fields["date"]
    elif fields["status"] == PaymentStatus.COMPLETED.value:
        fields["paid_date"] = fields["date"]
    payment = Payment(**fields)
    db.add(payment)
    await db.commit()
    return payment


async def record_expense(db: AsyncSession, data: ExpenseCreate, created_by: str | None) -> Expense:
    await get_property_or_raise(db, data.property_id)
    fields = data.model_dump()
    fields["date"] = fields.get("date") or utcnow()
    expense = Expense(**fields, created_by=created_by)
    db.add(expense)
    await db.commit()
    return expense


async def get_expense(db: AsyncSession, expense_id: str) -> Expense | None:
    result = await db.execute(select(Expense).where(Expense.id == expense_id))
    return result.scalar_one_or_none()


async def list_payments(
    db: AsyncSession,
    property_id: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    status: str | None = None,
) -> list[Payment]:
    query = select(Payment)
    if property_id:
        query = query.where(Payment.property_id == property_id)
    if date_from:
        query = query.where(Payment.date >= date_from)
    if date_to:
        query = query.where(Payment.date <= date_to)
    if status:
        query = query.where(Payment.status == status)
    result = await db.execute(query.order_by(Payment.date))
    return list(result.scalars().all())


async def list_expenses(
    db: AsyncSession,
    property_id: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    category: str | None = None,
) -> list[Expense]:
    query = select(Expense)
    if property_id:
        query = query.where(Expense.property_id == property_id)
    if date_from:
        query = query.where(Expense.date >= date_from)
    if date_to:
        query = query.where(Expense.date <= date_to)
    if category:
        query = query.where(Expense.category == category)
    result = await db.execute(query.order_by(Expense.date))
    return list(result.scalars().all())


async def load_report_inputs(
    db: AsyncSession,
    property_id: str | None,
    date_from: datetime,
    date_to: datetime,
) -> tuple[list[Payment], list[Expense], list[Property]]:
    """Payments, expenses and properties for one property (or all) in a date range."""
    payments = await list_payments(db, property_id, date_from, date_to)
    expenses = await list_expenses(db, property_id, date_from, date_to)
    if property_id:
        properties = [await get_property_or_raise(db, property_id)]
    else:
        properties = await list_properties(db)
    return payments, expenses, properties
