"""Shared test infrastructure for the Coliving Platform test suite.

Provides:
- db_session: async SQLite in-memory session with all tables created
- email_mock: patches SendGrid delivery and records every outbound email
- make_user / make_property / make_tenant / make_expense / make_payment /
  make_template: row factories
- build_client: HTTPX AsyncClient over a small FastAPI app with get_db and
  the current user overridden
"""

import uuid
from datetime import datetime
from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Import Base first, then models to register all tables
from coliving_platform.infra.database import Base

import coliving_platform.domain.models  # noqa: F401

from coliving_platform.domain.enums import UserRole
from coliving_platform.domain.models import (
    AgreementTemplate,
    Expense,
    Payment,
    Property,
    Tenant,
    User,
    utcnow,
)

LEASE_CONTENT = (
    "This lease is made between {{property_name}} and the tenant {{tenant_name}} "
    "for room {{room_number}}. Monthly rent is ${{monthly_rent}} starting {{lease_start_date}}."
)

LEASE_VARIABLES = [
    {"id": "v1", "name": "property_name", "label": "Property Name", "type": "text", "required": True},
    {"id": "v2", "name": "tenant_name", "label": "Tenant Name", "type": "text", "required": True},
    {"id": "v3", "name": "room_number", "label": "Room Number", "type": "text", "required": True},
    {"id": "v4", "name": "monthly_rent", "label": "Monthly Rent", "type": "number", "required": True},
    {"id": "v5", "name": "lease_start_date", "label": "Lease Start", "type": "date", "required": False},
]


# ---------------------------------------------------------------------------
# Database session fixture
# ---------------------------------------------------------------------------

@pytest.fixture
async def db_session():
    """Async SQLite in-memory session with all tables created.

    Creates a fresh engine + tables for each test, yields a session,
    then rolls back and tears down.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


# ---------------------------------------------------------------------------
# Email mock
# ---------------------------------------------------------------------------

@pytest.fixture
def email_mock():
    """Patch email delivery. Sent messages land in ``email_mock.sent``
    as (to, subject, html) tuples."""
    sent = []

    async def _capture(to_email: str, subject: str, html_body: str) -> bool:
        sent.append((to_email, subject, html_body))
        return True

    with patch(
        "coliving_platform.services.email_service.send_email",
        new=AsyncMock(side_effect=_capture),
    ) as mock:
        mock.sent = sent
        yield mock


# ---------------------------------------------------------------------------
# Row factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_user(db_session):
    """Factory for User rows. The password hash is a placeholder."""
    async def _factory(
        role: str = UserRole.PROPERTY_MANAGER.value,
        email: str | None = None,
        name: str = "Test Manager",
    ) -> User:
        user = User(
            id=str(uuid.uuid4()),
            email=email or f"{uuid.uuid4().hex[:8]}@test.com",
            password_hash="not-a-real-hash",
            name=name,
            role=role,
            is_active=True,
        )
        db_session.add(user)
        await db_session.flush()
        return user

    return _factory


@pytest.fixture
def make_property(db_session):
    """Factory for Property rows.

    Usage:
        prop = await make_property(purchase_price_cents=55_000_000)
    """
    async def _factory(
        name: str = "Maple House",
        street: str = "12 Maple St",
        city: str = "Austin",
        state: str = "TX",
        postal_code: str = "78701",
        total_rooms: int = 6,
        purchase_price_cents: int | None = None,
        land_value_cents: int | None = None,
        owner_id: str | None = None,
    ) -> Property:
        prop = Property(
            id=str(uuid.uuid4()),
            name=name,
            street=street,
            city=city,
            state=state,
            postal_code=postal_code,
            country="US",
            total_rooms=total_rooms,
            purchase_price_cents=purchase_price_cents,
            land_value_cents=land_value_cents,
            owner_id=owner_id,
        )
        db_session.add(prop)
        await db_session.flush()
        return prop

    return _factory


@pytest.fixture
def make_tenant(db_session):
    """Factory for Tenant rows."""
    async def _factory(
        property_id: str,
        email: str | None = None,
        first_name: str = "Ada",
        last_name: str = "Lovelace",
        status: str = "Active",
        room_number: str | None = "101",
    ) -> Tenant:
        tenant = Tenant(
            id=str(uuid.uuid4()),
            email=email or f"{uuid.uuid4().hex[:8]}@tenant.com",
            first_name=first_name,
            last_name=last_name,
            phone="+15550001111",
            status=status,
            property_id=property_id,
            room_number=room_number,
            emergency_contacts=[],
            documents=[],
            lease_history=[],
        )
        db_session.add(tenant)
        await db_session.flush()
        return tenant

    return _factory


@pytest.fixture
def make_expense(db_session):
    """Factory for Expense rows."""
    async def _factory(
        property_id: str,
        amount_cents: int = 10_000,
        category: str = "maintenance",
        description: str | None = "Plumbing repair",
        date: datetime | None = None,
        receipt_url: str | None = None,
        is_reimbursable: bool = True,
    ) -> Expense:
        expense = Expense(
            id=str(uuid.uuid4()),
            property_id=property_id,
            amount_cents=amount_cents,
            category=category,
            description=description,
            date=date or utcnow(),
            receipt_url=receipt_url,
            is_reimbursable=is_reimbursable,
        )
        db_session.add(expense)
        await db_session.flush()
        return expense

    return _factory


@pytest.fixture
def make_payment(db_session):
    """Factory for Payment rows."""
    async def _factory(
        property_id: str,
        amount_cents: int = 120_000,
        type: str = "rent",
        method: str | None = "Stripe",
        status: str = "completed",
        date: datetime | None = None,
        tenant_id: str | None = None,
        due_date: datetime | None = None,
    ) -> Payment:
        payment = Payment(
            id=str(uuid.uuid4()),
            property_id=property_id,
            tenant_id=tenant_id,
            amount_cents=amount_cents,
            type=type,
            method=method,
            status=status,
            date=date or utcnow(),
            due_date=due_date,
        )
        db_session.add(payment)
        await db_session.flush()
        return payment

    return _factory


@pytest.fixture
def make_template(db_session):
    """Factory for AgreementTemplate rows with a small valid lease body."""
    async def _factory(
        property_id: str,
        name: str = "Standard Lease",
        content: str = LEASE_CONTENT,
        variables: list[dict] | None = None,
        is_active: bool = True,
        created_by: str = "manager-1",
    ) -> AgreementTemplate:
        template = AgreementTemplate(
            id=str(uuid.uuid4()),
            name=name,
            property_id=property_id,
            content=content,
            variables=[dict(v) for v in (variables if variables is not None else LEASE_VARIABLES)],
            version=1,
            is_active=is_active,
            category="Standard Lease",
            created_by=created_by,
        )
        db_session.add(template)
        await db_session.flush()
        return template

    return _factory


# ---------------------------------------------------------------------------
# Route test client
# ---------------------------------------------------------------------------

@pytest.fixture
def build_client(db_session):
    """Build an HTTPX AsyncClient wired to a test FastAPI app.

    Usage:
        async with build_client([router], user=manager) as client:
            resp = await client.get("/api/...")

    Passing ``user=None`` leaves authentication in place.
    """
    def _factory(routers, user: User | None = None) -> AsyncClient:
        from fastapi import FastAPI

        from coliving_platform.app.errors import setup_exception_handlers
        from coliving_platform.app.routes.auth import get_current_user_dep
        from coliving_platform.infra.database import get_db

        test_app = FastAPI()
        setup_exception_handlers(test_app)
        for router in routers:
            test_app.include_router(router)

        async def _override_get_db():
            yield db_session

        test_app.dependency_overrides[get_db] = _override_get_db
        if user is not None:
            test_app.dependency_overrides[get_current_user_dep] = lambda: user

        return AsyncClient(
            transport=ASGITransport(app=test_app),
            base_url="http://testserver",
        )

    return _factory
