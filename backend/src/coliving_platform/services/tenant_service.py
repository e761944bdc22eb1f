"""Tenant profiles: CRUD, search and emergency contacts."""

import logging
import uuid

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from coliving_platform.domain.errors import NotFoundError, ValidationError
from coliving_platform.domain.models import Tenant, utcnow
from coliving_platform.domain.schemas import EmergencyContact, TenantCreate

logger = logging.getLogger(__name__)


async def get_tenant(db: AsyncSession, tenant_id: str) -> Tenant | None:
    result = await db.execute(
        select(Tenant).where(Tenant.id == tenant_id, Tenant.deleted_at.is_(None))
    )
    return result.scalar_one_or_none()


async def get_tenant_or_raise(db: AsyncSession, tenant_id: str) -> Tenant:
    tenant = await get_tenant(db, tenant_id)
    if tenant is None:
        raise NotFoundError("Tenant", tenant_id)
    return tenant


async def get_tenant_by_email(db: AsyncSession, email: str) -> Tenant | None:
    result = await db.execute(
        select(Tenant).where(
            func.lower(Tenant.email) == email.lower(),
            Tenant.deleted_at.is_(None),
        )
    )
    return result.scalars().first()


def _contact_dicts(contacts) -> list[dict]:
    """Contacts as dicts with ids, keeping at most one primary (the first flagged)."""
    result = []
    primary_seen = False
    for contact in contacts or []:
        if isinstance(contact, EmergencyContact):
            contact = contact.model_dump()
        contact = {**contact, "id": contact.get("id") or str(uuid.uuid4())}
        if contact.get("is_primary") and not primary_seen:
            primary_seen = True
        else:
            contact["is_primary"] = False
        result.append(contact)
    if result and not primary_seen:
        result[0]["is_primary"] = True
    return result


async def create_tenant(db: AsyncSession, data: TenantCreate) -> Tenant:
    """Create a tenant. Emails are unique among non-deleted tenants."""
    if await get_tenant_by_email(db, data.email):
        raise ValidationError(f"A tenant with email {data.email} already exists")

    fields = data.model_dump(exclude={"emergency_contacts"})
    tenant = Tenant(
        **fields,
        emergency_contacts=_contact_dicts(data.emergency_contacts),
        documents=[],
        lease_history=[],
    )
    db.add(tenant)
    await db.commit()
    logger.info("Tenant %s created for property %s", tenant.id, tenant.property_id)
    return tenant


async def list_tenants(
    db: AsyncSession,
    property_id: str | None = None,
    status: str | None = None,
    search: str | None = None,
) -> list[Tenant]:
    query = select(Tenant).where(Tenant.deleted_at.is_(None))
    if property_id:
        query = query.where(Tenant.property_id == property_id)
    if status:
        query = query.where(Tenant.status == status)
    if search:
        pattern = f"%{search.lower()}%"
        query = query.where(
            or_(
                func.lower(Tenant.first_name).like(pattern),
                func.lower(Tenant.last_name).like(pattern),
                func.lower(Tenant.email).like(pattern),
                func.lower(Tenant.first_name + " " + Tenant.last_name).like(pattern),
            )
        )
    result = await db.execute(query.order_by(Tenant.last_name, Tenant.first_name))
    return list(result.scalars().all())


async def update_tenant(db: AsyncSession, tenant_id: str, fields: dict) -> Tenant:
    tenant = await get_tenant_or_raise(db, tenant_id)
    email = fields.get("email")
    if email and email.lower() != tenant.email.lower():
        existing = await get_tenant_by_email(db, email)
        if existing and existing.id != tenant.id:
            raise ValidationError(f"A tenant with email {email} already exists")
    for key, value in fields.items():
        setattr(tenant, key, value)
    await db.commit()
    return tenant


async def delete_tenant(db: AsyncSession, tenant_id: str) -> None:
    tenant = await get_tenant_or_raise(db, tenant_id)
    tenant.deleted_at = utcnow()
    await db.commit()
    logger.info("Tenant %s soft-deleted", tenant_id)


async def add_emergency_contact(
    db: AsyncSession, tenant_id: str, contact: EmergencyContact
) -> Tenant:
    """Append a contact. A primary contact demotes the previous primary."""
    tenant = await get_tenant_or_raise(db, tenant_id)
    new_contact = {**contact.model_dump(), "id": contact.id or str(uuid.uuid4())}
    contacts = [dict(c) for c in tenant.emergency_contacts or []]
    if new_contact["is_primary"]:
        for c in contacts:
            c["is_primary"] = False
    elif not contacts:
        new_contact["is_primary"] = True
    contacts.append(new_contact)
    tenant.emergency_contacts = contacts
    await db.commit()
    return tenant


async def set_primary_contact(db: AsyncSession, tenant_id: str, contact_id: str) -> Tenant:
    """Make exactly one emergency contact primary."""
    tenant = await get_tenant_or_raise(db, tenant_id)
    contacts = [dict(c) for c in tenant.emergency_contacts or []]
    if not any(c.get("id") == contact_id for c in contacts):
        raise NotFoundError("Emergency contact", contact_id)
    for c in contacts:
        c["is_primary"] = c.get("id") == contact_id
    tenant.emergency_contacts = contacts
    await db.commit()
    return tenant
