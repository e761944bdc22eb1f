"""Tenant routes."""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from coliving_platform.app.routes.auth import require_staff
from coliving_platform.domain.models import User
from coliving_platform.domain.schemas import (
    CommunicationListResponse,
    EmergencyContact,
    TenantCreate,
    TenantResponse,
    TenantUpdate,
)
from coliving_platform.infra.database import get_db
from coliving_platform.services import communication_service, property_service, tenant_service

router = APIRouter(prefix="/api/tenants", tags=["tenants"])


@router.get("", response_model=list[TenantResponse])
async def list_tenants(
    property_id: str | None = Query(None),
    status: str | None = Query(None),
    search: str | None = Query(None),
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await tenant_service.list_tenants(db, property_id, status, search)


@router.post("", response_model=TenantResponse, status_code=201)
async def create_tenant(
    data: TenantCreate,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    await property_service.get_property_or_raise(db, data.property_id)
    return await tenant_service.create_tenant(db, data)


@router.get("/{tenant_id}", response_model=TenantResponse)
async def get_tenant(
    tenant_id: str,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await tenant_service.get_tenant_or_raise(db, tenant_id)


@router.patch("/{tenant_id}", response_model=TenantResponse)
async def update_tenant(
    tenant_id: str,
    data: TenantUpdate,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await tenant_service.update_tenant(db, tenant_id, data.model_dump(exclude_unset=True))


@router.delete("/{tenant_id}", status_code=204)
async def delete_tenant(
    tenant_id: str,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    await tenant_service.delete_tenant(db, tenant_id)
    return Response(status_code=204)


@router.post("/{tenant_id}/emergency-contacts", response_model=TenantResponse, status_code=201)
async def add_emergency_contact(
    tenant_id: str,
    data: EmergencyContact,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await tenant_service.add_emergency_contact(db, tenant_id, data)


@router.post("/{tenant_id}/emergency-contacts/{contact_id}/primary", response_model=TenantResponse)
async def set_primary_contact(
    tenant_id: str,
    contact_id: str,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await tenant_service.set_primary_contact(db, tenant_id, contact_id)


@router.get("/{tenant_id}/communications", response_model=CommunicationListResponse)
async def tenant_communications(
    tenant_id: str,
    limit: int = Query(communication_service.DEFAULT_LIMIT, ge=1, le=communication_service.MAX_LIMIT),
    offset: int = Query(0, ge=0),
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    await tenant_service.get_tenant_or_raise(db, tenant_id)
    return await communication_service.list_communications(
        db, tenant_id=tenant_id, limit=limit, offset=offset
    )
