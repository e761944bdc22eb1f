"""Maintenance routes."""

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from coliving_platform.app.routes.auth import get_current_user_dep, require_staff
from coliving_platform.domain.models import User
from coliving_platform.domain.schemas import (
    MaintenanceCreate,
    MaintenanceResponse,
    MaintenanceStatusUpdate,
    MaintenanceUpdate,
)
from coliving_platform.infra.database import get_db
from coliving_platform.services import maintenance_service, property_service

router = APIRouter(prefix="/api/maintenance", tags=["maintenance"])


@router.get("", response_model=list[MaintenanceResponse])
async def list_records(
    property_id: str | None = Query(None),
    status: str | None = Query(None),
    priority: str | None = Query(None),
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    return await maintenance_service.list_records(db, property_id, status, priority)


@router.post("", response_model=MaintenanceResponse, status_code=201)
async def create_record(
    data: MaintenanceCreate,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    await property_service.get_property_or_raise(db, data.property_id)
    return await maintenance_service.create_record(db, data)


@router.get("/summary")
async def maintenance_summary(
    property_id: str | None = Query(None),
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await maintenance_service.get_summary(db, property_id)


@router.get("/{record_id}", response_model=MaintenanceResponse)
async def get_record(
    record_id: str,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    record = await maintenance_service.get_record(db, record_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Maintenance record not found")
    return record


@router.patch("/{record_id}", response_model=MaintenanceResponse)
async def update_record(
    record_id: str,
    data: MaintenanceUpdate,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await maintenance_service.update_record(db, record_id, data.model_dump(exclude_unset=True))


@router.patch("/{record_id}/status", response_model=MaintenanceResponse)
async def change_status(
    record_id: str,
    data: MaintenanceStatusUpdate,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await maintenance_service.change_status(
        db, record_id, data.status, cost_cents=data.cost_cents, notes=data.notes
    )


@router.delete("/{record_id}", status_code=204)
async def delete_record(
    record_id: str,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    await maintenance_service.delete_record(db, record_id)
    return Response(status_code=204)
