"""Communication routes: log, search, escalate, message templates."""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from coliving_platform.app.routes.auth import require_staff
from coliving_platform.domain.models import User
from coliving_platform.domain.schemas import (
    CommunicationCreate,
    CommunicationListResponse,
    CommunicationResponse,
    CommunicationTemplateCreate,
    CommunicationTemplateResponse,
    CommunicationTemplateUpdate,
    CommunicationUpdate,
    EscalationRequest,
    EscalationResponse,
    RenderedTemplateResponse,
    TemplateValuesRequest,
)
from coliving_platform.infra.database import get_db
from coliving_platform.services import communication_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/communications", tags=["communications"])


@router.get("", response_model=CommunicationListResponse)
async def list_communications(
    tenant_id: str | None = Query(None),
    property_id: str | None = Query(None),
    type: str | None = Query(None),
    priority: str | None = Query(None),
    status: str | None = Query(None),
    date_from: datetime | None = Query(None),
    date_to: datetime | None = Query(None),
    tags: list[str] | None = Query(None),
    search: str | None = Query(None),
    limit: int = Query(communication_service.DEFAULT_LIMIT, ge=1, le=communication_service.MAX_LIMIT),
    offset: int = Query(0, ge=0),
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await communication_service.list_communications(
        db,
        tenant_id=tenant_id,
        property_id=property_id,
        type=type,
        priority=priority,
        status=status,
        date_from=date_from,
        date_to=date_to,
        tags=tags,
        search=search,
        limit=limit,
        offset=offset,
    )


@router.post("", response_model=CommunicationResponse, status_code=201)
async def create_communication(
    data: CommunicationCreate,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await communication_service.log_communication(db, data, created_by=user.id)


# Template routes are declared before /{communication_id} so they are matched first.


@router.get("/templates", response_model=list[CommunicationTemplateResponse])
async def list_templates(
    category: str | None = Query(None),
    active_only: bool = Query(True),
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await communication_service.list_templates(db, category, active_only)


@router.post("/templates", response_model=CommunicationTemplateResponse, status_code=201)
async def create_template(
    data: CommunicationTemplateCreate,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await communication_service.create_template(db, data, created_by=user.id)


@router.post("/templates/seed", response_model=list[CommunicationTemplateResponse], status_code=201)
async def seed_templates(
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    created = await communication_service.seed_default_templates(db, user.id)
    logger.info("Seeded %d communication templates", len(created))
    return created


@router.get("/templates/categories")
async def template_categories(
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return {"categories": await communication_service.list_categories(db)}


@router.get("/templates/{template_id}", response_model=CommunicationTemplateResponse)
async def get_template(
    template_id: str,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    template = await communication_service.get_template(db, template_id)
    if template is None:
        raise HTTPException(status_code=404, detail="Communication template not found")
    return template


@router.patch("/templates/{template_id}", response_model=CommunicationTemplateResponse)
async def update_template(
    template_id: str,
    data: CommunicationTemplateUpdate,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await communication_service.update_template(
        db, template_id, data.model_dump(exclude_unset=True)
    )


@router.post("/templates/{template_id}/render", response_model=RenderedTemplateResponse)
async def render_template(
    template_id: str,
    data: TemplateValuesRequest,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await communication_service.render_template(db, template_id, data.values)


@router.get("/{communication_id}", response_model=CommunicationResponse)
async def get_communication(
    communication_id: str,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    communication = await communication_service.get_communication(db, communication_id)
    if communication is None:
        raise HTTPException(status_code=404, detail="Communication not found")
    return communication


@router.patch("/{communication_id}", response_model=CommunicationResponse)
async def update_communication(
    communication_id: str,
    data: CommunicationUpdate,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await communication_service.update_communication(
        db, communication_id, data.model_dump(exclude_unset=True)
    )


@router.delete("/{communication_id}", status_code=204)
async def delete_communication(
    communication_id: str,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    await communication_service.delete_communication(db, communication_id)
    return Response(status_code=204)


@router.post("/{communication_id}/escalate", response_model=EscalationResponse, status_code=201)
async def escalate_communication(
    communication_id: str,
    data: EscalationRequest,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await communication_service.escalate(
        db,
        communication_id,
        escalated_from=user.id,
        escalated_to=data.escalated_to,
        reason=data.reason,
        notes=data.notes,
    )


@router.get("/{communication_id}/escalations", response_model=list[EscalationResponse])
async def list_escalations(
    communication_id: str,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await communication_service.list_escalations(db, communication_id)


@router.post("/escalations/{escalation_id}/resolve", response_model=EscalationResponse)
async def resolve_escalation(
    escalation_id: str,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await communication_service.resolve_escalation(db, escalation_id)
