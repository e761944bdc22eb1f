"""Agreement template routes: CRUD, clone, preview, usage stats."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from coliving_platform.app.routes.auth import require_staff
from coliving_platform.domain.models import User
from coliving_platform.domain.schemas import (
    AgreementTemplateCreate,
    AgreementTemplateResponse,
    AgreementTemplateUpdate,
    CloneTemplateRequest,
    TemplateValuesRequest,
)
from coliving_platform.infra.database import get_db
from coliving_platform.services import agreement_template_service, property_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/agreements/templates", tags=["agreement-templates"])


@router.get("", response_model=list[AgreementTemplateResponse])
async def list_templates(
    property_id: str = Query(...),
    active_only: bool = Query(False),
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await agreement_template_service.list_property_templates(db, property_id, active_only)


@router.post("", response_model=AgreementTemplateResponse, status_code=201)
async def create_template(
    data: AgreementTemplateCreate,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    await property_service.get_property_or_raise(db, data.property_id)
    return await agreement_template_service.create_template(db, data, created_by=user.id)


@router.post("/seed", response_model=list[AgreementTemplateResponse], status_code=201)
async def seed_templates(
    property_id: str = Query(...),
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Create the built-in lease templates the property doesn't have yet."""
    await property_service.get_property_or_raise(db, property_id)
    created = await agreement_template_service.seed_default_templates(db, property_id, user.id)
    logger.info("Seeded %d agreement templates for property %s", len(created), property_id)
    return created


@router.get("/{template_id}", response_model=AgreementTemplateResponse)
async def get_template(
    template_id: str,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    template = await agreement_template_service.get_template(db, template_id)
    if template is None:
        raise HTTPException(status_code=404, detail="Agreement template not found")
    return template


@router.put("/{template_id}", response_model=AgreementTemplateResponse)
async def update_template(
    template_id: str,
    data: AgreementTemplateUpdate,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await agreement_template_service.update_template(
        db, template_id, data.model_dump(exclude_unset=True)
    )


@router.delete("/{template_id}", status_code=204)
async def delete_template(
    template_id: str,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    await agreement_template_service.delete_template(db, template_id)
    return Response(status_code=204)


@router.post("/{template_id}/clone", response_model=AgreementTemplateResponse, status_code=201)
async def clone_template(
    template_id: str,
    data: CloneTemplateRequest,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    if data.property_id:
        await property_service.get_property_or_raise(db, data.property_id)
    return await agreement_template_service.clone_template(
        db, template_id, data.new_name, created_by=user.id, property_id=data.property_id
    )


@router.post("/{template_id}/preview")
async def preview_template(
    template_id: str,
    data: TemplateValuesRequest,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    content = await agreement_template_service.preview_template(db, template_id, data.values)
    return {"template_id": template_id, "content": content}


@router.post("/{template_id}/deactivate", response_model=AgreementTemplateResponse)
async def deactivate_template(
    template_id: str,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await agreement_template_service.deactivate_template(db, template_id)


@router.get("/{template_id}/stats")
async def template_stats(
    template_id: str,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await agreement_template_service.get_usage_stats(db, template_id)
