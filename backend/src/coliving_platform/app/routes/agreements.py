"""Agreement routes: send, track, prospect signing, provider webhook."""

import hashlib
import hmac
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from coliving_platform.app.config import get_settings
from coliving_platform.app.routes.auth import require_staff
from coliving_platform.domain.models import User
from coliving_platform.domain.schemas import (
    AgreementResponse,
    AgreementStatusHistoryResponse,
    CancelAgreementRequest,
    PropertyResponse,
    SendAgreementRequest,
    SendAgreementResponse,
    SignAgreementRequest,
    SigningWebhookEvent,
    TenantResponse,
)
from coliving_platform.infra.database import get_db
from coliving_platform.services import agreement_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/agreements", tags=["agreements"])

SIGNATURE_HEADER = "x-signing-signature"


def client_ip(request: Request) -> str | None:
    """Socket peer, or the first X-Forwarded-For hop behind a trusted proxy."""
    if get_settings().trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def validate_signing_signature(request: Request, body_bytes: bytes) -> None:
    """Check the provider's HMAC-SHA256 hex digest of the raw body."""
    secret = get_settings().signing_webhook_secret
    if not secret:
        logger.warning("Signing webhook rejected: signing_webhook_secret is not configured")
        raise HTTPException(status_code=401, detail="Webhook signing is not configured")

    signature = request.headers.get(SIGNATURE_HEADER)
    if not signature:
        raise HTTPException(status_code=401, detail="Missing webhook signature")

    expected = hmac.new(secret.encode(), body_bytes, hashlib.sha256).hexdigest()
    if not hmac.compare_digest(signature, expected):
        raise HTTPException(status_code=401, detail="Invalid webhook signature")


@router.post("/send", response_model=SendAgreementResponse, status_code=201)
async def send_agreement(
    data: SendAgreementRequest,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await agreement_service.send_agreement(db, data, created_by=user.id)


@router.get("/track")
async def track_agreements(
    property_id: str | None = Query(None),
    status: str | None = Query(None),
    search: str | None = Query(None),
    date_from: datetime | None = Query(None),
    date_to: datetime | None = Query(None),
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    tracked = await agreement_service.track_agreements(
        db, property_id, status, search, date_from, date_to
    )
    return {
        "agreements": [
            AgreementResponse.model_validate(a).model_dump(mode="json")
            for a in tracked["agreements"]
        ],
        "summary": tracked["summary"],
    }


@router.post("/webhook")
async def signing_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    """Signing-provider callback. Events are matched by agreement or envelope id."""
    body_bytes = await request.body()
    validate_signing_signature(request, body_bytes)
    try:
        data = SigningWebhookEvent.model_validate_json(body_bytes)
    except PydanticValidationError as e:
        raise RequestValidationError(e.errors()) from e

    logger.info("Signing webhook: %s (agreement=%s envelope=%s)",
                data.event, data.agreement_id, data.envelope_id)
    agreement = await agreement_service.handle_signing_event(db, data)
    return {"received": True, "agreement_id": agreement.id, "status": agreement.status}


@router.get("/{agreement_id}", response_model=AgreementResponse)
async def get_agreement(
    agreement_id: str,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await agreement_service.get_agreement_or_raise(db, agreement_id)


@router.get("/{agreement_id}/history", response_model=list[AgreementStatusHistoryResponse])
async def agreement_history(
    agreement_id: str,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await agreement_service.get_status_history(db, agreement_id)


@router.get("/{agreement_id}/sign")
async def signing_view(agreement_id: str, db: AsyncSession = Depends(get_db)):
    """Public: the prospect opens the signing link."""
    view = await agreement_service.get_signing_view(db, agreement_id)
    template = view["template"]
    prop = view["property"]
    return {
        "agreement": AgreementResponse.model_validate(view["agreement"]).model_dump(mode="json"),
        "template": (
            {"id": template.id, "name": template.name, "version": template.version}
            if template else None
        ),
        "property": PropertyResponse.model_validate(prop).model_dump(mode="json") if prop else None,
        "content": view["content"],
    }


@router.post("/{agreement_id}/sign", response_model=AgreementResponse)
async def sign_agreement(
    agreement_id: str,
    data: SignAgreementRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Public: the prospect submits their signature."""
    return await agreement_service.sign_agreement(
        db,
        agreement_id,
        data.signature_name,
        signer_ip=client_ip(request),
        envelope_id=data.envelope_id,
        signed_document_url=data.signed_document_url,
    )


@router.post("/{agreement_id}/remind")
async def remind(
    agreement_id: str,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    sent = await agreement_service.send_reminder(db, agreement_id)
    return {"agreement_id": agreement_id, "reminder_sent": sent}


@router.post("/{agreement_id}/resend")
async def resend(
    agreement_id: str,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    sent = await agreement_service.resend_agreement(db, agreement_id)
    return {"agreement_id": agreement_id, "email_sent": sent}


@router.post("/{agreement_id}/complete", response_model=AgreementResponse)
async def complete(
    agreement_id: str,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await agreement_service.complete_agreement(db, agreement_id)


@router.post("/{agreement_id}/cancel", response_model=AgreementResponse)
async def cancel(
    agreement_id: str,
    data: CancelAgreementRequest,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await agreement_service.cancel_agreement(db, agreement_id, data.reason)


@router.post("/{agreement_id}/create-tenant", response_model=TenantResponse, status_code=201)
async def create_tenant(
    agreement_id: str,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await agreement_service.create_tenant_from_agreement(db, agreement_id)
