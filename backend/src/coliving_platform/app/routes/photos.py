"""Photo routes: receipt upload and signed, time-limited photo access."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from coliving_platform.app.config import get_settings
from coliving_platform.app.routes.agreements import client_ip
from coliving_platform.app.routes.auth import get_current_user_dep
from coliving_platform.domain.errors import RateLimitExceededError
from coliving_platform.domain.models import User
from coliving_platform.domain.schemas import PhotoResponse, SecureUrlRequest, SecureUrlResponse
from coliving_platform.infra.database import get_db
from coliving_platform.infra.rate_limiter import rate_limiter
from coliving_platform.services import photo_access, photo_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/photos", tags=["photos"])

UPLOAD_OPERATION = "photo_upload"


async def _enforce_rate_limit(user: User, operation: str) -> None:
    settings = get_settings()
    allowed, reset_time = await rate_limiter.check(
        user.id, operation, settings.rate_limit_max_requests, settings.rate_limit_window_seconds
    )
    if not allowed:
        raise RateLimitExceededError(operation, datetime.fromtimestamp(reset_time, timezone.utc))


@router.post("/receipt", response_model=PhotoResponse, status_code=201)
async def upload_receipt(
    file: UploadFile = File(...),
    property_id: str = Form(...),
    expense_id: str | None = Form(None),
    run_ocr: bool = Form(False),
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    permission = photo_access.check_photo_permission(user.role, "edit")
    if not permission["allowed"]:
        raise HTTPException(status_code=403, detail=permission["reason"])
    await _enforce_rate_limit(user, UPLOAD_OPERATION)

    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    return await photo_service.store_receipt_photo(
        db,
        data,
        file.filename,
        property_id=property_id,
        uploaded_by=user.id,
        expense_id=expense_id,
        run_ocr=run_ocr,
    )


@router.post("/secure-url", response_model=SecureUrlResponse)
async def create_secure_url(
    data: SecureUrlRequest,
    request: Request,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    for operation in data.operations:
        permission = photo_access.check_photo_permission(user.role, operation)
        if not permission["allowed"]:
            raise HTTPException(status_code=403, detail=permission["reason"])
    if not await photo_service.can_access_property(db, user, data.property_id):
        raise HTTPException(status_code=403, detail="No access to this property's photos")
    if await photo_service.find_photo_by_url(db, data.property_id, data.photo_url) is None:
        raise HTTPException(status_code=404, detail="Photo not found")

    signed = photo_access.generate_secure_photo_url(
        data.photo_url,
        data.property_id,
        expires_in=data.expires_in,
        operations=data.operations,
        ip=client_ip(request) if data.restrict_to_ip else None,
    )
    return SecureUrlResponse(
        url=signed["url"],
        token=signed["token"],
        expires_at=datetime.fromtimestamp(signed["expires_at"], timezone.utc),
    )


@router.get("/secure/{token}")
async def secure_photo(token: str, request: Request):
    """Public: redirect a valid signed link to the stored photo."""
    result = photo_access.validate_secure_photo_token(token, client_ip(request))
    if result["expired"]:
        raise HTTPException(status_code=410, detail="Photo link has expired")
    if not result["valid"]:
        raise HTTPException(status_code=403, detail=result["error"] or "Invalid photo link")
    if "view" not in result["operations"]:
        raise HTTPException(status_code=403, detail="Photo link does not allow viewing")
    if not photo_access.is_stored_photo_url(result["photo_url"]):
        logger.warning("Refused redirect of signed photo link to %r", result["photo_url"])
        raise HTTPException(status_code=403, detail="Invalid photo link")
    return RedirectResponse(url=result["photo_url"], status_code=302)


@router.get("/{photo_id}", response_model=PhotoResponse)
async def get_photo(
    photo_id: str,
    user: User = Depends(get_current_user_dep),
    db: AsyncSession = Depends(get_db),
):
    photo = await photo_service.get_photo(db, photo_id)
    if photo is None or not await photo_service.can_access_property(db, user, photo.property_id):
        raise HTTPException(status_code=404, detail="Photo not found")
    return photo
