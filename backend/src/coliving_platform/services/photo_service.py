"""Receipt uploads: validate, process, store variants, attach OCR."""

import asyncio
import logging

from fastapi.encoders import jsonable_encoder
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coliving_platform.domain.enums import TenantStatus, UserRole
from coliving_platform.domain.errors import NotFoundError, ValidationError
from coliving_platform.domain.models import Expense, Photo, User
from coliving_platform.infra.blob_storage import LocalBlobStorage
from coliving_platform.services import image_processor, ocr_service, property_service, tenant_service

logger = logging.getLogger(__name__)

STAFF_ROLES = (UserRole.PROPERTY_OWNER.value, UserRole.PROPERTY_MANAGER.value)


async def get_photo(db: AsyncSession, photo_id: str) -> Photo | None:
    result = await db.execute(select(Photo).where(Photo.id == photo_id))
    return result.scalar_one_or_none()


async def find_photo_by_url(db: AsyncSession, property_id: str, url: str) -> Photo | None:
    """The stored photo of this property that serves ``url`` as any variant."""
    result = await db.execute(select(Photo).where(Photo.property_id == property_id))
    for photo in result.scalars():
        variants = {photo.original_url, photo.compressed_url, *(photo.thumbnail_urls or {}).values()}
        if url in variants:
            return photo
    return None


async def can_access_property(db: AsyncSession, user: User, property_id: str) -> bool:
    """Staff reach every property; tenants only the one they live in."""
    if user.role in STAFF_ROLES:
        return await property_service.get_property(db, property_id) is not None
    tenant = await tenant_service.get_tenant_by_email(db, user.email)
    return (
        tenant is not None
        and tenant.property_id == property_id
        and tenant.status != TenantStatus.MOVED_OUT.value
    )


async def _run_ocr(data: bytes) -> tuple[dict, float]:
    enhanced = await asyncio.to_thread(image_processor.enhance_for_ocr, data)
    extraction = await asyncio.to_thread(ocr_service.extract_text_from_receipt, enhanced)
    extracted = extraction["extracted_text"] or {}
    check = ocr_service.validate_extracted_text(extracted)
    return (
        jsonable_encoder({**extraction, "validation": check}),
        check["confidence"],
    )


async def store_receipt_photo(
    db: AsyncSession,
    data: bytes,
    filename: str | None,
    property_id: str,
    uploaded_by: str,
    expense_id: str | None = None,
    run_ocr: bool = False,
    storage: LocalBlobStorage | None = None,
) -> Photo:
    """Validate and process an uploaded receipt, then store every variant.

    The compressed copy becomes the expense's receipt_url when an expense is
    given.
    """
    await property_service.get_property_or_raise(db, property_id)
    expense = None
    if expense_id:
        result = await db.execute(select(Expense).where(Expense.id == expense_id))
        expense = result.scalar_one_or_none()
        if expense is None:
            raise NotFoundError("Expense", expense_id)

    check = image_processor.validate_image(data)
    if not check["valid"]:
        raise ValidationError(check["error"] or "Invalid image")

    try:
        processed = await asyncio.to_thread(image_processor.process_receipt_image, data)
    except image_processor.ImageProcessingError as e:
        raise ValidationError(str(e)) from e

    storage = storage or LocalBlobStorage()
    prefix = f"receipts/{property_id}"
    base = storage.unique_name(filename or "receipt.jpg")
    stem = base.rsplit(".", 1)[0]

    original_url = await storage.put(prefix, f"{stem}_original.jpg", processed.original.data)
    compressed_url = await storage.put(prefix, f"{stem}.jpg", processed.compressed.data)
    thumbnail_urls = {}
    for name, thumb in processed.thumbnails.items():
        thumbnail_urls[name] = await storage.put(prefix, f"{stem}_{name}.jpg", thumb.data)

    ocr_result, ocr_confidence = (None, None)
    if run_ocr:
        ocr_result, ocr_confidence = await _run_ocr(data)

    photo = Photo(
        property_id=property_id,
        expense_id=expense_id,
        uploaded_by=uploaded_by,
        original_url=original_url,
        compressed_url=compressed_url,
        thumbnail_urls=thumbnail_urls,
        width=processed.original.width,
        height=processed.original.height,
        size_bytes=processed.compressed.size,
        ocr_result=ocr_result,
        ocr_confidence=ocr_confidence,
    )
    db.add(photo)
    if expense is not None:
        expense.receipt_url = compressed_url
    await db.commit()
    logger.info("Receipt photo %s stored for property %s", photo.id, property_id)
    return photo
