"""Maintenance records: CRUD, status transitions and per-property summary."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coliving_platform.domain.enums import MaintenanceStatus
from coliving_platform.domain.errors import InvalidTransitionError, NotFoundError
from coliving_platform.domain.models import MaintenanceRecord, utcnow
from coliving_platform.domain.schemas import MaintenanceCreate

logger = logging.getLogger(__name__)

S = MaintenanceStatus

TRANSITION_MAP: dict[MaintenanceStatus, set[MaintenanceStatus]] = {
    S.PENDING: {S.IN_PROGRESS, S.COMPLETED, S.CANCELLED},
    S.IN_PROGRESS: {S.COMPLETED, S.CANCELLED},
}


def validate_transition(current_status: str, target_status: str) -> None:
    current, target = S(current_status), S(target_status)
    if target not in TRANSITION_MAP.get(current, set()):
        raise InvalidTransitionError(
            current,
            target,
            f"Transition from {current.value} to {target.value} is not allowed",
        )


async def get_record(db: AsyncSession, record_id: str) -> MaintenanceRecord | None:
    result = await db.execute(
        select(MaintenanceRecord).where(
            MaintenanceRecord.id == record_id,
            MaintenanceRecord.deleted_at.is_(None),
        )
    )
    return result.scalar_one_or_none()


async def _get_or_raise(db: AsyncSession, record_id: str) -> MaintenanceRecord:
    record = await get_record(db, record_id)
    if record is None:
        raise NotFoundError("Maintenance record", record_id)
    return record


async def create_record(db: AsyncSession, data: MaintenanceCreate) -> MaintenanceRecord:
    fields = data.model_dump()
    fields["reported_date"] = fields.get("reported_date") or utcnow()
    record = MaintenanceRecord(**fields, status=S.PENDING.value)
    db.add(record)
    await db.commit()
    logger.info("Maintenance %s reported for property %s", record.id, record.property_id)
    return record


async def list_records(
    db: AsyncSession,
    property_id: str | None = None,
    status: str | None = None,
    priority: str | None = None,
) -> list[MaintenanceRecord]:
    query = select(MaintenanceRecord).where(MaintenanceRecord.deleted_at.is_(None))
    if property_id:
        query = query.where(MaintenanceRecord.property_id == property_id)
    if status:
        query = query.where(MaintenanceRecord.status == status)
    if priority:
        query = query.where(MaintenanceRecord.priority == priority)
    result = await db.execute(query.order_by(MaintenanceRecord.reported_date.desc()))
    return list(result.scalars().all())


async def update_record(db: AsyncSession, record_id: str, fields: dict) -> MaintenanceRecord:
    record = await _get_or_raise(db, record_id)
    for key, value in fields.items():
        setattr(record, key, value)
    await db.commit()
    return record


async def change_status(
    db: AsyncSession,
    record_id: str,
    status: str,
    cost_cents: int | None = None,
    notes: str | None = None,
) -> MaintenanceRecord:
    """Move a record along its workflow. Completing stamps completed_date."""
    record = await _get_or_raise(db, record_id)
    validate_transition(record.status, status)
    record.status = S(status).value
    if record.status == S.COMPLETED.value:
        record.completed_date = utcnow()
    if cost_cents is not None:
        record.cost_cents = cost_cents
    if notes:
        record.notes = f"{record.notes}\n{notes}" if record.notes else notes
    await db.commit()
    logger.info("Maintenance %s -> %s", record.id, record.status)
    return record


async def delete_record(db: AsyncSession, record_id: str) -> None:
    record = await _get_or_raise(db, record_id)
    record.deleted_at = utcnow()
    await db.commit()


async def get_summary(db: AsyncSession, property_id: str | None = None) -> dict:
    records = await list_records(db, property_id=property_id)
    by_status = {s.value: 0 for s in MaintenanceStatus}
    for r in records:
        by_status[r.status] = by_status.get(r.status, 0) + 1
    return {
        "total": len(records),
        "by_status": by_status,
        "open": by_status[S.PENDING.value] + by_status[S.IN_PROGRESS.value],
        "total_cost_cents": sum(r.cost_cents or 0 for r in records),
    }
