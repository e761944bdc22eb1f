"""Tenant communications: logging, search, escalation and message templates."""

import logging

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from coliving_platform.domain.enums import CommunicationStatus
from coliving_platform.domain.errors import NotFoundError, ValidationError
from coliving_platform.domain.models import (
    Communication,
    CommunicationTemplate,
    IssueEscalation,
    Tenant,
    to_naive_utc,
    utcnow,
)
from coliving_platform.domain.schemas import CommunicationCreate, CommunicationTemplateCreate
from coliving_platform.services import email_service, template_renderer

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


# ---------------------------------------------------------------------------
# Communications
# ---------------------------------------------------------------------------


async def get_communication(db: AsyncSession, communication_id: str) -> Communication | None:
    result = await db.execute(select(Communication).where(Communication.id == communication_id))
    return result.scalar_one_or_none()


async def _get_or_raise(db: AsyncSession, communication_id: str) -> Communication:
    communication = await get_communication(db, communication_id)
    if communication is None:
        raise NotFoundError("Communication", communication_id)
    return communication


async def log_communication(
    db: AsyncSession, data: CommunicationCreate, created_by: str
) -> Communication:
    """Record a communication. Optionally emails the tenant the same content."""
    fields = data.model_dump(exclude={"send_email"})
    fields["timestamp"] = fields.get("timestamp") or utcnow()
    communication = Communication(**fields, created_by=created_by)
    db.add(communication)
    await db.commit()
    logger.info("Communication %s logged for tenant %s", communication.id, communication.tenant_id)

    if data.send_email:
        result = await db.execute(select(Tenant).where(Tenant.id == communication.tenant_id))
        tenant = result.scalar_one_or_none()
        if tenant is None:
            logger.warning("Tenant %s not found, email not sent", communication.tenant_id)
        else:
            await email_service.send_communication_email(
                tenant.email, communication.subject, communication.content
            )
    return communication


async def update_communication(db: AsyncSession, communication_id: str, fields: dict) -> Communication:
    communication = await _get_or_raise(db, communication_id)
    for key, value in fields.items():
        if key in ("tags", "attachments"):
            value = list(value or [])
        setattr(communication, key, value)
    await db.commit()
    return communication


async def delete_communication(db: AsyncSession, communication_id: str) -> None:
    communication = await _get_or_raise(db, communication_id)
    result = await db.execute(
        select(IssueEscalation).where(IssueEscalation.communication_id == communication_id)
    )
    for escalation in result.scalars().all():
        await db.delete(escalation)
    await db.delete(communication)
    await db.commit()


async def list_communications(
    db: AsyncSession,
    tenant_id: str | None = None,
    property_id: str | None = None,
    type: str | None = None,
    priority: str | None = None,
    status: str | None = None,
    date_from=None,
    date_to=None,
    tags: list[str] | None = None,
    search: str | None = None,
    limit: int = DEFAULT_LIMIT,
    offset: int = 0,
) -> dict:
    """Filtered page of communications, newest first, plus the unpaged total."""
    if not 1 <= limit <= MAX_LIMIT:
        raise ValidationError(f"limit must be between 1 and {MAX_LIMIT}")
    if offset < 0:
        raise ValidationError("offset must not be negative")

    query = select(Communication)
    if tenant_id:
        query = query.where(Communication.tenant_id == tenant_id)
    if property_id:
        query = query.where(Communication.property_id == property_id)
    if type:
        query = query.where(Communication.type == type)
    if priority:
        query = query.where(Communication.priority == priority)
    if status:
        query = query.where(Communication.status == status)
    if date_from:
        query = query.where(Communication.timestamp >= to_naive_utc(date_from))
    if date_to:
        query = query.where(Communication.timestamp <= to_naive_utc(date_to))
    if search:
        pattern = f"%{search.lower()}%"
        query = query.where(
            or_(
                func.lower(Communication.subject).like(pattern),
                func.lower(Communication.content).like(pattern),
            )
        )

    result = await db.execute(query.order_by(Communication.timestamp.desc()))
    items = list(result.scalars().all())

    # JSON list membership is filtered in Python to stay portable across drivers
    if tags:
        wanted = set(tags)
        items = [c for c in items if wanted.intersection(c.tags or [])]

    return {"items": items[offset:offset + limit], "total": len(items)}


async def escalate(
    db: AsyncSession,
    communication_id: str,
    escalated_from: str,
    escalated_to: str,
    reason: str,
    notes: str | None = None,
) -> IssueEscalation:
    """Hand the issue to another staff member and mark it In Progress."""
    communication = await _get_or_raise(db, communication_id)
    escalation = IssueEscalation(
        communication_id=communication.id,
        escalated_from=escalated_from,
        escalated_to=escalated_to,
        reason=reason,
        notes=notes,
        timestamp=utcnow(),
    )
    communication.status = CommunicationStatus.IN_PROGRESS.value
    communication.assigned_to = escalated_to
    db.add(escalation)
    await db.commit()
    logger.info("Communication %s escalated to %s", communication.id, escalated_to)
    return escalation


async def resolve_escalation(
    db: AsyncSession, escalation_id: str, notes: str | None = None
) -> IssueEscalation:
    result = await db.execute(select(IssueEscalation).where(IssueEscalation.id == escalation_id))
    escalation = result.scalar_one_or_none()
    if escalation is None:
        raise NotFoundError("Escalation", escalation_id)
    escalation.resolved = True
    escalation.resolved_at = utcnow()
    if notes:
        escalation.notes = f"{escalation.notes}\n{notes}" if escalation.notes else notes
    await db.commit()
    return escalation


async def list_escalations(db: AsyncSession, communication_id: str) -> list[IssueEscalation]:
    result = await db.execute(
        select(IssueEscalation)
        .where(IssueEscalation.communication_id == communication_id)
        .order_by(IssueEscalation.timestamp)
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


async def get_template(db: AsyncSession, template_id: str) -> CommunicationTemplate | None:
    result = await db.execute(select(CommunicationTemplate).where(CommunicationTemplate.id == template_id))
    return result.scalar_one_or_none()


async def _get_template_or_raise(db: AsyncSession, template_id: str) -> CommunicationTemplate:
    template = await get_template(db, template_id)
    if template is None:
        raise NotFoundError("Communication template", template_id)
    return template


async def create_template(
    db: AsyncSession, data: CommunicationTemplateCreate, created_by: str
) -> CommunicationTemplate:
    """Store a template. Variables default to the placeholders found in it."""
    variables = data.variables
    if variables is None:
        variables = template_renderer.extract_variables(data.subject + "\n" + data.content)
    template = CommunicationTemplate(
        name=data.name,
        category=data.category,
        subject=data.subject,
        content=data.content,
        variables=list(variables),
        language=data.language,
        usage_count=0,
        is_active=True,
        created_by=created_by,
    )
    db.add(template)
    await db.commit()
    return template


async def list_templates(
    db: AsyncSession, category: str | None = None, active_only: bool = True
) -> list[CommunicationTemplate]:
    query = select(CommunicationTemplate)
    if category:
        query = query.where(CommunicationTemplate.category == category)
    if active_only:
        query = query.where(CommunicationTemplate.is_active.is_(True))
    result = await db.execute(query.order_by(CommunicationTemplate.category, CommunicationTemplate.name))
    return list(result.scalars().all())


async def update_template(db: AsyncSession, template_id: str, fields: dict) -> CommunicationTemplate:
    template = await _get_template_or_raise(db, template_id)
    for key, value in fields.items():
        setattr(template, key, value)
    if "subject" in fields or "content" in fields:
        template.variables = template_renderer.extract_variables(
            template.subject + "\n" + template.content
        )
    await db.commit()
    return template


async def list_categories(db: AsyncSession) -> list[str]:
    result = await db.execute(
        select(CommunicationTemplate.category)
        .where(CommunicationTemplate.is_active.is_(True))
        .distinct()
        .order_by(CommunicationTemplate.category)
    )
    return list(result.scalars().all())


async def render_template(db: AsyncSession, template_id: str, values: dict) -> dict:
    """Substitute values into subject and content and count the use."""
    template = await _get_template_or_raise(db, template_id)
    rendered = {
        "subject": template_renderer.render(template.subject, values),
        "content": template_renderer.render(template.content, values),
    }
    template.usage_count = (template.usage_count or 0) + 1
    await db.commit()
    return rendered


async def render_named_template(db: AsyncSession, name: str, values: dict) -> dict:
    """Render the active template called ``name``.

    Falls back to the built-in copy when the templates were never seeded.
    """
    result = await db.execute(
        select(CommunicationTemplate)
        .where(CommunicationTemplate.name == name, CommunicationTemplate.is_active.is_(True))
        .limit(1)
    )
    template = result.scalars().first()
    if template is not None:
        return await render_template(db, template.id, values)

    builtin = next((t for t in DEFAULT_TEMPLATES if t["name"] == name), None)
    if builtin is None:
        raise NotFoundError("Communication template", name)
    return {
        "subject": template_renderer.render(builtin["subject"], values),
        "content": template_renderer.render(builtin["content"], values),
    }


DEFAULT_TEMPLATES = [
    {
        "name": "Welcome New Tenant",
        "category": "Welcome",
        "subject": "Welcome to {{property_name}}!",
        "content": """Dear {{tenant_name}},

Welcome to {{property_name}}! We're excited to have you as part of our community.

Here are some important details for your move-in:
- Your room number is {{room_number}}
- Move-in date: {{move_in_date}}
- Monthly rent: {{monthly_rent}}
- Security deposit: {{security_deposit}}

If you have any questions or concerns, please don't hesitate to reach out.

Best regards,
{{manager_name}}""",
    },
    {
        "name": "Payment Reminder",
        "category": "Payment",
        "subject": "Rent Payment Reminder - {{property_name}}",
        "content": """Dear {{tenant_name}},

This is a friendly reminder that your rent payment for {{month_year}} is due on {{due_date}}.

Payment Details:
- Amount due: {{amount_due}}
- Due date: {{due_date}}
- Late fee after: {{late_fee_date}}

Please ensure your payment is submitted on time to avoid any late fees.

Thank you,
{{manager_name}}""",
    },
    {
        "name": "Maintenance Request Acknowledgment",
        "category": "Maintenance",
        "subject": "Maintenance Request Received - {{request_type}}",
        "content": """Dear {{tenant_name}},

We have received your maintenance request for {{request_type}} in room {{room_number}}.

Request Details:
- Issue: {{issue_description}}
- Priority: {{priority}}
- Expected resolution: {{expected_resolution}}

Our maintenance team will address this issue as soon as possible.

Best regards,
{{manager_name}}""",
    },
    {
        "name": "Lease Renewal Notice",
        "category": "Lease",
        "subject": "Lease Renewal - {{property_name}}",
        "content": """Dear {{tenant_name}},

Your current lease for room {{room_number}} at {{property_name}} will expire on {{lease_end_date}}.

We would like to offer you a renewal with the following terms:
- New lease period: {{new_lease_period}}
- Monthly rent: {{new_rent}}

Please let us know by {{response_deadline}} if you would like to renew.

Thank you,
{{manager_name}}""",
    },
    {
        "name": "Move-Out Instructions",
        "category": "Move-Out",
        "subject": "Move-Out Instructions - {{property_name}}",
        "content": """Dear {{tenant_name}},

As your lease end date of {{lease_end_date}} approaches, here are the move-out instructions:

- Final inspection: {{inspection_date}}
- Return all keys and access cards
- Clean your room and the common areas you used
- Provide a forwarding address for your deposit return

Your deposit of {{security_deposit}} will be refunded within {{refund_period}} days of the inspection.

Best regards,
{{manager_name}}""",
    },
]


async def seed_default_templates(db: AsyncSession, created_by: str) -> list[CommunicationTemplate]:
    """Create the built-in templates whose names don't exist yet."""
    result = await db.execute(select(CommunicationTemplate.name))
    existing = set(result.scalars().all())
    created = []
    for template in DEFAULT_TEMPLATES:
        if template["name"] in existing:
            continue
        created.append(await create_template(db, CommunicationTemplateCreate(**template), created_by))
    return created
