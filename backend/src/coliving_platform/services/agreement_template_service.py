"""Agreement template management: validation, versioning, cloning, usage stats."""

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coliving_platform.domain.enums import AgreementStatus
from coliving_platform.domain.errors import NotFoundError, ValidationError
from coliving_platform.domain.models import Agreement, AgreementTemplate, utcnow
from coliving_platform.domain.schemas import AgreementTemplateCreate, TemplateVariable
from coliving_platform.services import template_renderer

logger = logging.getLogger(__name__)

# Signers can still open these, so their template must stay
OUTSTANDING_STATUSES = (AgreementStatus.SENT.value, AgreementStatus.VIEWED.value)


def _normalize_variables(variables) -> list[dict]:
    """Plain dicts with an id on every variable."""
    normalized = []
    for variable in variables or []:
        if isinstance(variable, TemplateVariable):
            variable = variable.model_dump()
        else:
            variable = dict(variable)
        variable["id"] = variable.get("id") or str(uuid.uuid4())
        normalized.append(variable)
    return normalized


def _without_ids(variables) -> list[dict]:
    return [{k: v for k, v in var.items() if k != "id"} for var in variables or []]


async def get_template(db: AsyncSession, template_id: str) -> AgreementTemplate | None:
    result = await db.execute(
        select(AgreementTemplate).where(
            AgreementTemplate.id == template_id,
            AgreementTemplate.deleted_at.is_(None),
        )
    )
    return result.scalar_one_or_none()


async def _get_or_raise(db: AsyncSession, template_id: str) -> AgreementTemplate:
    template = await get_template(db, template_id)
    if template is None:
        raise NotFoundError("Agreement template", template_id)
    return template


async def create_template(
    db: AsyncSession, data: AgreementTemplateCreate, created_by: str
) -> AgreementTemplate:
    """Validate and store a new template at version 1."""
    variables = _normalize_variables(data.variables)
    template_renderer.validate_template(data.content, variables)

    template = AgreementTemplate(
        name=data.name,
        property_id=data.property_id,
        content=data.content,
        variables=variables,
        version=1,
        is_active=True,
        description=data.description,
        category=data.category,
        legal_review_date=data.legal_review_date,
        legal_reviewed_by=data.legal_reviewed_by,
        created_by=created_by,
    )
    db.add(template)
    await db.commit()
    logger.info("Agreement template %s created for property %s", template.id, template.property_id)
    return template


async def update_template(db: AsyncSession, template_id: str, fields: dict) -> AgreementTemplate:
    """Apply changes; a content or variable change revalidates and bumps the version."""
    template = await _get_or_raise(db, template_id)

    content = fields.get("content")
    variables = fields.get("variables")
    if variables is not None:
        variables = _normalize_variables(variables)

    content_changed = content is not None and content != template.content
    variables_changed = variables is not None and _without_ids(variables) != _without_ids(
        template.variables
    )

    if content is not None or variables is not None:
        template_renderer.validate_template(
            content if content is not None else template.content,
            variables if variables is not None else template.variables,
        )

    for key, value in fields.items():
        if key in ("content", "variables") or value is None:
            continue
        setattr(template, key, value)
    if content is not None:
        template.content = content
    if variables is not None:
        template.variables = variables
    if content_changed or variables_changed:
        template.version = (template.version or 1) + 1

    await db.commit()
    logger.info("Agreement template %s updated (version %d)", template.id, template.version)
    return template


async def list_property_templates(
    db: AsyncSession, property_id: str, active_only: bool = False
) -> list[AgreementTemplate]:
    query = select(AgreementTemplate).where(
        AgreementTemplate.property_id == property_id,
        AgreementTemplate.deleted_at.is_(None),
    )
    if active_only:
        query = query.where(AgreementTemplate.is_active.is_(True))
    result = await db.execute(query.order_by(AgreementTemplate.created_at.desc()))
    return list(result.scalars().all())


async def clone_template(
    db: AsyncSession,
    template_id: str,
    new_name: str,
    created_by: str,
    property_id: str | None = None,
) -> AgreementTemplate:
    """Copy a template as a fresh, active version 1."""
    original = await _get_or_raise(db, template_id)
    clone = AgreementTemplate(
        name=new_name,
        property_id=property_id or original.property_id,
        content=original.content,
        variables=[{**v, "id": str(uuid.uuid4())} for v in original.variables or []],
        version=1,
        is_active=True,
        description=original.description,
        category=original.category,
        created_by=created_by,
    )
    db.add(clone)
    await db.commit()
    logger.info("Agreement template %s cloned to %s", original.id, clone.id)
    return clone


async def preview_template(db: AsyncSession, template_id: str, values: dict) -> str:
    template = await _get_or_raise(db, template_id)
    merged = template_renderer.apply_defaults(template.variables, values)
    return template_renderer.render(template.content, merged)


async def deactivate_template(db: AsyncSession, template_id: str) -> AgreementTemplate:
    template = await _get_or_raise(db, template_id)
    template.is_active = False
    await db.commit()
    return template


async def delete_template(db: AsyncSession, template_id: str) -> None:
    template = await _get_or_raise(db, template_id)
    result = await db.execute(
        select(Agreement.id).where(
            Agreement.template_id == template_id,
            Agreement.deleted_at.is_(None),
            Agreement.status.in_(OUTSTANDING_STATUSES),
        ).limit(1)
    )
    if result.first() is not None:
        raise ValidationError("Template is used by agreements awaiting signature")
    template.deleted_at = utcnow()
    template.is_active = False
    await db.commit()
    logger.info("Agreement template %s soft-deleted", template_id)


async def get_usage_stats(db: AsyncSession, template_id: str) -> dict:
    """How many agreements used the template and how quickly they were signed."""
    await _get_or_raise(db, template_id)
    result = await db.execute(
        select(Agreement).where(
            Agreement.template_id == template_id,
            Agreement.deleted_at.is_(None),
        )
    )
    agreements = result.scalars().all()

    signed_statuses = {AgreementStatus.SIGNED.value, AgreementStatus.COMPLETED.value}
    signed = [a for a in agreements if a.status in signed_statuses]
    completed = [a for a in agreements if a.status == AgreementStatus.COMPLETED.value]
    signing_hours = [
        (a.signed_date - a.sent_date).total_seconds() / 3600
        for a in signed
        if a.signed_date and a.sent_date
    ]

    return {
        "template_id": template_id,
        "total_sent": len(agreements),
        "total_signed": len(signed),
        "total_completed": len(completed),
        "average_signing_hours": (
            round(sum(signing_hours) / len(signing_hours), 1) if signing_hours else 0
        ),
    }


# ---------------------------------------------------------------------------
# Default templates
# ---------------------------------------------------------------------------

STANDARD_LEASE = """
# COLIVING LEASE AGREEMENT

**Property:** {{property_name}}
**Address:** {{property_address}}

**Tenant Information:**
- Name: {{tenant_name}}
- Email: {{tenant_email}}
- Phone: {{tenant_phone}}

**Lease Terms:**
- Room Number: {{room_number}}
- Lease Start Date: {{lease_start_date}}
- Lease End Date: {{lease_end_date}}
- Monthly Rent: ${{monthly_rent}}
- Security Deposit: ${{security_deposit}}

**Agreement:**
The Tenant agrees to rent the above-described room in the coliving property under the following terms and conditions:

1. **Rent Payment:** Monthly rent of ${{monthly_rent}} is due on the {{rent_due_date}} of each month.

2. **Security Deposit:** A security deposit of ${{security_deposit}} is required and will be returned upon satisfactory completion of the lease term.

3. **House Rules:** Tenant agrees to abide by all house rules and community guidelines.

4. **Utilities:** {{utilities_included}}

5. **Termination:** This lease may be terminated with {{notice_period}} days written notice.

**Signatures:**
By signing below, both parties agree to the terms and conditions outlined in this agreement.

Tenant Signature: _________________________ Date: _________

Property Owner Signature: _________________________ Date: _________
"""

SHORT_TERM = """
# SHORT-TERM COLIVING AGREEMENT

**Property:** {{property_name}}
**Duration:** {{stay_duration}}

**Guest Information:**
- Name: {{guest_name}}
- Email: {{guest_email}}
- Check-in: {{checkin_date}}
- Check-out: {{checkout_date}}

**Room:** {{room_number}}
**Total Cost:** ${{total_cost}}

**Terms:**
This is a short-term accommodation agreement for coliving space. Guest agrees to:
- Respect house rules and other residents
- Pay all fees upfront
- Provide valid identification
- Leave room in clean condition

**Cancellation Policy:** {{cancellation_policy}}

Signatures required for stays longer than {{signature_threshold}} days.
"""

TENANT_INFO_VARIABLES = [
    {"name": "tenant_name", "label": "Tenant Full Name", "type": "text", "required": True},
    {"name": "tenant_email", "label": "Tenant Email", "type": "text", "required": True},
    {"name": "tenant_phone", "label": "Tenant Phone", "type": "text", "required": True},
]

PROPERTY_INFO_VARIABLES = [
    {"name": "property_name", "label": "Property Name", "type": "text", "required": True},
    {"name": "property_address", "label": "Property Address", "type": "text", "required": True},
    {"name": "room_number", "label": "Room Number", "type": "text", "required": True},
]

LEASE_TERM_VARIABLES = [
    {"name": "lease_start_date", "label": "Lease Start Date", "type": "date", "required": True},
    {"name": "lease_end_date", "label": "Lease End Date", "type": "date", "required": True},
    {"name": "monthly_rent", "label": "Monthly Rent ($)", "type": "number", "required": True},
    {"name": "security_deposit", "label": "Security Deposit ($)", "type": "number", "required": True},
    {
        "name": "rent_due_date",
        "label": "Rent Due Date",
        "type": "select",
        "required": True,
        "select_options": ["1st", "5th", "10th", "15th", "20th", "25th"],
    },
    {
        "name": "notice_period",
        "label": "Notice Period (days)",
        "type": "number",
        "required": True,
        "default_value": "30",
    },
    {
        "name": "utilities_included",
        "label": "Utilities Included",
        "type": "select",
        "required": True,
        "select_options": [
            "All utilities included",
            "Electricity not included",
            "Internet not included",
            "Custom arrangement",
        ],
    },
]

SHORT_TERM_VARIABLES = [
    {"name": "property_name", "label": "Property Name", "type": "text", "required": True},
    {"name": "stay_duration", "label": "Stay Duration", "type": "text", "required": True},
    {"name": "guest_name", "label": "Guest Full Name", "type": "text", "required": True},
    {"name": "guest_email", "label": "Guest Email", "type": "text", "required": True},
    {"name": "checkin_date", "label": "Check-in Date", "type": "date", "required": True},
    {"name": "checkout_date", "label": "Check-out Date", "type": "date", "required": True},
    {"name": "room_number", "label": "Room Number", "type": "text", "required": True},
    {"name": "total_cost", "label": "Total Cost ($)", "type": "number", "required": True},
    {"name": "cancellation_policy", "label": "Cancellation Policy", "type": "text", "required": False,
     "default_value": "Full refund up to 48 hours before check-in"},
    {"name": "signature_threshold", "label": "Signature Threshold (days)", "type": "number",
     "required": False, "default_value": "7"},
]

DEFAULT_TEMPLATES = {
    "Standard Lease": (
        STANDARD_LEASE,
        TENANT_INFO_VARIABLES + PROPERTY_INFO_VARIABLES + LEASE_TERM_VARIABLES,
    ),
    "Short Term": (SHORT_TERM, SHORT_TERM_VARIABLES),
}


async def seed_default_templates(
    db: AsyncSession, property_id: str, created_by: str
) -> list[AgreementTemplate]:
    """Create the built-in templates for a property, skipping names it already has."""
    existing = {t.name for t in await list_property_templates(db, property_id)}
    created = []
    for name, (content, variables) in DEFAULT_TEMPLATES.items():
        if name in existing:
            continue
        created.append(
            await create_template(
                db,
                AgreementTemplateCreate(
                    name=name,
                    property_id=property_id,
                    content=content.strip(),
                    variables=[TemplateVariable(**v) for v in variables],
                    category=name,
                    description=f"Default {name.lower()} agreement",
                ),
                created_by,
            )
        )
    return created
