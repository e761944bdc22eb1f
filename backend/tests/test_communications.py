"""Tests for tenant communications, escalations and message templates."""

from datetime import datetime

import pytest

from coliving_platform.app.routes.communications import router
from coliving_platform.domain.errors import NotFoundError, ValidationError
from coliving_platform.domain.schemas import CommunicationCreate, CommunicationTemplateCreate
from coliving_platform.services import communication_service


@pytest.fixture
async def tenant(make_property, make_tenant):
    prop = await make_property()
    return await make_tenant(prop.id, email="ada@example.com")


async def _log(db_session, tenant, **kwargs):
    fields = {
        "tenant_id": tenant.id,
        "property_id": tenant.property_id,
        "type": "Email",
        "subject": "Rent reminder",
        "content": "Rent is due on the first.",
    }
    fields.update(kwargs)
    return await communication_service.log_communication(
        db_session, CommunicationCreate(**fields), created_by="manager-1"
    )


class TestLogging:
    async def test_defaults(self, db_session, tenant):
        communication = await _log(db_session, tenant)
        assert communication.priority == "Medium"
        assert communication.status == "Open"
        assert communication.direction == "outgoing"
        assert communication.timestamp is not None

    async def test_send_email_mails_tenant(self, db_session, tenant, email_mock):
        await _log(db_session, tenant, send_email=True)
        to, subject, html = email_mock.sent[0]
        assert to == "ada@example.com"
        assert subject == "Rent reminder"
        assert "Rent is due" in html

    async def test_no_email_by_default(self, db_session, tenant, email_mock):
        await _log(db_session, tenant)
        assert email_mock.sent == []


class TestListing:
    async def test_filters_and_total(self, db_session, tenant):
        await _log(db_session, tenant, timestamp=datetime(2025, 1, 1), tags=["rent"])
        await _log(db_session, tenant, timestamp=datetime(2025, 2, 1), type="Phone",
                   subject="Broken heater", priority="Urgent", tags=["maintenance", "heating"])
        await _log(db_session, tenant, timestamp=datetime(2025, 3, 1), tags=["rent", "late"])

        page = await communication_service.list_communications(db_session, tenant_id=tenant.id)
        assert page["total"] == 3
        assert [c.timestamp.month for c in page["items"]] == [3, 2, 1]

        urgent = await communication_service.list_communications(db_session, priority="Urgent")
        assert [c.subject for c in urgent["items"]] == ["Broken heater"]

        tagged = await communication_service.list_communications(db_session, tags=["late", "heating"])
        assert tagged["total"] == 2

        searched = await communication_service.list_communications(db_session, search="HEATER")
        assert searched["total"] == 1

        ranged = await communication_service.list_communications(
            db_session, date_from=datetime(2025, 1, 15), date_to=datetime(2025, 2, 15)
        )
        assert [c.type for c in ranged["items"]] == ["Phone"]

    async def test_pagination(self, db_session, tenant):
        for day in range(1, 6):
            await _log(db_session, tenant, timestamp=datetime(2025, 1, day))
        page = await communication_service.list_communications(db_session, limit=2, offset=2)
        assert page["total"] == 5
        assert [c.timestamp.day for c in page["items"]] == [3, 2]

    @pytest.mark.parametrize("limit", [0, 101])
    async def test_limit_bounds(self, db_session, limit):
        with pytest.raises(ValidationError, match="limit"):
            await communication_service.list_communications(db_session, limit=limit)


class TestEscalation:
    async def test_escalate_and_resolve(self, db_session, tenant):
        communication = await _log(db_session, tenant)

        escalation = await communication_service.escalate(
            db_session, communication.id, "manager-1", "owner-1", "Needs owner approval"
        )
        assert communication.status == "In Progress"
        assert communication.assigned_to == "owner-1"

        resolved = await communication_service.resolve_escalation(db_session, escalation.id, "Approved")
        assert resolved.resolved is True
        assert resolved.resolved_at is not None
        assert [e.id for e in await communication_service.list_escalations(db_session, communication.id)] == [
            escalation.id
        ]

    async def test_escalate_missing(self, db_session):
        with pytest.raises(NotFoundError):
            await communication_service.escalate(db_session, "missing", "a", "b", "reason")

    async def test_delete_removes_escalations(self, db_session, tenant):
        communication = await _log(db_session, tenant)
        await communication_service.escalate(db_session, communication.id, "m", "o", "r")
        await communication_service.delete_communication(db_session, communication.id)
        assert await communication_service.get_communication(db_session, communication.id) is None
        assert await communication_service.list_escalations(db_session, communication.id) == []


class TestTemplates:
    async def test_variables_extracted(self, db_session):
        template = await communication_service.create_template(
            db_session,
            CommunicationTemplateCreate(
                name="Quiet hours",
                category="House Rules",
                subject="Quiet hours at {{property_name}}",
                content="Hi {{tenant_name}}, quiet hours start at {{start_time}} at {{property_name}}.",
            ),
            created_by="manager-1",
        )
        assert template.variables == ["property_name", "tenant_name", "start_time"]

    async def test_render_counts_usage(self, db_session):
        template = await communication_service.create_template(
            db_session,
            CommunicationTemplateCreate(
                name="Hello", category="General", subject="Hi {{tenant_name}}", content="Room {{room}}"
            ),
            created_by="manager-1",
        )
        rendered = await communication_service.render_template(db_session, template.id, {"tenant_name": "Ada"})
        assert rendered == {"subject": "Hi Ada", "content": "Room {{room}}"}
        assert template.usage_count == 1

    async def test_update_content_refreshes_variables(self, db_session):
        template = await communication_service.create_template(
            db_session,
            CommunicationTemplateCreate(name="Hello", category="General", subject="Hi", content="{{a}}"),
            created_by="manager-1",
        )
        updated = await communication_service.update_template(db_session, template.id, {"content": "{{b}}"})
        assert updated.variables == ["b"]

    async def test_seed_and_categories(self, db_session):
        created = await communication_service.seed_default_templates(db_session, "manager-1")
        assert len(created) == len(communication_service.DEFAULT_TEMPLATES)
        assert await communication_service.seed_default_templates(db_session, "manager-1") == []

        categories = await communication_service.list_categories(db_session)
        assert categories == sorted({t["category"] for t in communication_service.DEFAULT_TEMPLATES})


class TestRoutes:
    async def test_log_and_list(self, build_client, make_user, tenant):
        manager = await make_user()
        async with build_client([router], user=manager) as client:
            resp = await client.post("/api/communications", json={
                "tenant_id": tenant.id,
                "property_id": tenant.property_id,
                "type": "WhatsApp",
                "subject": "Wifi password",
                "content": "It's on the fridge.",
                "tags": ["wifi"],
            })
            assert resp.status_code == 201

            resp = await client.get("/api/communications", params={"tags": ["wifi"]})
            body = resp.json()
            assert body["total"] == 1
            assert body["items"][0]["type"] == "WhatsApp"

    async def test_limit_out_of_range_is_400(self, build_client, make_user):
        manager = await make_user()
        async with build_client([router], user=manager) as client:
            resp = await client.get("/api/communications", params={"limit": 500})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Validation failed"

    async def test_escalate_records_current_user(self, build_client, make_user, tenant, db_session):
        manager = await make_user()
        communication = await _log(db_session, tenant)
        async with build_client([router], user=manager) as client:
            resp = await client.post(
                f"/api/communications/{communication.id}/escalate",
                json={"escalated_to": "owner-1", "reason": "Deposit dispute"},
            )
        assert resp.status_code == 201
        assert resp.json()["escalated_from"] == manager.id

    async def test_template_categories_route(self, build_client, make_user, db_session):
        manager = await make_user()
        await communication_service.seed_default_templates(db_session, manager.id)
        async with build_client([router], user=manager) as client:
            resp = await client.get("/api/communications/templates/categories")
        assert resp.status_code == 200
        assert "Welcome" in resp.json()["categories"]

    async def test_seed_route(self, build_client, make_user):
        manager = await make_user()
        async with build_client([router], user=manager) as client:
            resp = await client.post("/api/communications/templates/seed")
            assert resp.status_code == 201
            assert len(resp.json()) == len(communication_service.DEFAULT_TEMPLATES)

            resp = await client.post("/api/communications/templates/seed")
            assert resp.json() == []

    async def test_null_subject_is_400(self, build_client, make_user, tenant, db_session):
        manager = await make_user()
        communication = await _log(db_session, tenant)
        async with build_client([router], user=manager) as client:
            resp = await client.patch(f"/api/communications/{communication.id}", json={"subject": None})
            assert resp.status_code == 400
            assert resp.json()["details"][0]["field"] == "subject"

            resp = await client.patch(f"/api/communications/{communication.id}", json={"assigned_to": None})
            assert resp.status_code == 200
