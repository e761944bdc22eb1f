"""Tests for maintenance records."""

import pytest

from coliving_platform.app.routes.maintenance import router
from coliving_platform.domain.enums import UserRole
from coliving_platform.domain.errors import InvalidTransitionError
from coliving_platform.domain.schemas import MaintenanceCreate
from coliving_platform.services import maintenance_service


async def _report(db_session, property_id, **kwargs):
    fields = {"property_id": property_id, "title": "Leaking tap", "room_number": "A1"}
    fields.update(kwargs)
    return await maintenance_service.create_record(db_session, MaintenanceCreate(**fields))


class TestWorkflow:
    async def test_new_record_is_pending(self, db_session, make_property):
        prop = await make_property()
        record = await _report(db_session, prop.id)
        assert record.status == "Pending"
        assert record.priority == "Medium"
        assert record.reported_date is not None

    async def test_complete_stamps_date_and_appends_notes(self, db_session, make_property):
        prop = await make_property()
        record = await _report(db_session, prop.id, notes="Reported by tenant")

        await maintenance_service.change_status(db_session, record.id, "In Progress")
        done = await maintenance_service.change_status(
            db_session, record.id, "Completed", cost_cents=8_500, notes="Replaced washer"
        )

        assert done.completed_date is not None
        assert done.cost_cents == 8_500
        assert done.notes == "Reported by tenant\nReplaced washer"

    @pytest.mark.parametrize("terminal", ["Completed", "Cancelled"])
    async def test_terminal_states_are_final(self, db_session, make_property, terminal):
        prop = await make_property()
        record = await _report(db_session, prop.id)
        await maintenance_service.change_status(db_session, record.id, terminal)
        with pytest.raises(InvalidTransitionError):
            await maintenance_service.change_status(db_session, record.id, "In Progress")

    async def test_cannot_return_to_pending(self, db_session, make_property):
        prop = await make_property()
        record = await _report(db_session, prop.id)
        await maintenance_service.change_status(db_session, record.id, "In Progress")
        with pytest.raises(InvalidTransitionError):
            await maintenance_service.change_status(db_session, record.id, "Pending")

    async def test_summary(self, db_session, make_property):
        prop = await make_property()
        first = await _report(db_session, prop.id, cost_cents=1_000)
        await _report(db_session, prop.id, priority="Urgent")
        await maintenance_service.change_status(db_session, first.id, "Completed")

        summary = await maintenance_service.get_summary(db_session, prop.id)
        assert summary["total"] == 2
        assert summary["open"] == 1
        assert summary["by_status"]["Completed"] == 1
        assert summary["total_cost_cents"] == 1_000


class TestRoutes:
    async def test_tenant_can_report_but_not_change_status(self, build_client, make_user, make_property):
        tenant_user = await make_user(role=UserRole.TENANT.value)
        prop = await make_property()

        async with build_client([router], user=tenant_user) as client:
            resp = await client.post("/api/maintenance", json={
                "property_id": prop.id,
                "title": "Broken window",
                "priority": "High",
            })
            assert resp.status_code == 201
            record_id = resp.json()["id"]

            resp = await client.patch(f"/api/maintenance/{record_id}/status", json={"status": "Completed"})
            assert resp.status_code == 403

    async def test_invalid_transition_is_400(self, build_client, make_user, make_property, db_session):
        manager = await make_user()
        prop = await make_property()
        record = await _report(db_session, prop.id)
        await maintenance_service.change_status(db_session, record.id, "Cancelled")

        async with build_client([router], user=manager) as client:
            resp = await client.patch(f"/api/maintenance/{record.id}/status", json={"status": "Completed"})
        assert resp.status_code == 400
        assert "Cancelled" in resp.json()["error"]

    async def test_delete_then_missing(self, build_client, make_user, make_property, db_session):
        manager = await make_user()
        prop = await make_property()
        record = await _report(db_session, prop.id)

        async with build_client([router], user=manager) as client:
            assert (await client.delete(f"/api/maintenance/{record.id}")).status_code == 204
            resp = await client.get(f"/api/maintenance/{record.id}")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Maintenance record not found"}

    @pytest.mark.parametrize("field", ["title", "priority"])
    async def test_null_on_required_field_is_400(self, build_client, make_user, make_property,
                                                 db_session, field):
        manager = await make_user()
        prop = await make_property()
        record = await _report(db_session, prop.id)

        async with build_client([router], user=manager) as client:
            resp = await client.patch(f"/api/maintenance/{record.id}", json={field: None})
        assert resp.status_code == 400
        assert resp.json()["details"][0]["field"] == field
