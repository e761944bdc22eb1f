"""Tests for the rent payment lifecycle: settlement, refunds and reminders."""

from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import select

from coliving_platform.app.routes import properties
from coliving_platform.domain.enums import UserRole
from coliving_platform.domain.errors import InvalidTransitionError, ValidationError
from coliving_platform.domain.models import Communication
from coliving_platform.domain.schemas import PaymentCreate, RefundRequest
from coliving_platform.services import communication_service, payment_service, property_service
from coliving_platform.services.payment_service import reminder_kind

NOW = datetime(2025, 3, 1, 9, 0)


@pytest.fixture
async def prop(make_property):
    return await make_property(name="Maple House")


@pytest.fixture
async def tenant(prop, make_tenant):
    return await make_tenant(prop.id, email="ada@example.com")


async def _communications(db_session):
    result = await db_session.execute(select(Communication).order_by(Communication.timestamp))
    return list(result.scalars().all())


class TestSettlement:
    async def test_mark_paid_stamps_and_confirms(self, db_session, prop, tenant, make_payment, email_mock):
        payment = await make_payment(
            prop.id, status="pending", tenant_id=tenant.id, due_date=datetime(2025, 3, 1), method=None
        )
        paid_at = datetime(2025, 3, 3, 12, 0)

        paid = await payment_service.mark_paid(db_session, payment.id, method="Wise", paid_date=paid_at)

        assert paid.status == "completed"
        assert paid.paid_date == paid_at
        assert paid.date == paid_at
        assert paid.method == "Wise"
        [(to, subject, body)] = email_mock.sent
        assert to == "ada@example.com"
        assert subject == "Payment received: $1,200.00"
        assert "Maple House" in body

    async def test_failed_payment_can_be_settled(self, db_session, prop, make_payment):
        payment = await make_payment(prop.id, status="failed")
        paid = await payment_service.mark_paid(db_session, payment.id)
        assert paid.status == "completed"
        assert paid.paid_date is not None

    @pytest.mark.parametrize("status", ["completed", "refunded"])
    async def test_settled_payment_cannot_be_paid_again(self, db_session, prop, make_payment, status):
        payment = await make_payment(prop.id, status=status)
        with pytest.raises(InvalidTransitionError):
            await payment_service.mark_paid(db_session, payment.id)

    async def test_bulk_mark_paid_reports_each_payment(self, db_session, prop, make_payment, email_mock):
        pending = await make_payment(prop.id, status="pending")
        done = await make_payment(prop.id, status="completed")

        result = await payment_service.bulk_mark_paid(
            db_session, [pending.id, done.id, "missing", pending.id]
        )

        assert result["successful"] == [pending.id]
        assert [f["id"] for f in result["failed"]] == [done.id, "missing"]
        assert "not found" in result["failed"][1]["error"]

    async def test_recorded_pending_payment_is_due_on_its_date(self, db_session, prop):
        payment = await property_service.record_payment(db_session, PaymentCreate(
            property_id=prop.id, amount_cents=90_000, status="pending", date="2025-04-01T00:00:00Z",
        ))
        assert payment.due_date == datetime(2025, 4, 1)
        assert payment.paid_date is None


class TestRefund:
    async def test_full_refund(self, db_session, prop, tenant, make_payment, email_mock):
        payment = await make_payment(prop.id, tenant_id=tenant.id)

        result = await payment_service.refund_payment(
            db_session, payment.id, RefundRequest(reason="Moved out early")
        )

        assert result["original_payment"].status == "refunded"
        refund = result["refund"]
        assert refund.status == "refunded"
        assert refund.amount_cents == 120_000
        assert refund.refund_of_id == payment.id
        assert "Moved out early" in refund.description
        assert email_mock.sent[0][1] == "Refund issued: $1,200.00"

    async def test_partial_refund_reduces_income(self, db_session, prop, make_payment):
        payment = await make_payment(prop.id, amount_cents=100_000)

        result = await payment_service.refund_payment(
            db_session, payment.id, RefundRequest(amount_cents=25_000, reason="Broken heater", notes="March")
        )

        assert result["original_payment"].status == "completed"
        assert result["original_payment"].amount_cents == 75_000
        assert result["refund"].amount_cents == 25_000
        assert result["refund"].description.endswith("Reason: Broken heater. Notes: March")

    async def test_refund_cannot_exceed_payment(self, db_session, prop, make_payment):
        payment = await make_payment(prop.id, amount_cents=10_000)
        with pytest.raises(ValidationError, match="cannot exceed"):
            await payment_service.refund_payment(
                db_session, payment.id, RefundRequest(amount_cents=10_001, reason="Oops")
            )

    async def test_only_completed_payments_refund(self, db_session, prop, make_payment):
        payment = await make_payment(prop.id, status="pending")
        with pytest.raises(InvalidTransitionError):
            await payment_service.refund_payment(db_session, payment.id, RefundRequest(reason="Oops"))


class TestReminderSchedule:
    @pytest.mark.parametrize("due,expected", [
        (datetime(2025, 3, 8), "upcoming"),
        (datetime(2025, 3, 3), None),
        (datetime(2025, 3, 1, 23, 59), "due"),
        (datetime(2025, 2, 26), "overdue"),
        (datetime(2025, 2, 27), None),
    ])
    def test_reminder_kind(self, due, expected):
        assert reminder_kind(due, date(2025, 3, 1), [7], [0, 3]) == expected


class TestReminders:
    async def test_reminder_is_logged_and_emailed(self, db_session, prop, tenant, make_payment, email_mock):
        payment = await make_payment(
            prop.id, status="pending", tenant_id=tenant.id, due_date=datetime(2025, 3, 1)
        )

        communication = await payment_service.send_payment_reminder(
            db_session, payment.id, created_by="manager-1", now=NOW
        )

        assert communication.source == "payment_reminder"
        assert communication.payment_id == payment.id
        assert communication.tenant_id == tenant.id
        assert communication.subject == "Rent Payment Reminder - Maple House"
        assert "Dear Ada Lovelace" in communication.content
        assert "Amount due: $1,200.00" in communication.content
        assert "Late fee after: March 06, 2025" in communication.content
        assert communication.priority == "Medium"
        assert email_mock.sent[0][0] == "ada@example.com"
        assert payment.reminders_sent == 1
        assert payment.last_reminder_date == NOW

    async def test_seeded_template_is_used(self, db_session, prop, tenant, make_payment, email_mock):
        [template] = [
            t for t in await communication_service.seed_default_templates(db_session, "manager-1")
            if t.name == "Payment Reminder"
        ]
        await communication_service.update_template(
            db_session, template.id, {"subject": "Rent due at {{property_name}}"}
        )
        payment = await make_payment(prop.id, status="pending", tenant_id=tenant.id)

        communication = await payment_service.send_payment_reminder(db_session, payment.id)

        assert communication.subject == "Rent due at Maple House"
        assert template.usage_count == 1

    async def test_overdue_reminder_is_high_priority(self, db_session, prop, tenant, make_payment, email_mock):
        payment = await make_payment(
            prop.id, status="pending", tenant_id=tenant.id, due_date=datetime(2025, 2, 26)
        )
        communication = await payment_service.send_payment_reminder(db_session, payment.id, now=NOW)
        assert communication.priority == "High"

    async def test_refuses_settled_or_tenantless(self, db_session, prop, tenant, make_payment):
        paid = await make_payment(prop.id, tenant_id=tenant.id)
        with pytest.raises(ValidationError, match="Only pending"):
            await payment_service.send_payment_reminder(db_session, paid.id)

        orphan = await make_payment(prop.id, status="pending")
        with pytest.raises(ValidationError, match="no tenant"):
            await payment_service.send_payment_reminder(db_session, orphan.id)

    async def test_scheduled_run(self, db_session, prop, tenant, make_tenant, make_payment, email_mock):
        gone = await make_tenant(prop.id, status="Moved Out")
        for due in (datetime(2025, 3, 8), datetime(2025, 3, 1), datetime(2025, 2, 26), datetime(2025, 3, 3)):
            await make_payment(prop.id, status="pending", tenant_id=tenant.id, due_date=due)
        await make_payment(prop.id, status="completed", tenant_id=tenant.id, due_date=datetime(2025, 3, 1))
        await make_payment(prop.id, status="pending", tenant_id=gone.id, due_date=datetime(2025, 3, 1))
        await make_payment(prop.id, status="pending", due_date=datetime(2025, 3, 1))

        assert await payment_service.process_payment_reminders(db_session, now=NOW) == 3
        assert len(await _communications(db_session)) == 3
        assert len(email_mock.sent) == 3

        # Once a day per payment
        assert await payment_service.process_payment_reminders(db_session, now=NOW + timedelta(hours=2)) == 0

    async def test_reminders_stop_at_the_limit(self, db_session, prop, tenant, make_payment, email_mock):
        payment = await make_payment(
            prop.id, status="pending", tenant_id=tenant.id, due_date=datetime(2025, 3, 1)
        )
        payment.reminders_sent = 5
        await db_session.commit()

        assert await payment_service.process_payment_reminders(db_session, now=NOW) == 0


class TestPaymentRoutes:
    async def test_lifecycle(self, build_client, make_user, prop, tenant, make_payment, email_mock):
        manager = await make_user()
        pending = await make_payment(
            prop.id, status="pending", tenant_id=tenant.id, due_date=datetime(2025, 3, 1)
        )

        async with build_client([properties.payments_router], user=manager) as client:
            resp = await client.post(f"/api/payments/{pending.id}/remind")
            assert resp.status_code == 201
            assert resp.json()["source"] == "payment_reminder"
            assert resp.json()["created_by"] == manager.id

            resp = await client.post(f"/api/payments/{pending.id}/mark-paid", json={"method": "Venmo"})
            assert resp.status_code == 200
            assert resp.json()["status"] == "completed"
            assert resp.json()["reminders_sent"] == 1

            resp = await client.post(f"/api/payments/{pending.id}/mark-paid", json={})
            assert resp.status_code == 400

            resp = await client.post(f"/api/payments/{pending.id}/refund", json={
                "amount_cents": 20_000, "reason": "Utility credit",
            })
            assert resp.status_code == 201
            body = resp.json()
            assert body["original_payment"]["amount_cents"] == 100_000
            assert body["refund"]["refund_of_id"] == pending.id

            resp = await client.get(f"/api/payments/{pending.id}")
            assert resp.json()["method"] == "Venmo"

    async def test_bulk_routes(self, build_client, make_user, prop, tenant, make_payment, email_mock):
        manager = await make_user()
        first = await make_payment(prop.id, status="pending", tenant_id=tenant.id)
        second = await make_payment(prop.id, status="pending")

        async with build_client([properties.payments_router], user=manager) as client:
            resp = await client.post("/api/payments/bulk-remind", json={"payment_ids": [first.id, second.id]})
            assert resp.status_code == 200
            assert resp.json()["successful"] == [first.id]
            assert resp.json()["failed"][0]["id"] == second.id

            resp = await client.post("/api/payments/bulk-mark-paid", json={"payment_ids": [first.id, second.id]})
            assert resp.json() == {"successful": [first.id, second.id], "failed": []}

            resp = await client.post("/api/payments/bulk-mark-paid", json={"payment_ids": []})
            assert resp.status_code == 400

        assert {first.status, second.status} == {"completed"}

    @pytest.mark.parametrize("payload", [
        {"reason": ""},
        {"reason": "Overcharge", "amount_cents": 0},
    ])
    async def test_invalid_refund_body(self, build_client, make_user, prop, make_payment, payload):
        manager = await make_user()
        payment = await make_payment(prop.id)
        async with build_client([properties.payments_router], user=manager) as client:
            resp = await client.post(f"/api/payments/{payment.id}/refund", json=payload)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Validation failed"

    async def test_unknown_payment(self, build_client, make_user):
        manager = await make_user()
        async with build_client([properties.payments_router], user=manager) as client:
            resp = await client.get("/api/payments/missing")
        assert resp.status_code == 404

    async def test_tenant_cannot_settle(self, build_client, make_user, prop, make_payment):
        tenant_user = await make_user(role=UserRole.TENANT.value)
        payment = await make_payment(prop.id, status="pending")
        async with build_client([properties.payments_router], user=tenant_user) as client:
            resp = await client.post(f"/api/payments/{payment.id}/mark-paid", json={})
        assert resp.status_code == 403
        assert payment.status == "pending"
