"""Integration tests for the reimbursement workflow against a real session."""

from datetime import timedelta

import pytest

from coliving_platform.domain.enums import ApprovalAction, PaymentMethod, ReimbursementStatus, UserRole
from coliving_platform.domain.errors import InvalidTransitionError, NotFoundError, ValidationError
from coliving_platform.domain.models import utcnow
from coliving_platform.domain.schemas import ReimbursementCreate
from coliving_platform.services import reimbursement_service

S = ReimbursementStatus


@pytest.fixture
async def setup(make_user, make_property, make_expense):
    manager = await make_user(role=UserRole.PROPERTY_MANAGER.value, email="manager@test.com")
    requestor = await make_user(role=UserRole.TENANT.value, email="requestor@test.com")
    prop = await make_property()
    expense = await make_expense(prop.id, amount_cents=4_500)
    return manager, requestor, prop, expense


async def _create(db_session, prop, expense, requestor, amount_cents=4_500, comment="Paid for the plumber"):
    data = ReimbursementCreate(
        expense_id=expense.id,
        property_id=prop.id,
        amount_cents=amount_cents,
        comment=comment,
    )
    return await reimbursement_service.create_request(db_session, data, requestor_id=requestor.id)


class TestCreate:
    async def test_creates_requested_with_history(self, db_session, setup, email_mock):
        manager, requestor, prop, expense = setup
        request = await _create(db_session, prop, expense, requestor)

        assert request.status == S.REQUESTED.value
        assert request.requestor_id == requestor.id
        assert request.comments == ["Paid for the plumber"]
        assert [h.to_status for h in request.status_history] == [S.REQUESTED.value]
        assert request.status_history[0].from_status is None
        assert email_mock.sent[0][0] == "requestor@test.com"

    async def test_email_failure_does_not_block(self, db_session, setup):
        # No SendGrid key is configured, so sending returns False
        manager, requestor, prop, expense = setup
        request = await _create(db_session, prop, expense, requestor)
        assert request.id


class TestApproval:
    async def test_approve(self, db_session, setup, email_mock):
        manager, requestor, prop, expense = setup
        request = await _create(db_session, prop, expense, requestor)

        approved = await reimbursement_service.process_approval(
            db_session, request.id, ApprovalAction.APPROVE, "Looks good", manager.id, manager.role
        )

        assert approved.status == S.APPROVED.value
        assert approved.approved_by == manager.id
        assert approved.approved_date is not None
        assert approved.comments[-1] == "Looks good"
        last = approved.status_history[-1]
        assert (last.from_status, last.to_status) == (S.REQUESTED.value, S.APPROVED.value)

    async def test_deny_records_reason(self, db_session, setup, email_mock):
        manager, requestor, prop, expense = setup
        request = await _create(db_session, prop, expense, requestor)

        denied = await reimbursement_service.process_approval(
            db_session, request.id, "deny", "No receipt", manager.id
        )

        assert denied.status == S.DENIED.value
        assert denied.denied_reason == "No receipt"
        assert denied.status_history[-1].reason == "No receipt"

    async def test_comment_required(self, db_session, setup):
        manager, requestor, prop, expense = setup
        request = await _create(db_session, prop, expense, requestor)
        with pytest.raises(ValidationError, match="comment is required"):
            await reimbursement_service.process_approval(
                db_session, request.id, "approve", "   ", manager.id
            )

    async def test_tenant_role_rejected(self, db_session, setup):
        manager, requestor, prop, expense = setup
        request = await _create(db_session, prop, expense, requestor)
        with pytest.raises(InvalidTransitionError):
            await reimbursement_service.process_approval(
                db_session, request.id, "approve", "ok", requestor.id, requestor.role
            )

    async def test_cannot_approve_twice(self, db_session, setup):
        manager, requestor, prop, expense = setup
        request = await _create(db_session, prop, expense, requestor)
        await reimbursement_service.process_approval(db_session, request.id, "approve", "ok", manager.id)
        with pytest.raises(InvalidTransitionError):
            await reimbursement_service.process_approval(db_session, request.id, "deny", "no", manager.id)

    async def test_missing_request(self, db_session):
        with pytest.raises(NotFoundError):
            await reimbursement_service.process_approval(db_session, "missing", "approve", "ok", "m")

    async def test_batch_skips_failures(self, db_session, setup):
        manager, requestor, prop, expense = setup
        first = await _create(db_session, prop, expense, requestor)
        second = await _create(db_session, prop, expense, requestor)
        await reimbursement_service.process_approval(db_session, second.id, "deny", "no", manager.id)

        processed = await reimbursement_service.process_batch_approval(
            db_session, [first.id, second.id, "missing"], "approve", "Batch ok", manager.id
        )

        assert [r.id for r in processed] == [first.id]
        assert processed[0].status == S.APPROVED.value


class TestPayment:
    async def test_record_payment(self, db_session, setup, email_mock):
        manager, requestor, prop, expense = setup
        request = await _create(db_session, prop, expense, requestor)
        await reimbursement_service.process_approval(db_session, request.id, "approve", "ok", manager.id)

        paid = await reimbursement_service.record_payment(
            db_session,
            request.id,
            PaymentMethod.VENMO,
            paid_by=manager.id,
            payment_reference="VEN-123",
            notes="Sent via Venmo",
        )

        assert paid.status == S.PAID.value
        assert paid.payment_method == "Venmo"
        assert paid.payment_reference == "VEN-123"
        assert paid.paid_date is not None
        assert [h.to_status for h in paid.status_history] == ["Requested", "Approved", "Paid"]

    async def test_requested_cannot_be_paid(self, db_session, setup):
        manager, requestor, prop, expense = setup
        request = await _create(db_session, prop, expense, requestor)
        with pytest.raises(InvalidTransitionError):
            await reimbursement_service.record_payment(db_session, request.id, "Cash", manager.id)


class TestQueries:
    async def test_filters(self, db_session, setup):
        manager, requestor, prop, expense = setup
        small = await _create(db_session, prop, expense, requestor, amount_cents=1_000)
        large = await _create(db_session, prop, expense, requestor, amount_cents=90_000)
        await reimbursement_service.process_approval(db_session, large.id, "approve", "ok", manager.id)

        by_status = await reimbursement_service.list_requests(db_session, status=["Approved"])
        assert [r.id for r in by_status] == [large.id]

        by_amount = await reimbursement_service.list_requests(
            db_session, min_amount_cents=500, max_amount_cents=5_000
        )
        assert [r.id for r in by_amount] == [small.id]

        by_approver = await reimbursement_service.list_requests(db_session, approved_by=manager.id)
        assert [r.id for r in by_approver] == [large.id]

    async def test_pending_and_outstanding(self, db_session, setup):
        manager, requestor, prop, expense = setup
        first = await _create(db_session, prop, expense, requestor)
        second = await _create(db_session, prop, expense, requestor)
        third = await _create(db_session, prop, expense, requestor)
        await reimbursement_service.process_approval(db_session, second.id, "approve", "ok", manager.id)
        await reimbursement_service.process_approval(db_session, third.id, "deny", "no", manager.id)

        pending = await reimbursement_service.get_pending(db_session, prop.id)
        assert [r.id for r in pending] == [first.id]

        outstanding = await reimbursement_service.get_outstanding(db_session, prop.id)
        assert {r.id for r in outstanding} == {first.id, second.id}

    async def test_update_rejects_status(self, db_session, setup):
        manager, requestor, prop, expense = setup
        request = await _create(db_session, prop, expense, requestor)
        with pytest.raises(ValidationError, match="status"):
            await reimbursement_service.update_request(db_session, request.id, {"status": "Paid"})

        updated = await reimbursement_service.update_request(
            db_session, request.id, {"amount_cents": 5_000}
        )
        assert updated.amount_cents == 5_000

    async def test_soft_delete_hides_request(self, db_session, setup):
        manager, requestor, prop, expense = setup
        request = await _create(db_session, prop, expense, requestor)
        await reimbursement_service.delete_request(db_session, request.id)
        assert await reimbursement_service.get_request(db_session, request.id) is None
        assert await reimbursement_service.list_requests(db_session) == []

    async def test_allowed_transitions(self, db_session, setup):
        manager, requestor, prop, expense = setup
        request = await _create(db_session, prop, expense, requestor)
        assert set(reimbursement_service.get_allowed_transitions(request)) == {"Approved", "Denied"}
        assert reimbursement_service.get_allowed_transitions(request, UserRole.TENANT.value) == []

    async def test_statistics(self, db_session, setup):
        manager, requestor, prop, expense = setup
        first = await _create(db_session, prop, expense, requestor, amount_cents=2_000)
        await _create(db_session, prop, expense, requestor, amount_cents=3_000)
        await reimbursement_service.process_approval(db_session, first.id, "approve", "ok", manager.id)
        await reimbursement_service.record_payment(
            db_session, first.id, "Cash", manager.id, paid_date=utcnow() + timedelta(days=2)
        )

        stats = await reimbursement_service.get_statistics(db_session, prop.id)

        assert stats["total_count"] == 2
        assert stats["total_amount_cents"] == 5_000
        assert stats["paid_amount_cents"] == 2_000
        assert stats["by_status"]["Paid"] == {"count": 1, "amount_cents": 2_000}
        assert stats["by_status"]["Requested"]["count"] == 1
        assert stats["average_processing_days"] == pytest.approx(2.0, abs=0.1)
        assert sum(m["count"] for m in stats["by_month"].values()) == 2
