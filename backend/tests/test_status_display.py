"""Unit tests for status badges and status filtering."""

from types import SimpleNamespace

import pytest

from coliving_platform.domain.enums import AgreementStatus, ReimbursementStatus
from coliving_platform.services.status_display import filter_by_status, is_terminal, status_badge


class TestStatusBadge:
    @pytest.mark.parametrize("status,color,icon", [
        (ReimbursementStatus.REQUESTED, "yellow", "clock"),
        (ReimbursementStatus.APPROVED, "blue", "check"),
        (ReimbursementStatus.PAID, "green", "dollar-sign"),
        (ReimbursementStatus.DENIED, "red", "x"),
    ])
    def test_reimbursement_badges(self, status, color, icon):
        badge = status_badge(status)
        assert badge["label"] == status.value
        assert badge["color"] == color
        assert badge["icon"] == icon

    def test_agreement_badge(self):
        badge = status_badge(AgreementStatus.COMPLETED)
        assert badge == {
            "label": "Completed",
            "color": "emerald",
            "variant": "success",
            "icon": "check-circle",
        }

    def test_raw_string_resolves_either_enum(self):
        assert status_badge("Paid")["color"] == "green"
        assert status_badge("Viewed")["icon"] == "eye"

    def test_unknown_status_gets_neutral_badge(self):
        badge = status_badge("Archived")
        assert badge["color"] == "gray"
        assert badge["icon"] == "help-circle"


class TestFilterByStatus:
    def test_keeps_matching_records_in_order(self):
        records = [
            SimpleNamespace(id=1, status="Requested"),
            SimpleNamespace(id=2, status="Paid"),
            SimpleNamespace(id=3, status="Requested"),
        ]
        kept = filter_by_status(records, [ReimbursementStatus.REQUESTED])
        assert [r.id for r in kept] == [1, 3]

    def test_dict_records(self):
        records = [{"status": "Sent"}, {"status": "Signed"}]
        assert filter_by_status(records, ["Signed"]) == [{"status": "Signed"}]

    @pytest.mark.parametrize("statuses", [None, []])
    def test_empty_filter_keeps_everything(self, statuses):
        records = [{"status": "Sent"}, {"status": "Signed"}]
        assert filter_by_status(records, statuses) == records


class TestIsTerminal:
    @pytest.mark.parametrize("status,expected", [
        (ReimbursementStatus.PAID, True),
        (ReimbursementStatus.DENIED, True),
        (ReimbursementStatus.APPROVED, False),
        (AgreementStatus.EXPIRED, True),
        (AgreementStatus.CANCELLED, True),
        (AgreementStatus.VIEWED, False),
        ("Completed", True),
        ("Requested", False),
    ])
    def test_terminal_states(self, status, expected):
        assert is_terminal(status) is expected
