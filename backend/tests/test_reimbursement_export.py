"""Unit tests for reimbursement CSV / JSON export."""

import csv
import io
from datetime import datetime
from types import SimpleNamespace

from coliving_platform.services.reimbursement_export import (
    CSV_HEADERS,
    export_csv,
    export_json,
    processing_days,
)


def _change(to_status, changed_at, comment=None, from_status=None, reason=None):
    return SimpleNamespace(
        from_status=from_status,
        to_status=to_status,
        changed_by="manager-1",
        changed_at=changed_at,
        comment=comment,
        reason=reason,
    )


def _request(**kwargs):
    created = datetime(2025, 3, 1, 9, 0)
    defaults = {
        "id": "r1",
        "expense_id": "e1",
        "requestor_id": "u1",
        "property_id": "p1",
        "amount_cents": 12_345,
        "currency": "USD",
        "status": "Paid",
        "denied_reason": None,
        "comments": ["Bought, a \"new\" lock"],
        "payment_method": "Wise",
        "payment_reference": "W-1",
        "created_at": created,
        "request_date": created,
        "updated_at": None,
        "paid_date": datetime(2025, 3, 4, 9, 0),
        "status_history": [
            _change("Requested", created, "Reimbursement request created"),
            _change("Approved", datetime(2025, 3, 2, 9, 0), "ok", "Requested"),
            _change("Paid", datetime(2025, 3, 4, 9, 0), None, "Approved"),
        ],
    }
    defaults.update(kwargs)
    return SimpleNamespace(**defaults)


def _parse(content: str) -> list[list[str]]:
    return list(csv.reader(io.StringIO(content)))


class TestCsv:
    def test_header_and_row(self):
        rows = _parse(export_csv([_request()]))
        assert rows[0] == CSV_HEADERS
        row = dict(zip(rows[0], rows[1]))
        assert row["Amount (USD)"] == "123.45"
        assert row["Reason"] == 'Bought, a "new" lock'
        assert row["Approved At"] == "2025-03-02T09:00:00"
        assert row["Processing Days"] == "3"

    def test_every_cell_is_quoted(self):
        content = export_csv([_request()])
        first_line = content.splitlines()[0]
        assert first_line.startswith('"ID","Expense ID"')
        assert not content.endswith("\n")

    def test_optional_columns(self):
        rows = _parse(export_csv([_request()], include_comments=True, include_history=True))
        assert rows[0][-2:] == ["Comments", "Status History"]
        comments, history = rows[1][-2:]
        assert comments == "Requested: Reimbursement request created; Approved: ok"
        assert history.startswith("Requested (2025-03-01T09:00:00); Approved")

    def test_denied_reason_wins(self):
        rows = _parse(export_csv([_request(status="Denied", denied_reason="No receipt", paid_date=None,
                                           status_history=[])]))
        row = dict(zip(rows[0], rows[1]))
        assert row["Reason"] == "No receipt"
        assert row["Processing Days"] == ""


class TestJson:
    def test_envelope(self):
        exported = export_json([_request()], include_history=True)
        assert exported["totalRecords"] == 1
        item = exported["data"][0]
        assert item["amountCents"] == 12_345
        assert item["paidDate"] == "2025-03-04T09:00:00"
        assert item["updatedAt"] is None
        assert [h["toStatus"] for h in item["statusHistory"]] == ["Requested", "Approved", "Paid"]

    def test_history_omitted_by_default(self):
        assert "statusHistory" not in export_json([_request()])["data"][0]


def test_processing_days_unpaid():
    assert processing_days(_request(paid_date=None, status_history=[])) is None
