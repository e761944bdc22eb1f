"""CSV / JSON export of reimbursement requests."""

import csv
import io
from datetime import datetime

from coliving_platform.domain.enums import ReimbursementStatus
from coliving_platform.domain.models import ReimbursementRequest, utcnow

CSV_HEADERS = [
    "ID",
    "Expense ID",
    "Requestor ID",
    "Property ID",
    "Amount (USD)",
    "Currency",
    "Status",
    "Reason",
    "Payment Method",
    "Payment Reference",
    "Created At",
    "Approved At",
    "Paid At",
    "Processing Days",
]


def _iso(value: datetime | None) -> str:
    return value.isoformat() if value else ""


def _changed_at(request: ReimbursementRequest, status: ReimbursementStatus) -> datetime | None:
    for change in request.status_history or []:
        if change.to_status == status.value:
            return change.changed_at
    return None


def _reason(request: ReimbursementRequest) -> str:
    return request.denied_reason or (request.comments[0] if request.comments else "") or ""


def processing_days(request: ReimbursementRequest) -> int | None:
    """Whole days from creation to payment, None while unpaid."""
    paid_at = _changed_at(request, ReimbursementStatus.PAID) or request.paid_date
    if paid_at is None:
        return None
    created = request.created_at or request.request_date
    return round((paid_at - created).total_seconds() / 86400)


def export_csv(
    requests: list[ReimbursementRequest],
    include_comments: bool = False,
    include_history: bool = False,
) -> str:
    """Render requests as CSV with every cell quoted."""
    headers = list(CSV_HEADERS)
    if include_comments:
        headers.append("Comments")
    if include_history:
        headers.append("Status History")

    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(headers)

    for r in requests:
        days = processing_days(r)
        row = [
            r.id,
            r.expense_id,
            r.requestor_id,
            r.property_id,
            f"{r.amount_cents / 100:.2f}",
            r.currency,
            r.status,
            _reason(r),
            r.payment_method or "",
            r.payment_reference or "",
            _iso(r.created_at or r.request_date),
            _iso(_changed_at(r, ReimbursementStatus.APPROVED)),
            _iso(_changed_at(r, ReimbursementStatus.PAID)),
            "" if days is None else str(days),
        ]
        if include_comments:
            row.append(
                "; ".join(
                    f"{h.to_status}: {h.comment}" for h in r.status_history or [] if h.comment
                )
            )
        if include_history:
            row.append(
                "; ".join(f"{h.to_status} ({_iso(h.changed_at)})" for h in r.status_history or [])
            )
        writer.writerow(row)

    return buffer.getvalue().rstrip("\n")


def export_json(requests: list[ReimbursementRequest], include_history: bool = False) -> dict:
    """Serializable export envelope: exportedAt, totalRecords, data."""
    data = []
    for r in requests:
        item = {
            "id": r.id,
            "expenseId": r.expense_id,
            "requestorId": r.requestor_id,
            "propertyId": r.property_id,
            "amountCents": r.amount_cents,
            "currency": r.currency,
            "status": r.status,
            "reason": _reason(r) or None,
            "paymentMethod": r.payment_method,
            "paymentReference": r.payment_reference,
            "createdAt": _iso(r.created_at or r.request_date),
            "updatedAt": _iso(r.updated_at) or None,
            "paidDate": _iso(r.paid_date) or None,
        }
        if include_history:
            item["statusHistory"] = [
                {
                    "fromStatus": h.from_status,
                    "toStatus": h.to_status,
                    "changedBy": h.changed_by,
                    "changedAt": _iso(h.changed_at),
                    "comment": h.comment,
                    "reason": h.reason,
                }
                for h in r.status_history or []
            ]
        data.append(item)

    return {
        "exportedAt": utcnow().isoformat(),
        "totalRecords": len(requests),
        "data": data,
    }
