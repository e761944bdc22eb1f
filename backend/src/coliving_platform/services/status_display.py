"""Status badge and filter helpers over the reimbursement and agreement enums."""

from typing import Iterable, TypeVar

from coliving_platform.domain.enums import AgreementStatus, ReimbursementStatus

T = TypeVar("T")

# status value -> (color, variant, icon)
REIMBURSEMENT_BADGES: dict[str, tuple[str, str, str]] = {
    ReimbursementStatus.REQUESTED.value: ("yellow", "warning", "clock"),
    ReimbursementStatus.APPROVED.value: ("blue", "info", "check"),
    ReimbursementStatus.PAID.value: ("green", "success", "dollar-sign"),
    ReimbursementStatus.DENIED.value: ("red", "danger", "x"),
}

AGREEMENT_BADGES: dict[str, tuple[str, str, str]] = {
    AgreementStatus.SENT.value: ("blue", "info", "send"),
    AgreementStatus.VIEWED.value: ("yellow", "warning", "eye"),
    AgreementStatus.SIGNED.value: ("green", "success", "pen-tool"),
    AgreementStatus.COMPLETED.value: ("emerald", "success", "check-circle"),
    AgreementStatus.EXPIRED.value: ("gray", "secondary", "clock"),
    AgreementStatus.CANCELLED.value: ("red", "danger", "x-circle"),
}

_UNKNOWN_BADGE = ("gray", "secondary", "help-circle")

REIMBURSEMENT_TERMINAL = {ReimbursementStatus.PAID.value, ReimbursementStatus.DENIED.value}
AGREEMENT_TERMINAL = {
    AgreementStatus.COMPLETED.value,
    AgreementStatus.EXPIRED.value,
    AgreementStatus.CANCELLED.value,
}


def _raw(status) -> str:
    return status.value if hasattr(status, "value") else str(status)


def status_badge(status) -> dict:
    """Return display metadata (label, color, variant, icon) for a status."""
    value = _raw(status)
    if isinstance(status, AgreementStatus):
        color, variant, icon = AGREEMENT_BADGES[value]
    elif isinstance(status, ReimbursementStatus):
        color, variant, icon = REIMBURSEMENT_BADGES[value]
    else:
        color, variant, icon = REIMBURSEMENT_BADGES.get(
            value, AGREEMENT_BADGES.get(value, _UNKNOWN_BADGE)
        )
    return {"label": value, "color": color, "variant": variant, "icon": icon}


def filter_by_status(records: Iterable[T], statuses: Iterable | None) -> list[T]:
    """Keep records whose ``status`` is in ``statuses``, preserving order.

    Records may be objects or dicts. An empty or None filter keeps everything.
    """
    records = list(records)
    wanted = {_raw(s) for s in statuses or []}
    if not wanted:
        return records

    def _status_of(record) -> str:
        if isinstance(record, dict):
            return _raw(record.get("status"))
        return _raw(getattr(record, "status", None))

    return [r for r in records if _status_of(r) in wanted]


def is_terminal(status) -> bool:
    """True when no further transitions are possible from ``status``."""
    value = _raw(status)
    if isinstance(status, AgreementStatus):
        return value in AGREEMENT_TERMINAL
    if isinstance(status, ReimbursementStatus):
        return value in REIMBURSEMENT_TERMINAL
    return value in REIMBURSEMENT_TERMINAL or value in AGREEMENT_TERMINAL
