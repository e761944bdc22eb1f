"""Agreement state machine: validates signing-flow transitions and expiry."""

from datetime import datetime, timezone

from coliving_platform.domain.enums import AgreementStatus, AgreementTrigger
from coliving_platform.domain.errors import InvalidTransitionError
from coliving_platform.domain.models import utcnow

# ---------------------------------------------------------------------------
# Transition map: from_status -> {to_status: set_of_allowed_triggers}
# ---------------------------------------------------------------------------

S = AgreementStatus
T = AgreementTrigger

TRANSITION_MAP: dict[AgreementStatus, dict[AgreementStatus, set[AgreementTrigger]]] = {
    S.SENT: {
        S.VIEWED: {T.PROSPECT, T.WEBHOOK, T.SYSTEM},
        S.SIGNED: {T.PROSPECT, T.WEBHOOK},
        S.EXPIRED: {T.SYSTEM},
        S.CANCELLED: {T.MANUAL, T.SYSTEM},
    },
    S.VIEWED: {
        S.SIGNED: {T.PROSPECT, T.WEBHOOK},
        S.EXPIRED: {T.SYSTEM},
        S.CANCELLED: {T.MANUAL, T.SYSTEM},
    },
    S.SIGNED: {
        S.COMPLETED: {T.MANUAL, T.WEBHOOK, T.SYSTEM},
        S.CANCELLED: {T.MANUAL},
    },
}

TERMINAL_STATES: set[AgreementStatus] = {S.COMPLETED, S.EXPIRED, S.CANCELLED}

# States in which the prospect can still open and sign the agreement
SIGNABLE_STATES: set[AgreementStatus] = {S.SENT, S.VIEWED}

# Targets still reachable once the expiration date has passed
POST_EXPIRY_TARGETS: set[AgreementStatus] = {S.EXPIRED, S.CANCELLED}


class AgreementStateMachine:
    """Validates agreement state transitions and enforces the signing deadline."""

    def validate_transition(
        self,
        current_status: AgreementStatus,
        target_status: AgreementStatus,
        trigger: AgreementTrigger,
        agreement=None,
    ) -> bool:
        """Return True if the transition is valid. Raise InvalidTransitionError if not.

        Checks:
        1. The transition is in the allowed map.
        2. The trigger may cause this transition.
        3. Signing-phase transitions are blocked once the agreement has expired.
        """
        current_status = AgreementStatus(current_status)
        target_status = AgreementStatus(target_status)
        trigger = AgreementTrigger(trigger)

        allowed_targets = TRANSITION_MAP.get(current_status)
        if allowed_targets is None:
            raise InvalidTransitionError(
                current_status,
                target_status,
                f"No transitions allowed from {current_status.value}",
            )

        if target_status not in allowed_targets:
            raise InvalidTransitionError(
                current_status,
                target_status,
                f"Transition from {current_status.value} to {target_status.value} is not allowed",
            )

        allowed_triggers = allowed_targets[target_status]
        if trigger not in allowed_triggers:
            raise InvalidTransitionError(
                current_status,
                target_status,
                f"Trigger {trigger.value} is not permitted for this transition "
                f"(allowed: {', '.join(sorted(t.value for t in allowed_triggers))})",
            )

        if (
            agreement is not None
            and current_status in SIGNABLE_STATES
            and target_status not in POST_EXPIRY_TARGETS
            and self.check_deadline(agreement)
        ):
            raise InvalidTransitionError(
                current_status,
                target_status,
                f"Agreement expired at {agreement.expiration_date.isoformat()}",
            )

        return True

    def get_allowed_transitions(
        self,
        current_status: AgreementStatus,
        trigger: AgreementTrigger | None = None,
    ) -> list[AgreementStatus]:
        """Return valid next states from the current status, optionally for a trigger."""
        allowed_targets = TRANSITION_MAP.get(AgreementStatus(current_status), {})
        if trigger is None:
            return list(allowed_targets)
        trigger = AgreementTrigger(trigger)
        return [target for target, triggers in allowed_targets.items() if trigger in triggers]

    def check_deadline(self, agreement, now: datetime | None = None) -> bool:
        """Return True if the agreement's expiration date has passed."""
        expiration = getattr(agreement, "expiration_date", None)
        if expiration is None:
            return False
        now = now or utcnow()
        if expiration.tzinfo is not None:
            expiration = expiration.astimezone(timezone.utc).replace(tzinfo=None)
        return now > expiration
