"""Reimbursement state machine: validates transitions and who may make them."""

from coliving_platform.domain.enums import ReimbursementStatus, UserRole
from coliving_platform.domain.errors import InvalidTransitionError

# ---------------------------------------------------------------------------
# Transition map: from_status -> {to_status: set_of_allowed_roles}
# ---------------------------------------------------------------------------

S = ReimbursementStatus
R = UserRole

TRANSITION_MAP: dict[ReimbursementStatus, dict[ReimbursementStatus, set[UserRole]]] = {
    S.REQUESTED: {
        S.APPROVED: {R.PROPERTY_OWNER, R.PROPERTY_MANAGER},
        S.DENIED: {R.PROPERTY_OWNER, R.PROPERTY_MANAGER},
    },
    S.APPROVED: {
        S.PAID: {R.PROPERTY_OWNER, R.PROPERTY_MANAGER},
    },
}

TERMINAL_STATES: set[ReimbursementStatus] = {S.PAID, S.DENIED}


class ReimbursementStateMachine:
    """Validates reimbursement state transitions."""

    def validate_transition(
        self,
        current_status: ReimbursementStatus,
        target_status: ReimbursementStatus,
        role: UserRole | None = None,
    ) -> bool:
        """Return True if the transition is valid. Raise InvalidTransitionError if not.

        When ``role`` is None only the map is checked (system-initiated changes).
        """
        current_status = ReimbursementStatus(current_status)
        target_status = ReimbursementStatus(target_status)

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

        if role is not None:
            role = UserRole(role)
            allowed_roles = allowed_targets[target_status]
            if role not in allowed_roles:
                raise InvalidTransitionError(
                    current_status,
                    target_status,
                    f"Role {role.value} is not permitted for this transition "
                    f"(allowed: {', '.join(sorted(r.value for r in allowed_roles))})",
                )

        return True

    def get_allowed_transitions(
        self,
        current_status: ReimbursementStatus,
        role: UserRole | None = None,
    ) -> list[ReimbursementStatus]:
        """Return valid next states from the current status, optionally for a role."""
        current_status = ReimbursementStatus(current_status)
        allowed_targets = TRANSITION_MAP.get(current_status, {})
        if role is None:
            return list(allowed_targets)
        role = UserRole(role)
        return [target for target, roles in allowed_targets.items() if role in roles]

    def is_terminal(self, status: ReimbursementStatus) -> bool:
        return ReimbursementStatus(status) in TERMINAL_STATES
