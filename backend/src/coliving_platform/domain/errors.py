"""Domain exceptions raised by services and rendered by the API layer."""

from datetime import datetime
from enum import Enum


class NotFoundError(Exception):
    """Raised when a requested record does not exist (or is soft-deleted)."""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class ValidationError(Exception):
    """Raised when input fails business validation.

    ``errors`` carries every individual problem so callers can show them all.
    """

    def __init__(self, message: str, errors: list[str] | None = None):
        self.errors = errors or []
        if self.errors:
            message = f"{message}: {'; '.join(self.errors)}"
        super().__init__(message)


class InvalidTransitionError(Exception):
    """Raised when a workflow state transition is not allowed."""

    def __init__(self, current_status, target_status, reason: str):
        self.current_status = current_status
        self.target_status = target_status
        self.reason = reason
        super().__init__(
            f"Invalid transition from {_value(current_status)} to "
            f"{_value(target_status)}: {reason}"
        )


class AgreementUnavailableError(Exception):
    """Raised when an agreement can no longer be viewed or signed."""

    def __init__(self, agreement_id: str, reason: str):
        self.agreement_id = agreement_id
        self.reason = reason
        super().__init__(reason)


class RateLimitExceededError(Exception):
    """Raised when a user exceeds the allowed request rate for an operation."""

    def __init__(self, operation: str, reset_time: datetime):
        self.operation = operation
        self.reset_time = reset_time
        super().__init__(f"Rate limit exceeded for {operation}")


def _value(status) -> str:
    if isinstance(status, Enum):
        return status.value
    return str(status)
