"""Trust service exceptions and their HTTP mapping."""

from fastapi import HTTPException, status


class TrustServiceError(Exception):
    """Base exception for trust subsystem errors."""

    def __init__(self, message: str, error_type: str = "trust_service_error"):
        self.message = message
        self.error_type = error_type
        super().__init__(message)


class TrustValidationError(TrustServiceError):
    """Raised when an input is out of range (strength, rating, depth...)."""

    def __init__(self, field: str, message: str):
        super().__init__(f"Invalid {field}: {message}", "validation_error")
        self.field = field


class AgentNotFoundError(TrustServiceError):
    """Raised when an agent record does not exist."""

    def __init__(self, agent_id: str):
        super().__init__(f"Agent '{agent_id}' not found", "agent_not_found")
        self.agent_id = agent_id


class SelfVouchError(TrustServiceError):
    """Raised when an agent tries to vouch for itself."""

    def __init__(self, agent_id: str):
        super().__init__(f"Agent '{agent_id}' cannot vouch for itself", "self_vouch")
        self.agent_id = agent_id


class InsufficientReputationError(TrustServiceError):
    """Raised when the voucher's reputation is below the vouching minimum."""

    def __init__(self, required: int, actual: int):
        super().__init__(
            f"Insufficient reputation to vouch: required {required}, have {actual}",
            "insufficient_reputation",
        )
        self.required = required
        self.actual = actual


class AccountTooNewError(TrustServiceError):
    """Raised when the voucher registered too recently."""

    def __init__(self, min_age_hours: int):
        super().__init__(
            f"Account must be at least {min_age_hours} hours old to vouch",
            "account_too_new",
        )
        self.min_age_hours = min_age_hours


class RateLimitedError(TrustServiceError):
    """Raised when the voucher exhausted today's vouch allowance."""

    def __init__(self, limit: int):
        super().__init__(
            f"Daily vouch limit reached ({limit} per UTC day)",
            "rate_limited",
        )
        self.limit = limit


class VouchNotFoundError(TrustServiceError):
    """Raised when no active vouch exists for a voucher/vouchee pair."""

    def __init__(self, voucher_id: str, vouchee_id: str):
        super().__init__(
            f"No active vouch from '{voucher_id}' to '{vouchee_id}'",
            "vouch_not_found",
        )
        self.voucher_id = voucher_id
        self.vouchee_id = vouchee_id


class TaskNotFoundError(TrustServiceError):
    """Raised when a task does not exist."""

    def __init__(self, task_id: str):
        super().__init__(f"Task '{task_id}' not found", "task_not_found")
        self.task_id = task_id


class InvalidTaskStateError(TrustServiceError):
    """Raised when a task is not in a reviewable (terminal) state."""

    def __init__(self, task_id: str, current_status: str):
        super().__init__(
            f"Task '{task_id}' cannot be reviewed (status: {current_status})",
            "invalid_task_state",
        )
        self.task_id = task_id
        self.current_status = current_status


class NotParticipantError(TrustServiceError):
    """Raised when the reviewer neither requested nor claimed the task."""

    def __init__(self, agent_id: str, task_id: str):
        super().__init__(
            f"Agent '{agent_id}' is not a participant of task '{task_id}'",
            "not_participant",
        )
        self.agent_id = agent_id
        self.task_id = task_id


class DuplicateReviewError(TrustServiceError):
    """Raised when the reviewer already reviewed this task."""

    def __init__(self, agent_id: str, task_id: str):
        super().__init__(
            f"Agent '{agent_id}' already reviewed task '{task_id}'",
            "duplicate_review",
        )
        self.agent_id = agent_id
        self.task_id = task_id


STATUS_MAP: dict[str, int] = {
    "validation_error": status.HTTP_400_BAD_REQUEST,
    "agent_not_found": status.HTTP_404_NOT_FOUND,
    "self_vouch": status.HTTP_400_BAD_REQUEST,
    "insufficient_reputation": status.HTTP_403_FORBIDDEN,
    "account_too_new": status.HTTP_403_FORBIDDEN,
    "rate_limited": status.HTTP_429_TOO_MANY_REQUESTS,
    "vouch_not_found": status.HTTP_404_NOT_FOUND,
    "task_not_found": status.HTTP_404_NOT_FOUND,
    "invalid_task_state": status.HTTP_400_BAD_REQUEST,
    "not_participant": status.HTTP_403_FORBIDDEN,
    "duplicate_review": status.HTTP_409_CONFLICT,
    "trust_service_error": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def raise_http_exception(error: TrustServiceError) -> None:
    """Convert TrustServiceError to HTTPException."""
    status_code = STATUS_MAP.get(error.error_type, status.HTTP_500_INTERNAL_SERVER_ERROR)

    raise HTTPException(
        status_code=status_code,
        detail={
            "type": f"https://crabnet.dev/errors/{error.error_type}",
            "title": error.error_type.replace("_", " ").title(),
            "status": status_code,
            "detail": error.message,
        },
    )
