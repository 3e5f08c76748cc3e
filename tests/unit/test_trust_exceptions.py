"""Unit tests for trust errors and their HTTP mapping."""

import pytest
from fastapi import HTTPException

from crabnet.exceptions import (
    AccountTooNewError,
    AgentNotFoundError,
    DuplicateReviewError,
    InsufficientReputationError,
    InvalidTaskStateError,
    NotParticipantError,
    RateLimitedError,
    SelfVouchError,
    TaskNotFoundError,
    TrustServiceError,
    TrustValidationError,
    VouchNotFoundError,
    raise_http_exception,
)


class TestRaiseHttpException:
    @pytest.mark.parametrize(
        "error,status_code",
        [
            (TrustValidationError("strength", "must be between 1 and 100"), 400),
            (SelfVouchError("a@test"), 400),
            (InvalidTaskStateError("t1", "claimed"), 400),
            (InsufficientReputationError(10, 3), 403),
            (AccountTooNewError(24), 403),
            (NotParticipantError("a@test", "t1"), 403),
            (AgentNotFoundError("ghost@test"), 404),
            (VouchNotFoundError("a@test", "b@test"), 404),
            (TaskNotFoundError("t1"), 404),
            (DuplicateReviewError("a@test", "t1"), 409),
            (RateLimitedError(10), 429),
            (TrustServiceError("boom"), 500),
        ],
    )
    def test_status_codes(self, error, status_code):
        with pytest.raises(HTTPException) as exc_info:
            raise_http_exception(error)
        assert exc_info.value.status_code == status_code
        assert exc_info.value.detail["status"] == status_code

    def test_problem_detail_body(self):
        with pytest.raises(HTTPException) as exc_info:
            raise_http_exception(InsufficientReputationError(10, 3))

        detail = exc_info.value.detail
        assert detail["type"].endswith("/insufficient_reputation")
        assert detail["title"] == "Insufficient Reputation"
        assert "required 10" in detail["detail"]


class TestErrorAttributes:
    def test_validation_error_names_field(self):
        error = TrustValidationError("rating", "must be between 1 and 5")
        assert error.field == "rating"
        assert error.error_type == "validation_error"
        assert str(error) == "Invalid rating: must be between 1 and 5"

    def test_all_errors_share_base(self):
        assert isinstance(SelfVouchError("a"), TrustServiceError)
        assert isinstance(DuplicateReviewError("a", "t"), TrustServiceError)
