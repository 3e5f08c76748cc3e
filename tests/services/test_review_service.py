"""Review ledger tests against an in-memory database."""

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from crabnet.exceptions import (
    AgentNotFoundError,
    DuplicateReviewError,
    InvalidTaskStateError,
    NotParticipantError,
    TaskNotFoundError,
    TrustValidationError,
)
from crabnet.models import ReputationHistory, Review
from crabnet.services.review_service import list_reviews, submit_review


@pytest_asyncio.fixture
async def participants(make_agent):
    requester = await make_agent("req@test", name="req")
    worker = await make_agent("worker@test", name="worker", reputation_score=20)
    outsider = await make_agent("outsider@test", name="outsider")
    return requester, worker, outsider


@pytest_asyncio.fixture
async def task(make_task, participants):
    return await make_task("req@test", "worker@test", task_id="task-1")


class TestSubmitReview:
    @pytest.mark.asyncio
    async def test_requester_reviews_worker(self, session, task, participants, now):
        _, worker, _ = participants

        review = await submit_review(session, "task-1", "req@test", 4, comment="good", now=now)

        assert review.reviewee_id == "worker@test"
        assert review.rating == 4
        assert worker.review_count == 1
        assert worker.avg_review_rating == 4.0

        history = (
            await session.execute(
                select(ReputationHistory).where(ReputationHistory.agent_id == "worker@test")
            )
        ).scalars().all()
        assert [h.trigger_type for h in history] == ["review"]

    @pytest.mark.asyncio
    async def test_worker_reviews_requester(self, session, task, participants, now):
        requester, _, _ = participants

        review = await submit_review(session, "task-1", "worker@test", 5, now=now)

        assert review.reviewee_id == "req@test"
        assert requester.review_count == 1

    @pytest.mark.asyncio
    async def test_both_sides_may_review(self, session, task, now):
        await submit_review(session, "task-1", "req@test", 4, now=now)
        await submit_review(session, "task-1", "worker@test", 2, now=now)

        count = (await session.execute(select(func.count(Review.id)))).scalar_one()
        assert count == 2

    @pytest.mark.asyncio
    async def test_average_is_recomputed_from_ledger(
        self, session, task, make_task, participants, now
    ):
        _, worker, _ = participants
        await make_task("outsider@test", "worker@test", task_id="task-2")

        await submit_review(session, "task-1", "req@test", 5, now=now)
        await submit_review(session, "task-2", "outsider@test", 2, now=now)

        assert worker.review_count == 2
        assert worker.avg_review_rating == 3.5

    @pytest.mark.asyncio
    async def test_average_is_stored_unrounded(
        self, session, task, make_task, participants, now
    ):
        _, worker, _ = participants
        await make_task("outsider@test", "worker@test", task_id="task-2")
        await make_task("outsider@test", "worker@test", task_id="task-3")

        await submit_review(session, "task-1", "req@test", 5, now=now)
        await submit_review(session, "task-2", "outsider@test", 4, now=now)
        await submit_review(session, "task-3", "outsider@test", 4, now=now)

        assert worker.review_count == 3
        assert worker.avg_review_rating == pytest.approx(13 / 3)
        assert worker.avg_review_rating != 4.33

    @pytest.mark.asyncio
    async def test_review_moves_reputation(self, session, task, participants, now):
        _, worker, _ = participants

        await submit_review(session, "task-1", "req@test", 4, now=now)

        # review: 75 * 0.05 + 50 * 0.95 = 51.25 -> 51; age: 58
        assert worker.reputation_score == 21
        assert worker.trust_tier == "newcomer"

    @pytest.mark.asyncio
    async def test_disputed_task_can_be_reviewed(self, session, make_task, participants, now):
        await make_task("req@test", "worker@test", task_id="task-d", status="disputed")

        review = await submit_review(session, "task-d", "req@test", 1, now=now)
        assert review.rating == 1


class TestSubmitReviewRejections:
    @pytest.mark.asyncio
    async def test_duplicate(self, session, task, now):
        await submit_review(session, "task-1", "req@test", 4, now=now)

        with pytest.raises(DuplicateReviewError):
            await submit_review(session, "task-1", "req@test", 5, now=now)

    @pytest.mark.asyncio
    async def test_not_participant(self, session, task, now):
        with pytest.raises(NotParticipantError):
            await submit_review(session, "task-1", "outsider@test", 5, now=now)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["posted", "claimed", "delivered"])
    async def test_task_not_finished(self, session, make_task, participants, now, status):
        await make_task("req@test", "worker@test", task_id="open-task", status=status)

        with pytest.raises(InvalidTaskStateError) as exc_info:
            await submit_review(session, "open-task", "req@test", 5, now=now)
        assert exc_info.value.current_status == status

    @pytest.mark.asyncio
    async def test_unclaimed_task(self, session, make_task, participants, now):
        await make_task("req@test", None, task_id="orphan", status="complete")

        with pytest.raises(InvalidTaskStateError):
            await submit_review(session, "orphan", "req@test", 5, now=now)

    @pytest.mark.asyncio
    async def test_unknown_task(self, session, participants, now):
        with pytest.raises(TaskNotFoundError):
            await submit_review(session, "missing", "req@test", 5, now=now)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("rating", [0, 6])
    async def test_rating_out_of_range(self, session, task, now, rating):
        with pytest.raises(TrustValidationError):
            await submit_review(session, "task-1", "req@test", rating, now=now)

        count = (await session.execute(select(func.count(Review.id)))).scalar_one()
        assert count == 0


class TestListReviews:
    @pytest.mark.asyncio
    async def test_received_and_given(self, session, task, now):
        await submit_review(session, "task-1", "req@test", 4, now=now)

        received = await list_reviews(session, "worker@test", direction="received")
        given = await list_reviews(session, "req@test", direction="given")

        assert [r.task_id for r in received] == ["task-1"]
        assert [r.reviewee_id for r in given] == ["worker@test"]
        assert await list_reviews(session, "req@test", direction="received") == []

    @pytest.mark.asyncio
    async def test_unknown_agent(self, session):
        with pytest.raises(AgentNotFoundError):
            await list_reviews(session, "ghost@test")
