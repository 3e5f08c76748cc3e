"""Isnad path finding against the database, including the path cache."""

from datetime import timedelta
from unittest.mock import patch

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from crabnet.exceptions import AgentNotFoundError, TrustValidationError
from crabnet.models import TrustPath
from crabnet.services import isnad_service
from crabnet.services.isnad_service import find_path
from crabnet.services.vouch_service import revoke_vouch


@pytest_asyncio.fixture
async def chain(make_agent, make_vouch):
    """a -> b -> c, with b verified and fully reputable."""
    await make_agent("a@test", name="a")
    await make_agent("b@test", name="b", reputation_score=100, verified=True)
    await make_agent("c@test", name="c", reputation_score=100)
    await make_vouch("a@test", "b@test", strength=100)
    await make_vouch("b@test", "c@test", strength=100)


def _count_edge_fetches():
    return patch(
        "crabnet.services.isnad_service.fetch_outbound_edges",
        wraps=isnad_service.fetch_outbound_edges,
    )


async def _cache_rows(session) -> int:
    return (await session.execute(select(func.count()).select_from(TrustPath))).scalar_one()


class TestFindPath:
    @pytest.mark.asyncio
    async def test_two_hop_chain(self, session, chain, now):
        result = await find_path(session, "a@test", "c@test", now=now)

        assert result.connected is True
        assert result.path == ("a@test", "b@test", "c@test")
        assert result.length == 2
        assert result.trust == pytest.approx(84.0)
        assert result.cached is False

    @pytest.mark.asyncio
    async def test_max_depth_one(self, session, chain, now):
        result = await find_path(session, "a@test", "c@test", max_depth=1, now=now)

        assert result.connected is False
        assert result.length == -1
        assert await _cache_rows(session) == 0

    @pytest.mark.asyncio
    async def test_no_path_against_edge_direction(self, session, chain, now):
        result = await find_path(session, "c@test", "a@test", now=now)
        assert result.connected is False

    @pytest.mark.asyncio
    async def test_same_agent(self, session, chain, now):
        result = await find_path(session, "a@test", "a@test", now=now)

        assert result.path == ("a@test",)
        assert result.length == 0
        assert await _cache_rows(session) == 0

    @pytest.mark.asyncio
    async def test_expired_edges_are_not_followed(self, session, make_agent, make_vouch, now):
        await make_agent("x@test", name="x")
        await make_agent("y@test", name="y")
        await make_vouch("x@test", "y@test", expires_in_days=-1)

        result = await find_path(session, "x@test", "y@test", now=now)
        assert result.connected is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("max_depth", [0, 11])
    async def test_invalid_depth(self, session, chain, now, max_depth):
        with pytest.raises(TrustValidationError):
            await find_path(session, "a@test", "c@test", max_depth=max_depth, now=now)

    @pytest.mark.asyncio
    async def test_unknown_agent(self, session, chain, now):
        with pytest.raises(AgentNotFoundError):
            await find_path(session, "a@test", "ghost@test", now=now)


class TestPathCache:
    @pytest.mark.asyncio
    async def test_second_lookup_skips_traversal(self, session, chain, now):
        with _count_edge_fetches() as fetch:
            first = await find_path(session, "a@test", "c@test", now=now)
            traversal_calls = fetch.call_count
            second = await find_path(
                session, "a@test", "c@test", now=now + timedelta(minutes=30)
            )

        assert traversal_calls > 0
        assert fetch.call_count == traversal_calls
        assert second.cached is True
        assert second.path == first.path
        assert second.trust == pytest.approx(first.trust)
        assert second.length == first.length

    @pytest.mark.asyncio
    async def test_entry_expires_after_ttl(self, session, chain, now):
        with _count_edge_fetches() as fetch:
            await find_path(session, "a@test", "c@test", now=now)
            traversal_calls = fetch.call_count
            again = await find_path(session, "a@test", "c@test", now=now + timedelta(hours=2))

        assert again.cached is False
        assert fetch.call_count == 2 * traversal_calls

    @pytest.mark.asyncio
    async def test_cached_path_longer_than_requested_depth_is_a_miss(self, session, chain, now):
        await find_path(session, "a@test", "c@test", now=now)

        shallow = await find_path(session, "a@test", "c@test", max_depth=1, now=now)

        assert shallow.connected is False

    @pytest.mark.asyncio
    async def test_only_successful_paths_are_cached(self, session, chain, now):
        await find_path(session, "c@test", "a@test", now=now)
        assert await _cache_rows(session) == 0

        await find_path(session, "a@test", "c@test", now=now)
        entry = await session.get(TrustPath, ("a@test", "c@test"))
        assert entry.path == ["a@test", "b@test", "c@test"]
        assert entry.path_length == 2

    @pytest.mark.asyncio
    async def test_stale_path_served_after_revocation(self, session, chain, now):
        await find_path(session, "a@test", "c@test", now=now)
        await revoke_vouch(session, "a@test", "b@test", now=now)

        stale = await find_path(session, "a@test", "c@test", now=now + timedelta(minutes=5))
        fresh = await find_path(session, "a@test", "c@test", now=now + timedelta(hours=2))

        assert stale.connected is True
        assert stale.cached is True
        assert fresh.connected is False
