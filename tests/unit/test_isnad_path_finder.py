"""Unit tests for the isnad BFS over an in-memory vouch graph."""

import pytest

from crabnet.services.isnad_service import (
    TrustEdge,
    depth_decay,
    edge_trust,
    find_trust_path,
)


def _edge(vouchee_id, strength=100, reputation=100, verified=False) -> TrustEdge:
    return TrustEdge(
        vouchee_id=vouchee_id,
        strength=strength,
        vouchee_reputation=reputation,
        vouchee_verified=verified,
    )


class FakeGraph:
    """Adjacency lists plus a record of which agents were expanded."""

    def __init__(self, edges: dict[str, list[TrustEdge]]):
        self.edges = edges
        self.calls: list[str] = []

    async def fetch(self, agent_id: str) -> list[TrustEdge]:
        self.calls.append(agent_id)
        return self.edges.get(agent_id, [])


class TestEdgeTrust:
    def test_full_strength_full_reputation(self):
        assert edge_trust(_edge("b")) == pytest.approx(1.0)

    def test_reputation_enters_as_square_root(self):
        assert edge_trust(_edge("b", strength=50, reputation=25)) == pytest.approx(0.25)

    def test_verified_bonus(self):
        assert edge_trust(_edge("b", strength=50, reputation=25, verified=True)) == pytest.approx(
            0.3
        )

    def test_depth_decay(self):
        assert depth_decay(1) == 1.0
        assert depth_decay(2) == pytest.approx(0.7)
        assert depth_decay(3) == pytest.approx(0.49)


class TestFindTrustPath:
    @pytest.mark.asyncio
    async def test_two_hop_chain(self):
        graph = FakeGraph(
            {
                "a": [_edge("b", strength=100, reputation=100, verified=True)],
                "b": [_edge("c")],
            }
        )
        result = await find_trust_path("a", "c", graph.fetch)

        assert result.connected is True
        assert result.path == ("a", "b", "c")
        assert result.length == 2
        # 100 * 1.2 * 1.0, then * 1.0 * 0.7
        assert result.trust == pytest.approx(84.0)

    @pytest.mark.asyncio
    async def test_max_depth_one_cannot_reach_second_hop(self):
        graph = FakeGraph(
            {
                "a": [_edge("b", strength=100, reputation=100, verified=True)],
                "b": [_edge("c")],
            }
        )
        result = await find_trust_path("a", "c", graph.fetch, max_depth=1)

        assert result.connected is False
        assert result.path == ()
        assert result.length == -1
        assert result.trust == 0

    @pytest.mark.asyncio
    async def test_direct_edge(self):
        graph = FakeGraph({"a": [_edge("b", strength=50, reputation=25)]})
        result = await find_trust_path("a", "b", graph.fetch, max_depth=1)

        assert result.path == ("a", "b")
        assert result.length == 1
        assert result.trust == pytest.approx(25.0)

    @pytest.mark.asyncio
    async def test_fewest_hops_wins_over_higher_trust(self):
        graph = FakeGraph(
            {
                "a": [_edge("b"), _edge("d", strength=10)],
                "b": [_edge("d")],
            }
        )
        result = await find_trust_path("a", "d", graph.fetch)

        assert result.path == ("a", "d")
        assert result.trust == pytest.approx(10.0)

    @pytest.mark.asyncio
    async def test_ties_broken_by_discovery_order(self):
        graph = FakeGraph(
            {
                "a": [_edge("b", strength=20), _edge("c", strength=100)],
                "b": [_edge("t")],
                "c": [_edge("t")],
            }
        )
        result = await find_trust_path("a", "t", graph.fetch)

        assert result.path == ("a", "b", "t")

    @pytest.mark.asyncio
    async def test_same_agent(self):
        graph = FakeGraph({})
        result = await find_trust_path("a", "a", graph.fetch)

        assert result.connected is True
        assert result.path == ("a",)
        assert result.length == 0
        assert result.trust == 100.0
        assert graph.calls == []

    @pytest.mark.asyncio
    async def test_disconnected(self):
        graph = FakeGraph({"a": [_edge("b")], "c": [_edge("a")]})
        result = await find_trust_path("a", "c", graph.fetch)

        assert result.connected is False

    @pytest.mark.asyncio
    async def test_cycles_terminate_and_visit_each_agent_once(self):
        graph = FakeGraph(
            {
                "a": [_edge("b")],
                "b": [_edge("a"), _edge("c")],
                "c": [_edge("a"), _edge("b")],
            }
        )
        result = await find_trust_path("a", "z", graph.fetch)

        assert result.connected is False
        assert sorted(graph.calls) == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_depth_bound_is_inclusive(self):
        chain = ["n0", "n1", "n2", "n3", "n4", "n5"]
        graph = FakeGraph({src: [_edge(dst)] for src, dst in zip(chain, chain[1:])})

        found = await find_trust_path("n0", "n5", graph.fetch, max_depth=5)
        missing = await find_trust_path("n0", "n5", graph.fetch, max_depth=4)

        assert found.length == 5
        assert found.trust == pytest.approx(100 * 0.7 * 0.49 * 0.343 * 0.2401)
        assert missing.connected is False

    @pytest.mark.asyncio
    async def test_trust_is_not_clamped(self):
        graph = FakeGraph({"a": [_edge("b", verified=True)]})
        result = await find_trust_path("a", "b", graph.fetch)

        assert result.trust == pytest.approx(120.0)
