"""
Unit tests for GraphBuilder.
"""
import math
import random

import pytest

from followgraph.models import SizeParams, UserIdentity
from followgraph.network.graph import GraphBuilder, build_graph, render_size
from tests.fixtures.mock_data import create_mock_user

NO_SWAP = SizeParams(size_multiplier=1.0, max_size=100.0, swap_link_direction=False)


def users(*mids):
    return [UserIdentity(mid=mid, name=f"user{mid}") for mid in mids]


def edge_map(result):
    return {(e.source, e.target): e.bidirectional for e in result.edges}


def random_case(seed, size=30, fanout=8):
    rng = random.Random(seed)
    mids = list(range(1, size + 1))
    follow_list = users(*mids) + users(*rng.sample(mids, 5))
    common = {
        mid: [rng.randint(1, size + 10) for _ in range(rng.randint(0, fanout))]
        for mid in mids
    }
    return follow_list, common


class TestMutualScenario:
    def setup_method(self):
        self.follows = users(1, 2, 3)
        self.common = {1: [2], 2: [1, 3], 3: []}

    def test_edges_and_tags(self):
        result = build_graph(self.follows, self.common, NO_SWAP)

        assert edge_map(result) == {
            ("1", "2"): True,
            ("2", "1"): True,
            ("2", "3"): False,
        }

    def test_degrees_and_stats(self):
        result = build_graph(self.follows, self.common, NO_SWAP)
        degrees = {node.id: node.degree for node in result.nodes}

        assert degrees == {"1": 2, "2": 3, "3": 1}
        assert result.stats.total_nodes == 3
        assert result.stats.connected_nodes == 3
        assert result.stats.edge_count == 3

    def test_swap_reverses_direction_only(self):
        swapped = build_graph(
            self.follows,
            self.common,
            SizeParams(size_multiplier=1.0, max_size=100.0, swap_link_direction=True),
        )
        straight = build_graph(self.follows, self.common, NO_SWAP)

        assert edge_map(swapped) == {
            ("2", "1"): True,
            ("1", "2"): True,
            ("3", "2"): False,
        }
        assert [n.degree for n in swapped.nodes] == [n.degree for n in straight.nodes]
        assert swapped.stats == straight.stats


class TestConstruction:
    def test_duplicate_relations_collapse(self):
        result = build_graph(users(1, 2), {1: [2, 2, 2]}, NO_SWAP)
        assert edge_map(result) == {("1", "2"): False}

    def test_duplicate_follows_collapse(self):
        result = build_graph(users(1, 2, 1, 2), {1: [2]}, NO_SWAP)
        assert result.stats.total_nodes == 2

    def test_relations_outside_follow_set_ignored(self):
        result = build_graph(users(1, 2), {1: [2, 99], 99: [1]}, NO_SWAP)
        assert edge_map(result) == {("1", "2"): False}

    def test_self_reference_ignored(self):
        result = build_graph(users(1, 2), {1: [1, 2]}, NO_SWAP)
        assert edge_map(result) == {("1", "2"): False}

    def test_isolated_nodes_filtered(self):
        result = build_graph(users(1, 2, 3, 4), {1: [2]}, NO_SWAP)

        assert [n.id for n in result.nodes] == ["1", "2"]
        assert result.stats.total_nodes == 4
        assert result.stats.connected_nodes == 2

    def test_missing_map_entries(self):
        result = build_graph(users(1, 2), {}, NO_SWAP)
        assert result.nodes == []
        assert result.edges == []
        assert result.stats.total_nodes == 2

    def test_raw_api_items_accepted(self):
        follows = [create_mock_user(1, "alice", vip=True), create_mock_user(2, "")]
        result = build_graph(follows, {1: [2]}, NO_SWAP)
        nodes = {n.id: n for n in result.nodes}

        assert nodes["1"].label == "alice"
        assert nodes["1"].is_vip
        assert nodes["2"].label == "2"
        assert not nodes["2"].is_vip

    def test_last_fetched_identity_wins(self):
        follows = [UserIdentity(1, "old"), UserIdentity(2, "b"), UserIdentity(1, "new")]
        result = build_graph(follows, {1: [2]}, NO_SWAP)

        assert [n.id for n in result.nodes] == ["1", "2"]
        assert result.nodes[0].label == "new"

    def test_render_size_scaling(self):
        params = SizeParams(size_multiplier=0.3, max_size=2.0, swap_link_direction=False)
        common = {1: [2, 3, 4, 5, 6, 7, 8, 9, 10]}
        result = GraphBuilder(params).build(users(*range(1, 11)), common)
        nodes = {n.id: n for n in result.nodes}

        assert nodes["2"].render_size == pytest.approx(math.log(2) * 0.3)
        assert nodes["1"].degree == 9
        assert nodes["1"].render_size == pytest.approx(min(math.log(10) * 0.3, 2.0))

    def test_render_size_is_capped(self):
        params = SizeParams(size_multiplier=5.0, max_size=2.0)
        assert render_size(100, params) == 2.0

    def test_builder_default_params(self):
        result = GraphBuilder().build(users(1, 2), {1: [2]})
        # swap is on by default
        assert edge_map(result) == {("2", "1"): False}
        assert result.nodes[0].render_size == pytest.approx(math.log(2) * 0.1)


class TestInvariants:
    @pytest.mark.parametrize("seed", range(10))
    def test_properties(self, seed):
        follow_list, common = random_case(seed)
        result = build_graph(follow_list, common, NO_SWAP)
        pairs = [(e.source, e.target) for e in result.edges]
        tags = edge_map(result)

        # ordered pairs are unique
        assert len(pairs) == len(set(pairs))
        # bidirectional tags are symmetric
        for (source, target), bidirectional in tags.items():
            if bidirectional:
                assert tags.get((target, source)) is True
            else:
                assert (target, source) not in tags
        # degree sum identity
        assert sum(n.degree for n in result.nodes) == 2 * result.stats.edge_count
        # no isolated node survives
        assert all(n.degree > 0 for n in result.nodes)
        assert result.stats.connected_nodes == len(result.nodes)


class TestExport:
    def test_to_dict(self):
        result = build_graph(users(1, 2), {1: [2], 2: [1]}, NO_SWAP)
        data = result.to_dict()

        assert data["stats"] == {"total_nodes": 2, "connected_nodes": 2, "edge_count": 2}
        assert data["edges"][0] == {"source": "1", "target": "2", "bidirectional": True}
        assert set(data["nodes"][0]) == {"id", "label", "is_vip", "degree", "render_size"}

    def test_to_networkx(self):
        result = build_graph(users(1, 2, 3), {1: [2], 2: [3]}, NO_SWAP)
        graph = result.to_networkx()

        assert graph.number_of_nodes() == 3
        assert graph.number_of_edges() == 2
        assert graph.has_edge("1", "2")
        assert graph.nodes["2"]["degree"] == 2
        assert graph.edges["1", "2"]["bidirectional"] is False
        assert graph.graph["edge_count"] == 2
