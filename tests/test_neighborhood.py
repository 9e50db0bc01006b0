"""Tests for the bounded neighborhood walk over the link graph."""

import pytest

from foundry.graph import (
    CrossReferenceIndex,
    CrossReferenceLink,
    RelationType,
    generate_cross_references,
    neighborhood,
)


def make_index(*pairs, reciprocal=True):
    """Build an index from (source, target) pairs with related-to links."""
    links = {}
    for source_id, target_id in pairs:
        directions = [(source_id, target_id)]
        if reciprocal:
            directions.append((target_id, source_id))
        for a, b in directions:
            links.setdefault(a, []).append(CrossReferenceLink(
                target_id=b,
                relation=RelationType.IS_RELATED_TO,
                provenance=["shared"],
                confidence=1.0,
            ))
    return CrossReferenceIndex(links=links)


@pytest.fixture
def chain():
    """a - b - c - d"""
    return make_index(("a", "b"), ("b", "c"), ("c", "d"))


def depths(subgraph):
    return {n.node_id: n.depth for n in subgraph.nodes}


def edge_pairs(subgraph):
    return {frozenset((e.source_id, e.target_id)) for e in subgraph.edges}


class TestNeighborhood:
    """Tests for neighborhood()."""

    def test_radius_zero_is_focus_only(self, chain):
        subgraph = neighborhood(chain, "b", 0)

        assert depths(subgraph) == {"b": 0}
        assert subgraph.edges == []

    def test_radius_one(self, chain):
        subgraph = neighborhood(chain, "a", 1)

        assert depths(subgraph) == {"a": 0, "b": 1}
        assert edge_pairs(subgraph) == {frozenset({"a", "b"})}

    def test_radius_two_from_middle(self, chain):
        subgraph = neighborhood(chain, "b", 2)

        assert subgraph.node_ids() == ["b", "a", "c", "d"]
        assert depths(subgraph) == {"b": 0, "a": 1, "c": 1, "d": 2}
        assert edge_pairs(subgraph) == {
            frozenset({"a", "b"}),
            frozenset({"b", "c"}),
            frozenset({"c", "d"}),
        }

    def test_reciprocal_links_collapse_to_one_edge(self, chain):
        subgraph = neighborhood(chain, "a", 3)
        assert len(subgraph.edges) == 3

    def test_each_node_visited_once(self):
        index = make_index(("a", "b"), ("b", "c"), ("c", "a"), ("c", "d"))
        subgraph = neighborhood(index, "a", 5)

        assert sorted(subgraph.node_ids()) == ["a", "b", "c", "d"]
        assert depths(subgraph)["d"] == 2

    def test_edges_between_frontier_nodes_included(self):
        """Nodes at the radius are not expanded but links among them still show."""
        index = make_index(("x", "y"), ("x", "z"), ("y", "z"), ("z", "far"))
        subgraph = neighborhood(index, "x", 1)

        assert "far" not in depths(subgraph)
        assert frozenset({"y", "z"}) in edge_pairs(subgraph)
        assert len(subgraph.edges) == 3

    def test_inbound_links_are_followed(self):
        """A node with only inbound links still reaches its sources."""
        index = make_index(("p", "q"), reciprocal=False)
        subgraph = neighborhood(index, "q", 1)

        assert depths(subgraph) == {"q": 0, "p": 1}
        assert [(e.source_id, e.target_id) for e in subgraph.edges] == [("p", "q")]

    def test_unknown_focus(self, chain):
        subgraph = neighborhood(chain, "ghost", 2)

        assert depths(subgraph) == {"ghost": 0}
        assert subgraph.edges == []

    def test_negative_radius_rejected(self, chain):
        with pytest.raises(ValueError):
            neighborhood(chain, "a", -1)

    def test_on_generated_index(self, make_node, no_dynamic_stops):
        nodes = [
            make_node("parent", description="validator withdrawal queue"),
            make_node("child", parent_id="parent", description="validator withdrawal exit"),
            make_node("other", description="exit queue churn"),
        ]
        index = generate_cross_references(nodes, no_dynamic_stops)
        subgraph = neighborhood(index, "parent", 1)

        assert set(subgraph.node_ids()) == {"parent", "child"}
        (edge,) = subgraph.edges
        assert edge.relation is RelationType.HAS_CHILD
        assert edge.path_string == "parent -[has child]-> child"


class TestSubgraphSerialization:
    """Tests for the rendering-ready dict form."""

    def test_to_dict(self):
        index = make_index(("a", "b"))
        data = neighborhood(index, "a", 1).to_dict()

        assert data == {
            "focus": "a",
            "radius": 1,
            "nodes": [{"id": "a", "depth": 0}, {"id": "b", "depth": 1}],
            "edges": [{
                "source_id": "a",
                "target_id": "b",
                "relation": "is_related_to",
                "confidence": 1.0,
                "provenance": ["shared"],
            }],
        }
