"""Shared test fixtures for the knowledge tree and cross-reference engine."""

import pytest

from foundry.graph import CrossReferenceConfig
from foundry.storage import InMemoryNodeStore
from foundry.tree import Node


@pytest.fixture
def make_node():
    """Factory for nodes with empty text by default."""

    def _make(
        node_id: str,
        parent_id: str | None = None,
        name: str = "",
        type: str = "Note",
        description: str = "",
        sort_order: int = 0,
    ) -> Node:
        return Node(
            id=node_id,
            parent_id=parent_id,
            name=name,
            type=type,
            description=description,
            sort_order=sort_order,
        )

    return _make


@pytest.fixture
def sample_nodes(make_node):
    """A small forest:

    root
    ├── fees
    │   ├── basefee
    │   └── tips
    └── blobs
    """
    return [
        make_node("root", name="Protocol notes"),
        make_node("fees", parent_id="root", name="Fee market", sort_order=0),
        make_node("blobs", parent_id="root", name="Blob space", sort_order=1),
        make_node("tips", parent_id="fees", name="Priority tips", sort_order=1),
        make_node("basefee", parent_id="fees", name="Base fee", sort_order=0),
    ]


@pytest.fixture
def store(sample_nodes):
    return InMemoryNodeStore(sample_nodes)


@pytest.fixture
def no_dynamic_stops():
    """Inference config that disables corpus-relative stop words."""
    return CrossReferenceConfig(common_word_percentile=0.0)
