"""Neighborhood Traverser - Bounded breadth-first walk over the link graph."""

from collections import deque
from dataclasses import dataclass, field

import structlog

from .cross_reference import CrossReferenceIndex
from .relationship_inferrer import RelationType

logger = structlog.get_logger()


@dataclass
class NeighborhoodNode:
    """A node reached by the walk and its hop distance from the focus."""

    node_id: str
    depth: int


@dataclass
class SubgraphEdge:
    """One link of the induced subgraph (reciprocals collapsed)."""

    source_id: str
    target_id: str
    relation: RelationType
    confidence: float
    provenance: list[str] = field(default_factory=list)

    @property
    def path_string(self) -> str:
        rel_type = self.relation.value.replace("_", " ")
        return f"{self.source_id} -[{rel_type}]-> {self.target_id}"


@dataclass
class Subgraph:
    """Induced subgraph around a focal node, ready for rendering."""

    focus: str
    radius: int
    nodes: list[NeighborhoodNode] = field(default_factory=list)
    edges: list[SubgraphEdge] = field(default_factory=list)

    def node_ids(self) -> list[str]:
        return [n.node_id for n in self.nodes]

    def to_dict(self) -> dict:
        return {
            "focus": self.focus,
            "radius": self.radius,
            "nodes": [{"id": n.node_id, "depth": n.depth} for n in self.nodes],
            "edges": [
                {
                    "source_id": e.source_id,
                    "target_id": e.target_id,
                    "relation": e.relation.value,
                    "confidence": e.confidence,
                    "provenance": list(e.provenance),
                }
                for e in self.edges
            ],
        }


def _adjacency(index: CrossReferenceIndex) -> dict[str, list[str]]:
    """Undirected neighbor lists: outbound targets first, then inbound sources."""
    outbound: dict[str, list[str]] = {}
    inbound: dict[str, list[str]] = {}
    for source_id in index:
        for link in index.links_for(source_id):
            outbound.setdefault(source_id, []).append(link.target_id)
            inbound.setdefault(link.target_id, []).append(source_id)

    adjacency: dict[str, list[str]] = {}
    for node_id in set(outbound) | set(inbound):
        neighbors = outbound.get(node_id, []) + inbound.get(node_id, [])
        adjacency[node_id] = list(dict.fromkeys(neighbors))
    return adjacency


def neighborhood(index: CrossReferenceIndex, focus: str, radius: int) -> Subgraph:
    """Collect every node within radius hops of focus and the links among them.

    Links are followed in both directions. Nodes at exactly ``radius`` are
    not expanded, but links between visited nodes are still included.

    Raises:
        ValueError: radius is negative
    """
    if radius < 0:
        raise ValueError(f"radius must be non-negative, got {radius}")

    adjacency = _adjacency(index)
    subgraph = Subgraph(focus=focus, radius=radius)

    visited: dict[str, int] = {focus: 0}
    queue = deque([focus])
    while queue:
        current = queue.popleft()
        depth = visited[current]
        subgraph.nodes.append(NeighborhoodNode(node_id=current, depth=depth))
        if depth >= radius:
            continue
        for neighbor in adjacency.get(current, []):
            if neighbor not in visited:
                visited[neighbor] = depth + 1
                queue.append(neighbor)

    seen_pairs: set[frozenset[str]] = set()
    for node in subgraph.nodes:
        for link in index.links_for(node.node_id):
            if link.target_id not in visited:
                continue
            pair = frozenset((node.node_id, link.target_id))
            if pair in seen_pairs:
                continue
            seen_pairs.add(pair)
            subgraph.edges.append(SubgraphEdge(
                source_id=node.node_id,
                target_id=link.target_id,
                relation=link.relation,
                confidence=link.confidence,
                provenance=list(link.provenance),
            ))

    logger.debug(
        "walked_neighborhood",
        focus=focus,
        radius=radius,
        nodes=len(subgraph.nodes),
        edges=len(subgraph.edges),
    )
    return subgraph
