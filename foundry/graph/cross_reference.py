"""Cross-Reference - Infer a typed, confidence-scored link graph between nodes."""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any

import structlog

from foundry.config import (
    CROSSREF_COMMON_WORD_PERCENTILE,
    CROSSREF_MAX_LINKS_PER_NODE,
    CROSSREF_MIN_SHARED_KEYWORDS,
)
from foundry.tree.node import Node

from .confidence_scorer import ConfidenceScorer, ScoredPair
from .keyword_extractor import BASE_STOP_WORDS, analyze_corpus
from .relationship_inferrer import RelationshipInferrer, RelationType, TreeContext
from .relevance_index import build_inverted_index, candidate_pairs, shared_keywords

logger = structlog.get_logger()


@dataclass
class CrossReferenceConfig:
    """Tunable parameters for one inference pass."""

    common_word_percentile: float = CROSSREF_COMMON_WORD_PERCENTILE
    min_shared_keywords: int = CROSSREF_MIN_SHARED_KEYWORDS
    max_links_per_node: int = CROSSREF_MAX_LINKS_PER_NODE
    base_stop_words: frozenset[str] = BASE_STOP_WORDS


@dataclass
class CrossReferenceLink:
    """A directed, typed link from the owning node to target_id."""

    target_id: str
    relation: RelationType
    provenance: list[str]
    confidence: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "target_id": self.target_id,
            "relation": self.relation.value,
            "provenance": list(self.provenance),
            "confidence": self.confidence,
        }


@dataclass
class CrossReferenceIndex:
    """Outgoing links per node, each list sorted by descending confidence."""

    links: dict[str, list[CrossReferenceLink]] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.links)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.links

    def __iter__(self) -> Iterator[str]:
        return iter(self.links)

    def node_ids(self) -> list[str]:
        return list(self.links)

    def links_for(self, node_id: str) -> list[CrossReferenceLink]:
        return self.links.get(node_id, [])

    def link_between(self, source_id: str, target_id: str) -> CrossReferenceLink | None:
        for link in self.links_for(source_id):
            if link.target_id == target_id:
                return link
        return None

    def edge_count(self) -> int:
        return sum(len(links) for links in self.links.values())

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        """The exported cross-reference artifact."""
        return {
            node_id: [link.to_dict() for link in links]
            for node_id, links in self.links.items()
        }


class CrossReferenceBuilder:
    """Build the cross-reference index from a full corpus snapshot.

    Each call recomputes everything from its input: keyword census, stop
    words, inverted index, relations and confidences. No state is carried
    between calls.
    """

    def __init__(
        self,
        config: CrossReferenceConfig | None = None,
        inferrer: RelationshipInferrer | None = None,
    ):
        self.config = config or CrossReferenceConfig()
        self.inferrer = inferrer or RelationshipInferrer()
        self.scorer = ConfidenceScorer(self.config.max_links_per_node)

    def build(self, nodes: Iterable[Node]) -> CrossReferenceIndex:
        """Generate the cross-reference index for the given nodes."""
        nodes = list(nodes)
        if len(nodes) < 2:
            return CrossReferenceIndex()

        logger.info("generating_cross_references", nodes=len(nodes))

        context = TreeContext.from_nodes(nodes)
        profile = analyze_corpus(
            nodes,
            self.config.common_word_percentile,
            self.config.base_stop_words,
        )
        inverted = build_inverted_index(profile.significant)

        accepted: list[ScoredPair] = []
        max_weight = 0
        for source_id, target_id in candidate_pairs(profile.significant, inverted):
            shared = shared_keywords(source_id, target_id, profile.significant)
            weight = len(shared)
            max_weight = max(max_weight, weight)
            if weight < self.config.min_shared_keywords:
                continue

            relationship = self.inferrer.infer(
                context.nodes[source_id],
                context.nodes[target_id],
                shared,
                context,
            )
            accepted.append(ScoredPair(
                relationship=relationship,
                provenance=sorted(shared),
                weight=weight,
            ))

        self.scorer.score(accepted, max_weight)
        kept = self.scorer.prune(accepted)
        index = self._assemble(kept)

        logger.info(
            "generated_cross_references",
            nodes=len(nodes),
            linked_nodes=len(index),
            pairs=len(kept),
            max_weight=max_weight,
        )
        return index

    def _assemble(self, pairs: list[ScoredPair]) -> CrossReferenceIndex:
        """Add both directions of every kept pair and order each list."""
        links: dict[str, list[CrossReferenceLink]] = {}
        for pair in pairs:
            forward = pair.relationship
            for rel in (forward, forward.inverse):
                links.setdefault(rel.source_id, []).append(CrossReferenceLink(
                    target_id=rel.target_id,
                    relation=rel.relation,
                    provenance=list(pair.provenance),
                    confidence=pair.confidence,
                ))

        for node_links in links.values():
            node_links.sort(key=lambda link: (-link.confidence, link.target_id))
        return CrossReferenceIndex(links=links)


def generate_cross_references(
    nodes: Iterable[Node],
    config: CrossReferenceConfig | None = None,
) -> CrossReferenceIndex:
    """Pure function of its input: the cross-reference index for a corpus."""
    return CrossReferenceBuilder(config=config).build(nodes)
