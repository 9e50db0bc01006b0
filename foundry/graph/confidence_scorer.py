"""Confidence Scorer - Normalize co-occurrence weight and prune link lists."""

import math
from collections import defaultdict
from dataclasses import dataclass

import structlog

from .relationship_inferrer import InferredRelationship

logger = structlog.get_logger()


@dataclass
class ScoredPair:
    """An accepted node pair before normalization."""

    relationship: InferredRelationship
    provenance: list[str]
    weight: int
    confidence: float = 0.0

    @property
    def pair_key(self) -> tuple[str, str]:
        a, b = self.relationship.source_id, self.relationship.target_id
        return (a, b) if a <= b else (b, a)


def normalize_confidence(weight: int, max_weight: int) -> float:
    """Scale a shared-keyword weight into [0, 1] on a log curve.

    Corpora whose heaviest pair shares at most one keyword score 1.0.
    """
    if max_weight <= 1:
        return 1.0
    confidence = math.log1p(weight) / math.log1p(max_weight)
    return round(min(1.0, max(0.0, confidence)), 3)


class ConfidenceScorer:
    """Score accepted pairs and cap each node's outgoing links.

    Pruning is symmetric: pairs are taken in descending confidence and kept
    only while both endpoints have room, so every kept link keeps its
    reciprocal.
    """

    def __init__(self, max_links_per_node: int):
        self.max_links_per_node = max_links_per_node

    def score(self, pairs: list[ScoredPair], max_weight: int) -> list[ScoredPair]:
        """Fill in each pair's confidence relative to the corpus maximum."""
        for pair in pairs:
            pair.confidence = normalize_confidence(pair.weight, max_weight)
        return pairs

    def prune(self, pairs: list[ScoredPair]) -> list[ScoredPair]:
        """Keep the highest-confidence pairs under every node's link cap."""
        ranked = sorted(pairs, key=lambda p: (-p.confidence, p.pair_key))
        link_counts: dict[str, int] = defaultdict(int)
        kept: list[ScoredPair] = []

        for pair in ranked:
            source = pair.relationship.source_id
            target = pair.relationship.target_id
            if (
                link_counts[source] >= self.max_links_per_node
                or link_counts[target] >= self.max_links_per_node
            ):
                continue
            link_counts[source] += 1
            link_counts[target] += 1
            kept.append(pair)

        logger.debug(
            "pruned_links",
            candidates=len(pairs),
            kept=len(kept),
            max_links_per_node=self.max_links_per_node,
        )
        return kept
