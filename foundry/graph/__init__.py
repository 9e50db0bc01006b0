"""Graph module - keyword-driven cross-reference inference between nodes."""

from .confidence_scorer import ConfidenceScorer, ScoredPair, normalize_confidence
from .cross_reference import (
    CrossReferenceBuilder,
    CrossReferenceConfig,
    CrossReferenceIndex,
    CrossReferenceLink,
    generate_cross_references,
)
from .keyword_extractor import (
    BASE_STOP_WORDS,
    LexicalProfile,
    analyze_corpus,
    extract_initial_keywords,
)
from .neighborhood_traverser import NeighborhoodNode, Subgraph, SubgraphEdge, neighborhood
from .relationship_inferrer import (
    InferenceRule,
    InferredRelationship,
    RelationshipInferrer,
    RelationType,
    TreeContext,
)
from .relevance_index import build_inverted_index, candidate_pairs

__all__ = [
    "BASE_STOP_WORDS",
    "ConfidenceScorer",
    "CrossReferenceBuilder",
    "CrossReferenceConfig",
    "CrossReferenceIndex",
    "CrossReferenceLink",
    "InferenceRule",
    "InferredRelationship",
    "LexicalProfile",
    "NeighborhoodNode",
    "RelationType",
    "RelationshipInferrer",
    "ScoredPair",
    "Subgraph",
    "SubgraphEdge",
    "TreeContext",
    "analyze_corpus",
    "build_inverted_index",
    "candidate_pairs",
    "extract_initial_keywords",
    "generate_cross_references",
    "neighborhood",
    "normalize_confidence",
]
