"""Relationship Inferrer - Rule-based typing of node relationships."""

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum

import structlog

from foundry.tree.node import Node

from .keyword_extractor import tokenize

logger = structlog.get_logger()


class RelationType(Enum):
    """Types of inferred relationships between nodes."""

    # Structural
    HAS_CHILD = "has_child"
    IS_CHILD_OF = "is_child_of"
    IS_SIBLING_OF = "is_sibling_of"
    IS_ANCESTOR_OF = "is_ancestor_of"
    IS_DESCENDANT_OF = "is_descendant_of"

    # Textual references
    EXPLICITLY_REFERENCES = "explicitly_references"
    IS_REFERENCED_BY = "is_referenced_by"
    POINTS_TO = "points_to"
    IS_POINTED_TO_BY = "is_pointed_to_by"

    # Type pairs
    CONTAINS_TASK = "contains_task"
    IS_TASK_OF = "is_task_of"
    CLARIFIES = "clarifies"
    IS_CLARIFIED_BY = "is_clarified_by"

    # Relationship verbs
    IMPROVES = "improves"
    IS_IMPROVED_BY = "is_improved_by"
    CAUSES = "causes"
    IS_CAUSED_BY = "is_caused_by"
    DEPENDS_ON = "depends_on"
    IS_DEPENDENCY_OF = "is_dependency_of"
    ENABLES = "enables"
    IS_ENABLED_BY = "is_enabled_by"
    REQUIRES = "requires"
    IS_REQUIRED_BY = "is_required_by"
    SUPPORTS = "supports"
    IS_SUPPORTED_BY = "is_supported_by"
    EXTENDS = "extends"
    IS_EXTENDED_BY = "is_extended_by"
    IMPLEMENTS = "implements"
    IS_IMPLEMENTED_BY = "is_implemented_by"
    REPLACES = "replaces"
    IS_REPLACED_BY = "is_replaced_by"
    PREVENTS = "prevents"
    IS_PREVENTED_BY = "is_prevented_by"
    INFLUENCES = "influences"
    IS_INFLUENCED_BY = "is_influenced_by"
    CONTRADICTS = "contradicts"

    # Fallback
    IS_RELATED_TO = "is_related_to"

    @property
    def inverse(self) -> "RelationType":
        """The relation seen from the other endpoint."""
        return _INVERSES.get(self, self)

    @property
    def is_symmetric(self) -> bool:
        return self.inverse is self

    @classmethod
    def from_label(cls, label: str) -> "RelationType":
        """Parse a relation label, accepting spaces in place of underscores."""
        return cls(label.strip().lower().replace(" ", "_"))


_INVERSE_PAIRS = [
    (RelationType.HAS_CHILD, RelationType.IS_CHILD_OF),
    (RelationType.IS_ANCESTOR_OF, RelationType.IS_DESCENDANT_OF),
    (RelationType.EXPLICITLY_REFERENCES, RelationType.IS_REFERENCED_BY),
    (RelationType.POINTS_TO, RelationType.IS_POINTED_TO_BY),
    (RelationType.CONTAINS_TASK, RelationType.IS_TASK_OF),
    (RelationType.CLARIFIES, RelationType.IS_CLARIFIED_BY),
    (RelationType.IMPROVES, RelationType.IS_IMPROVED_BY),
    (RelationType.CAUSES, RelationType.IS_CAUSED_BY),
    (RelationType.DEPENDS_ON, RelationType.IS_DEPENDENCY_OF),
    (RelationType.ENABLES, RelationType.IS_ENABLED_BY),
    (RelationType.REQUIRES, RelationType.IS_REQUIRED_BY),
    (RelationType.SUPPORTS, RelationType.IS_SUPPORTED_BY),
    (RelationType.EXTENDS, RelationType.IS_EXTENDED_BY),
    (RelationType.IMPLEMENTS, RelationType.IS_IMPLEMENTED_BY),
    (RelationType.REPLACES, RelationType.IS_REPLACED_BY),
    (RelationType.PREVENTS, RelationType.IS_PREVENTED_BY),
    (RelationType.INFLUENCES, RelationType.IS_INFLUENCED_BY),
]

_INVERSES: dict[RelationType, RelationType] = {}
for _forward, _backward in _INVERSE_PAIRS:
    _INVERSES[_forward] = _backward
    _INVERSES[_backward] = _forward


class InferenceRule(Enum):
    """Which rule in the priority chain produced a relation."""

    STRUCTURAL = "structural"
    TEXTUAL_REFERENCE = "textual_reference"
    TYPE_PAIR = "type_pair"
    KEYWORD_VERB = "keyword_verb"
    FALLBACK = "fallback"


@dataclass
class InferredRelationship:
    """A typed relationship from source to target."""

    source_id: str
    target_id: str
    relation: RelationType
    rule: InferenceRule

    @property
    def inverse(self) -> "InferredRelationship":
        return InferredRelationship(
            source_id=self.target_id,
            target_id=self.source_id,
            relation=self.relation.inverse,
            rule=self.rule,
        )


# (source type fragment, target type fragment) -> relation, matched by
# case-insensitive containment
DEFAULT_TYPE_PAIR_RULES: dict[tuple[str, str], RelationType] = {
    ("project", "task"): RelationType.CONTAINS_TASK,
    ("learning", "concept"): RelationType.CLARIFIES,
}

# Verb phrases as they appear in text; the label is the phrase with spaces
# replaced by underscores
RELATIONSHIP_VERBS: tuple[str, ...] = (
    "depends on",
    "improves",
    "causes",
    "enables",
    "requires",
    "supports",
    "extends",
    "implements",
    "replaces",
    "prevents",
    "influences",
    "contradicts",
)

# Node types whose description is just the id of another node
REFERENCE_TYPES = frozenset({"reference", "pointer", "link", "uuid"})

SENTENCE_BOUNDARY = re.compile(r"[.!?\n]+")


def _verb_pattern(phrase: str) -> re.Pattern:
    words = r"\s+".join(re.escape(w) for w in phrase.split())
    return re.compile(rf"\b{words}\b")


def split_sentences(text: str) -> list[str]:
    return [s.strip() for s in SENTENCE_BOUNDARY.split(text.lower()) if s.strip()]


@dataclass
class TreeContext:
    """Structural lookups over the corpus snapshot being analyzed."""

    nodes: Mapping[str, Node]
    _parents: dict[str, str | None] = field(default_factory=dict, init=False)

    def __post_init__(self):
        for node_id, node in self.nodes.items():
            parent_id = node.parent_id
            self._parents[node_id] = parent_id if parent_id in self.nodes else None

    @classmethod
    def from_nodes(cls, nodes: Iterable[Node]) -> "TreeContext":
        return cls(nodes={node.id: node for node in nodes})

    def parent_of(self, node_id: str) -> str | None:
        """Effective parent: dangling parent ids count as no parent."""
        return self._parents.get(node_id)

    def is_ancestor(self, ancestor_id: str, node_id: str) -> bool:
        seen: set[str] = set()
        current = self.parent_of(node_id)
        while current is not None and current not in seen:
            if current == ancestor_id:
                return True
            seen.add(current)
            current = self.parent_of(current)
        return False


class RelationshipInferrer:
    """Infer the relation between two nodes via a strict priority chain.

    1. Structural position (parent/child, sibling, ancestor/descendant)
    2. Explicit textual reference to the other node's id
    3. Type-pair rule table, checked in both directions
    4. Relationship verb co-occurring with a shared keyword in a sentence
    5. Fallback ``is_related_to``

    The first rule that matches wins.
    """

    def __init__(
        self,
        type_pair_rules: Mapping[tuple[str, str], RelationType] | None = None,
        relationship_verbs: Iterable[str] = RELATIONSHIP_VERBS,
        reference_types: Iterable[str] = REFERENCE_TYPES,
    ):
        rules = DEFAULT_TYPE_PAIR_RULES if type_pair_rules is None else type_pair_rules
        self.type_pair_rules = {
            (s.lower(), t.lower()): relation for (s, t), relation in rules.items()
        }
        self.verbs = [
            (_verb_pattern(phrase), RelationType.from_label(phrase))
            for phrase in relationship_verbs
        ]
        self.reference_types = frozenset(t.lower() for t in reference_types)

    def infer(
        self,
        source: Node,
        target: Node,
        shared: Iterable[str],
        context: TreeContext,
    ) -> InferredRelationship:
        """Infer the relation from source to target."""
        checks = (
            (InferenceRule.STRUCTURAL, lambda: self._structural(source, target, context)),
            (InferenceRule.TEXTUAL_REFERENCE, lambda: self._textual_reference(source, target)),
            (InferenceRule.TYPE_PAIR, lambda: self._type_pair(source, target)),
            (InferenceRule.KEYWORD_VERB, lambda: self._keyword_verb(source, target, shared)),
        )
        for rule, check in checks:
            relation = check()
            if relation is not None:
                break
        else:
            rule, relation = InferenceRule.FALLBACK, RelationType.IS_RELATED_TO

        logger.debug(
            "inferred_relation",
            source_id=source.id,
            target_id=target.id,
            relation=relation.value,
            rule=rule.value,
        )
        return InferredRelationship(
            source_id=source.id,
            target_id=target.id,
            relation=relation,
            rule=rule,
        )

    def _structural(
        self, source: Node, target: Node, context: TreeContext
    ) -> RelationType | None:
        source_parent = context.parent_of(source.id)
        target_parent = context.parent_of(target.id)

        if target_parent == source.id:
            return RelationType.HAS_CHILD
        if source_parent == target.id:
            return RelationType.IS_CHILD_OF
        if source_parent is not None and source_parent == target_parent:
            return RelationType.IS_SIBLING_OF
        if context.is_ancestor(source.id, target.id):
            return RelationType.IS_ANCESTOR_OF
        if context.is_ancestor(target.id, source.id):
            return RelationType.IS_DESCENDANT_OF
        return None

    def _is_reference_type(self, node: Node) -> bool:
        return node.type.strip().lower() in self.reference_types

    def _textual_reference(self, source: Node, target: Node) -> RelationType | None:
        if self._is_reference_type(source) and source.description.strip() == target.id:
            return RelationType.POINTS_TO
        if self._is_reference_type(target) and target.description.strip() == source.id:
            return RelationType.IS_POINTED_TO_BY
        if target.id and target.id in source.description:
            return RelationType.EXPLICITLY_REFERENCES
        if source.id and source.id in target.description:
            return RelationType.IS_REFERENCED_BY
        return None

    def _match_type_pair(self, source_type: str, target_type: str) -> RelationType | None:
        source_type = source_type.lower()
        target_type = target_type.lower()
        for (source_fragment, target_fragment), relation in self.type_pair_rules.items():
            if source_fragment in source_type and target_fragment in target_type:
                return relation
        return None

    def _type_pair(self, source: Node, target: Node) -> RelationType | None:
        relation = self._match_type_pair(source.type, target.type)
        if relation is not None:
            return relation
        reverse = self._match_type_pair(target.type, source.type)
        return reverse.inverse if reverse is not None else None

    def _find_verb(self, text: str, shared: list[str]) -> RelationType | None:
        sentences = [(s, set(tokenize(s))) for s in split_sentences(text)]
        for keyword in shared:
            for sentence, tokens in sentences:
                if keyword not in tokens:
                    continue
                for pattern, relation in self.verbs:
                    if pattern.search(sentence):
                        return relation
        return None

    def _keyword_verb(
        self, source: Node, target: Node, shared: Iterable[str]
    ) -> RelationType | None:
        keywords = sorted(shared)
        relation = self._find_verb(source.text, keywords)
        if relation is not None:
            return relation
        reverse = self._find_verb(target.text, keywords)
        return reverse.inverse if reverse is not None else None
