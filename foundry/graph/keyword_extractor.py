"""Keyword Extractor - Significant keywords per node with corpus-relative stop words."""

import math
import re
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field

import structlog

from foundry.tree.node import Node

logger = structlog.get_logger()

# Anything that is not a letter, digit, hyphen or whitespace becomes a separator
NON_KEYWORD_CHARS = re.compile(r"[^\w\s-]|_")
MIN_KEYWORD_LENGTH = 3

BASE_STOP_WORDS = frozenset({
    # Function words
    "a", "an", "the", "and", "or", "in", "on", "of", "for", "to", "with", "is", "was",
    "were", "it", "that", "as", "by", "from", "this", "at", "if", "but", "not", "be",
    "are", "has", "had", "have", "do", "does", "did", "its", "also", "just", "made",
    "new", "like", "use", "used", "using", "get", "set", "make", "all", "any", "most",
    "other", "some", "such", "only", "own", "same", "so", "than", "too", "very", "can",
    "will", "should", "could", "would", "must", "may", "might",
    # Product names
    "janus", "kairos", "codewright",
    # Project-generic
    "project", "task", "node", "file", "code", "script", "type", "name", "description",
    "items", "id", "uuid",
    # Technical-generic
    "system", "data", "information", "process", "based", "via", "core", "value", "user",
    "agent", "self", "knowledge",
})


@dataclass
class LexicalProfile:
    """Keyword analysis of a whole corpus snapshot."""

    significant: dict[str, frozenset[str]] = field(default_factory=dict)
    stop_words: frozenset[str] = frozenset()
    dynamic_stop_words: frozenset[str] = frozenset()
    census: Counter = field(default_factory=Counter)

    def keywords_for(self, node_id: str) -> frozenset[str]:
        return self.significant.get(node_id, frozenset())


def tokenize(text: str) -> list[str]:
    """Distinct keyword candidates in order of first appearance."""
    cleaned = NON_KEYWORD_CHARS.sub(" ", text.lower())
    return list(dict.fromkeys(w for w in cleaned.split() if len(w) >= MIN_KEYWORD_LENGTH))


def extract_initial_keywords(text: str) -> frozenset[str]:
    """Lowercase, strip punctuation (hyphens kept), split, drop short tokens."""
    return frozenset(tokenize(text))


def keyword_census(keyword_sets: Iterable[Iterable[str]]) -> Counter:
    """Count how many keyword sets contain each keyword (presence, not frequency)."""
    census: Counter = Counter()
    for keywords in keyword_sets:
        for keyword in dict.fromkeys(keywords):
            census[keyword] += 1
    return census


def dynamic_stop_words(census: Counter, percentile: float) -> frozenset[str]:
    """The most widespread fraction of the corpus vocabulary.

    Ties keep first-seen order, so the cut is deterministic for a given
    node order.
    """
    ranked = sorted(census.items(), key=lambda item: item[1], reverse=True)
    count = math.floor(len(ranked) * percentile)
    return frozenset(keyword for keyword, _ in ranked[:count])


def analyze_corpus(
    nodes: Iterable[Node],
    common_word_percentile: float,
    base_stop_words: frozenset[str] = BASE_STOP_WORDS,
) -> LexicalProfile:
    """Compute each node's significant keyword set.

    Nodes left with no significant keywords are omitted from the profile
    and so can never take part in an inferred link.
    """
    initial: dict[str, list[str]] = {node.id: tokenize(node.text) for node in nodes}

    census = keyword_census(initial.values())
    dynamic = dynamic_stop_words(census, common_word_percentile)
    stop_words = base_stop_words | dynamic

    significant: dict[str, frozenset[str]] = {}
    for node_id, keywords in initial.items():
        kept = frozenset(keywords) - stop_words
        if kept:
            significant[node_id] = kept

    logger.debug(
        "analyzed_corpus",
        nodes=len(initial),
        vocabulary=len(census),
        dynamic_stop_words=len(dynamic),
        indexed_nodes=len(significant),
    )

    return LexicalProfile(
        significant=significant,
        stop_words=stop_words,
        dynamic_stop_words=dynamic,
        census=census,
    )
