"""Relevance Index - Inverted keyword index and candidate pair enumeration."""

from collections.abc import Iterator, Mapping

import structlog

logger = structlog.get_logger()


def build_inverted_index(
    significant: Mapping[str, frozenset[str]],
) -> dict[str, frozenset[str]]:
    """Map each keyword to the ids of the nodes whose significant set holds it."""
    index: dict[str, set[str]] = {}
    for node_id, keywords in significant.items():
        for keyword in keywords:
            index.setdefault(keyword, set()).add(node_id)
    return {keyword: frozenset(ids) for keyword, ids in index.items()}


def canonical_pair(a: str, b: str) -> tuple[str, str]:
    """Order two ids so an unordered pair has one representation."""
    return (a, b) if a <= b else (b, a)


def candidate_partners(
    node_id: str,
    significant: Mapping[str, frozenset[str]],
    inverted: Mapping[str, frozenset[str]],
) -> set[str]:
    """Every other node sharing at least one keyword with node_id."""
    partners: set[str] = set()
    for keyword in significant.get(node_id, frozenset()):
        partners.update(inverted.get(keyword, frozenset()))
    partners.discard(node_id)
    return partners


def candidate_pairs(
    significant: Mapping[str, frozenset[str]],
    inverted: Mapping[str, frozenset[str]],
) -> Iterator[tuple[str, str]]:
    """Yield each unordered pair of nodes that share vocabulary exactly once.

    Pairs come out canonically ordered; iteration order is deterministic for
    a given input.
    """
    seen: set[tuple[str, str]] = set()
    for node_id in sorted(significant):
        for partner in sorted(candidate_partners(node_id, significant, inverted)):
            pair = canonical_pair(node_id, partner)
            if pair in seen:
                continue
            seen.add(pair)
            yield pair

    logger.debug("enumerated_candidate_pairs", pairs=len(seen))


def shared_keywords(
    a: str,
    b: str,
    significant: Mapping[str, frozenset[str]],
) -> frozenset[str]:
    return significant.get(a, frozenset()) & significant.get(b, frozenset())
