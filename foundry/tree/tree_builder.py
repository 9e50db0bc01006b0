"""Tree Builder - Assemble flat node records into an ordered forest."""

from collections import deque
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

import structlog

from .node import Node, TreeNode

logger = structlog.get_logger()


@dataclass
class Forest:
    """The materialized forest plus derived lookups.

    Rebuilt from the node store after every mutation; never the system of
    record.
    """

    roots: list[TreeNode] = field(default_factory=list)
    by_id: dict[str, TreeNode] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.by_id)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.by_id

    def get(self, node_id: str) -> TreeNode | None:
        return self.by_id.get(node_id)

    def children_of(self, node_id: str | None) -> list[TreeNode]:
        """Ordered children of a node, or the roots when node_id is None."""
        if node_id is None:
            return self.roots
        tree_node = self.by_id.get(node_id)
        return tree_node.children if tree_node else []

    def ancestor_ids(self, node_id: str) -> set[str]:
        """Ids of every ancestor of a node, walking parent pointers to the root."""
        ancestors: set[str] = set()
        if node_id not in self.by_id:
            return ancestors
        root_ids = {root.id for root in self.roots}
        current = node_id
        while current not in root_ids:
            parent_id = self.by_id[current].parent_id
            if parent_id in ancestors:
                break
            ancestors.add(parent_id)
            current = parent_id
        return ancestors

    def walk(self) -> Iterator[TreeNode]:
        """Breadth-first iteration over the whole forest."""
        queue = deque(self.roots)
        while queue:
            tree_node = queue.popleft()
            yield tree_node
            queue.extend(tree_node.children)


def build_tree(nodes: Iterable[Node]) -> Forest:
    """Build a rooted forest from an unordered node collection.

    Nodes whose parent does not resolve are treated as orphan roots.
    Children and roots are ordered by sort_order; ties keep input order.
    """
    by_id: dict[str, TreeNode] = {}
    for node in nodes:
        if node.id in by_id:
            logger.warning("duplicate_node_id", node_id=node.id)
        by_id[node.id] = TreeNode(node=node)

    roots: list[TreeNode] = []
    orphans = 0
    for tree_node in by_id.values():
        parent_id = tree_node.parent_id
        parent = by_id.get(parent_id) if parent_id else None
        if parent is not None and parent is not tree_node:
            parent.children.append(tree_node)
        else:
            if parent_id:
                orphans += 1
            roots.append(tree_node)

    roots.sort(key=lambda t: t.node.sort_order)
    for tree_node in by_id.values():
        tree_node.children.sort(key=lambda t: t.node.sort_order)

    forest = Forest(roots=roots, by_id=by_id)
    _detach_cycles(forest)

    logger.debug("built_tree", nodes=len(by_id), roots=len(forest.roots), orphans=orphans)
    return forest


def _detach_cycles(forest: Forest) -> None:
    """Promote one node of every parent-pointer cycle to a root.

    Imported data can contain cycles that no mutation would create; without
    this those nodes would be unreachable from any root. Nodes hanging below
    a cycle keep their parent.
    """
    reachable = {t.id for t in forest.walk()}
    if len(reachable) == len(forest.by_id):
        return

    for node_id in forest.by_id:
        if node_id in reachable:
            continue
        # Unreachable nodes always have an unreachable parent, so this repeats
        seen: set[str] = set()
        current = node_id
        while current not in seen:
            seen.add(current)
            current = forest.by_id[current].parent_id

        cycle_node = forest.by_id[current]
        forest.by_id[cycle_node.parent_id].children.remove(cycle_node)
        forest.roots.append(cycle_node)
        logger.warning("detached_parent_cycle", node_id=current)
        reachable.update(t.id for t in _subtree(cycle_node))


def _subtree(root: TreeNode) -> Iterator[TreeNode]:
    queue = deque([root])
    while queue:
        tree_node = queue.popleft()
        yield tree_node
        queue.extend(tree_node.children)
