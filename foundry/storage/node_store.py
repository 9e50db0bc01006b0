"""Node Store - Persistence interface for node records plus an in-memory store."""

import copy
from abc import ABC, abstractmethod
from collections.abc import Iterable
from contextlib import asynccontextmanager
from typing import Any

import structlog

from foundry.errors import StoreError
from foundry.tree.node import Node

logger = structlog.get_logger()


class NodeStore(ABC):
    """Record store keyed by node id.

    Writes that belong together must run inside ``transaction()``: either
    everything in the scope is committed or nothing is. Scopes may nest; a
    failing nested scope rolls back only its own writes.
    """

    @abstractmethod
    async def list_all(self) -> list[Node]:
        """Every node, ordered by sort_order."""

    @abstractmethod
    async def get(self, node_id: str) -> Node | None:
        """A single node, or None if absent."""

    @abstractmethod
    async def children_of(self, parent_id: str | None) -> list[Node]:
        """Direct children of a node (roots when parent_id is None)."""

    @abstractmethod
    async def count_children(self, parent_id: str | None) -> int:
        """Number of direct children of a node."""

    @abstractmethod
    async def insert(self, nodes: Iterable[Node]) -> None:
        """Add new node records. Raises StoreError if any id already exists."""

    @abstractmethod
    async def update(self, node_id: str, changes: dict[str, Any]) -> bool:
        """Replace fields on a node. Returns False if the node does not exist."""

    @abstractmethod
    async def delete_many(self, node_ids: Iterable[str]) -> int:
        """Delete the given nodes, returning how many existed."""

    @abstractmethod
    async def replace_all(self, nodes: Iterable[Node]) -> None:
        """Clear the store and load the given nodes in their place."""

    @abstractmethod
    def transaction(self):
        """Async context manager delimiting an atomic write scope."""


class InMemoryNodeStore(NodeStore):
    """Dict-backed store with snapshot/rollback transactions."""

    def __init__(self, nodes: Iterable[Node] | None = None):
        self._nodes: dict[str, Node] = {}
        for node in nodes or []:
            self._nodes[node.id] = copy.copy(node)

    def _sorted(self, nodes: Iterable[Node]) -> list[Node]:
        return [copy.copy(n) for n in sorted(nodes, key=lambda n: n.sort_order)]

    async def list_all(self) -> list[Node]:
        return self._sorted(self._nodes.values())

    async def get(self, node_id: str) -> Node | None:
        node = self._nodes.get(node_id)
        return copy.copy(node) if node else None

    async def children_of(self, parent_id: str | None) -> list[Node]:
        return self._sorted(n for n in self._nodes.values() if n.parent_id == parent_id)

    async def count_children(self, parent_id: str | None) -> int:
        return sum(1 for n in self._nodes.values() if n.parent_id == parent_id)

    def _checked(self, nodes: Iterable[Node], existing: dict[str, Node]) -> list[Node]:
        """Reject the whole batch if any id is already taken or repeated."""
        batch = list(nodes)
        seen: set[str] = set()
        for node in batch:
            if node.id in existing or node.id in seen:
                raise StoreError(f"Node already exists: {node.id}")
            seen.add(node.id)
        return batch

    async def insert(self, nodes: Iterable[Node]) -> None:
        for node in self._checked(nodes, self._nodes):
            self._nodes[node.id] = copy.copy(node)

    async def update(self, node_id: str, changes: dict[str, Any]) -> bool:
        node = self._nodes.get(node_id)
        if node is None:
            return False
        self._nodes[node_id] = node.with_changes(**changes)
        return True

    async def delete_many(self, node_ids: Iterable[str]) -> int:
        deleted = 0
        for node_id in node_ids:
            if self._nodes.pop(node_id, None) is not None:
                deleted += 1
        return deleted

    async def replace_all(self, nodes: Iterable[Node]) -> None:
        self._nodes = {node.id: copy.copy(node) for node in self._checked(nodes, {})}

    @asynccontextmanager
    async def transaction(self):
        # Every scope snapshots, so a failing nested scope undoes only its own writes
        snapshot = dict(self._nodes)
        try:
            yield self
        except BaseException:
            self._nodes = snapshot
            logger.debug("rolled_back_transaction", nodes=len(snapshot))
            raise
