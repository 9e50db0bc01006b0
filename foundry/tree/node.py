"""Node - a single entry in the knowledge tree."""

import uuid
from dataclasses import dataclass, field, replace

from foundry.config import DEFAULT_NODE_NAME, DEFAULT_NODE_TYPE

# Fields callers may replace in place; id, parent and order change via reparent
EDITABLE_FIELDS = ("name", "type", "description")


def new_node_id() -> str:
    """Allocate a fresh globally unique node identifier."""
    return str(uuid.uuid4())


@dataclass
class Node:
    """A node record as held by the node store."""

    id: str
    parent_id: str | None = None
    name: str = DEFAULT_NODE_NAME
    type: str = DEFAULT_NODE_TYPE
    description: str = ""
    sort_order: int = 0

    @property
    def text(self) -> str:
        """Combined text used for keyword analysis."""
        return f"{self.name} {self.description}"

    def with_changes(self, **changes) -> "Node":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "parent_id": self.parent_id,
            "name": self.name,
            "type": self.type,
            "description": self.description,
            "sort_order": self.sort_order,
        }


@dataclass(eq=False)
class TreeNode:
    """A node materialized into the forest with its ordered children."""

    node: Node
    children: list["TreeNode"] = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.node.id

    @property
    def parent_id(self) -> str | None:
        return self.node.parent_id
