from .node_store import InMemoryNodeStore, NodeStore
from .pg_node_store import PgNodeStore

__all__ = [
    "InMemoryNodeStore",
    "NodeStore",
    "PgNodeStore",
]
