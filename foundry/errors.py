"""Exceptions raised by tree mutation, interchange and storage."""


class FoundryError(Exception):
    """Base exception for knowledge base operations."""
    pass


class ValidationError(FoundryError):
    """Raised when an import or patch payload is malformed.

    Always raised before any write is attempted.
    """
    pass


class CycleError(FoundryError):
    """Raised when a reparent would make a node its own ancestor."""

    def __init__(self, source_id: str, new_parent_id: str | None):
        self.source_id = source_id
        self.new_parent_id = new_parent_id
        super().__init__(
            f"Cannot move node {source_id} under {new_parent_id}: would create a cycle"
        )


class NotFoundError(FoundryError):
    """Raised when an operation requires a node that does not exist."""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node not found: {node_id}")


class StoreError(FoundryError):
    """Raised when the underlying node store fails.

    The mutation in progress must be assumed not committed.
    """
    pass
