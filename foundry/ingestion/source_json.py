"""Source JSON - Import and export the nested tree interchange format.

A tree is exchanged as nested records::

    {"ID": "...", "Name": "...", "Type": "...", "Description": "...",
     "Items": [ ...child records... ]}

Child order is positional; sort orders are derived from it on import.
"""

import re
from collections.abc import Iterable
from typing import Any

import structlog

from foundry.errors import ValidationError
from foundry.graph.cross_reference import CrossReferenceIndex
from foundry.storage.node_store import NodeStore
from foundry.tree.node import Node
from foundry.tree.tree_builder import TreeNode, build_tree

logger = structlog.get_logger()

# Interchange key -> Node attribute
FIELD_MAP = {
    "Name": "name",
    "Type": "type",
    "Description": "description",
}


def validate_record(record: Any, path: str, require_id: bool = True) -> None:
    """Check one nested record (not its children) for required keys and types."""
    if not isinstance(record, dict):
        raise ValidationError(f"{path}: expected an object, got {type(record).__name__}")

    required = ["ID", *FIELD_MAP] if require_id else list(FIELD_MAP)
    missing = [key for key in required if key not in record]
    if missing:
        raise ValidationError(f"{path}: missing required fields {missing}")

    for key in required:
        if not isinstance(record[key], str):
            raise ValidationError(f"{path}.{key}: expected a string")
    if require_id and not record["ID"]:
        raise ValidationError(f"{path}.ID: must not be empty")

    items = record.get("Items", [])
    if items is not None and not isinstance(items, list):
        raise ValidationError(f"{path}.Items: expected a list")


def flatten_source_tree(payload: Any) -> list[Node]:
    """Flatten one root record (or a list of them) into node records.

    Incoming IDs are kept. The whole payload is validated before anything is
    returned.

    Raises:
        ValidationError: malformed records or duplicate IDs
    """
    roots = payload if isinstance(payload, list) else [payload]
    if not roots:
        raise ValidationError("$: no root records to import")
    nodes: list[Node] = []
    seen: set[str] = set()

    stack: list[tuple[Any, str | None, int, str]] = [
        (record, None, order, f"$[{order}]") for order, record in enumerate(roots)
    ]
    stack.reverse()
    while stack:
        record, parent_id, sort_order, path = stack.pop()
        validate_record(record, path)

        node_id = record["ID"]
        if node_id in seen:
            raise ValidationError(f"{path}.ID: duplicate id {node_id}")
        seen.add(node_id)

        nodes.append(Node(
            id=node_id,
            parent_id=parent_id,
            name=record["Name"],
            type=record["Type"],
            description=record["Description"],
            sort_order=sort_order,
        ))

        children = record.get("Items") or []
        for order in range(len(children) - 1, -1, -1):
            stack.append((children[order], node_id, order, f"{path}.Items[{order}]"))

    return nodes


async def import_source_json(store: NodeStore, payload: Any) -> int:
    """Replace the store's entire contents with an imported tree.

    Returns:
        Number of nodes imported
    """
    nodes = flatten_source_tree(payload)
    async with store.transaction():
        await store.replace_all(nodes)

    logger.info("imported_source_json", nodes=len(nodes))
    return len(nodes)


def _to_record(tree_node: TreeNode) -> dict[str, Any]:
    node = tree_node.node
    return {
        "ID": node.id,
        "Name": node.name,
        "Type": node.type,
        "Description": node.description,
        "Items": [],
    }


def export_source_json(nodes: Iterable[Node]) -> dict[str, Any] | list[dict[str, Any]] | None:
    """Rebuild the nested representation of a flat node collection.

    Returns:
        The root record for a single-rooted forest, a list of root records
        otherwise, or None when there are no nodes
    """
    forest = build_tree(nodes)
    if not forest.roots:
        return None

    root_ids = {root.id for root in forest.roots}
    records: dict[str, dict[str, Any]] = {}
    for tree_node in forest.walk():
        record = _to_record(tree_node)
        records[tree_node.id] = record
        if tree_node.id not in root_ids:
            records[tree_node.parent_id]["Items"].append(record)

    roots = [records[root.id] for root in forest.roots]
    return roots[0] if len(roots) == 1 else roots


def export_crossref_json(index: CrossReferenceIndex) -> dict[str, list[dict[str, Any]]]:
    return index.to_dict()


def sanitize_filename(name: str) -> str:
    """Lowercase, hyphenate whitespace and drop anything else unsafe."""
    name = re.sub(r"\s+", "-", name.lower())
    return re.sub(r"[^\w-]", "", name) or "tree"
