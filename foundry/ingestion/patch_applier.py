"""Patch Applier - Validate and atomically apply tagged mutation batches.

A patch is a JSON array of operations applied in listed order::

    {"op": "add", "parent_uuid": "...", "node": {"Name", "Type", "Description", "Items"?}}
    {"op": "remove", "uuid": "..."}
    {"op": "replace", "uuid": "...", "field": "Name" | "Type" | "Description", "value": "..."}
"""

from dataclasses import dataclass, field
from typing import Any

import structlog

from foundry.errors import ValidationError
from foundry.storage.node_store import NodeStore
from foundry.tree.node import Node, new_node_id
from foundry.tree.tree_mutator import TreeMutator

from .source_json import FIELD_MAP, validate_record

logger = structlog.get_logger()

PATCH_OPS = ("add", "remove", "replace")


@dataclass
class PatchResult:
    """Outcome of an applied patch."""

    operations: int = 0
    added_ids: list[str] = field(default_factory=list)
    removed_ids: set[str] = field(default_factory=set)
    replaced: int = 0
    missing_targets: list[str] = field(default_factory=list)


def _validate_node_payload(payload: Any, path: str) -> None:
    stack = [(payload, path)]
    while stack:
        record, record_path = stack.pop()
        validate_record(record, record_path, require_id=False)
        for i, child in enumerate(record.get("Items") or []):
            stack.append((child, f"{record_path}.Items[{i}]"))


def validate_patch(data: Any) -> list[dict[str, Any]]:
    """Check every operation before anything is applied.

    Raises:
        ValidationError: not a list, unknown op tag, missing keys, unknown
            field names or malformed node payloads
    """
    if not isinstance(data, list):
        raise ValidationError("Patch must be an array of operations.")

    for i, op in enumerate(data):
        path = f"$[{i}]"
        if not isinstance(op, dict):
            raise ValidationError(f"{path}: invalid operation format")

        tag = op.get("op")
        if tag not in PATCH_OPS:
            raise ValidationError(f"{path}: invalid operation 'op': {tag!r}")

        if tag == "add":
            if not op.get("parent_uuid") or "node" not in op:
                raise ValidationError(f"{path}: add operation missing 'parent_uuid' or 'node'")
            _validate_node_payload(op["node"], f"{path}.node")

        elif tag == "remove":
            if not op.get("uuid"):
                raise ValidationError(f"{path}: remove operation missing 'uuid'")

        elif tag == "replace":
            if not op.get("uuid") or not op.get("field") or "value" not in op:
                raise ValidationError(
                    f"{path}: replace operation missing 'uuid', 'field', or 'value'"
                )
            if op["field"] not in FIELD_MAP:
                raise ValidationError(f"{path}: invalid field to replace: {op['field']!r}")
            if not isinstance(op["value"], str):
                raise ValidationError(f"{path}.value: expected a string")

    return data


class PatchApplier:
    """Apply validated patches through the tree mutator in one transaction."""

    def __init__(self, store: NodeStore):
        self.store = store
        self.mutator = TreeMutator(store)

    async def apply(self, data: Any) -> PatchResult:
        """Validate then apply a patch; all operations commit or none do."""
        operations = validate_patch(data)
        result = PatchResult(operations=len(operations))

        async with self.store.transaction():
            for op in operations:
                if op["op"] == "add":
                    result.added_ids.extend(await self._add(op["parent_uuid"], op["node"]))
                elif op["op"] == "remove":
                    result.removed_ids |= await self.mutator.delete_subtree(op["uuid"])
                else:
                    changes = {FIELD_MAP[op["field"]]: op["value"]}
                    if await self.mutator.update_fields(op["uuid"], **changes):
                        result.replaced += 1
                    else:
                        result.missing_targets.append(op["uuid"])

        logger.info(
            "applied_patch",
            operations=result.operations,
            added=len(result.added_ids),
            removed=len(result.removed_ids),
            replaced=result.replaced,
        )
        return result

    async def _add(self, parent_id: str, payload: dict[str, Any]) -> list[str]:
        """Insert a node payload and its nested items with fresh ids."""
        sort_order = await self.store.count_children(parent_id)
        nodes: list[Node] = []
        stack = [(payload, parent_id, sort_order)]
        while stack:
            record, record_parent, order = stack.pop()
            node = Node(
                id=new_node_id(),
                parent_id=record_parent,
                name=record["Name"],
                type=record["Type"],
                description=record["Description"],
                sort_order=order,
            )
            nodes.append(node)
            children = record.get("Items") or []
            for i in range(len(children) - 1, -1, -1):
                stack.append((children[i], node.id, i))

        await self.store.insert(nodes)
        return [node.id for node in nodes]
