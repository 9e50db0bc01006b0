"""Tree Mutator - Validated structural edits against the node store."""

from collections import deque
from enum import Enum
from typing import TYPE_CHECKING

import structlog

from foundry.errors import CycleError, NotFoundError, ValidationError

from .node import EDITABLE_FIELDS, Node, new_node_id
from .tree_builder import Forest, build_tree

if TYPE_CHECKING:
    from foundry.storage.node_store import NodeStore

logger = structlog.get_logger()


class DropPosition(Enum):
    """Where a dragged node lands relative to the drop target."""

    BEFORE = "before"
    AFTER = "after"
    ONTO = "onto"


def resolve_drop(
    forest: Forest,
    target_id: str,
    position: str | DropPosition,
) -> tuple[str | None, int]:
    """Resolve a drop gesture into a concrete (parent_id, sort_order).

    ONTO appends as the target's last child; BEFORE/AFTER take the target's
    parent and the target's position (or the one after it).
    """
    if isinstance(position, str):
        position = DropPosition(position)

    target = forest.get(target_id)
    if target is None:
        raise NotFoundError(target_id)

    if position == DropPosition.ONTO:
        return target.id, len(target.children)

    parent_id = target.parent_id if target.parent_id in forest else None
    order = target.node.sort_order
    if position == DropPosition.AFTER:
        order += 1
    return parent_id, order


class TreeMutator:
    """Create, delete, edit and move nodes while keeping the forest acyclic.

    Every write runs inside a single store transaction. Callers rebuild the
    forest (``load_forest``) after each committed mutation.
    """

    def __init__(self, store: "NodeStore"):
        self.store = store

    async def load_forest(self) -> Forest:
        """Rebuild the forest from the store's current contents."""
        return build_tree(await self.store.list_all())

    async def create_node(self, parent_id: str | None = None) -> str:
        """Create a placeholder node as the last child of parent_id.

        Returns:
            The new node's id
        """
        async with self.store.transaction():
            sibling_count = await self.store.count_children(parent_id)
            node = Node(
                id=new_node_id(),
                parent_id=parent_id,
                sort_order=sibling_count,
            )
            await self.store.insert([node])

        logger.info("created_node", node_id=node.id, parent_id=parent_id, sort_order=sibling_count)
        return node.id

    async def delete_subtree(self, node_id: str) -> set[str]:
        """Delete a node together with all of its descendants.

        Descendants are discovered level by level from the store, not from a
        cached forest. Deleting an absent node is a no-op.

        Returns:
            Ids of the deleted nodes
        """
        async with self.store.transaction():
            if await self.store.get(node_id) is None:
                logger.info("delete_target_absent", node_id=node_id)
                return set()

            to_delete: set[str] = set()
            queue = deque([node_id])
            while queue:
                current = queue.popleft()
                if current in to_delete:
                    continue
                to_delete.add(current)
                for child in await self.store.children_of(current):
                    queue.append(child.id)

            await self.store.delete_many(to_delete)

        logger.info("deleted_subtree", root_id=node_id, count=len(to_delete))
        return to_delete

    async def update_fields(self, node_id: str, **fields: str) -> bool:
        """Replace only the supplied name/type/description fields.

        Returns:
            False if the node does not exist (logged, not raised)
        """
        unknown = set(fields) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(
                f"Unknown node fields {sorted(unknown)}; editable fields are {list(EDITABLE_FIELDS)}"
            )
        if not fields:
            return await self.store.get(node_id) is not None

        async with self.store.transaction():
            updated = await self.store.update(node_id, fields)

        if updated:
            logger.info("updated_node", node_id=node_id, fields=sorted(fields))
        else:
            logger.warning("update_target_not_found", node_id=node_id)
        return updated

    async def reparent(
        self,
        source_id: str,
        new_parent_id: str | None,
        new_sort_order: int,
    ) -> None:
        """Move a node under a new parent at the given sort order.

        Raises:
            CycleError: new_parent_id is the source itself or one of its
                descendants; nothing is written.
            NotFoundError: the source node or the new parent does not exist.
        """
        if new_parent_id == source_id:
            logger.warning("rejected_self_reparent", node_id=source_id)
            raise CycleError(source_id, new_parent_id)

        async with self.store.transaction():
            source = await self.store.get(source_id)
            if source is None:
                raise NotFoundError(source_id)

            if new_parent_id is not None:
                if await self.store.get(new_parent_id) is None:
                    raise NotFoundError(new_parent_id)
                await self._check_not_descendant(source_id, new_parent_id)

            await self.store.update(
                source_id,
                {"parent_id": new_parent_id, "sort_order": new_sort_order},
            )

        logger.info(
            "reparented_node",
            node_id=source_id,
            old_parent_id=source.parent_id,
            new_parent_id=new_parent_id,
            sort_order=new_sort_order,
        )

    async def _check_not_descendant(self, source_id: str, new_parent_id: str) -> None:
        """Walk new_parent_id's ancestor chain looking for source_id."""
        seen: set[str] = set()
        current: str | None = new_parent_id
        while current is not None and current not in seen:
            if current == source_id:
                logger.warning(
                    "rejected_cyclic_reparent",
                    node_id=source_id,
                    new_parent_id=new_parent_id,
                )
                raise CycleError(source_id, new_parent_id)
            seen.add(current)
            node = await self.store.get(current)
            current = node.parent_id if node else None
