from .node import EDITABLE_FIELDS, Node, TreeNode, new_node_id
from .tree_builder import Forest, build_tree
from .tree_mutator import DropPosition, TreeMutator, resolve_drop

__all__ = [
    "DropPosition",
    "EDITABLE_FIELDS",
    "Forest",
    "Node",
    "TreeMutator",
    "TreeNode",
    "build_tree",
    "new_node_id",
    "resolve_drop",
]
