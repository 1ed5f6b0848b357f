"""Key tree construction, pruning and queries."""

from idkey.tree.builder import build_tree
from idkey.tree.node import Node, Tree
from idkey.tree.pruning import filter_by_records, prune_tree, reduce_full_key
from idkey.tree.query import find, flatten, flatten_renumbered

__all__ = [
    "Node",
    "Tree",
    "build_tree",
    "filter_by_records",
    "find",
    "flatten",
    "flatten_renumbered",
    "prune_tree",
    "reduce_full_key",
]
