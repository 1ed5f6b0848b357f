"""Pruning strategies applied to a freshly built key tree.

Two mutually exclusive variants:

* :func:`filter_by_records` keeps only the paths that reach a leaf whose
  record id belongs to the requested set (a filtered key).
* :func:`reduce_full_key` is used for the unfiltered key and removes dead
  ends: leaves that name no species, and questions left with no branches
  once those are gone. The root always stays.

Both mutate the given tree in place and return it. Traversal is iterative
post-order so key depth is not bounded by the recursion limit.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from idkey.tree.node import Node, Tree

logger = logging.getLogger(__name__)


def _postorder(tree: Tree) -> list[Node]:
    """Nodes of ``tree`` with every child listed before its parent."""
    order = list(tree.iter_preorder())
    order.reverse()
    return order


def _prune(tree: Tree, keep_leaf: Callable[[Node], bool], *, keep_root: bool) -> int:
    removed = 0
    for node in _postorder(tree):
        if not node.is_leaf:
            continue
        if node is tree.root and keep_root:
            continue
        if not keep_leaf(node):
            # Children are visited first, so a question whose branches were all
            # dropped is already a leaf by the time it is reached.
            removed += tree.detach(node)
    return removed


def filter_by_records(tree: Tree, records: Iterable[int]) -> Tree:
    """Keep leaves whose ``record_id`` is in ``records`` and their ancestors.

    An internal node survives iff at least one descendant survives. When no
    leaf matches the tree ends up empty (``tree.is_empty``); callers treat
    that as an empty key, not as a failure.
    """
    wanted = frozenset(records)
    before = len(tree)
    initial_leaves = {id(n) for n in tree.iter_preorder() if n.is_leaf}

    def keep(node: Node) -> bool:
        # A question that lost all its branches is never a match
        return id(node) in initial_leaves and node.record.record_id in wanted

    removed = _prune(tree, keep, keep_root=False)
    logger.info(
        "Record filter (%d records) kept %d of %d leads",
        len(wanted), before - removed, before,
    )
    return tree


def reduce_full_key(tree: Tree) -> Tree:
    """Drop dead-end leads from the unfiltered key.

    A leaf without a species is a dead end. Removing dead ends can turn their
    parent question into a dead end as well, which is removed in the same
    pass. The root is never removed.
    """
    before = len(tree)
    removed = _prune(tree, lambda node: node.record.species is not None, keep_root=True)
    if removed:
        logger.info("Full key reduction removed %d of %d leads", removed, before)
    return tree


def prune_tree(tree: Tree, records: Iterable[int], *, full_key: bool) -> Tree:
    """Apply the pruning variant matching the active key identity."""
    if full_key:
        return reduce_full_key(tree)
    return filter_by_records(tree, records)
