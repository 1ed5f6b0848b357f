"""Build a rooted lead tree from the flat remote dataset."""

from __future__ import annotations

import logging
from typing import Iterable

from idkey.models import LeadRecord
from idkey.tree.node import Node, Tree
from idkey.utils import MalformedTreeError

logger = logging.getLogger(__name__)


def build_tree(records: Iterable[LeadRecord]) -> Tree:
    """Turn a flat lead list into a Tree.

    Records may arrive in any order. All nodes are materialized first,
    then each non-root node is attached to its parent in input order, so
    sibling order always follows the dataset.

    Raises
    ------
    MalformedTreeError
        On duplicate lead ids, an unknown parent, zero or several roots,
        or nodes that cannot be reached from the root.
    """
    records = list(records)
    index: dict[int, Node] = {}
    roots: list[Node] = []

    for record in records:
        if record.lead_id in index:
            raise MalformedTreeError(f"Duplicate leadId {record.lead_id}")
        node = Node(record=record)
        index[record.lead_id] = node
        if record.is_root_marker:
            roots.append(node)

    if not roots:
        raise MalformedTreeError("Dataset has no root lead")
    if len(roots) > 1:
        ids = ", ".join(str(n.lead_id) for n in roots)
        raise MalformedTreeError(f"Ambiguous root: leads {ids} have no parent")

    root = roots[0]
    for record in records:
        if record.is_root_marker:
            continue
        parent = index.get(record.parent_id)
        if parent is None:
            raise MalformedTreeError(
                f"Lead {record.lead_id} references unknown parent {record.parent_id}"
            )
        parent.append_child(index[record.lead_id])

    tree = Tree(root=root, index=index)
    reachable = sum(1 for _ in tree.iter_preorder())
    if reachable != len(index):
        # Every node has one parent, so unreachable nodes sit on a detached cycle
        raise MalformedTreeError(
            f"{len(index) - reachable} leads are not reachable from root {root.lead_id}"
        )

    logger.debug("Built key tree: %d leads, root %d", len(index), root.lead_id)
    return tree
