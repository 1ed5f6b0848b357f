"""Read-only queries over a built key tree."""

from __future__ import annotations

from idkey.models import LeadRecord
from idkey.tree.node import Node, Tree


def find(tree: Tree, lead_id: int) -> Node | None:
    """Return the node for ``lead_id``, or None when it is not in the tree."""
    return tree.get(lead_id)


def flatten(tree: Tree, from_lead_id: int | None = None) -> list[LeadRecord]:
    """Pre-order listing of the records under a starting node.

    Starts at the root when ``from_lead_id`` is None. The starting node is
    always the first element; callers that only want its descendants drop it.
    An unknown id or an empty tree gives an empty list.
    """
    if from_lead_id is None:
        start = tree.root
    else:
        start = tree.get(from_lead_id)
    if start is None:
        return []
    return [node.record for node in tree.iter_preorder(start)]


def _shift(value: int | None, offset: int) -> int | None:
    return value - offset if isinstance(value, int) else value


def flatten_renumbered(tree: Tree, from_lead_id: int) -> list[LeadRecord]:
    """Like :func:`flatten`, with ids rebased so the starting node is lead 1.

    ``lead_id`` and ``parent_id`` are shifted by ``from_lead_id - 1``; every
    other field is copied unchanged. The tree itself is not modified.

    The copies skip validation. Ids in the subtree that are lower than
    ``from_lead_id`` come out as zero or negative, outside the ``gt=0``
    bound of :class:`LeadRecord`; renumbered ids are for display and are
    never looked up in a tree.
    """
    offset = from_lead_id - 1
    return [
        record.model_copy(update={
            "lead_id": _shift(record.lead_id, offset),
            "parent_id": _shift(record.parent_id, offset),
        })
        for record in flatten(tree, from_lead_id)
    ]
