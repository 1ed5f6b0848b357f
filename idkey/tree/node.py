"""Node and Tree containers for a built identification key."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator

from idkey.models import LeadRecord


@dataclass(eq=False)
class Node:
    """One lead plus its place in the tree.

    ``children`` keeps dataset order. ``parent`` is None only for the root.
    """

    record: LeadRecord
    children: list[Node] = field(default_factory=list)
    parent: Node | None = field(default=None, repr=False)

    @property
    def lead_id(self) -> int:
        return self.record.lead_id

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def append_child(self, node: Node) -> None:
        node.parent = self
        self.children.append(node)

    def __repr__(self) -> str:
        return f"Node(lead_id={self.lead_id}, children={len(self.children)})"


class Tree:
    """Owns every node of one key and indexes them by lead id."""

    def __init__(self, root: Node | None = None, index: dict[int, Node] | None = None) -> None:
        self.root = root
        self._index: dict[int, Node] = index if index is not None else {}

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, lead_id: object) -> bool:
        return lead_id in self._index

    @property
    def is_empty(self) -> bool:
        return self.root is None

    def get(self, lead_id: int) -> Node | None:
        return self._index.get(lead_id)

    def lead_ids(self) -> list[int]:
        return list(self._index)

    def iter_preorder(self, start: Node | None = None) -> Iterator[Node]:
        """Yield ``start`` (default: root) then its descendants, children in stored order."""
        start = start if start is not None else self.root
        if start is None:
            return
        stack = [start]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def detach(self, node: Node) -> int:
        """Remove ``node`` and its whole subtree. Returns the number of nodes dropped.

        Detaching the root empties the tree.
        """
        removed = 0
        for descendant in list(self.iter_preorder(node)):
            if self._index.pop(descendant.lead_id, None) is not None:
                removed += 1
        if node.parent is None:
            self.root = None
        else:
            node.parent.children.remove(node)
            node.parent = None
        return removed
