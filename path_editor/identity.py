"""
Uniform addressing for persisted and draft nodes.

Persisted nodes are keyed by their server id, drafts by their session-local
sequence number. The two live in separate namespaces of NodeKey, so a key is
unique across the whole structure even when the raw values collide.
"""
from __future__ import annotations
from typing import Iterable, Union
from .errors import GraphIntegrityError
from .models import DraftNode, NodeKey, NodeRef, PersistedNode

AnyNode = Union[PersistedNode, DraftNode]


def identity_of(node: AnyNode) -> NodeKey:
    if isinstance(node, PersistedNode):
        return NodeKey("node", node.node_id)
    if isinstance(node, DraftNode):
        return NodeKey("draft", str(node.draft_seq))
    raise TypeError(f"Not a node: {node!r}")


def is_draft(node: AnyNode) -> bool:
    return isinstance(node, DraftNode)


def ref_of(node: AnyNode) -> NodeRef:
    """Payload reference for a node: persisted id, or draft marker."""
    if isinstance(node, PersistedNode):
        return NodeRef(node_id=node.node_id)
    return NodeRef(draft_id=node.draft_seq)


def ensure_unique(nodes: Iterable[AnyNode]) -> set[NodeKey]:
    """Return the keys of `nodes`, failing loudly on the first duplicate."""
    seen: set[NodeKey] = set()
    for node in nodes:
        key = identity_of(node)
        if key in seen:
            raise GraphIntegrityError(f"Duplicate node identity {key}")
        seen.add(key)
    return seen


class DraftCounter:
    """
    Monotonic source of draft sequence numbers. The next number is read from
    `value` and only consumed by `advance()`, so a rejected insertion does
    not burn a number; a consumed number is never handed out again.
    """

    def __init__(self, start: int = 0) -> None:
        if start < 0:
            raise ValueError("Draft counter cannot start below zero")
        self._next = start

    @property
    def value(self) -> int:
        return self._next

    def advance(self) -> int:
        used = self._next
        self._next += 1
        return used
