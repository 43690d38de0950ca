"""
Path graph: every ordered sequence of the path being edited, keyed by branch
context.

Key ideas:
- The root sequence always exists. Each decision node opens one branch
  context per answer option; those contexts exist (possibly empty) for as
  long as the decision node is in the graph.
- Branch contexts form a tree hanging off the root. Removing a node removes
  every context parented at it, recursively, so nothing unreachable remains.
- Node identities (see identity.py) are unique across all sequences; any
  attempt to break that is an integrity error, not a rejection.
"""
from __future__ import annotations
import logging
from typing import Iterator, Optional, Sequence, Union
from . import ordering
from .errors import GraphIntegrityError, StructuralRejection
from .identity import AnyNode, ensure_unique, identity_of
from .models import BranchContext, ContentKind, NodeKey, PersistedNode, ROOT

logger = logging.getLogger(__name__)

Branches = dict[BranchContext, tuple[AnyNode, ...]]


class PathGraph:
    """
    Mutable map from branch context to ordered sequence.

    Usage:
        graph = PathGraph()
        graph.insert_after(ROOT, -1, node)
        graph.is_locked_by_decision(ROOT, 3)
    """

    def __init__(self, root: Sequence[AnyNode] = ()) -> None:
        self._sequences: Branches = {ROOT: ()}
        if root:
            self.set_sequence_for(ROOT, root)

    # ── Queries ──────────────────────────────────────────────────────

    def sequence_for(self, context: BranchContext) -> tuple:
        return self._sequences.get(context, ())

    def contexts(self) -> list[BranchContext]:
        return list(self._sequences)

    def has_context(self, context: BranchContext) -> bool:
        return context in self._sequences

    def decision_node_index_of(self, context: BranchContext) -> Optional[int]:
        return ordering.decision_index(self.sequence_for(context))

    def is_locked_by_decision(self, context: BranchContext, index: int) -> bool:
        """True for positions that lie past the decision node of the sequence."""
        boundary = self.decision_node_index_of(context)
        return boundary is not None and index > boundary

    def can_insert_after(self, context: BranchContext, index: int, is_decision: bool = False) -> bool:
        try:
            ordering.check_insert(self.sequence_for(context), index, is_decision)
        except StructuralRejection:
            return False
        return True

    def can_move(self, context: BranchContext, from_index: int, to_index: int) -> bool:
        try:
            ordering.check_move(self.sequence_for(context), from_index, to_index)
        except StructuralRejection:
            return False
        return True

    def find(self, key: NodeKey) -> Optional[tuple[BranchContext, int]]:
        for context, sequence in self._sequences.items():
            for idx, node in enumerate(sequence):
                if identity_of(node) == key:
                    return context, idx
        return None

    def locate(self, key: NodeKey) -> tuple[BranchContext, int]:
        found = self.find(key)
        if found is None:
            raise GraphIntegrityError(f"Unknown node {key}")
        return found

    def node(self, key: NodeKey) -> AnyNode:
        context, idx = self.locate(key)
        return self._sequences[context][idx]

    def branch_contexts_of(self, node: Union[AnyNode, NodeKey]) -> list[BranchContext]:
        """Contexts opened by a decision node, in option order."""
        if isinstance(node, tuple):
            node = self.node(node)
        if not node.is_decision:
            return []
        key = identity_of(node)
        return [BranchContext(parent=key, option_index=i) for i in range(len(node.options))]

    def nodes(self) -> Iterator[AnyNode]:
        for sequence in self._sequences.values():
            yield from sequence

    def node_count(self) -> int:
        return sum(len(s) for s in self._sequences.values())

    def is_empty(self) -> bool:
        return not self._sequences[ROOT]

    def walk(self) -> Iterator[tuple[BranchContext, tuple]]:
        """Depth-first (context, sequence) pairs reachable from the root."""
        stack = [ROOT]
        while stack:
            context = stack.pop()
            sequence = self._sequences.get(context, ())
            yield context, sequence
            children = []
            for node in sequence:
                children.extend(self.branch_contexts_of(node))
            stack.extend(reversed(children))

    def orphaned_contexts(self) -> list[BranchContext]:
        reachable = {context for context, _ in self.walk()}
        return [c for c in self._sequences if c not in reachable]

    def snapshot(self) -> Branches:
        # sequences are tuples of frozen models, a shallow copy is a full copy
        return dict(self._sequences)

    # ── Mutations ────────────────────────────────────────────────────

    def set_sequence_for(self, context: BranchContext, sequence: Sequence[AnyNode]) -> None:
        """
        Replace the sequence of `context`. Nodes that drop out of the sequence
        take their branches with them; new decision nodes get empty branches.
        """
        self._check_context(context)
        sequence = tuple(sequence)
        self._check_shape(context, sequence)

        keys = ensure_unique(sequence)
        for other, nodes in self._sequences.items():
            if other == context:
                continue
            clash = keys & {identity_of(n) for n in nodes}
            if clash:
                raise GraphIntegrityError(
                    f"Node identity already used in {other}",
                    {"keys": sorted(str(k) for k in clash)},
                )

        previous = self._sequences.get(context, ())
        self._sequences[context] = sequence

        for node in previous:
            if identity_of(node) not in keys:
                self.discard_subtree(identity_of(node))
        for node in sequence:
            self._sync_branches(node)

    def insert_after(self, context: BranchContext, index: int, node: AnyNode) -> tuple:
        updated = ordering.insert_after(self.sequence_for(context), index, node)
        self.set_sequence_for(context, updated)
        logger.debug("Inserted %s into %s at %d", identity_of(node), context, index + 1)
        return updated

    def move(self, context: BranchContext, from_index: int, to_index: int) -> tuple:
        updated = ordering.move_within_sequence(self.sequence_for(context), from_index, to_index)
        self.set_sequence_for(context, updated)
        logger.debug("Moved node in %s from %d to %d", context, from_index, to_index)
        return updated

    def delete_at(self, context: BranchContext, index: int) -> tuple[AnyNode, list[BranchContext]]:
        """Remove a node; returns it with the branch contexts discarded alongside."""
        self._check_context(context)
        updated, removed = ordering.delete_at(self.sequence_for(context), index)
        self._sequences[context] = updated
        discarded = self.discard_subtree(identity_of(removed))
        logger.debug("Deleted %s from %s (%d branches discarded)", identity_of(removed), context, len(discarded))
        return removed, discarded

    def discard_subtree(self, parent: NodeKey) -> list[BranchContext]:
        """Drop every context whose ancestry passes through `parent`."""
        discarded: list[BranchContext] = []
        pending = [parent]
        while pending:
            key = pending.pop()
            for context in [c for c in self._sequences if c.parent == key]:
                for node in self._sequences.pop(context):
                    pending.append(identity_of(node))
                discarded.append(context)
        return discarded

    def refresh_options(
        self,
        key: NodeKey,
        options: Sequence[str],
        content_kind: Optional[ContentKind] = None,
    ) -> list[BranchContext]:
        """
        Replace the answer options (and optionally the kind) of a node.
        Branches for options that no longer exist are discarded and returned.
        """
        context, idx, updated = self._refreshed(key, options, content_kind)
        sequence = self._sequences[context]
        self._sequences[context] = sequence[:idx] + (updated,) + sequence[idx + 1:]

        discarded = self._sync_branches(updated)
        if discarded:
            logger.warning(
                "Options of %s changed; discarded %d branch(es): %s",
                key, len(discarded), ", ".join(str(c) for c in discarded),
            )
        return discarded

    def refresh_all(
        self,
        keys: Sequence[NodeKey],
        options: Sequence[str],
        content_kind: Optional[ContentKind] = None,
    ) -> list[BranchContext]:
        """
        refresh_options for several nodes sharing one content. Every node is
        checked before any is changed, so a rejection leaves the graph as it was.
        """
        for key in keys:
            self._refreshed(key, options, content_kind)

        discarded: list[BranchContext] = []
        for key in keys:
            # an earlier node may have taken this one down with its branches
            if self.find(key) is None:
                continue
            discarded.extend(self.refresh_options(key, options, content_kind))
        return discarded

    # ── Bootstrap ────────────────────────────────────────────────────

    @classmethod
    def from_persisted(
        cls,
        nodes: Sequence[PersistedNode],
        start_node_id: Optional[str],
    ) -> "PathGraph":
        """
        Rebuild ordered sequences from persisted transitions. Unconditional
        edges chain a sequence; a decision node ends it and its option edges
        start the branch sequences.
        """
        graph = cls()
        if start_node_id is None:
            if nodes:
                raise GraphIntegrityError("Path has nodes but no start node")
            return graph

        by_id = {n.node_id: n for n in nodes}
        visited: set[str] = set()

        def chain(first_id: Optional[str], context: BranchContext) -> None:
            sequence: list[PersistedNode] = []
            current = first_id
            while current is not None:
                if current in visited:
                    raise GraphIntegrityError(f"Transitions revisit node {current}")
                node = by_id.get(current)
                if node is None:
                    raise GraphIntegrityError(f"Transition points at unknown node {current}")
                visited.add(current)
                sequence.append(node)
                if node.is_decision:
                    break
                current = next(
                    (t.target_id for t in node.transitions if t.option_index is None), None
                )
            graph.set_sequence_for(context, sequence)

            if sequence and sequence[-1].is_decision:
                decision = sequence[-1]
                targets = {t.option_index: t.target_id for t in decision.transitions}
                extra = [i for i in targets if i is None or i >= len(decision.options)]
                if extra:
                    logger.warning("Ignoring transitions %s of decision node %s", extra, decision.node_id)
                for branch in graph.branch_contexts_of(decision):
                    chain(targets.get(branch.option_index), branch)

        chain(start_node_id, ROOT)

        unreachable = set(by_id) - visited
        if unreachable:
            logger.warning("%d persisted node(s) not reachable from the start node", len(unreachable))
        return graph

    # ── Private helpers ──────────────────────────────────────────────

    def _refreshed(
        self,
        key: NodeKey,
        options: Sequence[str],
        content_kind: Optional[ContentKind],
    ) -> tuple[BranchContext, int, AnyNode]:
        """Locate `key` and build its refreshed copy without storing it."""
        context, idx = self.locate(key)
        sequence = self._sequences[context]
        changes = {"options": tuple(options)}
        if content_kind is not None:
            changes["content_kind"] = content_kind
        updated = sequence[idx].model_copy(update=changes)

        if updated.is_decision and idx != len(sequence) - 1:
            raise StructuralRejection(
                ordering.DECISION_NOT_LAST, {"node": str(key), "position": idx}
            )
        return context, idx, updated

    def _sync_branches(self, node: AnyNode) -> list[BranchContext]:
        """
        Make the branch contexts under `node` match its options: open the
        missing ones empty, drop (recursively) those for options it lacks.
        """
        key = identity_of(node)
        keep = self.branch_contexts_of(node)
        discarded: list[BranchContext] = []
        for context in [c for c in self._sequences if c.parent == key and c not in keep]:
            for child in self._sequences.pop(context):
                discarded.extend(self.discard_subtree(identity_of(child)))
            discarded.append(context)
        for branch in keep:
            self._sequences.setdefault(branch, ())
        return discarded

    # ── Private checks ───────────────────────────────────────────────

    def _check_context(self, context: BranchContext) -> None:
        if context.is_root:
            return
        found = self.find(context.parent)
        if found is None:
            raise GraphIntegrityError(f"Unknown branch context {context}")
        parent_context, idx = found
        parent = self._sequences[parent_context][idx]
        if not parent.is_decision or context.option_index >= len(parent.options):
            raise GraphIntegrityError(f"Unknown branch context {context}")

    @staticmethod
    def _check_shape(context: BranchContext, sequence: tuple) -> None:
        boundary = ordering.decision_index(sequence)
        if boundary is not None and boundary != len(sequence) - 1:
            raise GraphIntegrityError(
                f"Decision node must be the last node of {context}",
                {"decision_index": boundary, "size": len(sequence)},
            )
