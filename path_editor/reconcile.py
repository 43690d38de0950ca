"""
Draft reconciliation: flatten the edited graph into one save request.

Key ideas:
- Walk the branch-context tree depth-first from the root, emitting one entry
  per node in sequence order. A decision node is always last in its
  sequence, so its branches are walked right after it.
- Every entry carries its branch path (the chain of decision node + option
  steps from the root), its position and its `next` sibling, so the
  persistence side can rebuild transitions without guessing.
- Drafts are emitted without a persisted id; the store assigns one.
- Nothing here mutates the graph. A failed save leaves it exactly as it was.
"""
from __future__ import annotations
import logging
from typing import Optional
from .errors import GraphIntegrityError, PathValidationError
from .graph import PathGraph
from .identity import ref_of
from .models import (
    BranchContext,
    BranchLink,
    BranchStep,
    PathDetails,
    PayloadEntry,
    ROOT,
    SavePathRequest,
)

logger = logging.getLogger(__name__)

EMPTY_PATH = "path has no nodes"


def validate_for_save(graph: PathGraph, details: PathDetails) -> None:
    """Local checks that must pass before anything is sent to the store."""
    if graph.is_empty():
        raise PathValidationError(EMPTY_PATH)
    problems = details.problems()
    if problems:
        raise PathValidationError("; ".join(problems), {"fields": problems})


def flatten(graph: PathGraph) -> list[PayloadEntry]:
    """Return one payload entry per node, depth-first from the root."""
    orphans = graph.orphaned_contexts()
    if orphans:
        logger.error("Refusing to flatten graph with orphaned branches: %s", orphans)
        raise GraphIntegrityError(
            "Branches not reachable from the root",
            {"contexts": [str(c) for c in orphans]},
        )

    entries: list[PayloadEntry] = []
    _visit(graph, ROOT, [], entries)

    if len(entries) != graph.node_count():
        raise GraphIntegrityError(
            "Flattened entry count does not match node count",
            {"entries": len(entries), "nodes": graph.node_count()},
        )
    return entries


def build_save_request(
    graph: PathGraph,
    details: PathDetails,
    path_id: Optional[str] = None,
) -> SavePathRequest:
    validate_for_save(graph, details)
    entries = flatten(graph)
    drafts = sum(1 for e in entries if e.is_draft)
    logger.info(
        "Built save request for path %s: %d node(s), %d new",
        path_id or "<new>", len(entries), drafts,
    )
    return SavePathRequest(path_id=path_id, details=details, nodes=entries)


# ── Private DFS ─────────────────────────────────────────────────────

def _visit(
    graph: PathGraph,
    context: BranchContext,
    branch_path: list[BranchStep],
    result: list[PayloadEntry],
) -> None:
    sequence = graph.sequence_for(context)
    parent_ref = ref_of(graph.node(context.parent)) if context.parent is not None else None

    for position, node in enumerate(sequence):
        following = sequence[position + 1] if position + 1 < len(sequence) else None
        branches = graph.branch_contexts_of(node)

        links = []
        for branch in branches:
            child_sequence = graph.sequence_for(branch)
            first = ref_of(child_sequence[0]) if child_sequence else None
            links.append(BranchLink(option_index=branch.option_index, first=first))

        result.append(
            PayloadEntry(
                ref=ref_of(node),
                content=node.content,
                title=node.title,
                content_kind=node.content_kind,
                options=node.options,
                parent=parent_ref,
                via_option_index=context.option_index,
                position=position,
                branch_path=list(branch_path),
                next=ref_of(following) if following is not None else None,
                is_start=context.is_root and position == 0,
                branches=links,
            )
        )

        for branch in branches:
            step = BranchStep(parent=ref_of(node), option_index=branch.option_index)
            _visit(graph, branch, branch_path + [step], result)
