"""
Outline view of a branching learning path.

Key ideas:
- The root sequence is listed top to bottom at depth 0. A decision node is
  followed by one row per answer option, and each option row by the nodes
  of that branch, one level deeper.
- DFS carries a "branch_open" stack of booleans. Each boolean at index i
  means "level i still has more siblings coming", so vertical │ lines run
  on past nested branches.
- Every row knows its decision-node ancestry (root → parent), so the
  presenter can highlight the route to a node without walking the graph.
"""
from __future__ import annotations
from typing import Optional
from pydantic import BaseModel
from .graph import PathGraph
from .identity import identity_of, is_draft
from .models import BranchContext, ROOT

# ── Connector tokens ────────────────────────────────────────────────
VERTICAL   = "│"   # level has more siblings below
TEE        = "├──" # standard child connector
CORNER     = "└──" # final child connector
SPACE      = "   " # level is closed; just padding
NODE_DOT   = "•"   # node indicator appended after connector


def option_label(index: int) -> str:
    """Letter label of an answer option: 0 -> "A", 25 -> "Z", 26 -> "AA"."""
    label = ""
    index += 1
    while index:
        index, rem = divmod(index - 1, 26)
        label = chr(65 + rem) + label
    return label


class OutlineRow(BaseModel):
    """One line of the outline: a node, or an answer option of a decision node."""
    key: Optional[str] = None           # node key; None for option rows
    label: str
    depth: int
    connectors: list[str]
    ancestors: list[str]                # decision node keys, root → parent
    is_last_child: bool
    context: str                        # branch context the row belongs to
    option_index: Optional[int] = None  # option rows only
    is_decision: bool = False
    is_draft: bool = False


class OutlineBuilder:
    """
    Usage:
        rows = OutlineBuilder(graph).linearize()
        print(render_text(rows))
    """

    def __init__(self, graph: PathGraph) -> None:
        self._graph = graph

    def linearize(self) -> list[OutlineRow]:
        result: list[OutlineRow] = []
        self._dfs(ROOT, ancestors=[], branch_open=[], result=result)
        return result

    # ── Private DFS ─────────────────────────────────────────────────

    def _dfs(
        self,
        context: BranchContext,
        ancestors: list[str],
        branch_open: list[bool],
        result: list[OutlineRow],
    ) -> None:
        sequence = self._graph.sequence_for(context)
        for idx, node in enumerate(sequence):
            is_last = idx == len(sequence) - 1
            key = str(identity_of(node))
            open_here = branch_open + [not is_last] if branch_open else []
            result.append(
                OutlineRow(
                    key=key,
                    label=node.title or "(untitled)",
                    depth=len(open_here),
                    connectors=self._build_connectors(open_here, is_last),
                    ancestors=list(ancestors),
                    is_last_child=is_last,
                    context=str(context),
                    is_decision=node.is_decision,
                    is_draft=is_draft(node),
                )
            )

            branches = self._graph.branch_contexts_of(node)
            for opt_idx, branch in enumerate(branches):
                opt_last = opt_idx == len(branches) - 1
                option_open = open_here + [not opt_last]
                result.append(
                    OutlineRow(
                        label=f"{option_label(branch.option_index)}: {node.options[branch.option_index]}",
                        depth=len(option_open),
                        connectors=self._build_connectors(option_open, opt_last),
                        ancestors=ancestors + [key],
                        is_last_child=opt_last,
                        context=str(branch),
                        option_index=branch.option_index,
                    )
                )
                self._dfs(branch, ancestors + [key], option_open, result)

    # ── Connector generation ─────────────────────────────────────────

    @staticmethod
    def _build_connectors(branch_open: list[bool], is_last_child: bool) -> list[str]:
        """
        Example for branch_open=[True, False]:
            ["│", "└──", "•"]
        """
        if not branch_open:
            return [NODE_DOT]

        tokens: list[str] = []
        for open_flag in branch_open[:-1]:
            tokens.append(VERTICAL if open_flag else SPACE)
        tokens.append(CORNER if is_last_child else TEE)
        tokens.append(NODE_DOT)
        return tokens


def render_text(rows: list[OutlineRow]) -> str:
    if not rows:
        return "(empty)"
    lines = []
    for row in rows:
        prefix = "".join(row.connectors[:-1])
        suffix = f"  [{row.key}]" if row.key else ""
        lines.append(f"{prefix} {row.label}{suffix}".lstrip())
    return "\n".join(lines)
