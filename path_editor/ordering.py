"""
Branch-aware ordering engine.

Pure index math over one ordered sequence. Every operation takes a tuple of
nodes and returns a new tuple; a rejected edit raises StructuralRejection and
leaves the caller's sequence untouched.

Key rule: a decision node (multiple-choice question) is always the last
element of its sequence. Nothing may be inserted or moved at or past it; the
only way to continue "after" a decision is inside one of its branches.
"""
from __future__ import annotations
from typing import Optional, Sequence
from .errors import StructuralRejection
from .identity import AnyNode

OrderedSequence = tuple[AnyNode, ...]

AFTER_DECISION = "Nodes cannot be placed after a multiple-choice question; add them to one of its branches instead."
SECOND_DECISION = "This sequence already ends in a multiple-choice question."
DECISION_NOT_LAST = "A multiple-choice question can only be added at the end of a sequence."
DECISION_IMMOVABLE = "A multiple-choice question always stays at the end of its sequence."


def decision_index(sequence: Sequence[AnyNode]) -> Optional[int]:
    """Index of the decision node in `sequence`, or None."""
    for idx, node in enumerate(sequence):
        if node.is_decision:
            return idx
    return None


def check_insert(sequence: Sequence[AnyNode], index: int, is_decision: bool = False) -> int:
    """
    Validate an insertion after `index` and return the resulting position.
    `index` -1 inserts at the head; on an empty sequence 0 also means the head.
    """
    size = len(sequence)
    if index < -1 or index > max(size - 1, 0):
        raise StructuralRejection(
            f"Cannot insert after position {index}",
            {"size": size},
        )
    position = min(index + 1, size)
    boundary = decision_index(sequence)

    if boundary is not None and index >= boundary:
        raise StructuralRejection(AFTER_DECISION, {"index": index, "decision_index": boundary})
    if is_decision:
        if boundary is not None:
            raise StructuralRejection(SECOND_DECISION, {"decision_index": boundary})
        if position != size:
            raise StructuralRejection(DECISION_NOT_LAST, {"position": position, "size": size})
    return position


def insert_after(sequence: Sequence[AnyNode], index: int, node: AnyNode) -> OrderedSequence:
    """Insert `node` at position index+1."""
    position = check_insert(sequence, index, node.is_decision)
    updated = list(sequence)
    updated.insert(position, node)
    return tuple(updated)


def check_move(sequence: Sequence[AnyNode], from_index: int, to_index: int) -> None:
    size = len(sequence)
    for idx in (from_index, to_index):
        if not 0 <= idx < size:
            raise StructuralRejection(f"Position {idx} is out of range", {"size": size})

    boundary = decision_index(sequence)
    if boundary is not None:
        if from_index >= boundary:
            raise StructuralRejection(DECISION_IMMOVABLE, {"from": from_index, "decision_index": boundary})
        if to_index >= boundary:
            raise StructuralRejection(AFTER_DECISION, {"to": to_index, "decision_index": boundary})


def move_within_sequence(sequence: Sequence[AnyNode], from_index: int, to_index: int) -> OrderedSequence:
    check_move(sequence, from_index, to_index)
    if from_index == to_index:
        return tuple(sequence)

    updated = list(sequence)
    moved = updated.pop(from_index)
    updated.insert(to_index, moved)
    return tuple(updated)


def delete_at(sequence: Sequence[AnyNode], index: int) -> tuple[OrderedSequence, AnyNode]:
    """
    Remove the node at `index`. Returns (new sequence, removed node); when the
    removed node is a decision node the caller must discard its branches.
    """
    if not 0 <= index < len(sequence):
        raise StructuralRejection(f"Position {index} is out of range", {"size": len(sequence)})
    updated = list(sequence)
    removed = updated.pop(index)
    return tuple(updated), removed


def should_commit_hover(
    drag_index: int,
    hover_index: int,
    pointer_y: float,
    hover_height: float,
) -> bool:
    """
    Drag-and-drop hover rule. `pointer_y` is the pointer offset from the top
    of the hovered node. Moving down commits only once the pointer is past
    the hovered node's midpoint, moving up only once it is above it.
    """
    if drag_index == hover_index:
        return False
    middle = hover_height / 2
    if drag_index < hover_index and pointer_y < middle:
        return False
    if drag_index > hover_index and pointer_y > middle:
        return False
    return True
