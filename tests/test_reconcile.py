"""
Tests for flattening the edited graph into a save request.
Run with: pytest tests/test_reconcile.py -v
"""
import pytest
from path_editor.errors import GraphIntegrityError, PathValidationError
from path_editor.graph import PathGraph
from path_editor.models import (
    BranchContext,
    BranchLink,
    BranchStep,
    ContentKind,
    DraftNode,
    LocalContentRef,
    NodeKey,
    NodeRef,
    PathDetails,
    PersistedNode,
)
from path_editor.reconcile import EMPTY_PATH, build_save_request, flatten, validate_for_save


# ── Fixtures ─────────────────────────────────────────────────────────

DETAILS = PathDetails(title="Sorting", description="Sorting basics", language="en")


def make_node(id_):
    return PersistedNode(node_id=id_, content=LocalContentRef(object_id=f"lo-{id_}"), title=id_)


def make_question(id_, options=("x", "y")):
    return PersistedNode(
        node_id=id_,
        content=LocalContentRef(object_id=f"q-{id_}"),
        title=id_,
        content_kind=ContentKind.EVAL_MULTIPLE_CHOICE,
        options=options,
    )


def make_draft(seq, decision=False):
    return DraftNode(
        draft_seq=seq,
        content=LocalContentRef(object_id=f"d-{seq}"),
        title=f"draft {seq}",
        content_kind=ContentKind.EVAL_MULTIPLE_CHOICE if decision else ContentKind.TEXT_PLAIN,
        options=("x", "y") if decision else (),
    )


def branch(parent, option_index):
    return BranchContext(parent=parent, option_index=option_index)


def make_branching_graph():
    # root = [7, q], q#0 = [draft 0, draft 1(decision)], q#1 = [], draft 1#1 = [8]
    graph = PathGraph([make_node("7"), make_question("q")])
    q = NodeKey("node", "q")
    graph.set_sequence_for(branch(q, 0), [make_draft(0), make_draft(1, decision=True)])
    graph.set_sequence_for(branch(NodeKey("draft", "1"), 1), [make_node("8")])
    return graph


# ── Test: Validation before anything is sent ─────────────────────────

def test_empty_path_is_rejected_locally():
    with pytest.raises(PathValidationError) as excinfo:
        validate_for_save(PathGraph(), DETAILS)
    assert excinfo.value.message == EMPTY_PATH == "path has no nodes"


def test_missing_title_and_language_are_reported():
    with pytest.raises(PathValidationError) as excinfo:
        build_save_request(PathGraph([make_node("1")]), PathDetails(title="  "))
    assert excinfo.value.details["fields"] == ["title is required", "language is required"]


# ── Test: Payload order and identity ─────────────────────────────────

def test_persisted_then_draft_in_sequence_order():
    # root = [A(id 7), B(draft)]
    graph = PathGraph([make_node("7"), make_draft(0)])
    entries = flatten(graph)
    assert [e.ref for e in entries] == [NodeRef(node_id="7"), NodeRef(draft_id=0)]
    assert [e.is_draft for e in entries] == [False, True]
    assert entries[0].is_start and not entries[1].is_start
    assert entries[0].next == NodeRef(draft_id=0)
    assert entries[1].next is None


def test_one_entry_per_node_depth_first():
    graph = make_branching_graph()
    entries = flatten(graph)
    assert len(entries) == graph.node_count() == 5
    assert [e.title for e in entries] == ["7", "q", "draft 0", "draft 1", "8"]


# ── Test: Parent linkage matches the branch context ──────────────────

def test_entries_carry_their_branch_path():
    entries = {e.title: e for e in flatten(make_branching_graph())}

    assert entries["7"].parent is None and entries["7"].branch_path == []
    assert entries["draft 0"].parent == NodeRef(node_id="q")
    assert entries["draft 0"].via_option_index == 0
    assert entries["draft 1"].position == 1

    deep = entries["8"]
    assert deep.parent == NodeRef(draft_id=1)
    assert deep.via_option_index == 1
    assert deep.branch_path == [
        BranchStep(parent=NodeRef(node_id="q"), option_index=0),
        BranchStep(parent=NodeRef(draft_id=1), option_index=1),
    ]


def test_decision_entries_list_first_node_per_option():
    entries = {e.title: e for e in flatten(make_branching_graph())}
    assert entries["q"].branches == [
        BranchLink(option_index=0, first=NodeRef(draft_id=0)),
        BranchLink(option_index=1, first=None),
    ]
    assert entries["q"].options == ("x", "y")
    assert entries["7"].branches == []


# ── Test: Integrity ──────────────────────────────────────────────────

def test_orphaned_branch_is_fatal():
    graph = make_branching_graph()
    # simulate a corrupted map: a branch whose decision node is gone
    graph._sequences[branch(NodeKey("node", "gone"), 0)] = (make_node("lost"),)
    with pytest.raises(GraphIntegrityError):
        flatten(graph)


def test_flatten_does_not_mutate_graph():
    graph = make_branching_graph()
    before = graph.snapshot()
    build_save_request(graph, DETAILS, path_id="p1")
    assert graph.snapshot() == before


def test_build_save_request():
    request = build_save_request(make_branching_graph(), DETAILS, path_id="p1")
    assert request.path_id == "p1"
    assert request.details == DETAILS
    assert len(request.nodes) == 5
