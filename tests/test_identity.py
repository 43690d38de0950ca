"""
Tests for node identity and the draft counter.
Run with: pytest tests/test_identity.py -v
"""
import pytest
from path_editor.errors import GraphIntegrityError
from path_editor.identity import DraftCounter, ensure_unique, identity_of, is_draft, ref_of
from path_editor.models import DraftNode, LocalContentRef, NodeKey, NodeRef, PersistedNode


def make_node(id_):
    return PersistedNode(node_id=id_, content=LocalContentRef(object_id=f"lo-{id_}"))


def make_draft(seq):
    return DraftNode(draft_seq=seq, content=LocalContentRef(object_id=f"d-{seq}"))


# ── Test: Namespaced keys ────────────────────────────────────────────

def test_persisted_and_draft_keys_never_collide():
    # persisted id "7" and draft sequence 7 are different nodes
    persisted, draft = make_node("7"), make_draft(7)
    assert identity_of(persisted) == NodeKey("node", "7")
    assert identity_of(draft) == NodeKey("draft", "7")
    assert identity_of(persisted) != identity_of(draft)
    assert ensure_unique([persisted, draft]) == {NodeKey("node", "7"), NodeKey("draft", "7")}


def test_is_draft():
    assert is_draft(make_draft(0))
    assert not is_draft(make_node("1"))


def test_key_is_stable():
    node = make_node("abc")
    assert identity_of(node) == identity_of(node.model_copy(update={"title": "renamed"}))


def test_duplicate_identity_is_fatal():
    with pytest.raises(GraphIntegrityError):
        ensure_unique([make_node("1"), make_draft(0), make_node("1")])


# ── Test: Key parsing and payload refs ───────────────────────────────

def test_key_round_trips_through_text():
    assert NodeKey.parse("node:42") == NodeKey("node", "42")
    assert NodeKey.parse(str(NodeKey("draft", "3"))) == NodeKey("draft", "3")


@pytest.mark.parametrize("raw", ["42", "vertex:1", "node:", "draft:x"])
def test_invalid_keys_are_refused(raw):
    with pytest.raises(ValueError):
        NodeKey.parse(raw)


def test_ref_of():
    assert ref_of(make_node("7")) == NodeRef(node_id="7")
    assert ref_of(make_draft(2)) == NodeRef(draft_id=2)


def test_node_ref_needs_exactly_one_id():
    with pytest.raises(ValueError):
        NodeRef()
    with pytest.raises(ValueError):
        NodeRef(node_id="7", draft_id=1)


# ── Test: Draft counter ──────────────────────────────────────────────

def test_counter_starts_at_zero_and_only_advances():
    counter = DraftCounter()
    assert counter.value == 0
    assert counter.value == 0
    assert counter.advance() == 0
    assert counter.advance() == 1
    assert counter.value == 2


def test_counter_refuses_negative_start():
    with pytest.raises(ValueError):
        DraftCounter(start=-1)
