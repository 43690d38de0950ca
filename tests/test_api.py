"""
Tests for the FastAPI session adapter.
Run with: pytest tests/test_api.py -v
"""
import pytest
from fastapi.testclient import TestClient

from path_editor import main
from path_editor.ordering import AFTER_DECISION


@pytest.fixture
def client():
    """Test client; open sessions are dropped afterwards."""
    with TestClient(main.app) as test_client:
        yield test_client
    main._sessions.clear()


@pytest.fixture
def session_id(client):
    response = client.post("/sessions", json={})
    assert response.status_code == 201
    return response.json()["session_id"]


def insert(client, session_id, content_id, index, parent=None, option_index=None):
    body = {"index": index}
    if parent is not None:
        body.update(parent=parent, option_index=option_index)
    assert client.post(f"/sessions/{session_id}/insertions", json=body).status_code == 200
    response = client.post(f"/sessions/{session_id}/insertions/pick", json={"content_id": content_id})
    assert response.status_code == 200
    return response.json()


def root_keys(state):
    return [n["key"] for n in state["sequences"][0]["nodes"]]


class TestRouting:
    """Tests that the session routes are registered."""

    def test_routes_registered(self):
        routes = [route.path for route in main.app.routes]
        assert "/sessions" in routes
        assert "/sessions/{session_id}/insertions/pick" in routes
        assert "/sessions/{session_id}/save" in routes
        assert "/content" in routes


class TestSessionLifecycle:
    """Tests for opening, reading and ending sessions."""

    def test_new_session_is_idle_and_empty(self, client):
        state = client.post("/sessions", json={}).json()
        assert state["phase"] == {"name": "idle"}
        assert state["next_draft_seq"] == 0
        assert state["sequences"] == [
            {"context": "root", "parent": None, "option_index": None, "decision_index": None, "nodes": []}
        ]
        assert state["outline"] == []

    def test_unknown_session(self, client):
        assert client.get("/sessions/nope").status_code == 404

    def test_end_session(self, client, session_id):
        assert client.delete(f"/sessions/{session_id}").status_code == 204
        assert client.get(f"/sessions/{session_id}").status_code == 404

    def test_unknown_path(self, client):
        response = client.post("/sessions", json={"path_id": "missing"})
        assert response.status_code == 404
        assert response.json()["error"] == "PathNotFoundError"


class TestEditing:
    """Tests for the insertion flow and structural edits."""

    def test_pick_inserts_draft(self, client, session_id):
        result = insert(client, session_id, "lo-intro", 0)
        assert result["inserted"]
        assert result["node"] == "draft:0"
        state = result["state"]
        assert state["phase"]["name"] == "idle"
        assert state["next_draft_seq"] == 1
        assert state["details"]["language"] == "en"
        assert root_keys(state) == ["draft:0"]

    def test_pending_insertion_is_visible(self, client, session_id):
        state = client.post(f"/sessions/{session_id}/insertions", json={"index": 0}).json()
        assert state["phase"] == {"name": "selecting_content", "target_index": 0, "target_context": "root"}
        state = client.delete(f"/sessions/{session_id}/insertions").json()
        assert state["phase"] == {"name": "idle"}

    def test_branching(self, client, session_id):
        insert(client, session_id, "lo-intro", 0)
        insert(client, session_id, "lo-quiz", 0)

        rejected = insert(client, session_id, "lo-bubble", 1)
        assert not rejected["inserted"]
        assert rejected["reason"] == AFTER_DECISION
        assert [n["message"] for n in rejected["state"]["notices"]] == [AFTER_DECISION]

        state = insert(client, session_id, "lo-bubble", -1, parent="draft:1", option_index=0)["state"]
        contexts = [s["context"] for s in state["sequences"]]
        assert contexts == ["root", "draft:1#0", "draft:1#1"]
        assert [n["key"] for n in state["sequences"][1]["nodes"]] == ["draft:2"]
        assert [r["label"] for r in state["outline"]] == [
            "Introduction to sorting",
            "Which sort is stable?",
            "A: Bubble sort",
            "Bubble sort",
            "B: Quicksort",
        ]

    def test_move_past_decision_is_conflict(self, client, session_id):
        insert(client, session_id, "lo-intro", 0)
        insert(client, session_id, "lo-quiz", 0)
        response = client.post(f"/sessions/{session_id}/moves", json={"from_index": 0, "to_index": 1})
        assert response.status_code == 409
        assert response.json()["error"] == "StructuralRejection"

    def test_delete_decision_drops_branches(self, client, session_id):
        insert(client, session_id, "lo-intro", 0)
        insert(client, session_id, "lo-quiz", 0)
        state = client.delete(f"/sessions/{session_id}/nodes/1").json()
        assert [s["context"] for s in state["sequences"]] == ["root"]
        assert root_keys(state) == ["draft:0"]

    def test_branch_view(self, client, session_id):
        insert(client, session_id, "lo-quiz", 0)
        state = client.post(f"/sessions/{session_id}/branches", json={"node": "draft:0"}).json()
        assert state["phase"] == {"name": "viewing_branches", "decision_node": "draft:0"}
        state = client.delete(f"/sessions/{session_id}/branches").json()
        assert state["phase"] == {"name": "idle"}

    def test_refresh_content(self, client, session_id):
        insert(client, session_id, "lo-quiz", 0)
        response = client.post(f"/sessions/{session_id}/refresh", json={"content_id": "lo-quiz"})
        assert response.status_code == 200
        assert response.json()["discarded"] == []
        assert response.json()["state"]["sequences"][0]["decision_index"] == 0

    def test_bad_node_key(self, client, session_id):
        response = client.post(f"/sessions/{session_id}/branches", json={"node": "7"})
        assert response.status_code == 422

    def test_unknown_content(self, client, session_id):
        client.post(f"/sessions/{session_id}/insertions", json={"index": 0})
        response = client.post(f"/sessions/{session_id}/insertions/pick", json={"content_id": "nope"})
        assert response.status_code == 404


class TestSave:
    """Tests for saving and reopening a path."""

    def test_save_empty_path_is_rejected(self, client, session_id):
        response = client.post(f"/sessions/{session_id}/save")
        assert response.status_code == 422
        assert response.json()["detail"] == "path has no nodes"

    def test_save_and_reopen(self, client, session_id):
        insert(client, session_id, "lo-intro", 0)
        insert(client, session_id, "lo-quiz", 0)
        insert(client, session_id, "lo-bubble", -1, parent="draft:1", option_index=0)

        response = client.post(f"/sessions/{session_id}/save")
        assert response.status_code == 422
        assert "title is required" in response.json()["detail"]

        client.patch(f"/sessions/{session_id}/details", json={"title": "Sorting"})
        response = client.post(f"/sessions/{session_id}/save")
        assert response.status_code == 200
        saved = response.json()
        assert saved["created"]
        assert client.get(f"/sessions/{session_id}").status_code == 404

        state = client.post("/sessions", json={"path_id": saved["path_id"]}).json()
        assert state["path_id"] == saved["path_id"]
        assert state["details"]["title"] == "Sorting"
        assert all(key.startswith("node:") for key in root_keys(state))
        assert len(state["outline"]) == 5


class TestContent:
    """Tests for the content catalog endpoints."""

    def test_search_by_language(self, client):
        response = client.get("/content", params={"language": "nl"})
        assert response.status_code == 200
        assert [c["id"] for c in response.json()] == ["ext-algo-nl"]

    def test_search_by_kind(self, client):
        response = client.get("/content", params={"kind": "evaluation/multiple-choice"})
        [quiz] = response.json()
        assert quiz["options"] == ["Bubble sort", "Quicksort"]

    def test_seed_rejects_bad_records(self, client):
        response = client.post("/content/seed", json=[{"title": "no id"}])
        assert response.status_code == 422

    def test_seed_replaces_catalog(self, client, monkeypatch):
        monkeypatch.setattr(main, "_catalog", main._catalog)
        records = [{"id": "x", "owner_id": "t1", "title": "Only", "language": "de"}]
        assert client.post("/content/seed", json=records).json() == {"loaded": 1}
        assert [c["id"] for c in client.get("/content").json()] == ["x"]

    def test_debug_outline(self, client, session_id):
        insert(client, session_id, "lo-intro", 0)
        response = client.get(f"/sessions/{session_id}/debug/outline")
        assert response.json() == {"outline": "Introduction to sorting  [draft:0]"}
