"""
FastAPI adapter for the learning-path editor.

Endpoints:
  POST   /sessions                         → open an edit session (new or existing path)
  GET    /sessions/{sid}                   → phase, sequences, notices, outline
  POST   /sessions/{sid}/insertions        → start inserting after a position
  POST   /sessions/{sid}/insertions/pick   → pick content for the pending insertion
  DELETE /sessions/{sid}/insertions        → cancel the pending insertion
  POST   /sessions/{sid}/moves             → reorder within a sequence
  DELETE /sessions/{sid}/nodes/{index}     → delete a node (and its branches)
  POST   /sessions/{sid}/branches          → open the branch view of a decision node
  DELETE /sessions/{sid}/branches          → close the branch view
  POST   /sessions/{sid}/refresh           → re-apply changed content (answer options)
  PATCH  /sessions/{sid}/details           → title / description / language / image
  POST   /sessions/{sid}/save              → flatten and save the whole path
  DELETE /sessions/{sid}                   → cancel the session
  DELETE /sessions/{sid}/notices/{nid}     → dismiss a notice
  GET    /content                          → search the content catalog
  POST   /content/seed                     → (dev) replace catalog content
  GET    /sessions/{sid}/debug/outline     → (dev) outline as plain text
"""
from __future__ import annotations
from collections import OrderedDict
from dataclasses import asdict
from typing import Any, Optional
from uuid import uuid4
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .catalog import ContentFilter, InMemoryContentCatalog, summary_from_record
from .config import get_settings
from .errors import (
    ContentNotFoundError,
    GraphIntegrityError,
    PathEditorError,
    PathNotFoundError,
    PathStoreError,
    PathValidationError,
    SessionStateError,
    StructuralRejection,
)
from .identity import identity_of
from .logs import bind_context, clear_context, get_logger, setup_logging
from .models import (
    BranchContext,
    ContentKind,
    ContentSummary,
    NodeKey,
    PathDetails,
    ROOT,
    SaveResult,
)
from .outline import OutlineBuilder, OutlineRow, render_text
from .session import EditSession, SelectingContentForInsertion, ViewingBranches
from .store import InMemoryPathStore

settings = get_settings()
setup_logging(settings)
logger = get_logger(__name__)

# ── App setup ───────────────────────────────────────────────────────
app = FastAPI(
    title="Learning Path Editor",
    description="Branching learning-path editing sessions with draft reconciliation.",
    version="1.0.0",
)

# ── In-memory collaborators (swap for DB later) ─────────────────────
_catalog = InMemoryContentCatalog()
_store = InMemoryPathStore()
_sessions: "OrderedDict[str, EditSession]" = OrderedDict()


def _load_sample_content() -> None:
    sample = [
        {"id": "lo-intro",    "owner_id": "t1", "title": "Introduction to sorting", "language": "en", "content_type": "text/markdown"},
        {"id": "lo-bubble",   "owner_id": "t1", "title": "Bubble sort",             "language": "en", "content_type": "text/markdown"},
        {"id": "lo-quick",    "owner_id": "t1", "title": "Quicksort",               "language": "en", "content_type": "text/markdown"},
        {"id": "lo-quiz",     "owner_id": "t1", "title": "Which sort is stable?",   "language": "en", "content_type": "EVAL_MULTIPLE_CHOICE",
         "raw": '{"prompt": "Which algorithm is stable?", "options": ["Bubble sort", "Quicksort"]}'},
        {"id": "lo-reflect",  "owner_id": "t1", "title": "Reflect on complexity",   "language": "en", "content_type": "EVAL_OPEN_QUESTION"},
        {"id": "ext-algo-1",  "hruid": "algo_basics", "version": 3, "title": "What is an algorithm?", "language": "en", "content_type": "text/plain"},
        {"id": "ext-algo-nl", "hruid": "algo_basics", "version": 3, "title": "Wat is een algoritme?", "language": "nl", "content_type": "text/plain"},
    ]
    for record in sample:
        _catalog.add(summary_from_record(record))


_load_sample_content()


# ── Request / response bodies ───────────────────────────────────────

class OpenSessionRequest(BaseModel):
    path_id: Optional[str] = None


class ContextBody(BaseModel):
    parent: Optional[str] = None          # node key, e.g. "node:7" or "draft:2"
    option_index: Optional[int] = None


class InsertionRequest(ContextBody):
    index: int


class PickRequest(BaseModel):
    content_id: str


class MoveRequest(ContextBody):
    from_index: int
    to_index: int


class BranchesRequest(BaseModel):
    node: str


class RefreshRequest(BaseModel):
    content_id: str


class DetailsRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    language: Optional[str] = None
    image: Optional[str] = None


class SequenceView(BaseModel):
    context: str
    parent: Optional[str]
    option_index: Optional[int]
    decision_index: Optional[int]
    nodes: list[dict[str, Any]]


class SessionState(BaseModel):
    session_id: str
    path_id: Optional[str]
    phase: dict[str, Any]
    details: PathDetails
    next_draft_seq: int
    sequences: list[SequenceView]
    notices: list[dict[str, Any]]
    outline: list[OutlineRow]


# ── Error mapping ───────────────────────────────────────────────────

_STATUS = [
    (StructuralRejection, 409),
    (PathValidationError, 422),
    (GraphIntegrityError, 500),
    (SessionStateError, 409),
    (PathNotFoundError, 404),
    (PathStoreError, 502),
    (ContentNotFoundError, 404),
]


@app.exception_handler(PathEditorError)
async def editor_error_handler(request: Request, exc: PathEditorError) -> JSONResponse:
    status = next((code for cls, code in _STATUS if isinstance(exc, cls)), 400)
    if status >= 500:
        logger.error("Editor error", error=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=status,
        content={"detail": exc.message, "error": type(exc).__name__, "details": exc.details},
    )


# ── Helpers ─────────────────────────────────────────────────────────

def _session(session_id: str) -> EditSession:
    session = _sessions.get(session_id)
    if session is None:
        raise HTTPException(404, f"Session '{session_id}' not found")
    bind_context(session_id=session_id)
    return session


def _key(raw: str) -> NodeKey:
    try:
        return NodeKey.parse(raw)
    except ValueError as exc:
        raise HTTPException(422, str(exc)) from None


def _context(parent: Optional[str], option_index: Optional[int]) -> BranchContext:
    if parent is None and option_index is None:
        return ROOT
    if parent is None or option_index is None or option_index < 0:
        raise HTTPException(422, "parent and option_index must be given together")
    return BranchContext(parent=_key(parent), option_index=option_index)


def _fetch(content_id: str) -> ContentSummary:
    return _catalog.fetch_content_by_id(content_id)


def _register(session: EditSession) -> str:
    session_id = uuid4().hex
    _sessions[session_id] = session
    while len(_sessions) > settings.max_sessions:
        dropped, _ = _sessions.popitem(last=False)
        logger.warning("Dropped oldest edit session", session_id=dropped)
    return session_id


def _phase_view(session: EditSession) -> dict[str, Any]:
    phase = session.phase
    view: dict[str, Any] = {"name": phase.name}
    if isinstance(phase, SelectingContentForInsertion):
        view["target_index"] = phase.target_index
        view["target_context"] = str(phase.target_context)
    elif isinstance(phase, ViewingBranches):
        view["decision_node"] = str(phase.decision_node)
    return view


def _state(session_id: str, session: EditSession) -> SessionState:
    graph = session.graph
    sequences = [
        SequenceView(
            context=str(context),
            parent=str(context.parent) if context.parent is not None else None,
            option_index=context.option_index,
            decision_index=graph.decision_node_index_of(context),
            nodes=[{"key": str(identity_of(n)), **n.model_dump(mode="json")} for n in sequence],
        )
        for context, sequence in graph.walk()
    ]
    return SessionState(
        session_id=session_id,
        path_id=session.path_id,
        phase=_phase_view(session),
        details=session.details,
        next_draft_seq=session.drafts.value,
        sequences=sequences,
        notices=[asdict(n) for n in session.notices()],
        outline=OutlineBuilder(graph).linearize(),
    )


# ── Routes ───────────────────────────────────────────────────────────

@app.middleware("http")
async def reset_log_context(request: Request, call_next):
    clear_context()
    try:
        return await call_next(request)
    finally:
        clear_context()


@app.post("/sessions", response_model=SessionState, status_code=201, summary="Open an edit session")
async def open_session(body: OpenSessionRequest):
    session = await EditSession.open(_store, body.path_id)
    session_id = _register(session)
    logger.info("Opened edit session", session_id=session_id, path_id=body.path_id)
    return _state(session_id, session)


@app.get("/sessions/{session_id}", response_model=SessionState, summary="Current session state")
async def get_session(session_id: str):
    return _state(session_id, _session(session_id))


@app.post("/sessions/{session_id}/insertions", response_model=SessionState)
async def start_insertion(session_id: str, body: InsertionRequest):
    session = _session(session_id)
    session.start_insertion(body.index, _context(body.parent, body.option_index))
    return _state(session_id, session)


@app.post("/sessions/{session_id}/insertions/pick", summary="Pick content for the pending insertion")
async def pick_content(session_id: str, body: PickRequest):
    session = _session(session_id)
    outcome = session.pick_content(_fetch(body.content_id))
    return {
        "inserted": outcome.inserted,
        "reason": outcome.reason,
        "node": str(identity_of(outcome.node)) if outcome.node is not None else None,
        "state": _state(session_id, session),
    }


@app.delete("/sessions/{session_id}/insertions", response_model=SessionState)
async def cancel_insertion(session_id: str):
    session = _session(session_id)
    session.cancel()
    return _state(session_id, session)


@app.post("/sessions/{session_id}/moves", response_model=SessionState)
async def move_node(session_id: str, body: MoveRequest):
    session = _session(session_id)
    session.move_node(_context(body.parent, body.option_index), body.from_index, body.to_index)
    return _state(session_id, session)


@app.delete("/sessions/{session_id}/nodes/{index}", response_model=SessionState)
async def delete_node(
    session_id: str,
    index: int,
    parent: Optional[str] = Query(default=None, description="Decision node key of the branch"),
    option_index: Optional[int] = Query(default=None, ge=0),
):
    session = _session(session_id)
    session.delete_node(_context(parent, option_index), index)
    return _state(session_id, session)


@app.post("/sessions/{session_id}/branches", response_model=SessionState)
async def open_branches(session_id: str, body: BranchesRequest):
    session = _session(session_id)
    session.open_branches(_key(body.node))
    return _state(session_id, session)


@app.delete("/sessions/{session_id}/branches", response_model=SessionState)
async def close_branches(session_id: str):
    session = _session(session_id)
    session.close()
    return _state(session_id, session)


@app.post("/sessions/{session_id}/refresh", summary="Re-apply changed content to its nodes")
async def refresh_content(session_id: str, body: RefreshRequest):
    session = _session(session_id)
    discarded = session.refresh_content(_fetch(body.content_id))
    return {"discarded": [str(c) for c in discarded], "state": _state(session_id, session)}


@app.patch("/sessions/{session_id}/details", response_model=SessionState)
async def update_details(session_id: str, body: DetailsRequest):
    session = _session(session_id)
    session.update_details(**body.model_dump(exclude_unset=True))
    return _state(session_id, session)


@app.post("/sessions/{session_id}/save", response_model=SaveResult, summary="Save the whole path")
async def save_path(session_id: str):
    session = _session(session_id)
    result = await session.save(_store)
    _sessions.pop(session_id, None)
    logger.info("Saved learning path", path_id=result.path_id, created=result.created)
    return result


@app.delete("/sessions/{session_id}", status_code=204)
async def end_session(session_id: str):
    session = _session(session_id)
    session.end()
    _sessions.pop(session_id, None)


@app.delete("/sessions/{session_id}/notices/{notice_id}", response_model=SessionState)
async def dismiss_notice(session_id: str, notice_id: int):
    session = _session(session_id)
    session.dismiss(notice_id)
    return _state(session_id, session)


@app.get("/content", response_model=list[ContentSummary], summary="Search the content catalog")
async def search_content(
    language: Optional[str] = Query(default=None),
    title: Optional[str] = Query(default=None, description="Case-insensitive title fragment"),
    kind: Optional[ContentKind] = Query(default=None),
    owner_id: Optional[str] = Query(default=None),
):
    return _catalog.search_content(
        ContentFilter(language=language, title=title, content_kind=kind, owner_id=owner_id)
    )


@app.post("/content/seed", summary="(Dev) Replace catalog content")
async def seed_content(records: list[dict[str, Any]]):
    global _catalog
    try:
        _catalog = InMemoryContentCatalog(records)
    except (KeyError, ValueError) as exc:
        raise HTTPException(422, f"Invalid content record: {exc}") from None
    return {"loaded": len(records)}


@app.get("/sessions/{session_id}/debug/outline", summary="(Dev) Outline as plain text")
async def debug_outline(session_id: str):
    session = _session(session_id)
    return {"outline": render_text(OutlineBuilder(session.graph).linearize())}
