"""
Edit session: the state one "edit learning path" screen owns.

The session holds the path graph, the draft counter, the path details and a
small interaction state machine:

    Idle --start_insertion--> SelectingContentForInsertion
    SelectingContentForInsertion --pick_content / cancel--> Idle
    Idle --open_branches--> ViewingBranches --close--> Idle
    Idle | ViewingBranches --save--> Saving --> (ended) | previous phase

Rejected edits never raise out of `pick_content`; they come back as an
InsertionOutcome and a notice. Other structural edits raise
StructuralRejection after recording the same notice.
"""
from __future__ import annotations
import itertools
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Union
from .config import EditorSettings, get_settings
from .errors import (
    GraphIntegrityError,
    PathValidationError,
    SessionBusyError,
    SessionEndedError,
    SessionStateError,
    StructuralRejection,
)
from .graph import PathGraph
from .identity import AnyNode, DraftCounter, identity_of
from .models import (
    BranchContext,
    ContentSummary,
    DraftNode,
    NodeKey,
    PathDetails,
    ROOT,
    SaveResult,
)
from .reconcile import build_save_request
from .store import PathStore

logger = logging.getLogger(__name__)


# ── Phases ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Idle:
    name = "idle"


@dataclass(frozen=True)
class SelectingContentForInsertion:
    target_index: int
    target_context: BranchContext
    name = "selecting_content"


@dataclass(frozen=True)
class ViewingBranches:
    decision_node: NodeKey
    name = "viewing_branches"


@dataclass(frozen=True)
class Saving:
    name = "saving"


Phase = Union[Idle, SelectingContentForInsertion, ViewingBranches, Saving]
IDLE = Idle()


@dataclass(frozen=True)
class Notice:
    """A dismissible message that disappears on its own after a while."""
    id: int
    message: str
    level: str
    expires_at: float


@dataclass(frozen=True)
class InsertionOutcome:
    inserted: bool
    node: Optional[AnyNode] = None
    reason: Optional[str] = None


class EditSession:
    """
    One user editing one path. Constructed when the edit screen opens,
    dropped when it closes; never shared between screens.
    """

    def __init__(
        self,
        graph: Optional[PathGraph] = None,
        details: Optional[PathDetails] = None,
        path_id: Optional[str] = None,
        settings: Optional[EditorSettings] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings or get_settings()
        self.graph = graph or PathGraph()
        self.details = details or PathDetails(language=self.settings.default_language)
        self.path_id = path_id
        self.drafts = DraftCounter()
        self._phase: Phase = IDLE
        self._ended = False
        self._language_adopted = False
        self._clock = clock
        self._notices: list[Notice] = []
        self._notice_ids = itertools.count(1)

    @classmethod
    async def open(
        cls,
        store: PathStore,
        path_id: Optional[str] = None,
        settings: Optional[EditorSettings] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> "EditSession":
        """Start a session for a new path, or for an existing one from the store."""
        if path_id is None:
            return cls(settings=settings, clock=clock)
        stored = await store.load_path(path_id)
        graph = PathGraph.from_persisted(stored.nodes, stored.start_node_id)
        logger.info("Opened path %s for editing (%d node(s))", path_id, graph.node_count())
        return cls(graph=graph, details=stored.details, path_id=path_id, settings=settings, clock=clock)

    # ── State ────────────────────────────────────────────────────────

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def ended(self) -> bool:
        return self._ended

    @property
    def is_saving(self) -> bool:
        return isinstance(self._phase, Saving)

    def end(self) -> None:
        """Cancel the session. Unsaved edits are dropped."""
        self._ended = True
        self._phase = IDLE

    # ── Insertion flow ───────────────────────────────────────────────

    def start_insertion(self, index: int, context: BranchContext = ROOT) -> Phase:
        """
        Remember where content should go. Ignored unless idle; a second
        insertion must wait for the first to be picked or cancelled.
        """
        self._ensure_open()
        if not isinstance(self._phase, Idle):
            logger.debug("Ignoring start_insertion while %s", self._phase.name)
            return self._phase
        if not self.graph.has_context(context):
            raise GraphIntegrityError(f"Unknown branch context {context}")
        self._phase = SelectingContentForInsertion(target_index=index, target_context=context)
        return self._phase

    def pick_content(self, content: ContentSummary) -> InsertionOutcome:
        self._ensure_open()
        self._ensure_not_saving()
        phase = self._phase
        if not isinstance(phase, SelectingContentForInsertion):
            raise SessionStateError("No insertion in progress")

        node = DraftNode(
            draft_seq=self.drafts.value,
            content=content.ref,
            title=content.title,
            content_kind=content.content_kind,
            options=content.options,
        )
        self._phase = IDLE
        try:
            self.graph.insert_after(phase.target_context, phase.target_index, node)
        except StructuralRejection as exc:
            logger.warning("Insertion into %s rejected: %s", phase.target_context, exc.reason)
            self._notify(exc.reason)
            return InsertionOutcome(inserted=False, reason=exc.reason)

        self.drafts.advance()
        if not self.details.language:
            self.details = self.details.model_copy(update={"language": content.language})
            self._language_adopted = True
        return InsertionOutcome(inserted=True, node=node)

    def cancel(self) -> Phase:
        self._ensure_open()
        if isinstance(self._phase, SelectingContentForInsertion):
            self._phase = IDLE
        return self._phase

    # ── Branch view ──────────────────────────────────────────────────

    def open_branches(self, decision_node: NodeKey) -> Phase:
        self._ensure_open()
        if not isinstance(self._phase, Idle):
            return self._phase
        node = self.graph.node(decision_node)
        if not node.is_decision:
            raise StructuralRejection(f"{decision_node} is not a multiple-choice question")
        self._phase = ViewingBranches(decision_node=decision_node)
        return self._phase

    def close(self) -> Phase:
        self._ensure_open()
        if isinstance(self._phase, ViewingBranches):
            self._phase = IDLE
        return self._phase

    # ── Structural edits ─────────────────────────────────────────────

    def move_node(self, context: BranchContext, from_index: int, to_index: int) -> tuple:
        self._ensure_editable()
        try:
            return self.graph.move(context, from_index, to_index)
        except StructuralRejection as exc:
            self._notify(exc.reason)
            raise

    def delete_node(self, context: BranchContext, index: int) -> AnyNode:
        self._ensure_editable()
        try:
            removed, discarded = self.graph.delete_at(context, index)
        except StructuralRejection as exc:
            self._notify(exc.reason)
            raise

        self._drop_stale_branch_view()
        if self.graph.is_empty() and self._language_adopted:
            self.details = self.details.model_copy(update={"language": ""})
            self._language_adopted = False
        if discarded:
            logger.info("Deleting %s removed %d branch(es)", identity_of(removed), len(discarded))
        return removed

    def refresh_content(self, content: ContentSummary) -> list[BranchContext]:
        """
        Re-apply a content summary to every node that points at it. Branches
        for answer options that disappeared are discarded and returned.
        """
        self._ensure_editable()
        keys = [identity_of(n) for n in self.graph.nodes() if n.content == content.ref]
        try:
            discarded = self.graph.refresh_all(keys, content.options, content.content_kind)
        except StructuralRejection as exc:
            self._notify(exc.reason)
            raise

        self._drop_stale_branch_view()
        if discarded:
            self._notify(
                f"{len(discarded)} branch(es) of '{content.title}' were removed because their answer option no longer exists",
                level="warning",
            )
        return discarded

    def update_details(self, **changes) -> PathDetails:
        self._ensure_editable()
        self.details = self.details.model_copy(update=changes)
        if "language" in changes:
            self._language_adopted = False
        return self.details

    # ── Save ─────────────────────────────────────────────────────────

    async def save(self, store: PathStore) -> SaveResult:
        """
        Validate, flatten and submit the whole path in one request. Store
        errors propagate unchanged and leave the graph untouched.
        """
        self._ensure_open()
        self._ensure_not_saving()
        if isinstance(self._phase, SelectingContentForInsertion):
            raise SessionStateError("Finish or cancel adding a node first")

        try:
            request = build_save_request(self.graph, self.details, self.path_id)
        except PathValidationError as exc:
            self._notify(exc.message)
            raise

        previous = self._phase
        self._phase = Saving()
        try:
            result = await store.save_or_create_path(request)
        finally:
            self._phase = previous

        self.path_id = result.path_id
        self._ended = True
        self._phase = IDLE
        logger.info("Saved learning path %s", result.path_id)
        return result

    # ── Notices ──────────────────────────────────────────────────────

    def notices(self) -> list[Notice]:
        now = self._clock()
        self._notices = [n for n in self._notices if n.expires_at > now]
        return list(self._notices)

    def dismiss(self, notice_id: int) -> None:
        self._notices = [n for n in self._notices if n.id != notice_id]

    # ── Private helpers ──────────────────────────────────────────────

    def _notify(self, message: str, level: str = "error") -> Notice:
        notice = Notice(
            id=next(self._notice_ids),
            message=message,
            level=level,
            expires_at=self._clock() + self.settings.notice_ttl_seconds,
        )
        self._notices.append(notice)
        return notice

    def _drop_stale_branch_view(self) -> None:
        phase = self._phase
        if not isinstance(phase, ViewingBranches):
            return
        if self.graph.find(phase.decision_node) is None or not self.graph.node(phase.decision_node).is_decision:
            self._phase = IDLE

    def _ensure_open(self) -> None:
        if self._ended:
            raise SessionEndedError("This edit session has ended")

    def _ensure_not_saving(self) -> None:
        if self.is_saving:
            raise SessionBusyError("The learning path is being saved")

    def _ensure_editable(self) -> None:
        self._ensure_open()
        self._ensure_not_saving()
        if isinstance(self._phase, SelectingContentForInsertion):
            raise SessionStateError("Finish or cancel adding a node first")
