"""
Data models for the learning-path editor.
"""
from __future__ import annotations
from enum import Enum
from typing import Annotated, Literal, NamedTuple, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ContentKind(str, Enum):
    """Kinds of learning content a node can point at."""
    TEXT_PLAIN           = "text/plain"
    TEXT_MARKDOWN        = "text/markdown"
    IMAGE_BLOCK          = "image/image-block"
    IMAGE                = "image/image"
    AUDIO_MPEG           = "audio/mpeg"
    VIDEO                = "video"
    EVAL_MULTIPLE_CHOICE = "evaluation/multiple-choice"
    EVAL_OPEN_QUESTION   = "evaluation/open-question"

    @classmethod
    def _missing_(cls, value):
        # locally authored questions are stored under their enum names
        if isinstance(value, str) and value in cls.__members__:
            return cls.__members__[value]
        return None


# ── Content references ──────────────────────────────────────────────

class LocalContentRef(BaseModel):
    """Content owned by the author of the path."""
    model_config = ConfigDict(frozen=True)

    source: Literal["local"] = "local"
    object_id: str

    @field_validator("object_id")
    @classmethod
    def must_not_be_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("object_id must not be empty")
        return v.strip()


class ExternalContentRef(BaseModel):
    """Content from the shared catalog, pinned to a language and version."""
    model_config = ConfigDict(frozen=True)

    source: Literal["external"] = "external"
    hruid: str
    language: str
    version: int

    @field_validator("hruid", "language")
    @classmethod
    def must_not_be_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Field must not be empty")
        return v.strip()


ContentRef = Annotated[
    Union[LocalContentRef, ExternalContentRef], Field(discriminator="source")
]


class ContentSummary(BaseModel):
    """What the content catalog knows about one unit of content."""
    model_config = ConfigDict(frozen=True)

    id: str
    ref: ContentRef
    title: str
    language: str
    content_kind: ContentKind = ContentKind.TEXT_PLAIN
    owner_id: Optional[str] = None       # None for shared catalog content
    prompt_text: Optional[str] = None    # decision content only
    options: tuple[str, ...] = ()        # decision content only

    @property
    def is_decision(self) -> bool:
        return self.content_kind is ContentKind.EVAL_MULTIPLE_CHOICE


# ── Identity ────────────────────────────────────────────────────────

class NodeKey(NamedTuple):
    """
    Map key for a node. Persisted ids and draft sequence numbers live in
    separate namespaces, so node:7 and draft:7 never collide.
    """
    namespace: Literal["node", "draft"]
    value: str

    def __str__(self) -> str:
        return f"{self.namespace}:{self.value}"

    @classmethod
    def parse(cls, raw: str) -> "NodeKey":
        namespace, sep, value = raw.partition(":")
        if not sep or namespace not in ("node", "draft") or not value:
            raise ValueError(f"Invalid node key '{raw}'")
        if namespace == "draft" and not value.isdigit():
            raise ValueError(f"Invalid draft key '{raw}'")
        return cls(namespace, value)


# ── Nodes ───────────────────────────────────────────────────────────

class Transition(BaseModel):
    """
    Persisted edge. `option_index` is set only on the edges of a decision
    node; `target_id` None marks the end of a branch.
    """
    model_config = ConfigDict(frozen=True)

    source_id: str
    option_index: Optional[int] = Field(default=None, ge=0)
    target_id: Optional[str] = None


class _NodeBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    content: ContentRef
    title: str = ""                      # denormalized from the content
    content_kind: ContentKind = ContentKind.TEXT_PLAIN
    options: tuple[str, ...] = ()

    @property
    def is_decision(self) -> bool:
        return self.content_kind is ContentKind.EVAL_MULTIPLE_CHOICE


class PersistedNode(_NodeBase):
    kind: Literal["persisted"] = "persisted"
    node_id: str
    transitions: tuple[Transition, ...] = ()

    @model_validator(mode="after")
    def check_transitions(self) -> "PersistedNode":
        seen: set[Optional[int]] = set()
        for t in self.transitions:
            if t.source_id != self.node_id:
                raise ValueError(f"Transition source {t.source_id} is not {self.node_id}")
            if t.option_index in seen:
                raise ValueError(f"Duplicate transition for option {t.option_index}")
            seen.add(t.option_index)
        return self


class DraftNode(_NodeBase):
    kind: Literal["draft"] = "draft"
    draft_seq: int = Field(ge=0)


Node = Annotated[Union[PersistedNode, DraftNode], Field(discriminator="kind")]


# ── Branch contexts ─────────────────────────────────────────────────

class BranchContext(BaseModel):
    """Where an ordered sequence lives: the root, or one option of a decision node."""
    model_config = ConfigDict(frozen=True)

    parent: Optional[NodeKey] = None
    option_index: Optional[int] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def both_or_neither(self) -> "BranchContext":
        if (self.parent is None) != (self.option_index is None):
            raise ValueError("parent and option_index must be set together")
        return self

    @property
    def is_root(self) -> bool:
        return self.parent is None

    def __str__(self) -> str:
        if self.parent is None:
            return "root"
        return f"{self.parent}#{self.option_index}"


ROOT = BranchContext()


# ── Path details & save payload ─────────────────────────────────────

class PathDetails(BaseModel):
    """Title, description, language and image of the path being edited."""
    title: str = ""
    description: str = ""
    language: str = ""
    image: Optional[str] = None

    def problems(self) -> list[str]:
        found = []
        if not self.title.strip():
            found.append("title is required")
        if not self.language.strip():
            found.append("language is required")
        return found


class NodeRef(BaseModel):
    """Points at a node in a save payload: exactly one of node_id / draft_id."""
    model_config = ConfigDict(frozen=True)

    node_id: Optional[str] = None
    draft_id: Optional[int] = None

    @model_validator(mode="after")
    def exactly_one(self) -> "NodeRef":
        if (self.node_id is None) == (self.draft_id is None):
            raise ValueError("Give either node_id or draft_id, not both")
        return self


class BranchStep(BaseModel):
    model_config = ConfigDict(frozen=True)

    parent: NodeRef
    option_index: int


class BranchLink(BaseModel):
    """Option of a decision node and the first node of its branch (None = terminus)."""
    model_config = ConfigDict(frozen=True)

    option_index: int
    first: Optional[NodeRef] = None


class PayloadEntry(BaseModel):
    ref: NodeRef
    content: ContentRef
    title: str
    content_kind: ContentKind
    options: tuple[str, ...] = ()
    parent: Optional[NodeRef] = None
    via_option_index: Optional[int] = None
    position: int
    branch_path: list[BranchStep] = []
    next: Optional[NodeRef] = None
    is_start: bool = False
    branches: list[BranchLink] = []

    @property
    def is_draft(self) -> bool:
        return self.ref.draft_id is not None


class SavePathRequest(BaseModel):
    """Everything the persistence collaborator needs to apply one save."""
    path_id: Optional[str] = None
    details: PathDetails
    nodes: list[PayloadEntry] = Field(min_length=1)


class SaveResult(BaseModel):
    path_id: str
    created: bool = False


class StoredPath(BaseModel):
    """A path as the persistence collaborator returns it."""
    path_id: str
    details: PathDetails
    start_node_id: Optional[str] = None
    nodes: list[PersistedNode] = []
