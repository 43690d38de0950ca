"""
Persistence collaborator.

A save applies the whole flattened payload or nothing: ids are assigned and
transitions derived into fresh objects first, and the stored path is swapped
in with a single assignment at the very end.
"""
from __future__ import annotations
import logging
from typing import Optional, Protocol
from uuid import uuid4
from .errors import PathNotFoundError, PathStoreError
from .models import (
    NodeRef,
    PathDetails,
    PayloadEntry,
    PersistedNode,
    SavePathRequest,
    SaveResult,
    StoredPath,
    Transition,
)

logger = logging.getLogger(__name__)


class PathStore(Protocol):
    async def save_or_create_path(self, request: SavePathRequest) -> SaveResult: ...

    async def load_path(self, path_id: str) -> StoredPath: ...


class InMemoryPathStore:
    """Dict-backed store (swap for a database later)."""

    def __init__(self) -> None:
        self._paths: dict[str, StoredPath] = {}

    def __contains__(self, path_id: str) -> bool:
        return path_id in self._paths

    async def load_path(self, path_id: str) -> StoredPath:
        try:
            return self._paths[path_id]
        except KeyError:
            raise PathNotFoundError(f"Learning path '{path_id}' not found") from None

    async def save_or_create_path(self, request: SavePathRequest) -> SaveResult:
        created = request.path_id is None
        if created:
            path_id = uuid4().hex
            known: set[str] = set()
        else:
            path_id = request.path_id
            existing = await self.load_path(path_id)
            known = {n.node_id for n in existing.nodes}

        ids = self._assign_ids(request.nodes, known)
        nodes = [self._to_node(entry, ids) for entry in request.nodes]
        starts = [ids[e.ref] for e in request.nodes if e.is_start]
        if len(starts) != 1:
            raise PathStoreError("Payload must have exactly one start node", {"starts": starts})

        self._paths[path_id] = StoredPath(
            path_id=path_id,
            details=PathDetails.model_validate(request.details.model_dump()),
            start_node_id=starts[0],
            nodes=nodes,
        )
        logger.info("%s learning path %s with %d node(s)", "Created" if created else "Updated", path_id, len(nodes))
        return SaveResult(path_id=path_id, created=created)

    # ── Private helpers ──────────────────────────────────────────────

    @staticmethod
    def _assign_ids(entries: list[PayloadEntry], known: set[str]) -> dict[NodeRef, str]:
        ids: dict[NodeRef, str] = {}
        for entry in entries:
            if entry.ref in ids:
                raise PathStoreError("Node appears twice in payload", {"ref": entry.ref.model_dump()})
            if entry.ref.node_id is not None:
                if entry.ref.node_id not in known:
                    raise PathStoreError(
                        "Node does not belong to this learning path",
                        {"node_id": entry.ref.node_id},
                    )
                ids[entry.ref] = entry.ref.node_id
            else:
                ids[entry.ref] = uuid4().hex
        return ids

    @staticmethod
    def _resolve(ref: Optional[NodeRef], ids: dict[NodeRef, str]) -> Optional[str]:
        if ref is None:
            return None
        try:
            return ids[ref]
        except KeyError:
            raise PathStoreError("Payload references an unknown node", {"ref": ref.model_dump()}) from None

    @classmethod
    def _to_node(cls, entry: PayloadEntry, ids: dict[NodeRef, str]) -> PersistedNode:
        node_id = ids[entry.ref]
        if entry.branches:
            transitions = tuple(
                Transition(
                    source_id=node_id,
                    option_index=link.option_index,
                    target_id=cls._resolve(link.first, ids),
                )
                for link in entry.branches
            )
        else:
            transitions = (Transition(source_id=node_id, target_id=cls._resolve(entry.next, ids)),)
        return PersistedNode(
            node_id=node_id,
            content=entry.content,
            title=entry.title,
            content_kind=entry.content_kind,
            options=entry.options,
            transitions=transitions,
        )
