"""
Content catalog collaborator.

The editor only ever sees ContentSummary values. Multiple-choice questions
are stored as a JSON blob ({"prompt": ..., "options": [...]}); that blob is
parsed here, once, so the rest of the editor treats the answer options as a
plain attribute.
"""
from __future__ import annotations
import json
import logging
from typing import Iterable, Optional, Protocol
from pydantic import BaseModel
from .errors import ContentNotFoundError
from .models import ContentKind, ContentSummary, ExternalContentRef, LocalContentRef

logger = logging.getLogger(__name__)


class ContentFilter(BaseModel):
    language: Optional[str] = None
    title: Optional[str] = None          # case-insensitive substring
    content_kind: Optional[ContentKind] = None
    owner_id: Optional[str] = None


class ContentCatalog(Protocol):
    def fetch_content_by_id(self, content_id: str) -> ContentSummary: ...

    def search_content(self, content_filter: ContentFilter) -> list[ContentSummary]: ...


def parse_question(raw: Optional[str]) -> tuple[Optional[str], tuple[str, ...]]:
    """Return (prompt, options) from a stored question blob."""
    if not raw:
        return None, ()
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Question content is not valid JSON")
        return None, ()
    if not isinstance(parsed, dict):
        return None, ()
    prompt = parsed.get("prompt")
    options = parsed.get("options")
    if not isinstance(prompt, str) or not isinstance(options, list):
        logger.warning("Question content lacks a prompt or options list")
        return None, ()
    return prompt, tuple(str(o) for o in options)


def summary_from_record(record: dict) -> ContentSummary:
    """
    Build a summary from a raw learning-object record. Records with an
    `owner_id` are local (authored in-house); the rest are external catalog
    objects addressed by hruid + language + version.
    """
    kind = ContentKind(record.get("content_type", ContentKind.TEXT_PLAIN.value))
    owner_id = record.get("owner_id")
    if owner_id is not None:
        ref = LocalContentRef(object_id=record["id"])
    else:
        ref = ExternalContentRef(
            hruid=record["hruid"],
            language=record["language"],
            version=int(record.get("version", 1)),
        )

    prompt, options = None, ()
    if kind is ContentKind.EVAL_MULTIPLE_CHOICE:
        prompt, options = parse_question(record.get("raw"))

    return ContentSummary(
        id=record["id"],
        ref=ref,
        title=record.get("title", ""),
        language=record["language"],
        content_kind=kind,
        owner_id=owner_id,
        prompt_text=prompt,
        options=options,
    )


class InMemoryContentCatalog:
    """Catalog backed by a dict; used by the HTTP adapter and in tests."""

    def __init__(self, records: Iterable[dict] = ()) -> None:
        self._items: dict[str, ContentSummary] = {}
        for record in records:
            self.add(summary_from_record(record))

    def add(self, summary: ContentSummary) -> None:
        self._items[summary.id] = summary

    def fetch_content_by_id(self, content_id: str) -> ContentSummary:
        try:
            return self._items[content_id]
        except KeyError:
            raise ContentNotFoundError(f"Content '{content_id}' not found") from None

    def search_content(self, content_filter: ContentFilter) -> list[ContentSummary]:
        needle = content_filter.title.lower() if content_filter.title else None
        found = []
        for item in self._items.values():
            if content_filter.language and item.language != content_filter.language:
                continue
            if content_filter.content_kind and item.content_kind is not content_filter.content_kind:
                continue
            if content_filter.owner_id and item.owner_id != content_filter.owner_id:
                continue
            if needle and needle not in item.title.lower():
                continue
            found.append(item)
        return sorted(found, key=lambda s: s.title.lower())
