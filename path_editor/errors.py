"""
Exception hierarchy for the learning-path editor.

  PathEditorError
  ├── StructuralRejection   insert/move past a decision boundary (non-fatal)
  ├── PathValidationError   empty path, missing path details (before any save)
  ├── GraphIntegrityError   identity collision, unknown branch context (fatal)
  ├── SessionStateError
  │   ├── SessionBusyError  edit attempted while a save is in flight
  │   └── SessionEndedError intent sent to a finished session
  ├── PathStoreError        raised by the persistence collaborator
  │   └── PathNotFoundError
  └── ContentNotFoundError  raised by the content catalog
"""
from __future__ import annotations
from typing import Optional


class PathEditorError(Exception):
    """Base class for every error raised by the editor."""

    def __init__(self, message: str, details: Optional[dict] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - Details: {self.details}"
        return self.message


class StructuralRejection(PathEditorError):
    """
    An edit that would break the ordering rules of a sequence.

    Nothing is mutated when this is raised; `reason` is meant to be shown
    to the user as-is.
    """

    @property
    def reason(self) -> str:
        return self.message


class PathValidationError(PathEditorError):
    """The path cannot be saved in its current state."""


class GraphIntegrityError(PathEditorError):
    """The in-memory structure is inconsistent. Abort the operation."""


class SessionStateError(PathEditorError):
    pass


class SessionBusyError(SessionStateError):
    """A save is in flight; structural edits are disabled."""


class SessionEndedError(SessionStateError):
    """The edit session was saved or cancelled."""


class PathStoreError(PathEditorError):
    """Failure reported by the persistence collaborator."""


class PathNotFoundError(PathStoreError):
    pass


class ContentNotFoundError(PathEditorError):
    pass
