"""Custom exception hierarchy for pls-editor."""

from __future__ import annotations

from typing import Any


class PlsEditorError(Exception):
    """Base exception for all pls-editor errors."""


class StructuralParseError(PlsEditorError):
    """Malformed XML/CSV/TSV, missing headers, no lexicon root or no entries."""

    def __init__(self, message: str, line: int | None = None) -> None:
        self.line = line
        super().__init__(message)


class ValidationError(PlsEditorError):
    """One or more entries violate the content rules; blocks save only."""

    def __init__(self, message: str, issues: dict[int, list[str]]) -> None:
        self.issues = issues
        super().__init__(message)


class EmptyLexiconError(PlsEditorError):
    """The lexicon holds no real entry (empty or placeholder only)."""


class ConflictBlockingError(PlsEditorError):
    """The merge source contains structurally invalid entries."""

    def __init__(self, message: str, issues: list[Any]) -> None:
        self.issues = issues
        super().__init__(message)


class LanguageMismatchError(PlsEditorError):
    """Merge source language differs from the master lexicon language."""


class UnresolvedConflictsError(PlsEditorError):
    """Finalize requested while at least one conflict has no resolution."""


class CollaboratorError(PlsEditorError):
    """Blob store, settings store or token provider failure."""


class NameCollisionError(PlsEditorError):
    """Save-As target already exists; needs an explicit overwrite."""

    def __init__(self, filename: str) -> None:
        self.filename = filename
        super().__init__(f"A lexicon named {filename!r} already exists")


class InvalidFilenameError(PlsEditorError):
    """Lexicon file name is empty, malformed or contains path separators."""


class SessionStateError(PlsEditorError):
    """Operation not allowed in the current session state."""


class UnsavedChangesError(SessionStateError):
    """The session is dirty and the caller did not choose save or discard."""


class FilenameRequiredError(SessionStateError):
    """Save requested without a file name; use save-as instead."""


class PublishedLexiconError(SessionStateError):
    """Lexicon is referenced by the settings document."""


class SettingsDocumentError(PlsEditorError):
    """Settings document is malformed or a reference update is invalid."""


class ConfigError(PlsEditorError):
    """Invalid configuration file."""

    def __init__(self, message: str, line: int | None = None) -> None:
        self.line = line
        super().__init__(message)


class PreviewError(PlsEditorError):
    """Entry has nothing that can be spoken."""
