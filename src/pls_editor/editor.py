"""EditingSession, the main entry point of the pls-editor library."""

from __future__ import annotations

import asyncio
import functools
import logging
import re
import sqlite3
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import replace
from pathlib import PurePath
from typing import Any, TypeVar

from pls_editor.config import EditorConfig
from pls_editor.db import open_db
from pls_editor.exceptions import (
    CollaboratorError,
    EmptyLexiconError,
    FilenameRequiredError,
    InvalidFilenameError,
    NameCollisionError,
    PublishedLexiconError,
    SessionStateError,
    UnsavedChangesError,
    ValidationError,
)
from pls_editor.exporter import encode_xml, export_basename, export_lexicon
from pls_editor.importer import decode_lexicon, decode_xml, parse_merge_source
from pls_editor.merge import (
    MergePlan,
    analyze_merge,
    check_merge_source,
    finalize_merge,
    preview_merge,
)
from pls_editor.models import (
    ConflictType,
    ExportFile,
    LexiconEntry,
    LexiconFormat,
    LexiconReference,
    MergePreview,
    MergeResult,
    MergeSummary,
    Resolution,
    SessionMode,
    UnsavedChanges,
    placeholder_entry,
)
from pls_editor.ordering import insert_sorted, reposition, sort_entries, triggers_resort
from pls_editor.preview import build_preview_url
from pls_editor.settings import parse_references
from pls_editor.stores import (
    MSG_PUBLISHED,
    BlobStore,
    SettingsStore,
    SQLiteBlobStore,
    SQLiteSettingsStore,
    TokenProvider,
    probe_lexicon_url,
)
from pls_editor.validator import (
    MSG_PHONEME_FILTERED,
    filter_phoneme_input,
    is_placeholder_only,
    validate_entries,
    validate_entry,
)

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

_NEW_NAME_RE = re.compile(r"^[a-zA-Z0-9_-]+\.xml$")
_MAX_LISTED_ERRORS = 3


def normalize_filename(filename: str) -> str:
    """Sanitize a save-as target to a bare ``<name>.xml``."""
    name = filename.strip()
    if not name:
        raise InvalidFilenameError("Filename cannot be empty")
    if name.lower().endswith(".xml"):
        name = name[:-4] + ".xml"
    else:
        name += ".xml"
    if "/" in name or "\\" in name:
        raise InvalidFilenameError("Filename cannot contain slashes")
    return name


def _import_filename(filename: str) -> str:
    name = PurePath(filename.replace("\\", "/")).name
    name = re.sub(r"\.(csv|tsv|txt)$", ".xml", name, flags=re.IGNORECASE)
    if not name.lower().endswith(".xml"):
        name += ".xml"
    return name


def _save_error_message(
    entries: Sequence[LexiconEntry], issues: dict[int, list[str]]
) -> str:
    count = len(issues)
    word = "entry" if count == 1 else "entries"
    details = []
    for index in sorted(issues):
        graphemes = entries[index].graphemes
        label = graphemes[0] if graphemes and graphemes[0] else f"Entry {index + 1}"
        details.append(f'"{label}": {", ".join(issues[index])}')
    message = f"Cannot save: {count} {word} with validation errors. "
    message += "; ".join(details[:_MAX_LISTED_ERRORS])
    if len(details) > _MAX_LISTED_ERRORS:
        message += (
            f"; and {len(details) - _MAX_LISTED_ERRORS} more. "
            "See selected entry for details."
        )
    return message


class EditingSession:
    """One lexicon being edited against a blob store and a settings store.

    Entry edits are synchronous. Everything that talks to a collaborator is
    a coroutine and either completes or leaves the session as it was.
    """

    def __init__(
        self,
        blobs: BlobStore,
        settings: SettingsStore | None = None,
        tokens: TokenProvider | None = None,
        *,
        config: EditorConfig | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.config = config or EditorConfig()
        self._blobs = blobs
        self._settings = settings
        self._tokens = tokens
        self._sleep = sleep
        self._conn: sqlite3.Connection | None = None

        self.lexicon_names: list[str] = []
        self.published: dict[str, list[LexiconReference]] = {}
        self.last_error: str | None = None
        self.reset()

    @classmethod
    def from_config(
        cls,
        config: EditorConfig | None = None,
        tokens: TokenProvider | None = None,
        **kwargs: Any,
    ) -> EditingSession:
        """Session backed by the SQLite stores in ``config.database``."""
        config = config or EditorConfig()
        conn = open_db(config.database)
        probe = None
        if config.probe_lexicon_urls:
            probe = functools.partial(probe_lexicon_url, timeout=config.probe_timeout)
        settings = SQLiteSettingsStore(
            conn, probe=probe, max_backups=config.max_settings_backups
        )
        session = cls(
            SQLiteBlobStore(conn, settings), settings, tokens, config=config, **kwargs
        )
        session._conn = conn
        return session

    def close(self) -> None:
        """Close the database connection opened by :meth:`from_config`."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> EditingSession:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def reset(self) -> None:
        """Close the current lexicon without saving."""
        self.filename: str | None = None
        self.language = self.config.default_language
        self.current_entries: list[LexiconEntry] = []
        self.saved_entries: list[LexiconEntry] = []
        self.selected_index: int | None = None
        self.validation_errors: dict[int, list[str]] = {}
        self.phoneme_warning: str | None = None
        self.pending_merge: MergePlan | None = None
        self.merge_preview: MergePreview | None = None
        self.last_merge_summary: MergeSummary | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_dirty(self) -> bool:
        return self.current_entries != self.saved_entries

    @property
    def mode(self) -> SessionMode:
        if self.filename is None and not self.current_entries:
            return SessionMode.EMPTY
        return SessionMode.DIRTY if self.is_dirty else SessionMode.LOADED

    @property
    def selected_entry(self) -> LexiconEntry | None:
        if self.selected_index is None:
            return None
        return self.current_entries[self.selected_index]

    @property
    def is_empty_lexicon(self) -> bool:
        return not self.current_entries or is_placeholder_only(self.current_entries)

    def is_lexicon_published(self, name: str) -> bool:
        return any(
            ref.url.endswith(name)
            for refs in self.published.values()
            for ref in refs
        )

    @property
    def is_published(self) -> bool:
        return self.filename is not None and self.is_lexicon_published(self.filename)

    def _load(
        self,
        filename: str,
        language: str,
        entries: Sequence[LexiconEntry],
        *,
        saved: bool,
    ) -> None:
        self.reset()
        self.filename = filename
        self.language = language
        self.current_entries = list(entries)
        self.saved_entries = list(entries) if saved else []

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    async def _call(self, awaitable: Awaitable[_T], action: str) -> _T:
        try:
            result = await awaitable
        except CollaboratorError as e:
            self.last_error = f"{action}: {e}"
            logger.error(self.last_error)
            raise
        return result

    async def _token(self) -> str | None:
        if self._tokens is None:
            return None
        try:
            return await self._tokens.get_access_token()
        except CollaboratorError as e:
            logger.warning("Continuing without access token: %s", e)
            return None

    async def load_lexicon_list(self) -> list[str]:
        """Initial listing, retried with a linearly growing delay."""
        attempts = self.config.list_retry_attempts
        for attempt in range(1, attempts + 1):
            try:
                names = await self._blobs.list_names()
            except CollaboratorError as e:
                if attempt == attempts:
                    self.last_error = f"Failed to list lexicons: {e}"
                    logger.error(self.last_error)
                    raise CollaboratorError(self.last_error) from e
                delay = self.config.list_retry_delay * attempt
                logger.warning(
                    "list_names attempt %d/%d failed: %s - retrying in %.1fs",
                    attempt, attempts, e, delay,
                )
                await self._sleep(delay)
            else:
                self.lexicon_names = sorted(names)
                self.last_error = None
                return self.lexicon_names
        raise RuntimeError("unreachable")  # pragma: no cover

    async def refresh_lexicon_list(self) -> list[str]:
        names = await self._call(self._blobs.list_names(), "Failed to list lexicons")
        self.lexicon_names = sorted(names)
        return self.lexicon_names

    async def load_settings(self) -> dict[str, list[LexiconReference]]:
        """Refresh the published-lexicon map; failures keep the old map."""
        if self._settings is None:
            return self.published
        try:
            document = await self._settings.get_document()
        except CollaboratorError as e:
            logger.warning("Could not load settings: %s", e)
            return self.published
        self.published = parse_references(document)
        return self.published

    # ------------------------------------------------------------------
    # Unsaved changes
    # ------------------------------------------------------------------

    def _check_unsaved(self, unsaved: UnsavedChanges | str | None) -> None:
        if self.is_dirty and unsaved is None:
            raise UnsavedChangesError(
                "The current lexicon has unsaved changes; save or discard them first"
            )

    async def _settle_unsaved(self, unsaved: UnsavedChanges | str | None) -> None:
        if self.is_dirty and UnsavedChanges(unsaved) is UnsavedChanges.SAVE:
            await self.save()

    # ------------------------------------------------------------------
    # Lexicon files
    # ------------------------------------------------------------------

    async def open_lexicon(
        self, name: str, unsaved: UnsavedChanges | str | None = None
    ) -> None:
        self._check_unsaved(unsaved)
        text = await self._call(self._blobs.get(name), "Failed to download lexicon")
        parsed = decode_xml(text)
        await self._settle_unsaved(unsaved)
        entries = sort_entries(parsed.entries)
        self._load(name, parsed.language, entries, saved=True)
        await self.load_settings()
        logger.info("Opened %s (%d entries)", name, len(entries))

    async def import_file(
        self,
        filename: str,
        text: str,
        unsaved: UnsavedChanges | str | None = None,
    ) -> None:
        """Load an uploaded XML, CSV or TSV file as a new unsaved lexicon."""
        self._check_unsaved(unsaved)
        parsed = decode_lexicon(filename, text, default_language=self.language)
        await self._settle_unsaved(unsaved)
        name = _import_filename(filename)
        self._load(name, parsed.language, sort_entries(parsed.entries), saved=False)
        await self.load_settings()

    async def duplicate(self, unsaved: UnsavedChanges | str | None = None) -> str:
        if self.filename is None:
            raise SessionStateError("No lexicon file is open")
        self._check_unsaved(unsaved)
        await self._settle_unsaved(unsaved)
        base = re.sub(r"\.xml$", "", self.filename, flags=re.IGNORECASE)
        name = f"duplicate-of-{base}.xml"
        entries = [replace(e, is_new=False) for e in self.current_entries]
        self._load(name, self.language, entries, saved=False)
        if name not in self.lexicon_names:
            self.lexicon_names.insert(0, name)
        await self.load_settings()
        return name

    async def new_lexicon(
        self,
        name: str,
        language: str,
        unsaved: UnsavedChanges | str | None = None,
    ) -> str:
        """Start an unsaved lexicon seeded with the placeholder entry."""
        final = name.strip()
        if not final:
            raise InvalidFilenameError("Please enter a lexicon name")
        if not language:
            raise SessionStateError("Please select a language")
        if not final.lower().endswith(".xml"):
            final += ".xml"
        if not _NEW_NAME_RE.match(final):
            raise InvalidFilenameError(
                "Lexicon name must contain only letters, numbers, "
                "hyphens, and underscores"
            )
        self._check_unsaved(unsaved)
        await self._settle_unsaved(unsaved)
        self._load(final, language, [placeholder_entry()], saved=False)
        if final not in self.lexicon_names:
            self.lexicon_names.insert(0, final)
        await self.load_settings()
        return final

    async def _write(self, name: str) -> None:
        if self.is_empty_lexicon:
            raise EmptyLexiconError("Cannot save: Add at least one real entry.")
        issues = validate_entries(self.current_entries)
        if issues:
            self.validation_errors = issues
            self.selected_index = min(issues)
            raise ValidationError(
                _save_error_message(self.current_entries, issues), issues
            )

        xml = encode_xml(self.current_entries, self.language)
        token = await self._token()
        await self._call(
            self._blobs.put(name, xml, "application/xml", token=token),
            "Failed to save lexicon",
        )
        cleaned = [replace(e, is_new=False) for e in self.current_entries]
        self.current_entries = cleaned
        self.saved_entries = list(cleaned)
        self.validation_errors = {}
        self.phoneme_warning = None
        if name not in self.lexicon_names:
            self.lexicon_names = sorted([*self.lexicon_names, name])
        logger.info("Saved %s (%d entries)", name, len(cleaned))

    async def save(self) -> None:
        if not self.filename:
            raise FilenameRequiredError("No file name set; use save-as")
        await self._write(self.filename)

    async def save_as(self, filename: str, overwrite: bool = False) -> str:
        """Save under a new name; an existing name needs *overwrite*."""
        name = normalize_filename(filename)
        if name == self.filename:
            await self.save()
            return name
        if not overwrite:
            names = await self.refresh_lexicon_list()
            if name in names:
                raise NameCollisionError(name)
        await self._write(name)
        self.filename = name
        await self.load_settings()
        return name

    def export(self, fmt: LexiconFormat | str = LexiconFormat.XML) -> ExportFile:
        return export_lexicon(
            self.current_entries, self.language, fmt, export_basename(self.filename)
        )

    async def delete_lexicon(self, name: str) -> None:
        """Move a stored lexicon to the deleted area unless it is published."""
        if self.is_lexicon_published(name):
            raise PublishedLexiconError(MSG_PUBLISHED)
        await self._call(self._blobs.delete(name), "Failed to delete lexicon")
        self.lexicon_names = [n for n in self.lexicon_names if n != name]
        if name == self.filename:
            self.reset()
        logger.info("Deleted %s", name)

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    def _require_saved_file(self) -> str:
        if self.filename is None:
            raise SessionStateError("No lexicon file selected")
        if self.is_dirty:
            raise SessionStateError("Save the lexicon before publishing")
        if self._settings is None:
            raise SessionStateError("No settings store configured")
        return self.filename

    async def publish(self) -> LexiconReference:
        name = self._require_saved_file()
        url = self.config.lexicon_url(name)
        await self._call(
            self._settings.add_reference(self.language, name, url),
            "Failed to publish lexicon",
        )
        await self.load_settings()
        return LexiconReference(self.language, name, url)

    async def unpublish(self) -> None:
        name = self._require_saved_file()
        await self._call(
            self._settings.remove_reference(self.language, self.config.lexicon_url(name)),
            "Failed to remove lexicon from settings",
        )
        await self.load_settings()

    # ------------------------------------------------------------------
    # Merge
    # ------------------------------------------------------------------

    def begin_merge(self, filename: str, text: str) -> MergePlan:
        """Classify a vendor file against the open lexicon.

        Without conflicts the merge is applied at once and
        :attr:`last_merge_summary` is set; otherwise the plan is kept in
        :attr:`pending_merge` until :meth:`finalize_merge`.
        """
        if self.filename is None:
            raise SessionStateError("Open a lexicon before merging")
        source = parse_merge_source(filename, text, default_language=self.language)
        if source.language == self.language:
            self.merge_preview = preview_merge(
                self.current_entries, source.entries, source.issues
            )
        check_merge_source(self.language, source)

        plan = analyze_merge(self.current_entries, source.entries)
        if plan.conflicts:
            self.pending_merge = plan
        else:
            self._apply_merge(finalize_merge(plan))
        return plan

    def _require_merge(self) -> MergePlan:
        if self.pending_merge is None:
            raise SessionStateError("No merge in progress")
        return self.pending_merge

    def resolve_conflict(self, index: int, resolution: Resolution | str) -> None:
        self._require_merge().resolve(index, resolution)

    def resolve_all_conflicts(
        self,
        resolution: Resolution | str,
        conflict_type: ConflictType | str | None = None,
    ) -> int:
        return self._require_merge().resolve_all(resolution, conflict_type)

    def finalize_merge(self) -> MergeSummary:
        result = finalize_merge(self._require_merge())
        self._apply_merge(result)
        return result.summary

    def cancel_merge(self) -> None:
        self.pending_merge = None
        self.merge_preview = None

    def _apply_merge(self, result: MergeResult) -> None:
        self.current_entries = list(result.entries)
        self.selected_index = None
        self.validation_errors = {}
        self.pending_merge = None
        self.last_merge_summary = result.summary

    # ------------------------------------------------------------------
    # Entry editing
    # ------------------------------------------------------------------

    def _revalidate(self, index: int) -> None:
        errors = validate_entry(self.current_entries[index])
        if errors:
            self.validation_errors[index] = errors
        else:
            self.validation_errors.pop(index, None)

    def _shift_errors_removed(self, index: int) -> None:
        self.validation_errors = {
            (i - 1 if i > index else i): errors
            for i, errors in self.validation_errors.items()
            if i != index
        }

    def _shift_errors_inserted(self, index: int) -> None:
        self.validation_errors = {
            (i + 1 if i >= index else i): errors
            for i, errors in self.validation_errors.items()
        }

    def _require_selection(self) -> int:
        if self.selected_index is None:
            raise SessionStateError("No entry selected")
        return self.selected_index

    def _update_selected(self, entry: LexiconEntry, *, resort: bool = False) -> int:
        index = self._require_selection()
        entry = replace(entry, is_new=True)
        if resort:
            self._shift_errors_removed(index)
            index = reposition(self.current_entries, index, entry)
            self._shift_errors_inserted(index)
            self.selected_index = index
        else:
            self.current_entries[index] = entry
        self._revalidate(index)
        return index

    def select(self, index: int | None) -> LexiconEntry | None:
        if index is not None and not 0 <= index < len(self.current_entries):
            raise SessionStateError(f"No entry at index {index}")
        self.selected_index = index
        self.phoneme_warning = None
        if index is not None:
            self._revalidate(index)
        return self.selected_entry

    def new_entry(self) -> int:
        """Insert a placeholder entry at its sorted position and select it."""
        entry = placeholder_entry()
        index = insert_sorted(self.current_entries, entry)
        self._shift_errors_inserted(index)
        self.selected_index = index
        self._revalidate(index)
        return index

    def delete_entry(self) -> None:
        index = self._require_selection()
        del self.current_entries[index]
        self._shift_errors_removed(index)
        self.selected_index = None

    def set_grapheme(self, position: int, value: str) -> int:
        """Edit one grapheme; changing the first one re-sorts the entry.

        Returns the (possibly new) index of the selected entry.
        """
        entry = self.current_entries[self._require_selection()]
        graphemes = list(entry.graphemes)
        graphemes[position] = value
        return self._update_selected(
            replace(entry, graphemes=tuple(graphemes)),
            resort=position == 0 and triggers_resort(value),
        )

    def add_grapheme(self, value: str = "") -> None:
        entry = self.current_entries[self._require_selection()]
        self._update_selected(replace(entry, graphemes=(*entry.graphemes, value)))

    def remove_grapheme(self, position: int) -> int:
        entry = self.current_entries[self._require_selection()]
        graphemes = list(entry.graphemes)
        del graphemes[position]
        first = graphemes[0] if graphemes else ""
        return self._update_selected(
            replace(entry, graphemes=tuple(graphemes)),
            resort=position == 0 and triggers_resort(first),
        )

    def set_alias(self, value: str) -> None:
        entry = self.current_entries[self._require_selection()]
        self._update_selected(replace(entry, alias=value))

    def set_alias_say_as(self, value: str) -> None:
        entry = self.current_entries[self._require_selection()]
        self._update_selected(replace(entry, alias_say_as=value))

    def set_phoneme(self, value: str) -> str:
        """Store the phoneme minus any non-IPA characters; returns what was kept."""
        entry = self.current_entries[self._require_selection()]
        filtered, had_invalid = filter_phoneme_input(value)
        self.phoneme_warning = MSG_PHONEME_FILTERED if had_invalid else None
        self._update_selected(replace(entry, phoneme=filtered))
        return filtered

    def set_phoneme_say_as(self, value: str) -> None:
        entry = self.current_entries[self._require_selection()]
        self._update_selected(replace(entry, phoneme_say_as=value))

    def search(self, query: str) -> list[int]:
        """Indexes of entries whose graphemes, alias or phoneme contain *query*."""
        needle = query.strip().lower()
        if not needle:
            return list(range(len(self.current_entries)))
        return [
            i for i, entry in enumerate(self.current_entries)
            if any(needle in g.lower() for g in entry.graphemes)
            or needle in entry.alias.lower()
            or needle in entry.phoneme.lower()
        ]

    def preview_url(self) -> str:
        """TTS preview link for the selected entry."""
        entry = self.current_entries[self._require_selection()]
        return build_preview_url(
            self.config.preview_base_url, self.language, entry, self.filename
        )
