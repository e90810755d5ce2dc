"""Collaborator interfaces and the SQLite reference stores.

The editing session only talks to the :class:`BlobStore`,
:class:`SettingsStore` and :class:`TokenProvider` protocols. The SQLite
implementations below keep lexicon files and the settings document in a
local database.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Protocol, runtime_checkable

import requests

from pls_editor import settings as _settings
from pls_editor.exceptions import (
    CollaboratorError,
    PublishedLexiconError,
    SettingsDocumentError,
)

logger = logging.getLogger(__name__)

DELETED_PREFIX = "deleted/"
SETTINGS_NAME = "settings.xml"
MAX_BACKUPS = 20
PROBE_TIMEOUT = 5.0

MSG_PUBLISHED = (
    "Cannot delete published lexicon. "
    "Please unpublish it first by removing it from settings."
)


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------

@runtime_checkable
class BlobStore(Protocol):
    """Key-value storage of lexicon files."""

    async def list_names(self) -> list[str]: ...

    async def get(self, name: str) -> str: ...

    async def put(
        self,
        name: str,
        text: str,
        content_type: str = "application/xml",
        *,
        token: str | None = None,
    ) -> None: ...

    async def delete(self, name: str) -> None: ...


@runtime_checkable
class SettingsStore(Protocol):
    """The document listing published lexicons per language."""

    async def get_document(self) -> str: ...

    async def add_reference(self, language: str, name: str, url: str) -> None: ...

    async def remove_reference(self, language: str, url: str) -> None: ...


@runtime_checkable
class TokenProvider(Protocol):
    async def get_access_token(self) -> str | None: ...


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

@contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    try:
        yield
    except sqlite3.Error as e:
        raise CollaboratorError(f"Failed to {action}: {e}") from e


def _timestamp() -> str:
    stamp = datetime.now(timezone.utc).isoformat()
    return stamp.replace(":", "-").replace(".", "-").replace("+", "-")


def probe_lexicon_url(url: str, timeout: float = PROBE_TIMEOUT) -> None:
    """Check that *url* serves XML before it is published.

    Raises :class:`CollaboratorError` on any other outcome.
    """
    try:
        response = requests.head(url, timeout=timeout, allow_redirects=True)
    except requests.Timeout as e:
        raise CollaboratorError("TTS integration test timed out") from e
    except requests.RequestException as e:
        raise CollaboratorError(f"TTS integration test failed: {e}") from e
    if response.status_code != 200:
        raise CollaboratorError(
            f"Lexicon URL not accessible: {response.status_code} {response.reason}"
        )
    if "xml" not in response.headers.get("content-type", ""):
        raise CollaboratorError("Lexicon URL does not return XML content")


# ---------------------------------------------------------------------------
# SQLite blob store
# ---------------------------------------------------------------------------

class SQLiteBlobStore:
    """Lexicon files in the ``blobs`` table.

    Deleting moves a file under ``deleted/``; listing never shows those.
    When *settings* is given, files it references cannot be deleted.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        settings: SettingsStore | None = None,
    ) -> None:
        self._conn = conn
        self._settings = settings

    async def list_names(self) -> list[str]:
        with _storage_errors("list lexicons"):
            rows = self._conn.execute(
                "SELECT name FROM blobs WHERE name NOT LIKE ? ORDER BY name",
                (DELETED_PREFIX + "%",),
            ).fetchall()
        return [row["name"] for row in rows]

    async def get(self, name: str) -> str:
        with _storage_errors("download lexicon"):
            row = self._conn.execute(
                "SELECT content FROM blobs WHERE name = ?", (name,)
            ).fetchone()
        if row is None:
            raise CollaboratorError(f"Lexicon not found: {name}")
        return row["content"]

    async def put(
        self,
        name: str,
        text: str,
        content_type: str = "application/xml",
        *,
        token: str | None = None,
    ) -> None:
        with _storage_errors("save lexicon"), self._conn:
            self._conn.execute(
                "INSERT INTO blobs (name, content, content_type) VALUES (?, ?, ?) "
                "ON CONFLICT (name) DO UPDATE SET content = excluded.content, "
                "content_type = excluded.content_type, "
                "modified_at = strftime('%Y-%m-%dT%H:%M:%f', 'now')",
                (name, text, content_type),
            )
        logger.debug("Stored %s (%d chars)", name, len(text))

    async def delete(self, name: str) -> None:
        if self._settings is not None:
            try:
                document = await self._settings.get_document()
            except CollaboratorError as e:
                logger.info("Settings not readable, treating %s as unpublished: %s", name, e)
                document = ""
            if _settings.is_referenced(document, name):
                raise PublishedLexiconError(MSG_PUBLISHED)

        with _storage_errors("delete lexicon"), self._conn:
            row = self._conn.execute(
                "SELECT content, content_type FROM blobs WHERE name = ?", (name,)
            ).fetchone()
            if row is None:
                raise CollaboratorError(f"Lexicon not found: {name}")
            self._conn.execute(
                "INSERT OR REPLACE INTO blobs (name, content, content_type) "
                "VALUES (?, ?, ?)",
                (DELETED_PREFIX + name, row["content"], row["content_type"]),
            )
            self._conn.execute("DELETE FROM blobs WHERE name = ?", (name,))
        logger.info("Moved %s to %s", name, DELETED_PREFIX)


# ---------------------------------------------------------------------------
# SQLite settings store
# ---------------------------------------------------------------------------

class SQLiteSettingsStore:
    """Settings document with backups, staging and promotion.

    Every change backs up the current document (keeping the newest
    *max_backups*), writes the candidate to a staging row, validates it,
    probes the lexicon URL on add, and only then replaces the production
    document.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        *,
        probe: Callable[[str], None] | None = None,
        max_backups: int = MAX_BACKUPS,
    ) -> None:
        self._conn = conn
        self._probe = probe
        self._max_backups = max_backups

    async def get_document(self) -> str:
        with _storage_errors("load settings"):
            row = self._conn.execute(
                "SELECT content FROM settings_documents WHERE name = ?",
                (SETTINGS_NAME,),
            ).fetchone()
        if row is None:
            raise CollaboratorError("Failed to load settings: no settings document")
        return row["content"]

    async def set_document(self, text: str) -> None:
        """Replace the whole document after validating it."""
        try:
            _settings.validate_settings_document(text)
        except SettingsDocumentError as e:
            raise CollaboratorError(str(e)) from e
        with _storage_errors("save settings"):
            self._backup_current()
            with self._conn:
                self._write(SETTINGS_NAME, text)

    async def add_reference(self, language: str, name: str, url: str) -> None:
        current = await self.get_document()
        try:
            updated = _settings.add_reference(current, language, name, url)
        except SettingsDocumentError as e:
            raise CollaboratorError(str(e)) from e
        await self._apply(current, updated, "add", probe_url=url)
        logger.info("Published %s for %s", name, language)

    async def remove_reference(self, language: str, url: str) -> None:
        current = await self.get_document()
        try:
            updated = _settings.remove_reference(current, language, url)
        except SettingsDocumentError as e:
            raise CollaboratorError(str(e)) from e
        await self._apply(current, updated, "remove")
        logger.info("Unpublished %s for %s", url, language)

    def list_backups(self) -> list[str]:
        """Backup names, newest first."""
        rows = self._conn.execute(
            "SELECT name FROM settings_backups ORDER BY created_at DESC, rowid DESC"
        ).fetchall()
        return [row["name"] for row in rows]

    # -- internals ----------------------------------------------------------

    def _write(self, name: str, content: str) -> None:
        self._conn.execute(
            "INSERT INTO settings_documents (name, content) VALUES (?, ?) "
            "ON CONFLICT (name) DO UPDATE SET content = excluded.content, "
            "modified_at = strftime('%Y-%m-%dT%H:%M:%f', 'now')",
            (name, content),
        )

    def _backup_current(self) -> None:
        row = self._conn.execute(
            "SELECT content FROM settings_documents WHERE name = ?",
            (SETTINGS_NAME,),
        ).fetchone()
        if row is not None:
            self._backup(row["content"])

    def _backup(self, content: str) -> None:
        with self._conn:
            self._conn.execute(
                "INSERT INTO settings_backups (name, content) VALUES (?, ?)",
                (f"settings_backup_{_timestamp()}.xml", content),
            )
            self._conn.execute(
                "DELETE FROM settings_backups WHERE rowid NOT IN ("
                "SELECT rowid FROM settings_backups "
                "ORDER BY created_at DESC, rowid DESC LIMIT ?)",
                (self._max_backups,),
            )

    async def _apply(
        self,
        current: str,
        updated: str,
        operation: str,
        probe_url: str | None = None,
    ) -> None:
        staging = f"staging/settings_staging_{operation}_{_timestamp()}.xml"
        with _storage_errors("stage settings"):
            self._backup(current)
            with self._conn:
                self._write(staging, updated)
        try:
            _settings.validate_settings_document(updated)
            if probe_url is not None and self._probe is not None:
                await asyncio.to_thread(self._probe, probe_url)
        except SettingsDocumentError as e:
            self._discard(staging)
            raise CollaboratorError(str(e)) from e
        except CollaboratorError:
            self._discard(staging)
            raise

        with _storage_errors("promote settings"), self._conn:
            self._write(SETTINGS_NAME, updated)
            self._conn.execute(
                "DELETE FROM settings_documents WHERE name = ?", (staging,)
            )

    def _discard(self, staging: str) -> None:
        with _storage_errors("clean up staging"), self._conn:
            self._conn.execute(
                "DELETE FROM settings_documents WHERE name = ?", (staging,)
            )
        logger.warning("Discarded staged settings %s", staging)
