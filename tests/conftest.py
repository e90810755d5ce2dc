"""Shared test fixtures for pls-editor."""

import asyncio

import pytest

from pls_editor import (
    CollaboratorError,
    EditingSession,
    EditorConfig,
    LexiconEntry,
    SQLiteBlobStore,
    SQLiteSettingsStore,
    open_db,
)
from pls_editor.settings import new_settings_document

SAMPLE_XML = """<?xml version="1.0" encoding="UTF-8"?>
<lexicon version="1.0"
    xmlns="http://www.w3.org/2005/01/pronunciation-lexicon"
    alphabet="ipa" xml:lang="en-US">
  <lexeme>
    <grapheme>tomato</grapheme>
    <phoneme>toˈmeɪtoʊ</phoneme>
  </lexeme>
  <lexeme>
    <grapheme>AWS</grapheme>
    <alias interpret-as="characters">Amazon Web Services</alias>
  </lexeme>
  <lexeme>
    <grapheme>cheese</grapheme>
    <grapheme>Cheese</grapheme>
    <phoneme>tʃiːz</phoneme>
  </lexeme>
</lexicon>
"""


class RecordingBlobStore:
    """In-memory blob store that records writes and can fail on demand."""

    def __init__(self, files=None, list_failures=0):
        self.files = dict(files or {})
        self.puts = []
        self.tokens = []
        self.list_calls = 0
        self.list_failures = list_failures
        self.fail_put = False

    async def list_names(self):
        self.list_calls += 1
        if self.list_calls <= self.list_failures:
            raise CollaboratorError("service unavailable")
        return sorted(self.files)

    async def get(self, name):
        if name not in self.files:
            raise CollaboratorError(f"Lexicon not found: {name}")
        return self.files[name]

    async def put(self, name, text, content_type="application/xml", *, token=None):
        if self.fail_put:
            raise CollaboratorError("upload rejected")
        self.puts.append((name, content_type))
        self.tokens.append(token)
        self.files[name] = text

    async def delete(self, name):
        self.files.pop(name)


class StaticTokens:
    def __init__(self, token="token-1", fail=False):
        self.token = token
        self.fail = fail

    async def get_access_token(self):
        if self.fail:
            raise CollaboratorError("no credentials")
        return self.token


@pytest.fixture
def sample_entries():
    """Three valid entries in sorted order."""
    return [
        LexiconEntry(graphemes=("AWS",), alias="Amazon Web Services",
                     alias_say_as="characters"),
        LexiconEntry(graphemes=("cheese", "Cheese"), phoneme="tʃiːz"),
        LexiconEntry(graphemes=("tomato",), phoneme="tomɑto"),
    ]


@pytest.fixture
def sleeps():
    """Delays requested by the session instead of real sleeping."""
    return []


@pytest.fixture
def no_sleep(sleeps):
    async def _sleep(delay):
        sleeps.append(delay)
    return _sleep


@pytest.fixture
def blobs():
    return RecordingBlobStore({"main.xml": SAMPLE_XML})


@pytest.fixture
def session(blobs, no_sleep):
    """Session over an in-memory blob store without settings."""
    return EditingSession(blobs, config=EditorConfig(), sleep=no_sleep)


@pytest.fixture
def db():
    conn = open_db(":memory:")
    yield conn
    conn.close()


@pytest.fixture
def settings_store(db):
    """SQLite settings store with en-US and de-DE declared, no probing."""
    store = SQLiteSettingsStore(db, max_backups=3)
    asyncio.run(store.set_document(new_settings_document(["en-US", "de-DE"])))
    return store


@pytest.fixture
def blob_store(db, settings_store):
    return SQLiteBlobStore(db, settings_store)


@pytest.fixture
def sqlite_session(blob_store, settings_store, no_sleep):
    """Session wired to the SQLite reference stores."""
    return EditingSession(
        blob_store, settings_store, StaticTokens(),
        config=EditorConfig(), sleep=no_sleep,
    )


@pytest.fixture
def make_blobs():
    """Factory for blob stores with custom files or failing listings."""
    return RecordingBlobStore


@pytest.fixture
def make_tokens():
    return StaticTokens


@pytest.fixture
def sample_xml():
    """PLS document with three lexemes, in unsorted order."""
    return SAMPLE_XML
