__version__ = "0.1.0"

from .editor import (
    EditingSession as EditingSession,
    normalize_filename as normalize_filename,
)

from .models import (
    PLACEHOLDER_GRAPHEME as PLACEHOLDER_GRAPHEME,
    SayAs as SayAs,
    LexiconFormat as LexiconFormat,
    ConflictType as ConflictType,
    Resolution as Resolution,
    SessionMode as SessionMode,
    UnsavedChanges as UnsavedChanges,
    LexiconEntry as LexiconEntry,
    ParsedLexicon as ParsedLexicon,
    ExportFile as ExportFile,
    ParseIssue as ParseIssue,
    MergeSource as MergeSource,
    MergeConflict as MergeConflict,
    MergeSummary as MergeSummary,
    MergePreview as MergePreview,
    MergeResult as MergeResult,
    LexiconReference as LexiconReference,
    placeholder_entry as placeholder_entry,
)

from .exceptions import (
    PlsEditorError as PlsEditorError,
    StructuralParseError as StructuralParseError,
    ValidationError as ValidationError,
    EmptyLexiconError as EmptyLexiconError,
    ConflictBlockingError as ConflictBlockingError,
    LanguageMismatchError as LanguageMismatchError,
    UnresolvedConflictsError as UnresolvedConflictsError,
    CollaboratorError as CollaboratorError,
    NameCollisionError as NameCollisionError,
    InvalidFilenameError as InvalidFilenameError,
    SessionStateError as SessionStateError,
    UnsavedChangesError as UnsavedChangesError,
    FilenameRequiredError as FilenameRequiredError,
    PublishedLexiconError as PublishedLexiconError,
    SettingsDocumentError as SettingsDocumentError,
    ConfigError as ConfigError,
    PreviewError as PreviewError,
)

from .config import (
    EditorConfig as EditorConfig,
    load_config as load_config,
)

from .importer import (
    decode_lexicon as decode_lexicon,
    decode_xml as decode_xml,
    decode_csv as decode_csv,
    decode_tsv as decode_tsv,
    detect_format as detect_format,
    parse_merge_source as parse_merge_source,
)

from .exporter import (
    encode_xml as encode_xml,
    encode_csv as encode_csv,
    encode_tsv as encode_tsv,
    export_lexicon as export_lexicon,
)

from .merge import (
    MergePlan as MergePlan,
    analyze_merge as analyze_merge,
    finalize_merge as finalize_merge,
    merge_entries as merge_entries,
    preview_merge as preview_merge,
)

from .stores import (
    BlobStore as BlobStore,
    SettingsStore as SettingsStore,
    TokenProvider as TokenProvider,
    SQLiteBlobStore as SQLiteBlobStore,
    SQLiteSettingsStore as SQLiteSettingsStore,
    probe_lexicon_url as probe_lexicon_url,
)

from .db import open_db as open_db
