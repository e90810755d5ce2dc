"""Domain model dataclasses and enums for pls-editor."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

PLACEHOLDER_GRAPHEME = "*** NEW ENTRY ***"

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class SayAs(str, Enum):
    """SSML interpret-as categories accepted on alias and phoneme."""

    CHARACTERS = "characters"
    SPELL_OUT = "spell-out"
    CARDINAL = "cardinal"
    ORDINAL = "ordinal"
    DIGITS = "digits"
    FRACTION = "fraction"
    UNIT = "unit"
    DATE = "date"
    TIME = "time"
    TELEPHONE = "telephone"
    ADDRESS = "address"
    NAME = "name"
    NET = "net"
    CURRENCY = "currency"
    MEASURE = "measure"
    VERBATIM = "verbatim"


SAY_AS_VALUES = frozenset(s.value for s in SayAs)


class LexiconFormat(str, Enum):
    """Serialized lexicon representations."""

    XML = "xml"
    CSV = "csv"
    TSV = "tsv"


class ConflictType(str, Enum):
    """How an incoming entry differs from the master entry it overlaps."""

    ADDITIONAL_ALIAS = "additional_alias"
    CONFLICT = "conflict"


class Resolution(str, Enum):
    """User decision for a single merge conflict."""

    MASTER = "master"
    MERGE = "merge"
    BOTH = "both"


class SessionMode(str, Enum):
    """Lifecycle modes of an editing session."""

    EMPTY = "empty"
    LOADED = "loaded"
    DIRTY = "dirty"


class UnsavedChanges(str, Enum):
    """What to do with a dirty session before switching lexicons."""

    SAVE = "save"
    DISCARD = "discard"


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class LexiconEntry:
    """One pronunciation unit: graphemes sharing an alias and/or phoneme.

    ``is_new`` marks entries created or altered since the last save. It is
    ignored by equality so a freshly saved list compares equal to the
    working copy it came from.
    """

    graphemes: tuple[str, ...]
    alias: str = ""
    alias_say_as: str = ""
    phoneme: str = ""
    phoneme_say_as: str = ""
    is_new: bool = field(default=False, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.graphemes, tuple):
            object.__setattr__(self, "graphemes", tuple(self.graphemes))

    @property
    def sort_key(self) -> str:
        """Lowercased first grapheme, or ``""`` when there is none."""
        return self.graphemes[0].lower() if self.graphemes else ""

    @property
    def grapheme_set(self) -> frozenset[str]:
        return frozenset(g.lower() for g in self.graphemes)

    @property
    def is_sentinel(self) -> bool:
        """True for the placeholder that seeds a brand-new lexicon."""
        return (
            self.graphemes == (PLACEHOLDER_GRAPHEME,)
            and not self.alias
            and not self.phoneme
        )


def placeholder_entry() -> LexiconEntry:
    return LexiconEntry(graphemes=(PLACEHOLDER_GRAPHEME,), is_new=True)


@dataclass(frozen=True, slots=True)
class ParsedLexicon:
    """Decoded lexicon document."""

    language: str
    entries: tuple[LexiconEntry, ...]


@dataclass(frozen=True, slots=True)
class ExportFile:
    """A downloadable rendition of the working entries."""

    filename: str
    content: str
    media_type: str


# ---------------------------------------------------------------------------
# Merge records
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class ParseIssue:
    """A merge source entry that failed the structural checks."""

    entry_number: int | None
    message: str
    error_type: str = "invalid_entry"
    line_number: int | None = None
    entry_content: str | None = None
    suggestion: str | None = None


@dataclass(frozen=True, slots=True)
class MergeSource:
    """Entries and blocking issues decoded from a vendor file."""

    filename: str
    language: str
    entries: tuple[LexiconEntry, ...]
    issues: tuple[ParseIssue, ...] = ()


@dataclass(slots=True)
class MergeConflict:
    """A master entry and an incoming entry sharing at least one grapheme."""

    master_entry: LexiconEntry
    incoming_entry: LexiconEntry
    master_index: int
    incoming_index: int
    common_graphemes: tuple[str, ...]
    type: ConflictType
    resolution: Resolution | None = None


@dataclass(frozen=True, slots=True)
class MergeSummary:
    """Counts reported after a merge is applied."""

    new_entries: int
    conflicts_resolved: int
    identical_skipped: int
    total_processed: int
    errors_found: int = 0


@dataclass(frozen=True, slots=True)
class MergePreview:
    """Dry-run classification counts shown before a merge."""

    new_entries: int
    conflicts: int
    identical_skipped: int
    errors: int
    potential_issues: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class MergeResult:
    """Merged, sorted entries and the counts describing the merge."""

    entries: tuple[LexiconEntry, ...]
    summary: MergeSummary


# ---------------------------------------------------------------------------
# Publishing
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class LexiconReference:
    """A published lexicon as listed in the settings document."""

    language: str
    name: str
    url: str

    @property
    def filename(self) -> str:
        return self.url.rstrip("/").rsplit("/", 1)[-1]

