"""Entry validation rules and the IPA phoneme alphabet."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence

from pls_editor.models import PLACEHOLDER_GRAPHEME, LexiconEntry

MSG_NO_GRAPHEME = "Must have at least one grapheme"
MSG_NO_CONTENT = "Must have either an alias or phoneme"
MSG_BAD_PHONEME = (
    "Phoneme contains invalid characters "
    "(imported entries may need manual correction)"
)
MSG_PHONEME_FILTERED = "Invalid characters removed. Only IPA symbols allowed."

MAX_GRAPHEME_LENGTH = 100

# ---------------------------------------------------------------------------
# IPA alphabet
# ---------------------------------------------------------------------------

_IPA_LETTERS = (
    "a-zA-Z"
    "ɑɐɒæɓʙβɔɕç"
    "ɗɖðʤʣɘɚɛɜɝ"
    "ɞɟʄɡɠɢʛɦɧħ"
    "ɥʜɨɪʝɭɬɫɮʟ"
    "ɱɯɰŋɳɲɴøɵɸ"
    "œɶʘɹɺɾɻʀʁɽ"
    "ʂʃʈʧθʉʊʋⱱʌ"
    "ɣɤʍχʎʏʑʐʒʔ"
    "ʡʕʢǀǁǂǃ"
)
# stress and length marks
_IPA_SUPRASEGMENTALS = "ˈˌːˑ"
# combining diacritics U+0300..U+030F
_IPA_DIACRITICS = "̀-̏"
# superscript modifier letters
_IPA_MODIFIERS = (
    "ʰʲʷʸˠˤⁿˡ"
    "ᵈᵗᵇᵏᵍᶠᵋᶦ-ᶿ"
)
_IPA_PUNCTUATION = " .<>"

_IPA_CLASS = (
    "[" + _IPA_LETTERS + _IPA_SUPRASEGMENTALS + _IPA_DIACRITICS
    + _IPA_MODIFIERS + _IPA_PUNCTUATION + "]"
)
_IPA_CHAR_RE = re.compile(_IPA_CLASS)
_IPA_TEXT_RE = re.compile(_IPA_CLASS + "*")

_CONTROL_CHAR_RE = re.compile("[\u0000-\u001f\u007f]")
_XML_BREAKING_RE = re.compile('["&]')


def is_ipa_character(ch: str) -> bool:
    """Return True if *ch* is a single character of the phoneme alphabet."""
    return len(ch) == 1 and _IPA_CHAR_RE.fullmatch(ch) is not None


def is_valid_phoneme(text: str) -> bool:
    """Return True if every character of *text* is in the phoneme alphabet."""
    return _IPA_TEXT_RE.fullmatch(text) is not None


def filter_phoneme_input(text: str) -> tuple[str, bool]:
    """Drop characters outside the phoneme alphabet.

    Returns the filtered text and whether anything was removed.
    """
    kept = "".join(_IPA_CHAR_RE.findall(text))
    return kept, len(kept) != len(text)


# ---------------------------------------------------------------------------
# Entry rules
# ---------------------------------------------------------------------------

def has_real_grapheme(entry: LexiconEntry) -> bool:
    return any(
        g.strip() and g != PLACEHOLDER_GRAPHEME for g in entry.graphemes
    )


def validate_entry(entry: LexiconEntry) -> list[str]:
    """Return the rule violations of *entry*; empty when it can be saved."""
    errors: list[str] = []
    if not has_real_grapheme(entry):
        errors.append(MSG_NO_GRAPHEME)
    if not entry.alias.strip() and not entry.phoneme.strip():
        errors.append(MSG_NO_CONTENT)
    if entry.phoneme and not is_valid_phoneme(entry.phoneme):
        errors.append(MSG_BAD_PHONEME)
    return errors


def validate_entries(entries: Iterable[LexiconEntry]) -> dict[int, list[str]]:
    """Map entry position to violations, for failing entries only."""
    issues: dict[int, list[str]] = {}
    for index, entry in enumerate(entries):
        errors = validate_entry(entry)
        if errors:
            issues[index] = errors
    return issues


def is_placeholder_only(entries: Sequence[LexiconEntry]) -> bool:
    """True if there is nothing worth saving in *entries*."""
    return all(entry.is_sentinel for entry in entries)


# ---------------------------------------------------------------------------
# Merge source checks
# ---------------------------------------------------------------------------

def structural_problems(entry: LexiconEntry) -> list[str]:
    """Checks applied to vendor entries before they may take part in a merge.

    These are stricter than :func:`validate_entry`: any hit blocks the merge.
    """
    if not entry.graphemes:
        return ["has no graphemes"]
    problems: list[str] = []
    if any(not g.strip() for g in entry.graphemes):
        problems.append("has empty graphemes")
    if not entry.alias and not entry.phoneme:
        problems.append("must have either an alias or phoneme")
    breaking = _XML_BREAKING_RE.findall("".join(entry.graphemes))
    if breaking:
        problems.append(
            "contains problematic characters: " + ", ".join(breaking)
        )
    if any(_CONTROL_CHAR_RE.search(g) for g in entry.graphemes):
        problems.append("contains control characters that may cause issues")
    long_graphemes = [g for g in entry.graphemes if len(g) > MAX_GRAPHEME_LENGTH]
    if long_graphemes:
        problems.append(
            f"has unusually long graphemes ({len(long_graphemes[0])} characters)"
        )
    return problems
