"""Alphabetical ordering of entries by their first grapheme.

Keys are lowercased first graphemes collated with the Unicode Collation
Algorithm, so accented letters sort beside their base letters.
"""

from __future__ import annotations

import functools
from collections.abc import Iterable, Sequence

from pyuca import Collator

from pls_editor.models import PLACEHOLDER_GRAPHEME, LexiconEntry


@functools.lru_cache(maxsize=1)
def _collator() -> Collator:
    return Collator()


def collation_key(entry: LexiconEntry) -> tuple[int, ...]:
    """UCA sort key of the lowercased first grapheme of *entry*."""
    return _collator().sort_key(entry.sort_key)


def find_insertion_index(
    entries: Sequence[LexiconEntry], new_entry: LexiconEntry
) -> int:
    """Return the first index whose key is >= the key of *new_entry*.

    Returns ``len(entries)`` when every existing key sorts before the new one.
    """
    key = collation_key(new_entry)
    for index, entry in enumerate(entries):
        if collation_key(entry) >= key:
            return index
    return len(entries)


def insert_sorted(entries: list[LexiconEntry], entry: LexiconEntry) -> int:
    """Insert *entry* in place at its sorted position and return the index."""
    index = find_insertion_index(entries, entry)
    entries.insert(index, entry)
    return index


def reposition(entries: list[LexiconEntry], index: int, entry: LexiconEntry) -> int:
    """Replace ``entries[index]`` with *entry*, moving it to its sorted slot.

    The caller should follow the returned index to keep the selection on
    the edited entry.
    """
    del entries[index]
    return insert_sorted(entries, entry)


def triggers_resort(grapheme: str) -> bool:
    """Whether setting the first grapheme to *grapheme* should move the entry."""
    return bool(grapheme.strip()) and grapheme != PLACEHOLDER_GRAPHEME


def sort_entries(entries: Iterable[LexiconEntry]) -> list[LexiconEntry]:
    """Stable case-insensitive collated sort by first grapheme."""
    return sorted(entries, key=collation_key)


def is_sorted(entries: Sequence[LexiconEntry]) -> bool:
    return all(
        collation_key(entries[i]) <= collation_key(entries[i + 1])
        for i in range(len(entries) - 1)
    )
