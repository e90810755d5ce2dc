"""Three-way reconciliation of an incoming lexicon against the master."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, replace

from pls_editor.exceptions import (
    ConflictBlockingError,
    LanguageMismatchError,
    UnresolvedConflictsError,
)
from pls_editor.models import (
    ConflictType,
    LexiconEntry,
    MergeConflict,
    MergePreview,
    MergeResult,
    MergeSource,
    MergeSummary,
    ParseIssue,
    Resolution,
)
from pls_editor.ordering import sort_entries

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------

def shares_grapheme(a: LexiconEntry, b: LexiconEntry) -> bool:
    return not a.grapheme_set.isdisjoint(b.grapheme_set)


def are_identical(a: LexiconEntry, b: LexiconEntry) -> bool:
    """Same graphemes (any order), same alias ignoring case, same phoneme.

    Grapheme case is significant here so that casing variants surface as
    conflicts instead of being skipped.
    """
    return (
        sorted(a.graphemes) == sorted(b.graphemes)
        and a.alias.lower() == b.alias.lower()
        and a.phoneme == b.phoneme
    )


def are_phonetically_identical(a: LexiconEntry, b: LexiconEntry) -> bool:
    """Same graphemes ignoring case and order, same phoneme; alias ignored."""
    return (
        sorted(g.lower() for g in a.graphemes)
        == sorted(g.lower() for g in b.graphemes)
        and a.phoneme == b.phoneme
    )


def classify(master: LexiconEntry, incoming: LexiconEntry) -> ConflictType:
    if are_phonetically_identical(master, incoming):
        return ConflictType.ADDITIONAL_ALIAS
    if (
        master.phoneme == incoming.phoneme
        and master.alias.lower() != incoming.alias.lower()
    ):
        return ConflictType.ADDITIONAL_ALIAS
    return ConflictType.CONFLICT


def combine_entries(master: LexiconEntry, incoming: LexiconEntry) -> LexiconEntry:
    """Union of graphemes, master first; incoming alias/phoneme win when set."""
    seen = {g.lower() for g in master.graphemes}
    graphemes = list(master.graphemes)
    for grapheme in incoming.graphemes:
        if grapheme.lower() not in seen:
            seen.add(grapheme.lower())
            graphemes.append(grapheme)
    source_alias = incoming if incoming.alias else master
    source_phoneme = incoming if incoming.phoneme else master
    return LexiconEntry(
        graphemes=tuple(graphemes),
        alias=source_alias.alias,
        alias_say_as=source_alias.alias_say_as,
        phoneme=source_phoneme.phoneme,
        phoneme_say_as=source_phoneme.phoneme_say_as,
        is_new=True,
    )


# ---------------------------------------------------------------------------
# Plan
# ---------------------------------------------------------------------------

@dataclass
class MergePlan:
    """Classification of every incoming entry, awaiting resolutions."""

    master: tuple[LexiconEntry, ...]
    incoming: tuple[LexiconEntry, ...]
    conflicts: list[MergeConflict]
    new_entries: tuple[LexiconEntry, ...]
    identical_skipped: int

    @property
    def unresolved(self) -> list[int]:
        return [i for i, c in enumerate(self.conflicts) if c.resolution is None]

    @property
    def is_fully_resolved(self) -> bool:
        return not self.unresolved

    def resolve(self, index: int, resolution: Resolution | str) -> None:
        self.conflicts[index].resolution = Resolution(resolution)

    def resolve_all(
        self,
        resolution: Resolution | str,
        conflict_type: ConflictType | str | None = None,
    ) -> int:
        """Apply one resolution to every conflict, or only to one type.

        Returns the number of conflicts updated.
        """
        resolution = Resolution(resolution)
        wanted = ConflictType(conflict_type) if conflict_type is not None else None
        count = 0
        for conflict in self.conflicts:
            if wanted is None or conflict.type is wanted:
                conflict.resolution = resolution
                count += 1
        return count


def check_merge_source(language: str, source: MergeSource) -> None:
    """Reject a merge source in the wrong language or with broken entries."""
    if source.language != language:
        raise LanguageMismatchError(
            f"Language mismatch: Master lexicon is {language}, "
            f"but merge file is {source.language}"
        )
    if source.issues:
        raise ConflictBlockingError(
            f"Cannot proceed with merge: {len(source.issues)} entries have "
            "errors that must be fixed first",
            list(source.issues),
        )


def analyze_merge(
    master: Sequence[LexiconEntry], incoming: Sequence[LexiconEntry]
) -> MergePlan:
    """Classify each incoming entry as new, identical or conflicting.

    Every overlapping master entry is checked on its own: identical pairs
    are passed over and each remaining match yields a conflict record. An
    incoming entry counts as skipped when at least one match is identical.
    """
    master = tuple(master)
    incoming = tuple(incoming)
    conflicts: list[MergeConflict] = []
    new_entries: list[LexiconEntry] = []
    skipped = 0

    for incoming_index, entry in enumerate(incoming):
        keys = entry.grapheme_set
        matches = [
            (i, m) for i, m in enumerate(master)
            if not keys.isdisjoint(m.grapheme_set)
        ]
        if not matches:
            new_entries.append(entry)
            continue
        if any(are_identical(m, entry) for _, m in matches):
            skipped += 1
        for master_index, match in matches:
            if are_identical(match, entry):
                continue
            conflicts.append(MergeConflict(
                master_entry=match,
                incoming_entry=entry,
                master_index=master_index,
                incoming_index=incoming_index,
                common_graphemes=tuple(
                    g for g in match.graphemes if g.lower() in keys
                ),
                type=classify(match, entry),
            ))

    logger.debug(
        "Merge analysis: %d new, %d conflicts, %d identical",
        len(new_entries), len(conflicts), skipped,
    )
    return MergePlan(
        master=master,
        incoming=incoming,
        conflicts=conflicts,
        new_entries=tuple(new_entries),
        identical_skipped=skipped,
    )


def finalize_merge(plan: MergePlan) -> MergeResult:
    """Apply the resolutions of *plan* and return the sorted merged entries.

    An incoming entry that overlaps several master entries and is taken with
    ``merge`` for more than one of them is kept once, in the first slot.

    Raises :class:`UnresolvedConflictsError` without touching anything if a
    conflict still lacks a resolution.
    """
    unresolved = plan.unresolved
    if unresolved:
        raise UnresolvedConflictsError(
            f"{len(unresolved)} of {len(plan.conflicts)} conflicts "
            "still need a resolution"
        )

    resolved = list(plan.master)
    merged_into: dict[int, list[int]] = {}
    for conflict in plan.conflicts:
        if conflict.resolution is Resolution.MERGE:
            resolved[conflict.master_index] = replace(
                conflict.incoming_entry, is_new=True
            )
            merged_into.setdefault(conflict.incoming_index, []).append(
                conflict.master_index
            )
        elif conflict.resolution is Resolution.BOTH:
            resolved[conflict.master_index] = combine_entries(
                resolved[conflict.master_index], conflict.incoming_entry
            )

    duplicates: set[int] = set()
    for slots in merged_into.values():
        kept = resolved[slots[0]]
        duplicates.update(s for s in slots[1:] if resolved[s] == kept)
    resolved = [e for i, e in enumerate(resolved) if i not in duplicates]

    added = 0
    for entry in plan.new_entries:
        if any(shares_grapheme(entry, c.incoming_entry) for c in plan.conflicts):
            continue
        resolved.append(replace(entry, is_new=True))
        added += 1

    summary = MergeSummary(
        new_entries=added,
        conflicts_resolved=len(plan.conflicts),
        identical_skipped=plan.identical_skipped,
        total_processed=len(plan.incoming),
    )
    logger.info(
        "Merge completed: %d new entries, %d conflicts resolved, "
        "%d identical entries skipped",
        summary.new_entries, summary.conflicts_resolved, summary.identical_skipped,
    )
    return MergeResult(entries=tuple(sort_entries(resolved)), summary=summary)


def merge_entries(
    master: Sequence[LexiconEntry], incoming: Sequence[LexiconEntry]
) -> tuple[MergePlan, MergeResult | None]:
    """Analyze, and finalize straight away when there is nothing to resolve."""
    plan = analyze_merge(master, incoming)
    if plan.conflicts:
        return plan, None
    return plan, finalize_merge(plan)


# ---------------------------------------------------------------------------
# Preview
# ---------------------------------------------------------------------------

def _joined(entry: LexiconEntry) -> str:
    return ", ".join(entry.graphemes)


def preview_merge(
    master: Sequence[LexiconEntry],
    incoming: Sequence[LexiconEntry],
    issues: Sequence[ParseIssue] = (),
) -> MergePreview:
    """Dry run of :func:`analyze_merge` with human-readable notes."""
    plan = analyze_merge(master, incoming)
    notes: list[str] = []
    for conflict in plan.conflicts:
        ours, theirs = conflict.master_entry, conflict.incoming_entry
        if are_phonetically_identical(ours, theirs):
            notes.append(
                f'Case difference: "{_joined(theirs)}" vs existing '
                f'"{_joined(ours)}" (same phoneme)'
            )
        else:
            kind = (
                "different aliases"
                if conflict.type is ConflictType.ADDITIONAL_ALIAS
                else "different phonemes"
            )
            notes.append(
                f'Conflict: "{_joined(theirs)}" vs existing "{_joined(ours)}" ({kind})'
            )
    if issues:
        notes.append(
            f"BLOCKING: {len(issues)} entries have errors - "
            "merge cannot proceed until fixed"
        )
    return MergePreview(
        new_entries=len(plan.new_entries),
        conflicts=len(plan.conflicts),
        identical_skipped=plan.identical_skipped,
        errors=len(issues),
        potential_issues=tuple(notes),
    )
