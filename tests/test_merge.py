"""Tests for the merge engine."""

import pytest

from pls_editor import (
    ConflictBlockingError,
    ConflictType,
    LanguageMismatchError,
    LexiconEntry,
    MergeSource,
    ParseIssue,
    Resolution,
    UnresolvedConflictsError,
    analyze_merge,
    finalize_merge,
    merge_entries,
    preview_merge,
)
from pls_editor.merge import (
    are_identical,
    check_merge_source,
    classify,
    combine_entries,
)


def _e(*graphemes, alias="", phoneme="", **kwargs):
    return LexiconEntry(graphemes=graphemes, alias=alias, phoneme=phoneme, **kwargs)


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------
class TestClassification:
    def test_identical_entries_skipped(self):
        """Same graphemes and phoneme: nothing to do."""
        plan = analyze_merge([_e("cat", phoneme="kæt")], [_e("cat", phoneme="kæt")])
        assert plan.conflicts == []
        assert plan.new_entries == ()
        assert plan.identical_skipped == 1

    def test_case_only_difference_is_additional_alias(self):
        plan = analyze_merge([_e("Cat", phoneme="kæt")], [_e("cat", phoneme="kæt")])
        assert len(plan.conflicts) == 1
        assert plan.conflicts[0].type is ConflictType.ADDITIONAL_ALIAS
        assert plan.conflicts[0].common_graphemes == ("Cat",)

    def test_phoneme_difference_is_conflict(self):
        plan = analyze_merge([_e("cat", phoneme="kæt")], [_e("cat", phoneme="kat")])
        assert len(plan.conflicts) == 1
        assert plan.conflicts[0].type is ConflictType.CONFLICT

    def test_alias_difference_with_same_phoneme(self):
        master = _e("AWS", alias="Amazon Web Services")
        incoming = _e("AWS", alias="A W S")
        assert classify(master, incoming) is ConflictType.ADDITIONAL_ALIAS

    def test_identity_ignores_grapheme_order_and_alias_case(self):
        a = _e("a", "b", alias="Hello")
        b = _e("b", "a", alias="hello")
        assert are_identical(a, b)

    def test_non_overlapping_entry_is_new(self):
        plan = analyze_merge([_e("cat", phoneme="kæt")], [_e("dog", phoneme="dɒg")])
        assert plan.new_entries == (_e("dog", phoneme="dɒg"),)
        assert plan.conflicts == []

    def test_one_conflict_per_overlapping_master(self):
        master = [_e("cat", phoneme="kæt"), _e("dog", phoneme="dɒg")]
        plan = analyze_merge(master, [_e("cat", "dog", phoneme="pɛts")])
        assert [c.master_index for c in plan.conflicts] == [0, 1]
        assert {c.incoming_index for c in plan.conflicts} == {0}

    def test_identical_match_passes_over_only_that_pair(self):
        master = [_e("cat", phoneme="kæt"), _e("Cat", alias="kitty")]
        plan = analyze_merge(master, [_e("cat", phoneme="kæt")])
        assert len(plan.conflicts) == 1
        conflict = plan.conflicts[0]
        assert conflict.master_index == 1
        assert conflict.master_entry == _e("Cat", alias="kitty")
        assert conflict.type is ConflictType.CONFLICT
        assert plan.identical_skipped == 1


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------
class TestFinalize:
    def test_both_combines_and_incoming_wins(self):
        plan = analyze_merge([_e("cat", phoneme="kæt")], [_e("cat", phoneme="kat")])
        plan.resolve(0, "both")
        result = finalize_merge(plan)
        assert result.entries == (_e("cat", phoneme="kat"),)
        assert result.entries[0].is_new
        assert result.summary.conflicts_resolved == 1

    def test_master_keeps_existing(self):
        master = [_e("cat", phoneme="kæt")]
        plan = analyze_merge(master, [_e("cat", phoneme="kat")])
        plan.resolve(0, Resolution.MASTER)
        assert finalize_merge(plan).entries == tuple(master)

    def test_merge_replaces_with_incoming(self):
        plan = analyze_merge(
            [_e("cat", phoneme="kæt")], [_e("cat", "kitty", alias="cat")]
        )
        plan.resolve(0, Resolution.MERGE)
        assert finalize_merge(plan).entries == (_e("cat", "kitty", alias="cat"),)

    def test_merge_into_two_slots_keeps_one_copy(self):
        master = [_e("cat", phoneme="kæt"), _e("dog", phoneme="dɒg"), _e("emu", alias="e")]
        incoming = _e("cat", "dog", phoneme="pɛts")
        plan = analyze_merge(master, [incoming])
        plan.resolve_all(Resolution.MERGE)
        result = finalize_merge(plan)
        assert result.entries == (incoming, _e("emu", alias="e"))

    def test_merge_and_master_on_two_slots(self):
        master = [_e("cat", phoneme="kæt"), _e("dog", phoneme="dɒg")]
        incoming = _e("cat", "dog", phoneme="pɛts")
        plan = analyze_merge(master, [incoming])
        plan.resolve(0, Resolution.MERGE)
        plan.resolve(1, Resolution.MASTER)
        assert finalize_merge(plan).entries == (incoming, _e("dog", phoneme="dɒg"))

    def test_unresolved_blocks_finalize(self):
        plan = analyze_merge(
            [_e("cat", phoneme="kæt"), _e("dog", phoneme="dɒg")],
            [_e("cat", phoneme="kat"), _e("dog", phoneme="dɔg")],
        )
        plan.resolve(0, "master")
        assert plan.unresolved == [1]
        with pytest.raises(UnresolvedConflictsError):
            finalize_merge(plan)

    def test_new_entries_added_sorted(self):
        master = [_e("cat", phoneme="kæt")]
        plan, result = merge_entries(
            master, [_e("dog", phoneme="dɒg"), _e("ant", phoneme="ænt")]
        )
        assert result is not None
        assert [e.graphemes[0] for e in result.entries] == ["ant", "cat", "dog"]
        assert result.summary.new_entries == 2
        assert result.summary.total_processed == 2

    def test_new_entry_overlapping_conflict_not_added(self):
        master = [_e("cat", phoneme="kæt")]
        incoming = [_e("cat", "kitty", phoneme="kat"), _e("kitty", alias="kitten")]
        plan = analyze_merge(master, incoming)
        assert len(plan.new_entries) == 1
        plan.resolve_all("master")
        result = finalize_merge(plan)
        assert result.entries == tuple(master)
        assert result.summary.new_entries == 0

    def test_merge_entries_defers_when_conflicting(self):
        plan, result = merge_entries(
            [_e("cat", phoneme="kæt")], [_e("cat", phoneme="kat")]
        )
        assert result is None
        assert not plan.is_fully_resolved

    def test_merge_is_idempotent(self):
        master = [_e("cat", phoneme="kæt"), _e("dog", phoneme="dɒg")]
        incoming = [_e("cat", phoneme="kat"), _e("emu", phoneme="imju")]
        plan = analyze_merge(master, incoming)
        plan.resolve_all("both")
        first = finalize_merge(plan)

        again, second = merge_entries(first.entries, incoming)
        assert again.conflicts == []
        assert second.entries == first.entries
        assert second.summary.identical_skipped == 2


class TestBulkResolution:
    def _plan(self):
        master = [_e("Cat", phoneme="kæt"), _e("dog", phoneme="dɒg")]
        incoming = [_e("cat", phoneme="kæt"), _e("dog", phoneme="dɔg")]
        return analyze_merge(master, incoming)

    def test_resolve_all(self):
        plan = self._plan()
        assert plan.resolve_all(Resolution.BOTH) == 2
        assert plan.is_fully_resolved

    def test_resolve_by_type(self):
        plan = self._plan()
        assert plan.resolve_all("merge", ConflictType.ADDITIONAL_ALIAS) == 1
        assert plan.conflicts[0].resolution is Resolution.MERGE
        assert plan.conflicts[1].resolution is None

    def test_invalid_resolution(self):
        with pytest.raises(ValueError):
            self._plan().resolve(0, "theirs")


class TestCombineEntries:
    def test_graphemes_master_first_deduped(self):
        combined = combine_entries(_e("Cat", "kitty", alias="c"), _e("cat", "puss", alias="p"))
        assert combined.graphemes == ("Cat", "kitty", "puss")
        assert combined.alias == "p"

    def test_say_as_follows_value(self):
        master = _e("AWS", alias="Amazon", alias_say_as="name", phoneme="eɪ")
        incoming = _e("AWS", phoneme="ɑ")
        combined = combine_entries(master, incoming)
        assert combined.alias == "Amazon"
        assert combined.alias_say_as == "name"
        assert combined.phoneme == "ɑ"


# ---------------------------------------------------------------------------
# Source checks and preview
# ---------------------------------------------------------------------------
class TestSourceChecks:
    def test_language_mismatch(self):
        source = MergeSource("v.xml", "de-DE", (_e("a", alias="b"),))
        with pytest.raises(LanguageMismatchError, match="Master lexicon is en-US"):
            check_merge_source("en-US", source)

    def test_blocking_issues(self):
        issue = ParseIssue(entry_number=1, message="Entry 1 has no graphemes")
        source = MergeSource("v.xml", "en-US", (), (issue,))
        with pytest.raises(ConflictBlockingError) as exc:
            check_merge_source("en-US", source)
        assert exc.value.issues == [issue]
        assert "1 entries have errors" in str(exc.value)

    def test_language_checked_first(self):
        issue = ParseIssue(entry_number=1, message="bad")
        source = MergeSource("v.xml", "de-DE", (), (issue,))
        with pytest.raises(LanguageMismatchError):
            check_merge_source("en-US", source)


class TestPreview:
    def test_counts_and_notes(self):
        master = [_e("Cat", phoneme="kæt"), _e("dog", phoneme="dɒg"), _e("emu", alias="e")]
        incoming = [
            _e("cat", phoneme="kæt"),
            _e("dog", phoneme="dɔg"),
            _e("emu", alias="e"),
            _e("fox", phoneme="fɒks"),
        ]
        preview = preview_merge(master, incoming)
        assert preview.new_entries == 1
        assert preview.conflicts == 2
        assert preview.identical_skipped == 1
        assert preview.errors == 0
        assert preview.potential_issues == (
            'Case difference: "cat" vs existing "Cat" (same phoneme)',
            'Conflict: "dog" vs existing "dog" (different phonemes)',
        )

    def test_blocking_note(self):
        issues = [ParseIssue(entry_number=1, message="bad")]
        preview = preview_merge([], [], issues)
        assert preview.errors == 1
        assert preview.potential_issues[-1].startswith("BLOCKING: 1 entries")
