"""Tests for the HunkStateStore."""

import pytest

from hunk_review.errors import UnknownHunkError
from hunk_review.review.diff_parser import FileDiff, Hunk, HunkStatus
from hunk_review.review.hunk_state import HunkStateStore


def _file_diff(n: int = 3) -> FileDiff:
    hunks = [
        Hunk.from_changes(f"f.py#{i}", old_start=1 + i * 10, new_start=1 + i * 10,
                          removed_lines=[f"old{i}"], added_lines=[f"new{i}"])
        for i in range(n)
    ]
    return FileDiff("f.py", hunks)


class TestSingleTransitions:
    def test_initial_state_is_pending(self):
        store = HunkStateStore(_file_diff())
        assert store.pending_count == 3
        assert not store.is_resolved

    def test_accept_reject_reset(self):
        store = HunkStateStore(_file_diff())
        store = store.accept_hunk("f.py#0").reject_hunk("f.py#1")
        assert store.status_of("f.py#0") is HunkStatus.ACCEPTED
        assert store.status_of("f.py#1") is HunkStatus.REJECTED
        assert store.status_of("f.py#2") is HunkStatus.PENDING

        store = store.reset_hunk("f.py#0")
        assert store.status_of("f.py#0") is HunkStatus.PENDING

    def test_last_decision_wins(self):
        store = HunkStateStore(_file_diff()).accept_hunk("f.py#0").reject_hunk("f.py#0")
        assert store.status_of("f.py#0") is HunkStatus.REJECTED

    def test_unknown_hunk_raises(self):
        store = HunkStateStore(_file_diff())
        with pytest.raises(UnknownHunkError) as exc:
            store.accept_hunk("other.py#0")
        assert exc.value.hunk_id == "other.py#0"
        assert exc.value.file_path == "f.py"

    def test_unknown_hunk_is_also_a_key_error(self):
        with pytest.raises(KeyError):
            HunkStateStore(_file_diff()).status_of("missing")

    def test_previous_store_is_unchanged(self):
        before = HunkStateStore(_file_diff())
        after = before.accept_hunk("f.py#0")
        assert before.status_of("f.py#0") is HunkStatus.PENDING
        assert after.status_of("f.py#0") is HunkStatus.ACCEPTED

    def test_decisions_are_read_only(self):
        store = HunkStateStore(_file_diff())
        with pytest.raises(TypeError):
            store.decisions["f.py#0"] = HunkStatus.ACCEPTED


class TestBulkTransitions:
    def test_accept_all_skips_rejected(self):
        store = HunkStateStore(_file_diff()).reject_hunk("f.py#1").accept_all_in_file()
        assert store.ids_with(HunkStatus.ACCEPTED) == ["f.py#0", "f.py#2"]
        assert store.ids_with(HunkStatus.REJECTED) == ["f.py#1"]
        assert store.is_resolved

    def test_accept_all_force_overrides(self):
        store = (HunkStateStore(_file_diff())
                 .reject_hunk("f.py#1")
                 .accept_all_in_file(force=True))
        assert store.ids_with(HunkStatus.ACCEPTED) == ["f.py#0", "f.py#1", "f.py#2"]

    def test_reject_all_skips_accepted(self):
        store = HunkStateStore(_file_diff()).accept_hunk("f.py#2").reject_all_in_file()
        assert store.ids_with(HunkStatus.REJECTED) == ["f.py#0", "f.py#1"]
        assert store.status_of("f.py#2") is HunkStatus.ACCEPTED

    def test_reject_all_force_overrides(self):
        store = (HunkStateStore(_file_diff())
                 .accept_hunk("f.py#2")
                 .reject_all_in_file(force=True))
        assert store.ids_with(HunkStatus.REJECTED) == ["f.py#0", "f.py#1", "f.py#2"]

    def test_reset_all(self):
        store = HunkStateStore(_file_diff()).accept_all_in_file().reset_all()
        assert store.pending_count == 3

    def test_bulk_on_empty_diff(self):
        store = HunkStateStore(FileDiff("empty.txt", is_new_file=True))
        assert store.accept_all_in_file().is_resolved


class TestRestoreAndResolve:
    def test_from_decisions_drops_stale_ids(self):
        store = HunkStateStore.from_decisions(_file_diff(), {
            "f.py#0": "accepted",
            "f.py#9": "rejected",
            "f.py#1": HunkStatus.REJECTED,
        })
        assert store.status_of("f.py#0") is HunkStatus.ACCEPTED
        assert store.status_of("f.py#1") is HunkStatus.REJECTED
        assert "f.py#9" not in store.decisions

    def test_from_decisions_ignores_bad_status(self):
        store = HunkStateStore.from_decisions(_file_diff(), {"f.py#0": "maybe"})
        assert store.status_of("f.py#0") is HunkStatus.PENDING

    def test_resolve_applies_statuses(self):
        fd = _file_diff()
        resolved = HunkStateStore(fd).accept_hunk("f.py#1").resolve()
        assert [h.status for h in resolved.hunks] == [
            HunkStatus.PENDING, HunkStatus.ACCEPTED, HunkStatus.PENDING,
        ]
        assert all(h.status is HunkStatus.PENDING for h in fd.hunks)

    def test_repr(self):
        assert "f.py" in repr(HunkStateStore(_file_diff()))
