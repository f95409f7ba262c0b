"""Tests for the DiffParser."""

import difflib

import pytest

from hunk_review.review.diff_parser import (
    DiffParser, FileDiff, Hunk, HunkStatus, LineKind,
)


SINGLE_HUNK_DIFF = """\
diff --git a/src/app.py b/src/app.py
index 83db48f..bf269f4 100644
--- a/src/app.py
+++ b/src/app.py
@@ -2,2 +2,3 @@ def main():
-foo
+bar
+baz
 y
"""

MULTI_FILE_DIFF = """\
diff --git a/a.py b/a.py
index 1111111..2222222 100644
--- a/a.py
+++ b/a.py
@@ -1,3 +1,3 @@
 one
-two
+TWO
 three
@@ -10,2 +10,3 @@
 ten
+ten and a half
 eleven
diff --git a/b.py b/b.py
index 3333333..4444444 100644
--- a/b.py
+++ b/b.py
@@ -5 +5 @@
-old
+new
"""

NEW_FILE_DIFF = """\
diff --git a/fresh.txt b/fresh.txt
new file mode 100644
index 0000000..ce01362
--- /dev/null
+++ b/fresh.txt
@@ -0,0 +1,2 @@
+hello
+world
"""

EMPTY_NEW_FILE_DIFF = """\
diff --git a/empty.txt b/empty.txt
new file mode 100644
index 0000000..e69de29
"""

DELETED_FILE_DIFF = """\
diff --git a/old.txt b/old.txt
deleted file mode 100644
index ce01362..0000000
--- a/old.txt
+++ /dev/null
@@ -1,2 +0,0 @@
-hello
-world
"""

RENAME_DIFF = """\
diff --git a/before.py b/after.py
similarity index 100%
rename from before.py
rename to after.py
"""

BINARY_DIFF = """\
diff --git a/logo.png b/logo.png
index 1111111..2222222 100644
Binary files a/logo.png and b/logo.png differ
"""

NO_NEWLINE_DIFF = """\
diff --git a/n.txt b/n.txt
index 1111111..2222222 100644
--- a/n.txt
+++ b/n.txt
@@ -1,2 +1,2 @@
 first
-last
\\ No newline at end of file
+last
"""


class TestHeaders:
    def test_single_hunk_coordinates(self):
        diffs = DiffParser().parse(SINGLE_HUNK_DIFF)
        assert len(diffs) == 1
        fd = diffs[0]
        assert fd.file_path == "src/app.py"
        hunk = fd.hunks[0]
        assert (hunk.old_start, hunk.old_line_count) == (2, 2)
        assert (hunk.new_start, hunk.new_line_count) == (2, 3)
        assert hunk.section == "def main():"
        assert hunk.status is HunkStatus.PENDING

    def test_removed_added_and_context_lines(self):
        hunk = DiffParser().parse(SINGLE_HUNK_DIFF)[0].hunks[0]
        assert hunk.removed_lines == ["foo"]
        assert hunk.added_lines == ["bar", "baz"]
        assert hunk.old_side_lines() == ["foo", "y"]
        assert hunk.new_side_lines() == ["bar", "baz", "y"]

    def test_missing_counts_default_to_one(self):
        b = DiffParser().parse(MULTI_FILE_DIFF)[1]
        assert b.file_path == "b.py"
        hunk = b.hunks[0]
        assert (hunk.old_start, hunk.old_line_count) == (5, 1)
        assert (hunk.new_start, hunk.new_line_count) == (5, 1)

    def test_multiple_files_and_hunks(self):
        diffs = DiffParser().parse(MULTI_FILE_DIFF)
        assert [d.file_path for d in diffs] == ["a.py", "b.py"]
        assert len(diffs[0].hunks) == 2
        assert diffs[0].hunks[1].added_lines == ["ten and a half"]

    def test_path_with_spaces(self):
        text = SINGLE_HUNK_DIFF.replace("src/app.py", "my dir/app file.py")
        assert DiffParser().parse(text)[0].file_path == "my dir/app file.py"

    def test_quoted_paths(self):
        text = (
            'diff --git "a/caf\\303\\251.txt" "b/caf\\303\\251.txt"\n'
            "--- \"a/caf\\303\\251.txt\"\n"
            "+++ \"b/caf\\303\\251.txt\"\n"
            "@@ -1 +1 @@\n"
            "-a\n"
            "+b\n"
        )
        assert DiffParser().parse(text)[0].file_path == "café.txt"


class TestFileKinds:
    def test_new_file(self):
        fd = DiffParser().parse(NEW_FILE_DIFF)[0]
        assert fd.is_new_file
        assert not fd.is_delete
        assert fd.hunks[0].added_lines == ["hello", "world"]
        assert fd.describe() == "(new file)"

    def test_new_empty_file_has_no_hunks(self):
        fd = DiffParser().parse(EMPTY_NEW_FILE_DIFF)[0]
        assert fd.file_path == "empty.txt"
        assert fd.is_new_file
        assert fd.hunks == []

    def test_deleted_file(self):
        fd = DiffParser().parse(DELETED_FILE_DIFF)[0]
        assert fd.file_path == "old.txt"
        assert fd.is_delete
        assert fd.hunks[0].removed_lines == ["hello", "world"]

    def test_pure_rename(self):
        fd = DiffParser().parse(RENAME_DIFF)[0]
        assert fd.file_path == "after.py"
        assert fd.old_path == "before.py"
        assert fd.is_rename
        assert fd.hunks == []

    def test_binary(self):
        fd = DiffParser().parse(BINARY_DIFF)[0]
        assert fd.is_binary
        assert fd.hunks == []
        assert fd.describe() == "(binary)"

    def test_no_newline_marker_sets_old_side_flag(self):
        hunk = DiffParser().parse(NO_NEWLINE_DIFF)[0].hunks[0]
        assert hunk.old_missing_newline
        assert not hunk.new_missing_newline
        assert hunk.removed_lines == ["last"]
        assert hunk.added_lines == ["last"]


class TestMalformedInput:
    def test_bad_hunk_header_is_skipped(self):
        text = """\
diff --git a/a.py b/a.py
--- a/a.py
+++ b/a.py
@@ -x,1 +1,1 @@
-broken
+still broken
@@ -5,1 +5,1 @@
-ok
+fine
"""
        report = DiffParser().parse_report(text)
        fd = report.file_diffs[0]
        assert len(fd.hunks) == 1
        assert fd.hunks[0].added_lines == ["fine"]
        assert any("Unparsable hunk header" in e for e in report.parse_errors)

    def test_truncated_hunk_is_dropped(self):
        text = """\
diff --git a/a.py b/a.py
--- a/a.py
+++ b/a.py
@@ -1,3 +1,3 @@
 one
-two
"""
        report = DiffParser().parse_report(text)
        assert report.file_diffs == []
        assert any("Truncated" in e for e in report.parse_errors)

    def test_out_of_order_hunk_is_dropped(self):
        text = """\
--- a/a.py
+++ b/a.py
@@ -10,1 +10,1 @@
-ten
+TEN
@@ -2,1 +2,1 @@
-two
+TWO
"""
        report = DiffParser().parse_report(text)
        assert len(report.file_diffs[0].hunks) == 1
        assert report.file_diffs[0].hunks[0].old_start == 10
        assert report.parse_errors

    def test_hunk_without_file_section(self):
        report = DiffParser().parse_report("@@ -1 +1 @@\n-a\n+b\n")
        assert report.file_diffs == []
        assert report.parse_errors

    def test_empty_input(self):
        assert DiffParser().parse("") == []
        assert DiffParser().parse("   \n") == []

    def test_blank_line_in_body_counts_as_context(self):
        text = "--- a/x\n+++ b/x\n@@ -1,2 +1,2 @@\n\n-a\n+b\n"
        hunk = DiffParser().parse(text)[0].hunks[0]
        assert hunk.lines[0].kind is LineKind.CONTEXT
        assert hunk.lines[0].text == ""


class TestHunkIdentity:
    def test_ids_are_stable_across_parses(self):
        first = DiffParser().parse(MULTI_FILE_DIFF)
        second = DiffParser().parse(MULTI_FILE_DIFF)
        assert [fd.hunk_ids for fd in first] == [fd.hunk_ids for fd in second]

    def test_ids_are_unique_and_carry_path(self):
        fd = DiffParser().parse(MULTI_FILE_DIFF)[0]
        assert len(set(fd.hunk_ids)) == 2
        assert fd.hunk_ids[0] == "a.py#0@-1,3+1,3"
        assert fd.hunk_ids[1] == "a.py#1@-10,2+10,3"

    def test_hunks_do_not_overlap(self):
        fd = DiffParser().parse(MULTI_FILE_DIFF)[0]
        for prev, nxt in zip(fd.hunks, fd.hunks[1:]):
            assert prev.old_end <= nxt.old_start

    def test_get_hunk(self):
        fd = DiffParser().parse(SINGLE_HUNK_DIFF)[0]
        assert fd.get_hunk(fd.hunk_ids[0]) is fd.hunks[0]
        assert fd.get_hunk("nope") is None


class TestPlainUnifiedDiff:
    def test_difflib_output(self):
        old = ["a", "b", "c", "d"]
        new = ["a", "B", "c", "d", "e"]
        text = "\n".join(difflib.unified_diff(
            old, new, "a/f.txt", "b/f.txt", lineterm="", n=0))
        fd = DiffParser().parse(text)[0]
        assert fd.file_path == "f.txt"
        assert [h.removed_lines for h in fd.hunks] == [["b"], []]
        assert [h.added_lines for h in fd.hunks] == [["B"], ["e"]]


class TestFileDiffHelpers:
    def test_with_statuses_returns_copy(self):
        fd = DiffParser().parse(MULTI_FILE_DIFF)[0]
        decided = fd.with_statuses({fd.hunk_ids[0]: HunkStatus.ACCEPTED})
        assert decided.hunks[0].status is HunkStatus.ACCEPTED
        assert decided.hunks[1].status is HunkStatus.PENDING
        assert fd.hunks[0].status is HunkStatus.PENDING

    def test_describe_counts_changes(self):
        fd = DiffParser().parse(MULTI_FILE_DIFF)[0]
        assert fd.describe() == "2 changes"
        assert FileDiff("x", [Hunk.from_changes("x#0", 1, 1, ["a"], ["b"])]).describe() == "1 change"

    @pytest.mark.parametrize("count,expected", [(0, (4, 4)), (2, (3, 5))])
    def test_old_range(self, count, expected):
        hunk = Hunk(id="h", old_start=4, old_line_count=count,
                    new_start=4, new_line_count=1)
        assert hunk.old_range == expected
