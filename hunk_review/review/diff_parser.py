"""
Diff parser: parses unified diff text (``git diff`` or ``diff -u`` output)
into per-file, addressable hunks.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping

from .status_parser import unquote_path

logger = logging.getLogger(__name__)

# Patterns
_HUNK_HEADER = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@ ?(.*)$")
_GIT_HEADER_QUOTED = re.compile(
    r'^diff --git ("(?:[^"\\]|\\.)*"|\S+) ("(?:[^"\\]|\\.)*"|\S+)$'
)
_GIT_HEADER_LOOSE = re.compile(r"^diff --git a/(.+?) b/(.+)$")

_DEV_NULL = "/dev/null"
_NO_NEWLINE_MARKER = "\\"


class HunkStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class LineKind(str, Enum):
    CONTEXT = " "
    REMOVED = "-"
    ADDED = "+"


_LINE_KINDS = {kind.value: kind for kind in LineKind}


@dataclass(frozen=True)
class DiffLine:
    kind: LineKind
    text: str


@dataclass
class Hunk:
    """A contiguous block of changes, addressed by its header coordinates.

    ``lines`` keeps the full hunk body, context included, so the hunk can
    be checked against the content it is applied to.  ``removed_lines`` and
    ``added_lines`` are the review-facing view without context.
    """
    id: str
    old_start: int
    old_line_count: int
    new_start: int
    new_line_count: int
    lines: list[DiffLine] = field(default_factory=list)
    status: HunkStatus = HunkStatus.PENDING
    section: str = ""                  # text after the closing @@
    old_missing_newline: bool = False  # "\ No newline at end of file" (old side)
    new_missing_newline: bool = False

    @classmethod
    def from_changes(
        cls,
        hunk_id: str,
        old_start: int,
        new_start: int,
        removed_lines: list[str],
        added_lines: list[str],
        status: HunkStatus = HunkStatus.PENDING,
    ) -> "Hunk":
        """Build a context-free hunk from its removed and added lines."""
        lines = [DiffLine(LineKind.REMOVED, text) for text in removed_lines]
        lines += [DiffLine(LineKind.ADDED, text) for text in added_lines]
        return cls(
            id=hunk_id,
            old_start=old_start,
            old_line_count=len(removed_lines),
            new_start=new_start,
            new_line_count=len(added_lines),
            lines=lines,
            status=status,
        )

    @property
    def removed_lines(self) -> list[str]:
        return [l.text for l in self.lines if l.kind is LineKind.REMOVED]

    @property
    def added_lines(self) -> list[str]:
        return [l.text for l in self.lines if l.kind is LineKind.ADDED]

    def old_side_lines(self) -> list[str]:
        """Lines this hunk expects in the original (context + removed)."""
        return [l.text for l in self.lines if l.kind is not LineKind.ADDED]

    def new_side_lines(self) -> list[str]:
        """Lines this hunk produces (context + added)."""
        return [l.text for l in self.lines if l.kind is not LineKind.REMOVED]

    @property
    def old_range(self) -> tuple[int, int]:
        """0-indexed half-open range of original lines covered by the hunk.

        A zero-length old side inserts *after* line ``old_start``.
        """
        if self.old_line_count == 0:
            return self.old_start, self.old_start
        start = self.old_start - 1
        return start, start + self.old_line_count

    @property
    def old_end(self) -> int:
        return self.old_start + self.old_line_count

    @property
    def is_insertion(self) -> bool:
        return not self.removed_lines

    @property
    def is_deletion(self) -> bool:
        return not self.added_lines

    @property
    def header(self) -> str:
        return (f"@@ -{self.old_start},{self.old_line_count} "
                f"+{self.new_start},{self.new_line_count} @@")


@dataclass
class FileDiff:
    """All hunks for one file in one diff request."""
    file_path: str
    hunks: list[Hunk] = field(default_factory=list)
    is_new_file: bool = False
    is_delete: bool = False
    old_path: str | None = None
    is_binary: bool = False

    @property
    def is_rename(self) -> bool:
        return self.old_path is not None and self.old_path != self.file_path

    @property
    def hunk_ids(self) -> list[str]:
        return [h.id for h in self.hunks]

    def get_hunk(self, hunk_id: str) -> Hunk | None:
        for hunk in self.hunks:
            if hunk.id == hunk_id:
                return hunk
        return None

    def with_statuses(self, decisions: Mapping[str, HunkStatus]) -> "FileDiff":
        """Return a copy whose hunks carry the statuses in *decisions*.

        Hunks missing from *decisions* keep their current status.
        """
        hunks = [
            dataclasses.replace(h, status=decisions.get(h.id, h.status))
            for h in self.hunks
        ]
        return dataclasses.replace(self, hunks=hunks)

    def describe(self) -> str:
        if self.is_new_file:
            return "(new file)"
        if self.is_delete:
            return "(deleted)"
        if self.is_binary:
            return "(binary)"
        count = len(self.hunks)
        return f"{count} change{'s' if count != 1 else ''}"


@dataclass
class ParsedDiff:
    """The complete parsed diff plus any hunks that had to be skipped."""
    file_diffs: list[FileDiff] = field(default_factory=list)
    parse_errors: list[str] = field(default_factory=list)

    def for_path(self, path: str) -> FileDiff | None:
        for file_diff in self.file_diffs:
            if file_diff.file_path == path:
                return file_diff
        return None


# ----------------------------------------------------------------------
# Parse-time builders
# ----------------------------------------------------------------------

@dataclass
class _HunkBuilder:
    ordinal: int
    old_start: int
    old_count: int
    new_start: int
    new_count: int
    section: str
    lines: list[DiffLine] = field(default_factory=list)
    old_seen: int = 0
    new_seen: int = 0
    old_missing_newline: bool = False
    new_missing_newline: bool = False

    def remaining(self) -> bool:
        return self.old_seen < self.old_count or self.new_seen < self.new_count

    def accepts(self, kind: LineKind) -> bool:
        if kind is LineKind.REMOVED:
            return self.old_seen < self.old_count
        if kind is LineKind.ADDED:
            return self.new_seen < self.new_count
        return self.old_seen < self.old_count and self.new_seen < self.new_count

    def add(self, kind: LineKind, text: str) -> None:
        self.lines.append(DiffLine(kind, text))
        if kind is not LineKind.ADDED:
            self.old_seen += 1
        if kind is not LineKind.REMOVED:
            self.new_seen += 1

    def mark_no_newline(self) -> None:
        if not self.lines:
            return
        kind = self.lines[-1].kind
        if kind is not LineKind.ADDED:
            self.old_missing_newline = True
        if kind is not LineKind.REMOVED:
            self.new_missing_newline = True

    def build(self, file_path: str) -> Hunk:
        hunk_id = (f"{file_path}#{self.ordinal}"
                   f"@-{self.old_start},{self.old_count}"
                   f"+{self.new_start},{self.new_count}")
        return Hunk(
            id=hunk_id,
            old_start=self.old_start,
            old_line_count=self.old_count,
            new_start=self.new_start,
            new_line_count=self.new_count,
            lines=self.lines,
            section=self.section,
            old_missing_newline=self.old_missing_newline,
            new_missing_newline=self.new_missing_newline,
        )


@dataclass
class _Segment:
    header_path: str | None = None
    old_path: str | None = None
    new_path: str | None = None
    rename_from: str | None = None
    rename_to: str | None = None
    is_new_file: bool = False
    is_delete: bool = False
    is_binary: bool = False
    saw_old_header: bool = False
    started_hunks: bool = False
    skipping: bool = False
    ordinals: int = 0
    hunks: list[_HunkBuilder] = field(default_factory=list)

    def resolve_path(self) -> str | None:
        for candidate in (self.new_path, self.rename_to, self.old_path,
                          self.rename_from, self.header_path):
            if candidate:
                return candidate
        return None

    def resolve_old_path(self) -> str | None:
        return self.rename_from or self.old_path


def _strip_side_prefix(raw: str, prefix: str) -> str | None:
    """Turn ``a/src/x.py`` (possibly quoted, possibly tab-suffixed) into
    ``src/x.py``; ``/dev/null`` becomes None."""
    path = raw.split("\t", 1)[0].rstrip("\r")
    if not path.startswith('"'):
        path = path.rstrip()
    path = unquote_path(path)
    if path == _DEV_NULL:
        return None
    if path.startswith(prefix):
        return path[len(prefix):]
    return path


def _parse_git_header(line: str) -> str | None:
    """Extract the (new-side) path from a ``diff --git`` line."""
    line = line.rstrip("\r")
    rest = line[len("diff --git "):]

    # Unquoted paths with spaces: "a/<p> b/<p>" where both halves agree
    if not rest.startswith('"') and len(rest) % 2 == 1:
        half = len(rest) // 2
        left, right = rest[:half], rest[half + 1:]
        if left.startswith("a/") and right.startswith("b/") and left[2:] == right[2:]:
            return right[2:]

    match = _GIT_HEADER_QUOTED.match(line)
    if match:
        return _strip_side_prefix(match.group(2), "b/")
    match = _GIT_HEADER_LOOSE.match(line)
    if match:
        return match.group(2)
    return None


class DiffParser:
    """Parse unified diffs into :class:`FileDiff` objects.

    The parser holds no state between calls.  Malformed hunks are skipped
    and recorded in :attr:`ParsedDiff.parse_errors`; parsing never raises.
    """

    def parse(self, diff_text: str) -> list[FileDiff]:
        return self.parse_report(diff_text).file_diffs

    def parse_report(self, diff_text: str) -> ParsedDiff:
        result = ParsedDiff()
        if not diff_text or not diff_text.strip():
            return result

        lines = diff_text.split("\n")
        if lines and lines[-1] == "":
            lines.pop()

        segment: _Segment | None = None
        hunk: _HunkBuilder | None = None

        for line in lines:
            # Hunk body
            if hunk is not None:
                if line.startswith(_NO_NEWLINE_MARKER):
                    hunk.mark_no_newline()
                    continue
                if hunk.remaining():
                    kind = _LINE_KINDS.get(line[:1]) if line else LineKind.CONTEXT
                    if kind is not None and hunk.accepts(kind):
                        hunk.add(kind, line[1:])
                        continue
                self._close_hunk(hunk, segment, result)
                hunk = None

            if line.startswith("diff --git "):
                self._close_segment(segment, result)
                segment = _Segment(header_path=_parse_git_header(line))
                continue

            if line.startswith("@@"):
                if segment is None:
                    result.parse_errors.append(
                        f"Hunk header outside of a file section: {line!r}")
                    logger.warning("[Diff] Hunk header without file: %r", line)
                    continue
                hunk = self._open_hunk(line, segment, result)
                continue

            if segment is not None and segment.skipping:
                continue

            if line.startswith("--- "):
                if segment is None or segment.started_hunks or segment.saw_old_header:
                    self._close_segment(segment, result)
                    segment = _Segment()
                segment.saw_old_header = True
                segment.old_path = _strip_side_prefix(line[4:], "a/")
                if segment.old_path is None:
                    segment.is_new_file = True
                continue

            if segment is None or segment.started_hunks:
                continue

            if line.startswith("+++ "):
                segment.new_path = _strip_side_prefix(line[4:], "b/")
                if segment.new_path is None:
                    segment.is_delete = True
            elif line.startswith("new file mode"):
                segment.is_new_file = True
            elif line.startswith("deleted file mode"):
                segment.is_delete = True
            elif line.startswith("rename from "):
                segment.rename_from = unquote_path(line[len("rename from "):].rstrip("\r"))
            elif line.startswith("rename to "):
                segment.rename_to = unquote_path(line[len("rename to "):].rstrip("\r"))
            elif line.startswith("Binary files ") or line.startswith("GIT binary patch"):
                segment.is_binary = True

        if hunk is not None:
            self._close_hunk(hunk, segment, result)
        self._close_segment(segment, result)
        return result

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _open_hunk(
        line: str,
        segment: _Segment,
        result: ParsedDiff,
    ) -> _HunkBuilder | None:
        segment.started_hunks = True
        ordinal = segment.ordinals
        segment.ordinals += 1

        match = _HUNK_HEADER.match(line.rstrip("\r"))
        if not match:
            segment.skipping = True
            result.parse_errors.append(
                f"Unparsable hunk header in {segment.resolve_path()}: {line!r}")
            logger.warning(
                "[Diff] Skipping hunk with bad header %r in %s",
                line, segment.resolve_path(),
            )
            return None

        segment.skipping = False
        old_start, old_count, new_start, new_count, section = match.groups()
        return _HunkBuilder(
            ordinal=ordinal,
            old_start=int(old_start),
            old_count=int(old_count) if old_count is not None else 1,
            new_start=int(new_start),
            new_count=int(new_count) if new_count is not None else 1,
            section=section.strip(),
        )

    @staticmethod
    def _close_hunk(
        hunk: _HunkBuilder,
        segment: _Segment | None,
        result: ParsedDiff,
    ) -> None:
        path = segment.resolve_path() if segment else None
        if hunk.remaining():
            result.parse_errors.append(
                f"Truncated hunk #{hunk.ordinal} in {path}: expected "
                f"{hunk.old_count}/{hunk.new_count} lines, got "
                f"{hunk.old_seen}/{hunk.new_seen}")
            logger.warning("[Diff] Dropping truncated hunk #%d in %s",
                           hunk.ordinal, path)
            return

        if segment is None:
            return

        if segment.hunks:
            prev = segment.hunks[-1]
            if prev.old_start + prev.old_count > hunk.old_start:
                result.parse_errors.append(
                    f"Hunk #{hunk.ordinal} in {path} overlaps or precedes "
                    f"the previous hunk")
                logger.warning("[Diff] Dropping out-of-order hunk #%d in %s",
                               hunk.ordinal, path)
                return

        segment.hunks.append(hunk)

    @staticmethod
    def _close_segment(segment: _Segment | None, result: ParsedDiff) -> None:
        if segment is None:
            return

        path = segment.resolve_path()
        if not path:
            if segment.hunks:
                result.parse_errors.append("File section without a path")
                logger.warning("[Diff] Dropping %d hunks with no file path",
                               len(segment.hunks))
            return

        old_path = segment.resolve_old_path()
        is_rename = segment.rename_from is not None or (
            old_path is not None and old_path != path
            and not segment.is_new_file and not segment.is_delete
        )
        if not (segment.hunks or segment.is_new_file or segment.is_delete
                or segment.is_binary or is_rename):
            return

        result.file_diffs.append(FileDiff(
            file_path=path,
            hunks=[h.build(path) for h in segment.hunks],
            is_new_file=segment.is_new_file,
            is_delete=segment.is_delete,
            old_path=old_path if is_rename else None,
            is_binary=segment.is_binary,
        ))
