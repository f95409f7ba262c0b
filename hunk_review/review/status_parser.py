"""
Status parser: turns ``git status --porcelain`` output into per-file
change records.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)

# Column value meaning "no change in this column"
_UNCHANGED = " "
_UNTRACKED = "?"
_IGNORED = "!"

_RENAME_ARROW = " -> "

# C-style escapes git uses inside quoted paths
_ESCAPES = {
    "a": "\a", "b": "\b", "t": "\t", "n": "\n", "v": "\v",
    "f": "\f", "r": "\r", '"': '"', "\\": "\\",
}


class ChangeStatus(str, Enum):
    MODIFIED = "modified"
    ADDED = "added"
    DELETED = "deleted"
    RENAMED = "renamed"
    UNTRACKED = "untracked"
    CONFLICTED = "conflicted"

    @classmethod
    def from_code(cls, code: str) -> "ChangeStatus":
        """Map a porcelain status letter.  Unknown letters fall back to
        ``MODIFIED`` so one odd line never blocks the rest of the report."""
        return _CODE_TO_STATUS.get(code, cls.MODIFIED)

    @property
    def label(self) -> str:
        """Single-letter label shown next to the path."""
        return _STATUS_LABELS[self]


_CODE_TO_STATUS = {
    "A": ChangeStatus.ADDED,
    "D": ChangeStatus.DELETED,
    "R": ChangeStatus.RENAMED,
    "U": ChangeStatus.CONFLICTED,
}

_STATUS_LABELS = {
    ChangeStatus.MODIFIED: "M",
    ChangeStatus.ADDED: "A",
    ChangeStatus.DELETED: "D",
    ChangeStatus.RENAMED: "R",
    ChangeStatus.UNTRACKED: "U",
    ChangeStatus.CONFLICTED: "C",
}


@dataclass(frozen=True)
class FileChange:
    """One row of the status report (a path may appear staged and unstaged)."""
    path: str
    status: ChangeStatus
    staged: bool
    orig_path: str | None = None   # rename source, when reported

    @property
    def key(self) -> tuple[str, bool]:
        return (self.path, self.staged)


@dataclass
class ParsedStatus:
    """Parsed status report plus the lines that had to be skipped."""
    changes: list[FileChange] = field(default_factory=list)
    parse_errors: list[str] = field(default_factory=list)


def unquote_path(path: str) -> str:
    """Undo git's quoting of paths with special characters.

    Paths containing spaces, quotes, control or non-ASCII characters are
    written as ``"..."`` with C-style escapes and octal-encoded UTF-8 bytes.
    """
    if len(path) < 2 or not (path.startswith('"') and path.endswith('"')):
        return path

    body = path[1:-1]
    out = bytearray()
    i = 0
    while i < len(body):
        ch = body[i]
        if ch != "\\" or i + 1 >= len(body):
            out.extend(ch.encode("utf-8"))
            i += 1
            continue
        nxt = body[i + 1]
        if nxt in "01234567":
            digits = body[i + 1:i + 4]
            octal = ""
            for d in digits:
                if d not in "01234567":
                    break
                octal += d
            out.append(int(octal, 8) & 0xFF)
            i += 1 + len(octal)
        elif nxt in _ESCAPES:
            out.extend(_ESCAPES[nxt].encode("utf-8"))
            i += 2
        else:
            out.extend(nxt.encode("utf-8"))
            i += 2
    return out.decode("utf-8", errors="replace")


def _split_rename(raw_path: str) -> tuple[str, str | None]:
    """Split ``old -> new`` into ``(new, old)``; other paths pass through."""
    if raw_path.startswith('"'):
        # "old" -> "new" with quoted halves
        close = _closing_quote(raw_path)
        if close != -1 and raw_path[close + 1:].startswith(_RENAME_ARROW):
            old = raw_path[:close + 1]
            new = raw_path[close + 1 + len(_RENAME_ARROW):]
            return unquote_path(new), unquote_path(old)
        return unquote_path(raw_path), None

    if _RENAME_ARROW in raw_path:
        old, new = raw_path.split(_RENAME_ARROW, 1)
        return unquote_path(new), unquote_path(old)
    return unquote_path(raw_path), None


def _closing_quote(text: str) -> int:
    i = 1
    while i < len(text):
        if text[i] == "\\":
            i += 2
            continue
        if text[i] == '"':
            return i
        i += 1
    return -1


class StatusParser:
    """Parse porcelain v1 status output.  Holds no state between calls."""

    def parse(self, status_text: str) -> list[FileChange]:
        """Return the ordered list of file changes in *status_text*."""
        return self.parse_report(status_text).changes

    def parse_report(self, status_text: str) -> ParsedStatus:
        """Like :meth:`parse`, but also returns the skipped lines."""
        result = ParsedStatus()
        if not status_text:
            return result

        for line in status_text.split("\n"):
            line = line.rstrip("\r")
            if not line.strip():
                continue
            if len(line) < 4:
                result.parse_errors.append(f"Malformed status line: {line!r}")
                logger.warning("[Status] Skipping malformed line %r", line)
                continue
            self._parse_line(line, result)

        return result

    def _parse_line(self, line: str, result: ParsedStatus) -> None:
        x, y = line[0], line[1]
        if x == _IGNORED and y == _IGNORED:
            return

        path, orig_path = _split_rename(line[3:].strip())
        if not path:
            result.parse_errors.append(f"Missing path in status line: {line!r}")
            logger.warning("[Status] No path in line %r", line)
            return

        changes = result.changes

        if x == _UNTRACKED and y == _UNTRACKED:
            changes.append(FileChange(path, ChangeStatus.UNTRACKED, staged=False))
            return

        if x not in (_UNCHANGED, _UNTRACKED):
            changes.append(FileChange(
                path, ChangeStatus.from_code(x), staged=True,
                orig_path=orig_path,
            ))

        if y not in (_UNCHANGED, _UNTRACKED):
            # Same code in both columns: the staged row already covers it
            already_staged = any(c.path == path and c.staged for c in changes)
            if not already_staged or y != x:
                changes.append(FileChange(
                    path, ChangeStatus.from_code(y), staged=False,
                ))
