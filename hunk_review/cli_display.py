import logging
import os
import threading
from datetime import datetime

from .review.diff_parser import FileDiff, HunkStatus, LineKind
from .review.status_parser import FileChange


class TokenTracker:
    """Tracks token usage across commit-message requests."""

    def __init__(self):
        self.total_prompt_tokens = 0
        self.total_completion_tokens = 0
        self.call_count = 0
        self._lock = threading.Lock()

    def record(self, prompt_tokens: int, completion_tokens: int):
        with self._lock:
            self.total_prompt_tokens += prompt_tokens
            self.total_completion_tokens += completion_tokens
            self.call_count += 1

    @property
    def total_tokens(self):
        return self.total_prompt_tokens + self.total_completion_tokens


token_tracker = TokenTracker()

# Package logger; handlers are attached by setup_logger()
log = logging.getLogger("hunk_review")


def setup_logger(log_dir: str = ".hunkreview/logs") -> logging.Logger:
    """Attach a timestamped file handler to the package logger."""
    os.makedirs(log_dir, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = os.path.join(log_dir, f"hunkreview_{timestamp}.log")

    log.setLevel(logging.DEBUG)

    # File handler captures everything
    fh = logging.FileHandler(log_file, encoding="utf-8")
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(logging.Formatter(
        "%(asctime)s [%(levelname)s] %(message)s", datefmt="%H:%M:%S"
    ))
    log.addHandler(fh)

    return log


# ══════════════════════════════════════════════════════════════════
#  Terminal formatting
# ══════════════════════════════════════════════════════════════════

_BOLD = "\033[1m"
_CYAN = "\033[36m"
_GREEN = "\033[32m"
_RED = "\033[31m"
_YELLOW = "\033[33m"
_DIM = "\033[2m"
_RESET = "\033[0m"

_STATUS_COLORS = {
    HunkStatus.PENDING: _YELLOW,
    HunkStatus.ACCEPTED: _GREEN,
    HunkStatus.REJECTED: _RED,
}


def _paint(text: str, color: str, enabled: bool) -> str:
    return f"{color}{text}{_RESET}" if enabled else text


def _printable(text: str) -> str:
    """Drop a CRLF line's ``\\r`` and show undecodable bytes as U+FFFD."""
    return (text.rstrip("\r")
            .encode("utf-8", "surrogateescape").decode("utf-8", "replace"))


def format_file_diff(file_diff: FileDiff, color: bool = True) -> str:
    """Render a reviewed diff: one block per hunk with its id and status."""
    out = [_paint(f"{file_diff.file_path}  {file_diff.describe()}", _BOLD, color)]
    if file_diff.is_rename:
        out.append(f"  renamed from {file_diff.old_path}")

    for hunk in file_diff.hunks:
        status = _paint(f"[{hunk.status.value}]", _STATUS_COLORS[hunk.status], color)
        out.append("")
        out.append(f"{status} {hunk.id}")
        header = hunk.header + (f" {hunk.section}" if hunk.section else "")
        out.append(_paint(header, _CYAN, color))
        for line in hunk.lines:
            text = f"{line.kind.value}{_printable(line.text)}"
            if line.kind is LineKind.ADDED:
                out.append(_paint(text, _GREEN, color))
            elif line.kind is LineKind.REMOVED:
                out.append(_paint(text, _RED, color))
            else:
                out.append(_paint(text, _DIM, color))
    return "\n".join(out)


def format_changes(changes: list[FileChange], color: bool = True) -> str:
    """Staged and unstaged sections, one ``<label> <path>`` row per change."""
    staged = [c for c in changes if c.staged]
    unstaged = [c for c in changes if not c.staged]
    if not changes:
        return "No changes."

    out: list[str] = []
    for title, group, tint in (("Staged Changes", staged, _GREEN),
                               ("Changes", unstaged, _RED)):
        if not group:
            continue
        out.append(_paint(f"{title} ({len(group)})", _BOLD, color))
        for change in group:
            label = _paint(change.status.label, tint, color)
            suffix = f"  (from {change.orig_path})" if change.orig_path else ""
            out.append(f"  {label} {change.path}{suffix}")
    return "\n".join(out)
