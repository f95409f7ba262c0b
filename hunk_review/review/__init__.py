"""Change review: status/diff parsing, hunk decisions and patch application."""

from .status_parser import StatusParser, ParsedStatus, FileChange, ChangeStatus, unquote_path
from .diff_parser import (
    DiffParser, ParsedDiff, FileDiff, Hunk, HunkStatus, DiffLine, LineKind,
)
from .hunk_state import HunkStateStore
from .patch_applier import PatchApplier, ApplyResult, split_content, join_content
from .change_set import ChangeSetAggregator, WorkingTreeFiles

__all__ = [
    "StatusParser", "ParsedStatus", "FileChange", "ChangeStatus", "unquote_path",
    "DiffParser", "ParsedDiff", "FileDiff", "Hunk", "HunkStatus", "DiffLine", "LineKind",
    "HunkStateStore",
    "PatchApplier", "ApplyResult", "split_content", "join_content",
    "ChangeSetAggregator", "WorkingTreeFiles",
]
