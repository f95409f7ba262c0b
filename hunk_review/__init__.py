"""
hunk_review: review git changes hunk by hunk.

Public API for library usage::

    from hunk_review import GitRepository, ChangeSetAggregator

    with GitRepository(".") as repo:
        changes = ChangeSetAggregator(repo)
        changes.refresh()
        review = changes.open_review("src/app.py")
        changes.accept_all()
        changes.apply_review()
"""

from .errors import (
    ReviewError, NotARepositoryError, CommandFailedError,
    OperationInProgressError, ApplyConflictError, PendingHunksError,
    UnknownHunkError, CommitMessageError, NothingToSummarizeError,
)
from .git_utils import GitRepository, CommandResult
from .review import (
    StatusParser, FileChange, ChangeStatus,
    DiffParser, FileDiff, Hunk, HunkStatus,
    HunkStateStore, PatchApplier, ApplyResult,
    ChangeSetAggregator,
)

__all__ = [
    "ReviewError", "NotARepositoryError", "CommandFailedError",
    "OperationInProgressError", "ApplyConflictError", "PendingHunksError",
    "UnknownHunkError", "CommitMessageError", "NothingToSummarizeError",
    "GitRepository", "CommandResult",
    "StatusParser", "FileChange", "ChangeStatus",
    "DiffParser", "FileDiff", "Hunk", "HunkStatus",
    "HunkStateStore", "PatchApplier", "ApplyResult",
    "ChangeSetAggregator",
]
