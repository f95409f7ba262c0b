"""
Error taxonomy for the change-review engine.

Parse problems are never raised: the parsers record them and skip the
offending line or hunk.  Everything below is surfaced to the caller.
"""

from __future__ import annotations


class ReviewError(Exception):
    """Base class for all change-review errors."""


class NotARepositoryError(ReviewError):
    """Raised when the project root is not inside a git work tree."""

    def __init__(self, root: str):
        super().__init__(f"Not a git repository: {root}")
        self.root = root


class CommandFailedError(ReviewError):
    """Raised when a git command exits with a non-zero status.

    ``message`` is the raw stderr (or stdout) of the command, not
    reinterpreted.
    """

    def __init__(self, operation: str, message: str, exit_code: int,
                 path: str | None = None):
        super().__init__(message)
        self.operation = operation
        self.message = message
        self.exit_code = exit_code
        self.path = path


class OperationInProgressError(ReviewError):
    """Raised when a push/pull is running and another one, or a commit,
    is attempted on the same repository."""

    def __init__(self, requested: str, in_progress: str):
        super().__init__(
            f"Cannot {requested}: {in_progress} operation in progress")
        self.requested = requested
        self.in_progress = in_progress


class ApplyConflictError(ReviewError):
    """Raised when a hunk's recorded range does not match the content it is
    applied to.  Nothing is written when this is raised."""

    def __init__(self, path: str, hunk_id: str | None, reason: str):
        where = f" (hunk {hunk_id})" if hunk_id else ""
        super().__init__(f"Conflict applying {path}{where}: {reason}")
        self.path = path
        self.hunk_id = hunk_id
        self.reason = reason


class PendingHunksError(ReviewError):
    """Raised when applying a review that still has undecided hunks."""

    def __init__(self, path: str, pending_ids: list[str]):
        super().__init__(
            f"{len(pending_ids)} hunk(s) in {path} are still pending review")
        self.path = path
        self.pending_ids = pending_ids


class UnknownHunkError(ReviewError, KeyError):
    """Raised when a hunk id does not belong to the diff under review."""

    def __init__(self, hunk_id: str, file_path: str):
        super().__init__(f"Unknown hunk {hunk_id!r} for {file_path}")
        self.hunk_id = hunk_id
        self.file_path = file_path

    def __str__(self) -> str:
        return self.args[0]


class CommitMessageError(ReviewError):
    """Raised when the commit-message service fails."""


class NothingToSummarizeError(CommitMessageError):
    """Raised when there is no diff text to generate a message from."""
