"""
Patch applier: rebuilds file content from the original lines and the
review decisions on a file diff.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from typing import Mapping

from ..errors import ApplyConflictError, PendingHunksError
from ..git_utils import encode_content
from .diff_parser import FileDiff, Hunk, HunkStatus

logger = logging.getLogger(__name__)


@dataclass
class ApplyResult:
    """Result of materializing one reviewed file."""
    file_path: str
    lines: list[str] | None          # None: the file should not exist
    hunks_applied: int = 0
    hunks_kept: int = 0
    ends_with_newline: bool = True

    @property
    def deleted(self) -> bool:
        return self.lines is None

    @property
    def text(self) -> str | None:
        return join_content(self.lines, self.ends_with_newline)


def split_content(text: str | None) -> tuple[list[str] | None, bool]:
    """Split file text into lines and a trailing-newline flag.

    ``None`` (no file) stays ``None``.
    """
    if text is None:
        return None, True
    if text == "":
        return [], False
    ends_with_newline = text.endswith("\n")
    body = text[:-1] if ends_with_newline else text
    return body.split("\n"), ends_with_newline


def join_content(lines: list[str] | None, ends_with_newline: bool = True) -> str | None:
    """Inverse of :func:`split_content`."""
    if lines is None:
        return None
    if not lines:
        return ""
    return "\n".join(lines) + ("\n" if ends_with_newline else "")


class PatchApplier:
    """Apply accepted hunks to original content.

    Hunks are applied bottom-up (descending ``old_start``) so replacing one
    range never shifts the ranges still to be processed.

    Pending hunks block the apply unless the caller explicitly asks for
    them to be treated as rejected.
    """

    def __init__(self, verify_context: bool = True,
                 treat_pending_as_rejected: bool = False) -> None:
        self._verify_context = verify_context
        self._treat_pending_as_rejected = treat_pending_as_rejected

    def apply(
        self,
        original: list[str] | None,
        file_diff: FileDiff,
        decisions: Mapping[str, HunkStatus] | None = None,
        *,
        treat_pending_as_rejected: bool | None = None,
        original_ends_with_newline: bool = True,
    ) -> ApplyResult:
        """Compute the content that results from the review decisions.

        Parameters
        ----------
        original:
            Original file lines, or None when there is no prior content.
        file_diff:
            The diff under review.
        decisions:
            Optional ``hunk id -> status`` overrides; otherwise the statuses
            on the hunks are used.
        treat_pending_as_rejected:
            Overrides the applier's pending policy for this call.

        Raises
        ------
        PendingHunksError
            A hunk is still pending and pending hunks are not treated as
            rejected.
        ApplyConflictError
            A hunk does not fit the original content.  Nothing is produced.
        """
        diff = file_diff.with_statuses(decisions) if decisions else file_diff
        self._check_pending(diff, treat_pending_as_rejected)

        if original is None:
            return self._apply_new_file(diff)

        hunks = sorted(diff.hunks, key=lambda h: h.old_start)
        self._check_conflicts(diff.file_path, hunks, original)

        lines = list(original)
        ends_with_newline = original_ends_with_newline
        applied = 0
        kept = 0

        for hunk in reversed(hunks):
            if hunk.status is not HunkStatus.ACCEPTED:
                kept += 1
                continue
            start, end = hunk.old_range
            lines[start:end] = hunk.new_side_lines()
            applied += 1
            if end == len(original):
                ends_with_newline = not hunk.new_missing_newline

        if diff.is_delete and kept == 0:
            logger.debug("[Apply] All hunks accepted, %s is deleted", diff.file_path)
            return ApplyResult(diff.file_path, None, hunks_applied=applied)

        logger.debug("[Apply] %s: %d hunks applied, %d kept",
                     diff.file_path, applied, kept)
        return ApplyResult(
            file_path=diff.file_path,
            lines=lines,
            hunks_applied=applied,
            hunks_kept=kept,
            ends_with_newline=ends_with_newline,
        )

    def apply_text(
        self,
        original_text: str | None,
        file_diff: FileDiff,
        decisions: Mapping[str, HunkStatus] | None = None,
        *,
        treat_pending_as_rejected: bool | None = None,
    ) -> str | None:
        """Text-level wrapper around :meth:`apply`."""
        lines, ends_with_newline = split_content(original_text)
        result = self.apply(
            lines, file_diff, decisions,
            treat_pending_as_rejected=treat_pending_as_rejected,
            original_ends_with_newline=ends_with_newline,
        )
        return result.text

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _check_pending(self, diff: FileDiff, override: bool | None) -> None:
        as_rejected = (self._treat_pending_as_rejected
                       if override is None else override)
        if as_rejected:
            return
        pending = [h.id for h in diff.hunks if h.status is HunkStatus.PENDING]
        if pending:
            raise PendingHunksError(diff.file_path, pending)

    @staticmethod
    def _apply_new_file(diff: FileDiff) -> ApplyResult:
        if diff.hunks and not diff.is_new_file:
            raise ApplyConflictError(
                diff.file_path, None,
                "no original content for a file that is not new",
            )

        if not diff.hunks:
            # an empty new file: nothing to decide, it stays empty
            return ApplyResult(diff.file_path, [], ends_with_newline=False)

        accepted = [h for h in diff.hunks if h.status is HunkStatus.ACCEPTED]
        kept = len(diff.hunks) - len(accepted)
        if not accepted:
            return ApplyResult(diff.file_path, None, hunks_kept=kept)

        lines: list[str] = []
        for hunk in accepted:
            lines.extend(hunk.added_lines)
        return ApplyResult(
            file_path=diff.file_path,
            lines=lines,
            hunks_applied=len(accepted),
            hunks_kept=kept,
            ends_with_newline=not accepted[-1].new_missing_newline,
        )

    def _check_conflicts(
        self,
        path: str,
        hunks: list[Hunk],
        original: list[str],
    ) -> None:
        """Validate every hunk against *original* before anything changes."""
        prev: Hunk | None = None
        for hunk in hunks:
            if prev is not None and prev.old_end > hunk.old_start:
                raise ApplyConflictError(
                    path, hunk.id, f"overlaps hunk {prev.id}")
            prev = hunk

            start, end = hunk.old_range
            if start < 0 or end > len(original):
                logger.warning(
                    "[Apply] Hunk %s addresses lines %d-%d, %s has %d",
                    hunk.id, start + 1, end, path, len(original),
                )
                raise ApplyConflictError(
                    path, hunk.id,
                    f"lines {start + 1}-{end} are outside the "
                    f"{len(original)}-line file",
                )

            if not self._verify_context:
                continue

            expected = hunk.old_side_lines()
            if len(expected) != hunk.old_line_count:
                raise ApplyConflictError(
                    path, hunk.id, "hunk body does not match its header")
            if original[start:end] != expected:
                logger.warning(
                    "[Apply] Hunk %s no longer matches %s at line %d",
                    hunk.id, path, hunk.old_start,
                )
                raise ApplyConflictError(
                    path, hunk.id,
                    f"content at line {hunk.old_start} has changed",
                )


def safe_write(file_path: str, text: str) -> None:
    """Write *text* to *file_path* atomically via temp file + rename."""
    abs_path = os.path.abspath(file_path)
    directory = os.path.dirname(abs_path)
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".hunkreview_tmp_")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(encode_content(text))
        os.replace(tmp_path, abs_path)
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
