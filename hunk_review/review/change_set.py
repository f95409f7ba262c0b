"""
Change set: the working model of one repository (file list, fetched diffs,
the diff under review) and the operations that change it.
"""

from __future__ import annotations

import functools
import logging
import os
import threading
from concurrent.futures import Future
from typing import TYPE_CHECKING, Callable, Mapping

from ..errors import ApplyConflictError, ReviewError
from ..git_utils import BranchInfo, GitRepository, decode_output
from .diff_parser import DiffLine, DiffParser, FileDiff, Hunk, LineKind
from .hunk_state import HunkStateStore
from .patch_applier import ApplyResult, PatchApplier, safe_write, split_content
from .status_parser import ChangeStatus, FileChange, StatusParser

if TYPE_CHECKING:
    from ..commit_message import CommitMessageGenerator

logger = logging.getLogger(__name__)

DiffKey = tuple[str, bool]


class WorkingTreeFiles:
    """Reads and writes files relative to the repository work tree.

    Content is read and written without newline translation, and bytes
    that are not UTF-8 pass through as surrogates.
    """

    def __init__(self, root: str) -> None:
        self.root = root

    def _full(self, path: str) -> str:
        full = os.path.join(self.root, path)
        if path.endswith("/") or os.path.isdir(full):
            raise ApplyConflictError(path, None, "path is a directory")
        return full

    def read_text(self, path: str) -> str | None:
        full = self._full(path)
        if not os.path.isfile(full):
            return None
        with open(full, "rb") as f:
            return decode_output(f.read())

    def write_text(self, path: str, text: str | None) -> None:
        """Write *text*, or delete the file when *text* is None."""
        full = self._full(path)
        if text is None:
            if os.path.exists(full):
                os.remove(full)
            return
        safe_write(full, text)


def _untracked_diff(path: str, text: str | None) -> FileDiff:
    """Synthesize a new-file diff for a path git does not track yet."""
    lines, ends_with_newline = split_content(text)
    if not lines:
        return FileDiff(path, is_new_file=True)
    count = len(lines)
    hunk = Hunk(
        id=f"{path}#0@-0,0+1,{count}",
        old_start=0,
        old_line_count=0,
        new_start=1,
        new_line_count=count,
        lines=[DiffLine(LineKind.ADDED, line) for line in lines],
        new_missing_newline=not ends_with_newline,
    )
    return FileDiff(path, [hunk], is_new_file=True)


class ChangeSetAggregator:
    """Owns the file list, the ``(path, staged) -> FileDiff`` cache and the
    current review for one repository.

    Diffs are fetched lazily on the repository's worker pool.  The cache is
    only invalidated here: on refresh (for entries whose status changed),
    after an apply, or through :meth:`invalidate`.
    """

    def __init__(
        self,
        repository: GitRepository,
        files: WorkingTreeFiles | None = None,
        status_parser: StatusParser | None = None,
        diff_parser: DiffParser | None = None,
        applier: PatchApplier | None = None,
    ) -> None:
        self._repo = repository
        # follows the repository root once it resolves to the work tree top
        self._owns_files = files is None
        self._files = files or WorkingTreeFiles(repository.root)
        self._status_parser = status_parser or StatusParser()
        self._diff_parser = diff_parser or DiffParser()
        self._applier = applier or PatchApplier()

        self._lock = threading.RLock()
        self._changes: tuple[FileChange, ...] = ()
        self._diffs: dict[DiffKey, Future] = {}
        self._review: HunkStateStore | None = None
        self._review_key: DiffKey | None = None
        self.parse_errors: list[str] = []

    # ── File list ──

    @property
    def repository(self) -> GitRepository:
        return self._repo

    @property
    def changes(self) -> tuple[FileChange, ...]:
        return self._changes

    @property
    def staged_changes(self) -> list[FileChange]:
        return [c for c in self._changes if c.staged]

    @property
    def unstaged_changes(self) -> list[FileChange]:
        return [c for c in self._changes if not c.staged]

    @property
    def has_staged_changes(self) -> bool:
        return any(c.staged for c in self._changes)

    def find(self, path: str, staged: bool) -> FileChange | None:
        for change in self._changes:
            if change.path == path and change.staged == staged:
                return change
        return None

    def refresh(self) -> tuple[FileChange, ...]:
        """Re-read the status and swap in the new file list.

        Cached diffs survive for every ``(path, staged)`` entry whose
        status is unchanged.
        """
        self._repo.ensure_repository()
        if self._owns_files:
            self._files.root = self._repo.root
        report = self._status_parser.parse_report(self._repo.status_text())
        new_changes = tuple(report.changes)

        with self._lock:
            old_index = {c.key: c for c in self._changes}
            new_index = {c.key: c for c in new_changes}

            stale = [key for key in self._diffs
                     if old_index.get(key) != new_index.get(key)]
            for key in stale:
                del self._diffs[key]

            if (self._review_key is not None
                    and old_index.get(self._review_key) != new_index.get(self._review_key)):
                logger.info("[ChangeSet] %s changed, closing its review",
                            self._review_key[0])
                self._review = None
                self._review_key = None

            self._changes = new_changes
            self.parse_errors = report.parse_errors

        logger.debug("[ChangeSet] Refreshed: %d changes, %d cached diffs dropped",
                     len(new_changes), len(stale))
        return new_changes

    def refresh_async(self) -> Future:
        return self._repo.submit(self.refresh)

    # ── Diffs ──

    def request_diff(self, path: str, staged: bool = False) -> Future:
        """Return a future for the diff of *path*.

        Repeated calls share one fetch.  A failed fetch is evicted so the
        next call retries it.
        """
        key = (path, staged)
        with self._lock:
            future = self._diffs.get(key)
            if future is not None:
                return future
            future = self._repo.submit(self._fetch_diff, path, staged)
            self._diffs[key] = future
        future.add_done_callback(functools.partial(self._evict_failed, key))
        return future

    def get_diff(self, path: str, staged: bool = False,
                 timeout: float | None = None) -> FileDiff:
        return self.request_diff(path, staged).result(timeout)

    def is_cached(self, path: str, staged: bool = False) -> bool:
        with self._lock:
            return (path, staged) in self._diffs

    def invalidate(self, path: str | None = None, staged: bool | None = None) -> int:
        """Drop cached diffs matching *path*/*staged* (all when both None)."""
        with self._lock:
            doomed = [
                key for key in self._diffs
                if (path is None or key[0] == path)
                and (staged is None or key[1] == staged)
            ]
            for key in doomed:
                del self._diffs[key]
        return len(doomed)

    def _evict_failed(self, key: DiffKey, future: Future) -> None:
        if not future.cancelled() and future.exception() is None:
            return
        with self._lock:
            if self._diffs.get(key) is future:
                del self._diffs[key]

    def _fetch_diff(self, path: str, staged: bool) -> FileDiff:
        text = self._repo.diff_text(path, staged)
        report = self._diff_parser.parse_report(text)
        for error in report.parse_errors:
            logger.warning("[ChangeSet] %s: %s", path, error)

        file_diff = report.for_path(path)
        if file_diff is None and len(report.file_diffs) == 1:
            file_diff = report.file_diffs[0]
        if file_diff is not None:
            return file_diff

        change = self.find(path, staged)
        if change is not None and change.status is ChangeStatus.UNTRACKED:
            return _untracked_diff(path, self._files.read_text(path))
        return FileDiff(path)

    # ── Review ──

    @property
    def review(self) -> HunkStateStore | None:
        return self._review

    @property
    def review_key(self) -> DiffKey | None:
        return self._review_key

    def open_review(
        self,
        path: str,
        staged: bool = False,
        decisions: Mapping[str, str] | None = None,
    ) -> HunkStateStore:
        """Start reviewing the diff of *path*, replacing any open review."""
        file_diff = self.get_diff(path, staged)
        if decisions:
            store = HunkStateStore.from_decisions(file_diff, decisions)
        else:
            store = HunkStateStore(file_diff)
        with self._lock:
            self._review = store
            self._review_key = (path, staged)
        return store

    def close_review(self) -> None:
        with self._lock:
            self._review = None
            self._review_key = None

    def accept_hunk(self, hunk_id: str) -> HunkStateStore:
        return self._update_review(lambda s: s.accept_hunk(hunk_id))

    def reject_hunk(self, hunk_id: str) -> HunkStateStore:
        return self._update_review(lambda s: s.reject_hunk(hunk_id))

    def reset_hunk(self, hunk_id: str) -> HunkStateStore:
        return self._update_review(lambda s: s.reset_hunk(hunk_id))

    def accept_all(self, force: bool = False) -> HunkStateStore:
        return self._update_review(lambda s: s.accept_all_in_file(force))

    def reject_all(self, force: bool = False) -> HunkStateStore:
        return self._update_review(lambda s: s.reject_all_in_file(force))

    def _update_review(
        self,
        update: Callable[[HunkStateStore], HunkStateStore],
    ) -> HunkStateStore:
        with self._lock:
            if self._review is None:
                raise ReviewError("No review is open")
            self._review = update(self._review)
            return self._review

    def apply_review(self, treat_pending_as_rejected: bool | None = None) -> ApplyResult:
        """Materialize the open review into the working tree.

        The original is the index version for a working-tree diff and the
        HEAD version for a staged diff.  Nothing is written on conflict.
        """
        with self._lock:
            store = self._review
            key = self._review_key
        if store is None or key is None:
            raise ReviewError("No review is open")

        path, staged = key
        file_diff = store.resolve()
        if staged:
            self._check_worktree_matches_index(path, file_diff)

        original_text = self._original_text(file_diff, staged)
        original, ends_with_newline = split_content(original_text)

        result = self._applier.apply(
            original, file_diff,
            treat_pending_as_rejected=treat_pending_as_rejected,
            original_ends_with_newline=ends_with_newline,
        )
        self._files.write_text(path, result.text)
        logger.info("[ChangeSet] Applied review of %s: %d accepted, %d kept%s",
                    path, result.hunks_applied, result.hunks_kept,
                    " (deleted)" if result.deleted else "")

        self.invalidate(path)
        self.close_review()
        return result

    def _check_worktree_matches_index(self, path: str, file_diff: FileDiff) -> None:
        """A staged review is written to the working tree, so the working
        tree must not carry changes of its own."""
        unstaged = self.find(path, staged=False) is not None
        if not unstaged and not file_diff.is_delete:
            worktree = self._files.read_text(path)
            index = self._repo.show_file(path)
            unstaged = worktree != index
        if unstaged:
            raise ApplyConflictError(
                path, None,
                "file also has unstaged changes; review the working tree diff",
            )

    def _original_text(self, file_diff: FileDiff, staged: bool) -> str | None:
        if file_diff.is_new_file:
            return None
        source = file_diff.old_path or file_diff.file_path
        return self._repo.show_file(source, "HEAD" if staged else "")

    # ── Repository operations ──

    def stage(self, path: str) -> tuple[FileChange, ...]:
        self._repo.stage(path)
        return self.refresh()

    def unstage(self, path: str) -> tuple[FileChange, ...]:
        self._repo.unstage(path)
        return self.refresh()

    def stage_all(self) -> tuple[FileChange, ...]:
        self._repo.stage_all()
        return self.refresh()

    def unstage_all(self) -> tuple[FileChange, ...]:
        self._repo.unstage_all()
        return self.refresh()

    def discard(self, path: str) -> tuple[FileChange, ...]:
        self._repo.discard(path)
        self.invalidate(path)
        return self.refresh()

    def commit(self, message: str) -> str:
        output = self._repo.commit(message)
        self.refresh()
        return output

    def push(self) -> str:
        output = self._repo.push()
        self.refresh()
        return output

    def pull(self) -> str:
        output = self._repo.pull()
        self.invalidate()
        self.refresh()
        return output

    def initialize(self) -> tuple[FileChange, ...]:
        self._repo.init()
        return self.refresh()

    def branch_info(self) -> BranchInfo:
        return self._repo.branch_info()

    # ── Commit message ──

    def relevant_diff_text(self) -> str:
        """The staged diff when anything is staged, else the working diff."""
        return self._repo.diff_text(staged=self.has_staged_changes)

    def generate_commit_message(self, generator: "CommitMessageGenerator") -> str:
        return generator.generate(self.relevant_diff_text())
