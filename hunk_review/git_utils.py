"""
Git integration: runs git commands against one repository root with
reads and writes serialized.

Status, diff and show calls share a read lock.  Staging, commit, push and
pull take the write lock.  While a push or pull is in flight, another push,
pull or commit fails fast with :class:`OperationInProgressError` instead of
queueing behind it.
"""

from __future__ import annotations

import functools
import logging
import os
import subprocess
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Iterator

from .errors import (
    CommandFailedError, NotARepositoryError, OperationInProgressError,
)

logger = logging.getLogger(__name__)

# Exit codes reported when git itself could not be run
_EXIT_NOT_RUN = 127
_EXIT_TIMEOUT = 124


@dataclass
class CommandResult:
    """Raw outcome of one git invocation."""
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def error_message(self, args: list[str]) -> str:
        """stderr first, then stdout, then a generic message."""
        return (self.stderr.strip() or self.stdout.strip()
                or f"git {' '.join(args)} failed with exit code {self.exit_code}")


CommandRunner = Callable[[list[str], str], CommandResult]


def decode_output(data: bytes | None) -> str:
    """Decode git output without translating newlines.

    Undecodable bytes become lone surrogates so file content survives a
    round trip through :func:`encode_content`.
    """
    return (data or b"").decode("utf-8", "surrogateescape")


def encode_content(text: str) -> bytes:
    """Inverse of :func:`decode_output`."""
    return text.encode("utf-8", "surrogateescape")


def run_git_command(
    args: list[str],
    cwd: str,
    git_executable: str = "git",
    timeout: float | None = None,
) -> CommandResult:
    """Run ``git <args>`` in *cwd* and capture its output."""
    try:
        proc = subprocess.run(
            [git_executable, *args],
            cwd=cwd,
            capture_output=True,
            check=False,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        return CommandResult(
            stderr=f"git {' '.join(args)} timed out after {timeout}s",
            exit_code=_EXIT_TIMEOUT,
        )
    except OSError as e:
        return CommandResult(stderr=str(e), exit_code=_EXIT_NOT_RUN)
    return CommandResult(
        decode_output(proc.stdout),
        (proc.stderr or b"").decode("utf-8", "replace"),
        proc.returncode,
    )


def normalize_directory_path(path: str) -> str:
    """Return a normalized absolute path for *path*."""
    return os.path.abspath(os.path.expanduser(path))


@dataclass
class BranchInfo:
    current: str
    branches: list[str] = field(default_factory=list)


class _ReadWriteLock:
    """Many readers or one writer.  Waiting writers hold off new readers."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class GitRepository:
    """Command runner for a single repository root."""

    def __init__(
        self,
        root: str,
        git_executable: str = "git",
        timeout: float | None = None,
        runner: CommandRunner | None = None,
        max_workers: int = 4,
    ) -> None:
        self.root = normalize_directory_path(root)
        self._runner: CommandRunner = runner or functools.partial(
            run_git_command, git_executable=git_executable, timeout=timeout,
        )
        self._lock = _ReadWriteLock()
        self._state_lock = threading.Lock()
        self._pending: str | None = None
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="hunkreview-git",
        )

    # ── Lifecycle ──

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "GitRepository":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def submit(self, fn: Callable, *args, **kwargs) -> Future:
        """Run *fn* on the repository's worker pool."""
        return self._executor.submit(fn, *args, **kwargs)

    @property
    def pending_operation(self) -> str | None:
        """Name of the guarded operation (push/pull/commit) in flight."""
        with self._state_lock:
            return self._pending

    # ── Repository checks ──

    def is_git_repo(self) -> bool:
        """Return ``True`` if the root is inside a git work tree."""
        if not os.path.isdir(self.root):
            return False
        with self._lock.read():
            result = self._runner(["rev-parse", "--is-inside-work-tree"], self.root)
        return result.ok and result.stdout.strip() == "true"

    def ensure_repository(self) -> None:
        """Raise unless the root is a work tree, then move the root to
        the top of that work tree so porcelain paths resolve against it."""
        if not self.is_git_repo():
            raise NotARepositoryError(self.root)
        with self._lock.read():
            result = self._runner(["rev-parse", "--show-toplevel"], self.root)
        toplevel = result.stdout.strip() if result.ok else ""
        if toplevel and normalize_directory_path(toplevel) != self.root:
            logger.info("[Git] %s is inside the work tree at %s",
                        self.root, toplevel)
            self.root = normalize_directory_path(toplevel)

    # ── Reads ──

    def status_text(self) -> str:
        return self._read(["status", "--porcelain", "--untracked-files=all"], "status")

    def diff_text(self, path: str | None = None, staged: bool = False) -> str:
        args = ["diff", "--no-color", "--no-ext-diff"]
        if staged:
            args.append("--cached")
        if path:
            args += ["--", path]
        return self._read(args, "diff", path)

    def show_file(self, path: str, revision: str = "") -> str:
        """Content of *path* at *revision* (``""`` means the index)."""
        return self._read(["show", f"{revision}:{path}"], "show", path)

    def branch_info(self) -> BranchInfo:
        current = self._read(["branch", "--show-current"], "branch").strip()
        listing = self._read(["branch", "--no-color"], "branch")
        branches = [
            line.lstrip("*").strip()
            for line in listing.splitlines()
            if line.strip()
        ]
        return BranchInfo(current or "HEAD (detached)", branches)

    def status_async(self) -> Future:
        return self.submit(self.status_text)

    def diff_async(self, path: str | None = None, staged: bool = False) -> Future:
        return self.submit(self.diff_text, path, staged)

    # ── Writes ──

    def init(self) -> str:
        return self._write(["init"], "init")

    def stage(self, path: str) -> str:
        return self._write(["add", "--", path], "add", path)

    def stage_all(self) -> str:
        return self._write(["add", "-A"], "add")

    def unstage(self, path: str) -> str:
        return self._write(["reset", "HEAD", "--", path], "reset", path)

    def unstage_all(self) -> str:
        return self._write(["reset", "HEAD"], "reset")

    def discard(self, path: str) -> str:
        return self._write(["checkout", "--", path], "checkout", path)

    def commit(self, message: str) -> str:
        message = message.strip()
        if not message:
            raise ValueError("Commit message is empty")
        self._claim("commit")
        try:
            return self._write(["commit", "-m", message], "commit")
        finally:
            self._release()

    def push(self) -> str:
        self._claim("push")
        try:
            return self._write(["push"], "push")
        finally:
            self._release()

    def pull(self) -> str:
        self._claim("pull")
        try:
            return self._write(["pull"], "pull")
        finally:
            self._release()

    def push_async(self) -> Future:
        """Start a push; the pending state is visible before this returns."""
        return self._guarded_async("push", ["push"])

    def pull_async(self) -> Future:
        return self._guarded_async("pull", ["pull"])

    def commit_async(self, message: str) -> Future:
        message = message.strip()
        if not message:
            raise ValueError("Commit message is empty")
        return self._guarded_async("commit", ["commit", "-m", message])

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _claim(self, operation: str) -> None:
        with self._state_lock:
            if self._pending is not None:
                logger.info("[Git] %s refused: %s in progress",
                            operation, self._pending)
                raise OperationInProgressError(operation, self._pending)
            self._pending = operation

    def _release(self) -> None:
        with self._state_lock:
            self._pending = None

    def _guarded_async(self, operation: str, args: list[str]) -> Future:
        self._claim(operation)

        def _run_and_release() -> str:
            try:
                return self._write(args, operation)
            finally:
                self._release()

        try:
            return self.submit(_run_and_release)
        except RuntimeError:
            # executor already shut down
            self._release()
            raise

    def _read(self, args: list[str], operation: str, path: str | None = None) -> str:
        with self._lock.read():
            return self._run(args, operation, path)

    def _write(self, args: list[str], operation: str, path: str | None = None) -> str:
        with self._lock.write():
            return self._run(args, operation, path)

    def _run(self, args: list[str], operation: str, path: str | None) -> str:
        logger.debug("[Git] git %s (in %s)", " ".join(args), self.root)
        result = self._runner(args, self.root)
        if not result.ok:
            message = result.error_message(args)
            logger.warning("[Git] %s failed (%d): %s",
                           operation, result.exit_code, message)
            raise CommandFailedError(operation, message, result.exit_code, path)
        return result.stdout
