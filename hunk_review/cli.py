"""
CLI entry point: argument parsing and command dispatch.
"""

from __future__ import annotations

import argparse
import sys

from .cli_display import (
    format_changes, format_file_diff, setup_logger, log, token_tracker,
)
from .commit_message import CommitDraft, create_generator
from .config import Config
from .errors import NotARepositoryError, ReviewError
from .git_utils import GitRepository
from .review import ChangeSetAggregator, HunkStateStore, PatchApplier
from .review_state import (
    clear_review_state, decisions_for, save_review_state,
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hunkreview",
        description="Review git changes hunk by hunk")
    parser.add_argument("--repo", default=".",
                        help="Repository root (default: current directory)")
    parser.add_argument("--config", default=None,
                        help="Path to .hunkreview.yaml config file")
    parser.add_argument("--no-color", action="store_true",
                        help="Disable ANSI colors")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="Show staged and unstaged changes")

    p = sub.add_parser("diff", help="Show the hunks of a file with their ids")
    p.add_argument("path")
    p.add_argument("--staged", action="store_true")

    p = sub.add_parser("review", help="Accept, reject or reset hunks")
    p.add_argument("path")
    p.add_argument("--staged", action="store_true")
    p.add_argument("--accept", action="append", default=[], metavar="HUNK",
                   help="Hunk id or 1-based hunk number (repeatable)")
    p.add_argument("--reject", action="append", default=[], metavar="HUNK")
    p.add_argument("--reset", action="append", default=[], metavar="HUNK")
    p.add_argument("--accept-all", action="store_true",
                   help="Accept every pending hunk")
    p.add_argument("--reject-all", action="store_true",
                   help="Reject every pending hunk")
    p.add_argument("--force", action="store_true",
                   help="With --accept-all/--reject-all: overwrite decided hunks too")

    p = sub.add_parser("apply", help="Write the reviewed content of a file")
    p.add_argument("path")
    p.add_argument("--staged", action="store_true")
    p.add_argument("--pending-as-rejected", action="store_true",
                   help="Keep the original lines of undecided hunks "
                        "instead of refusing to apply")

    for name, helptext in (("stage", "Stage a path"),
                           ("unstage", "Unstage a path")):
        p = sub.add_parser(name, help=helptext)
        p.add_argument("path", nargs="?")
        p.add_argument("--all", action="store_true")

    p = sub.add_parser("discard", help="Discard working tree changes to a path")
    p.add_argument("path")

    p = sub.add_parser("commit", help="Commit staged changes")
    msg = p.add_mutually_exclusive_group(required=True)
    msg.add_argument("-m", "--message")
    msg.add_argument("--generate", action="store_true",
                     help="Generate the message from the diff")

    sub.add_parser("suggest", help="Generate a commit message from the diff")
    sub.add_parser("push", help="Push the current branch")
    sub.add_parser("pull", help="Pull the current branch")
    sub.add_parser("init", help="Initialize a git repository")
    return parser


def _resolve_hunk(store: HunkStateStore, ref: str) -> str:
    """Accept either a full hunk id or its 1-based position."""
    ids = store.file_diff.hunk_ids
    if ref.isdigit() and 1 <= int(ref) <= len(ids):
        return ids[int(ref) - 1]
    return ref


def _open(changes: ChangeSetAggregator, cfg: Config, path: str,
          staged: bool) -> HunkStateStore:
    changes.refresh()
    saved = decisions_for(cfg.REVIEW_STATE_FILE, path, staged)
    return changes.open_review(path, staged, decisions=saved)


# ── Command handlers ──

def _cmd_status(args, changes: ChangeSetAggregator, cfg: Config) -> int:
    changes.refresh()
    branch = changes.branch_info()
    print(f"On branch {branch.current}")
    print(format_changes(list(changes.changes), color=not args.no_color))
    return 0


def _cmd_diff(args, changes: ChangeSetAggregator, cfg: Config) -> int:
    store = _open(changes, cfg, args.path, args.staged)
    print(format_file_diff(store.resolve(), color=not args.no_color))
    return 0


def _cmd_review(args, changes: ChangeSetAggregator, cfg: Config) -> int:
    store = _open(changes, cfg, args.path, args.staged)
    for ref in args.accept:
        store = changes.accept_hunk(_resolve_hunk(store, ref))
    for ref in args.reject:
        store = changes.reject_hunk(_resolve_hunk(store, ref))
    for ref in args.reset:
        store = changes.reset_hunk(_resolve_hunk(store, ref))
    if args.accept_all:
        store = changes.accept_all(force=args.force)
    if args.reject_all:
        store = changes.reject_all(force=args.force)

    save_review_state(cfg.REVIEW_STATE_FILE, store, args.staged)
    print(format_file_diff(store.resolve(), color=not args.no_color))
    print(f"\n{store.pending_count} pending")
    return 0


def _cmd_apply(args, changes: ChangeSetAggregator, cfg: Config) -> int:
    _open(changes, cfg, args.path, args.staged)
    result = changes.apply_review(
        treat_pending_as_rejected=True if args.pending_as_rejected else None)
    clear_review_state(cfg.REVIEW_STATE_FILE)
    if result.deleted:
        print(f"{result.file_path}: deleted")
    else:
        print(f"{result.file_path}: {result.hunks_applied} hunk(s) applied, "
              f"{result.hunks_kept} kept")
    return 0


def _cmd_stage(args, changes: ChangeSetAggregator, cfg: Config) -> int:
    if args.all:
        changes.stage_all()
    elif args.path:
        changes.stage(args.path)
    else:
        print("Error: give a path or --all", file=sys.stderr)
        return 2
    print(format_changes(list(changes.changes), color=not args.no_color))
    return 0


def _cmd_unstage(args, changes: ChangeSetAggregator, cfg: Config) -> int:
    if args.all:
        changes.unstage_all()
    elif args.path:
        changes.unstage(args.path)
    else:
        print("Error: give a path or --all", file=sys.stderr)
        return 2
    print(format_changes(list(changes.changes), color=not args.no_color))
    return 0


def _cmd_discard(args, changes: ChangeSetAggregator, cfg: Config) -> int:
    changes.discard(args.path)
    print(format_changes(list(changes.changes), color=not args.no_color))
    return 0


def _generate_message(changes: ChangeSetAggregator, cfg: Config) -> CommitDraft:
    draft = CommitDraft()
    draft.fill_from(
        lambda: changes.generate_commit_message(create_generator(cfg)))
    if token_tracker.call_count:
        log.info(f"[CLI] Commit message tokens: {token_tracker.total_tokens} "
                 f"over {token_tracker.call_count} call(s)")
    return draft


def _cmd_commit(args, changes: ChangeSetAggregator, cfg: Config) -> int:
    changes.refresh()
    message = args.message
    if args.generate:
        draft = _generate_message(changes, cfg)
        if draft.error:
            print(f"Error: {draft.error}", file=sys.stderr)
            return 1
        message = draft.message
        print(message + "\n")
    print(changes.commit(message).strip())
    return 0


def _cmd_suggest(args, changes: ChangeSetAggregator, cfg: Config) -> int:
    changes.refresh()
    draft = _generate_message(changes, cfg)
    if draft.error:
        print(f"Error: {draft.error}", file=sys.stderr)
        return 1
    print(draft.message)
    return 0


def _cmd_push(args, changes: ChangeSetAggregator, cfg: Config) -> int:
    changes.refresh()
    print(changes.push().strip() or "Pushed successfully")
    return 0


def _cmd_pull(args, changes: ChangeSetAggregator, cfg: Config) -> int:
    changes.refresh()
    print(changes.pull().strip())
    return 0


def _cmd_init(args, changes: ChangeSetAggregator, cfg: Config) -> int:
    changes.initialize()
    print(f"Initialized repository in {changes.repository.root}")
    return 0


_COMMANDS = {
    "status": _cmd_status,
    "diff": _cmd_diff,
    "review": _cmd_review,
    "apply": _cmd_apply,
    "stage": _cmd_stage,
    "unstage": _cmd_unstage,
    "discard": _cmd_discard,
    "commit": _cmd_commit,
    "suggest": _cmd_suggest,
    "push": _cmd_push,
    "pull": _cmd_pull,
    "init": _cmd_init,
}


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    # ── 0. Load config ──
    cfg = Config.load(args.config)
    setup_logger(cfg.LOG_DIR)
    log.info(f"[CLI] hunkreview {args.command} in {args.repo}")

    repo = GitRepository(
        args.repo,
        git_executable=cfg.GIT_EXECUTABLE,
        timeout=cfg.COMMAND_TIMEOUT,
        max_workers=cfg.MAX_WORKERS,
    )
    applier = PatchApplier(
        verify_context=cfg.VERIFY_CONTEXT,
        treat_pending_as_rejected=cfg.treat_pending_as_rejected,
    )
    changes = ChangeSetAggregator(repo, applier=applier)

    try:
        return _COMMANDS[args.command](args, changes, cfg)
    except NotARepositoryError as e:
        print(f"Error: {e}. Run `hunkreview init` to create one.", file=sys.stderr)
        return 2
    except ReviewError as e:
        log.error(f"[CLI] {args.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    finally:
        repo.close()


if __name__ == "__main__":
    sys.exit(main())
