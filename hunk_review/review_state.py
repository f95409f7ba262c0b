"""
Review state: saves and restores hunk decisions so a review started in
one process can be continued in another.
"""

from __future__ import annotations

import json
import os

from .review.hunk_state import HunkStateStore


def save_review_state(filepath: str, store: HunkStateStore, staged: bool) -> None:
    """Persist the decisions of *store* to *filepath* as JSON."""
    state = {
        "file_path": store.file_path,
        "staged": staged,
        "decisions": {hid: status.value for hid, status in store.decisions.items()},
    }
    directory = os.path.dirname(filepath)
    if directory:
        os.makedirs(directory, exist_ok=True)
    tmp = filepath + ".tmp"
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(state, f, indent=2)
    os.replace(tmp, filepath)


def load_review_state(filepath: str) -> dict | None:
    """Load review state from *filepath*.

    Returns the state dict, or ``None`` if the file is missing or invalid.
    """
    if not os.path.isfile(filepath):
        return None
    try:
        with open(filepath, "r", encoding="utf-8") as f:
            state = json.load(f)
        required = {"file_path", "staged", "decisions"}
        if not isinstance(state, dict) or not required.issubset(state.keys()):
            return None
        if not isinstance(state["decisions"], dict):
            return None
        return state
    except (json.JSONDecodeError, OSError, ValueError):
        return None


def decisions_for(filepath: str, path: str, staged: bool) -> dict[str, str]:
    """Saved decisions for ``(path, staged)``, or an empty dict."""
    state = load_review_state(filepath)
    if state is None or state["file_path"] != path or bool(state["staged"]) != staged:
        return {}
    return state["decisions"]


def clear_review_state(filepath: str) -> None:
    """Remove the state file once the review has been applied."""
    try:
        if os.path.isfile(filepath):
            os.remove(filepath)
    except OSError:
        pass
