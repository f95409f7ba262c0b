"""
Hunk state: pending/accepted/rejected decisions for the hunks of one
file diff.

Every operation returns a new store; the store a caller holds never
changes underneath it.  Saving decisions anywhere is the caller's job.
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Iterable, Mapping

from ..errors import UnknownHunkError
from .diff_parser import FileDiff, HunkStatus

logger = logging.getLogger(__name__)


class HunkStateStore:
    """Decision map for the hunks of a single :class:`FileDiff`."""

    def __init__(self, file_diff: FileDiff):
        self._file_diff = file_diff
        self._decisions: Mapping[str, HunkStatus] = MappingProxyType(
            {h.id: h.status for h in file_diff.hunks}
        )

    @classmethod
    def from_decisions(
        cls,
        file_diff: FileDiff,
        decisions: Mapping[str, str | HunkStatus],
    ) -> "HunkStateStore":
        """Restore a store from saved decisions.

        Ids that are not part of *file_diff* (the diff changed since the
        decisions were saved) are dropped.
        """
        store = cls(file_diff)
        updates: dict[str, HunkStatus] = {}
        for hunk_id, status in decisions.items():
            if hunk_id not in store._decisions:
                logger.debug("[Review] Dropping stale decision for %s", hunk_id)
                continue
            try:
                updates[hunk_id] = HunkStatus(status)
            except ValueError:
                logger.warning("[Review] Ignoring unknown status %r for %s",
                               status, hunk_id)
        return store._with(updates)

    # ── Read access ──

    @property
    def file_diff(self) -> FileDiff:
        return self._file_diff

    @property
    def file_path(self) -> str:
        return self._file_diff.file_path

    @property
    def decisions(self) -> Mapping[str, HunkStatus]:
        return self._decisions

    def status_of(self, hunk_id: str) -> HunkStatus:
        self._check(hunk_id)
        return self._decisions[hunk_id]

    def ids_with(self, status: HunkStatus) -> list[str]:
        return [hid for hid, s in self._decisions.items() if s is status]

    @property
    def pending_count(self) -> int:
        return len(self.ids_with(HunkStatus.PENDING))

    @property
    def is_resolved(self) -> bool:
        """True when no hunk is pending."""
        return self.pending_count == 0

    def resolve(self) -> FileDiff:
        """Return the reviewed diff with the current statuses applied."""
        return self._file_diff.with_statuses(self._decisions)

    # ── Single-hunk transitions ──

    def accept_hunk(self, hunk_id: str) -> "HunkStateStore":
        return self._set([hunk_id], HunkStatus.ACCEPTED)

    def reject_hunk(self, hunk_id: str) -> "HunkStateStore":
        return self._set([hunk_id], HunkStatus.REJECTED)

    def reset_hunk(self, hunk_id: str) -> "HunkStateStore":
        return self._set([hunk_id], HunkStatus.PENDING)

    # ── Bulk transitions ──

    def accept_all_in_file(self, force: bool = False) -> "HunkStateStore":
        """Accept every pending hunk.

        With *force*, every hunk is accepted, including ones the user
        rejected.
        """
        return self._set_all(HunkStatus.ACCEPTED, force)

    def reject_all_in_file(self, force: bool = False) -> "HunkStateStore":
        """Reject every pending hunk (every hunk with *force*)."""
        return self._set_all(HunkStatus.REJECTED, force)

    def reset_all(self) -> "HunkStateStore":
        return self._with({hid: HunkStatus.PENDING for hid in self._decisions})

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _check(self, hunk_id: str) -> None:
        if hunk_id not in self._decisions:
            raise UnknownHunkError(hunk_id, self.file_path)

    def _set(self, hunk_ids: Iterable[str], status: HunkStatus) -> "HunkStateStore":
        updates = {}
        for hunk_id in hunk_ids:
            self._check(hunk_id)
            updates[hunk_id] = status
        return self._with(updates)

    def _set_all(self, target: HunkStatus, force: bool) -> "HunkStateStore":
        updates = {
            hid: target
            for hid, status in self._decisions.items()
            if force or status in (HunkStatus.PENDING, target)
        }
        return self._with(updates)

    def _with(self, updates: Mapping[str, HunkStatus]) -> "HunkStateStore":
        store = HunkStateStore.__new__(HunkStateStore)
        store._file_diff = self._file_diff
        merged = dict(self._decisions)
        merged.update(updates)
        store._decisions = MappingProxyType(merged)
        return store

    def __repr__(self) -> str:
        counts = {s.value: len(self.ids_with(s)) for s in HunkStatus}
        return f"HunkStateStore({self.file_path!r}, {counts})"
