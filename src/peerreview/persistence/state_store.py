"""State store — JSON-based persistence for peer review state.

Stores and recovers:
- Group roster (every grouping with members, status and submission)
- Peer review records, keyed by peer review assignment

This is a simple file-based store suitable for a single process.
A database backend could replace it while keeping the same interface.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from peerreview.models.group import ArtifactRef, GroupStatus
from peerreview.models.peer_review import PeerReviewRecord
from peerreview.review.roster import GroupEntry, GroupRoster

_TS_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


class StateStore:
    """JSON file-based state persistence.

    Usage:
        store = StateStore(Path("data/peer_review_state.json"))
        store.save_roster(roster)
        store.save_peer_reviews(peer_reviews)

        # On recovery:
        roster = store.load_roster()
        peer_reviews = store.load_peer_reviews()
    """

    def __init__(self, storage_path: Path) -> None:
        self._path = storage_path
        self._state: dict[str, Any] = {}
        if storage_path.exists():
            self._load()

    def _load(self) -> None:
        with self._path.open("r", encoding="utf-8") as f:
            self._state = json.load(f)

    def _save(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("w", encoding="utf-8") as f:
            json.dump(self._state, f, indent=2, sort_keys=True, ensure_ascii=False)

    # ------------------------------------------------------------------
    # Roster persistence
    # ------------------------------------------------------------------

    def save_roster(self, roster: GroupRoster) -> None:
        """Serialize the group roster to state."""
        entries = []
        for group in roster.all_groups():
            submission = None
            if group.submission is not None:
                submission = {
                    "submission_id": group.submission.submission_id,
                    "result_id": group.submission.result_id,
                }
            entries.append({
                "group_id": group.group_id,
                "assignment_id": group.assignment_id,
                "member_ids": sorted(group.member_ids),
                "status": group.status.value,
                "submission": submission,
            })
        self._state["roster"] = entries
        self._save()

    def load_roster(self) -> GroupRoster:
        """Deserialize the group roster from state."""
        roster = GroupRoster()
        for data in self._state.get("roster", []):
            submission = None
            if data.get("submission"):
                submission = ArtifactRef(
                    submission_id=data["submission"]["submission_id"],
                    result_id=data["submission"]["result_id"],
                )
            roster.register(GroupEntry(
                group_id=data["group_id"],
                assignment_id=data["assignment_id"],
                member_ids=frozenset(data["member_ids"]),
                status=GroupStatus(data["status"]),
                submission=submission,
            ))
        return roster

    # ------------------------------------------------------------------
    # Peer review persistence
    # ------------------------------------------------------------------

    def save_peer_reviews(
        self,
        peer_reviews: dict[str, list[PeerReviewRecord]],
    ) -> None:
        """Serialize peer review records, keyed by peer review assignment."""
        entries: dict[str, list[dict[str, Any]]] = {}
        for pr_assignment_id, records in peer_reviews.items():
            entries[pr_assignment_id] = [
                {
                    "review_id": r.review_id,
                    "pr_assignment_id": r.pr_assignment_id,
                    "reviewer_group_id": r.reviewer_group_id,
                    "reviewee_group_id": r.reviewee_group_id,
                    "result_id": r.result_id,
                    "created_utc": _format_ts(r.created_utc),
                }
                for r in records
            ]
        self._state["peer_reviews"] = entries
        self._save()

    def load_peer_reviews(self) -> dict[str, list[PeerReviewRecord]]:
        """Deserialize peer review records from state."""
        result: dict[str, list[PeerReviewRecord]] = {}
        for pr_assignment_id, records in self._state.get("peer_reviews", {}).items():
            result[pr_assignment_id] = [
                PeerReviewRecord(
                    review_id=data["review_id"],
                    pr_assignment_id=data["pr_assignment_id"],
                    reviewer_group_id=data["reviewer_group_id"],
                    reviewee_group_id=data["reviewee_group_id"],
                    result_id=data["result_id"],
                    created_utc=_parse_ts(data.get("created_utc")),
                )
                for data in records
            ]
        return result


def _format_ts(ts: Optional[datetime]) -> Optional[str]:
    return ts.strftime(_TS_FORMAT) if ts else None


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.strptime(value, _TS_FORMAT).replace(tzinfo=timezone.utc)
