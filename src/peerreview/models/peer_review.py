"""Peer review records and the context an assignment run operates in."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class AssignmentContext:
    """A peer review assignment paired with the parent it reviews.

    Reviewer groups come from pr_assignment_id; reviewee groups come
    from parent_assignment_id.
    """
    pr_assignment_id: str
    parent_assignment_id: str


@dataclass(frozen=True)
class PeerReviewRecord:
    """A persisted pairing of a reviewer group with a reviewee's result.

    Records are created once per successful pairing and never mutated.
    """
    review_id: str
    pr_assignment_id: str
    reviewer_group_id: str
    reviewee_group_id: str
    result_id: str
    created_utc: Optional[datetime] = None
