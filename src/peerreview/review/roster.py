"""Group roster — registry of groupings taking part in peer review.

The roster is the source of truth for which groups exist on an
assignment and which students belong to them. It supplies the engine's
external collaborators:
- Reviewer groups for a peer review assignment (valid groupings only)
- Reviewee groups for the parent assignment (valid groupings only)
- Student-overlap check between a reviewer and a reviewee
- Latest gradable artifact of a reviewee group

Invariants enforced:
- Group IDs are non-blank and unique across the roster.
- Member IDs are non-blank.
- Pending and rejected groupings are never listed as participants.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from peerreview.models.group import (
    ArtifactRef,
    GroupStatus,
    ReviewerGroup,
    RevieweeGroup,
)


@dataclass
class GroupEntry:
    """A single grouping in the roster.

    Status and submission are mutable (groupings get validated, and
    students resubmit).
    """
    group_id: str
    assignment_id: str
    member_ids: frozenset[str] = field(default_factory=frozenset)
    status: GroupStatus = GroupStatus.VALID
    submission: Optional[ArtifactRef] = None

    def is_valid(self) -> bool:
        return self.status == GroupStatus.VALID

    def as_reviewer(self) -> ReviewerGroup:
        return ReviewerGroup(group_id=self.group_id, member_ids=self.member_ids)

    def as_reviewee(self) -> RevieweeGroup:
        return RevieweeGroup(
            group_id=self.group_id,
            member_ids=self.member_ids,
            submission=self.submission,
        )


class GroupRoster:
    """Registry of all groupings, across assignments.

    Listing order is registration order, so runs over the same roster
    and the same seed are reproducible.

    Thread-safety: this class is not thread-safe. The caller must
    synchronise access if used from multiple threads.
    """

    def __init__(self) -> None:
        self._groups: dict[str, GroupEntry] = {}

    def register(self, entry: GroupEntry) -> None:
        """Register a new grouping or update an existing one.

        Raises ValueError if:
        - group_id or assignment_id is blank/empty
        - any member ID is blank
        - group_id is already registered on a different assignment
        """
        canonical_id = entry.group_id.strip()
        if not canonical_id:
            raise ValueError("Cannot register group with blank ID")
        assignment_id = entry.assignment_id.strip()
        if not assignment_id:
            raise ValueError(f"Group {canonical_id} has blank assignment ID")
        members = frozenset(m.strip() for m in entry.member_ids)
        if "" in members:
            raise ValueError(f"Group {canonical_id} has a blank member ID")

        existing = self._groups.get(canonical_id)
        if existing is not None and existing.assignment_id != assignment_id:
            raise ValueError(
                f"Group {canonical_id} already registered on assignment "
                f"{existing.assignment_id}"
            )

        entry.group_id = canonical_id
        entry.assignment_id = assignment_id
        entry.member_ids = members
        self._groups[canonical_id] = entry

    def remove(self, group_id: str) -> None:
        """Remove a grouping from the roster."""
        self._groups.pop(group_id.strip(), None)

    def get(self, group_id: str) -> Optional[GroupEntry]:
        """Look up a grouping by ID."""
        return self._groups.get(group_id.strip())

    def all_groups(self) -> list[GroupEntry]:
        """Return all registered groupings."""
        return list(self._groups.values())

    def valid_groups(self, assignment_id: str) -> list[GroupEntry]:
        """Return the valid groupings of an assignment, in registration order."""
        return [
            g for g in self._groups.values()
            if g.assignment_id == assignment_id and g.is_valid()
        ]

    def reviewer_groups(self, pr_assignment_id: str) -> list[ReviewerGroup]:
        """Reviewer side of a peer review assignment."""
        return [g.as_reviewer() for g in self.valid_groups(pr_assignment_id)]

    def reviewee_groups(self, parent_assignment_id: str) -> list[RevieweeGroup]:
        """Reviewee side: the valid groupings of the parent assignment."""
        return [g.as_reviewee() for g in self.valid_groups(parent_assignment_id)]

    def shares_no_students(
        self,
        reviewer: ReviewerGroup,
        reviewee: RevieweeGroup,
    ) -> bool:
        """True if no student belongs to both groups.

        Membership is read from the roster when the group is registered,
        so edits made after a view was taken are honoured.
        """
        reviewer_entry = self._groups.get(reviewer.group_id)
        reviewee_entry = self._groups.get(reviewee.group_id)
        reviewer_members = (
            reviewer_entry.member_ids if reviewer_entry else reviewer.member_ids
        )
        reviewee_members = (
            reviewee_entry.member_ids if reviewee_entry else reviewee.member_ids
        )
        return reviewer_members.isdisjoint(reviewee_members)

    def latest_artifact(self, reviewee: RevieweeGroup) -> Optional[ArtifactRef]:
        """Return the latest gradable artifact of a reviewee group."""
        entry = self._groups.get(reviewee.group_id)
        if entry is None:
            return reviewee.submission
        return entry.submission

    @property
    def count(self) -> int:
        return len(self._groups)

    @property
    def valid_count(self) -> int:
        return sum(1 for g in self._groups.values() if g.is_valid())
