"""Eligibility oracle — decides whether a reviewer may take a reviewee.

A pairing is eligible when:
- The reviewer has not already been assigned that reviewee.
- The two groups share no student (no one reviews their own work).

The student-overlap check is injected, so the engine can run against a
roster, a database, or a synthetic conflict graph in tests.
"""

from __future__ import annotations

from typing import AbstractSet, Callable, Mapping

from peerreview.models.group import ReviewerGroup, RevieweeGroup

SharesNoStudents = Callable[[ReviewerGroup, RevieweeGroup], bool]


def members_disjoint(reviewer: ReviewerGroup, reviewee: RevieweeGroup) -> bool:
    """Default overlap check: compare the member sets carried on the groups."""
    return reviewer.member_ids.isdisjoint(reviewee.member_ids)


class EligibilityOracle:
    """Pairing predicate used on every candidate the loop considers."""

    def __init__(self, shares_no_students: SharesNoStudents = members_disjoint) -> None:
        self._shares_no_students = shares_no_students

    def is_eligible(
        self,
        reviewer: ReviewerGroup,
        reviewee: RevieweeGroup,
        assigned: Mapping[str, AbstractSet[str]],
    ) -> bool:
        already = assigned.get(reviewer.group_id)
        if already is not None and reviewee.group_id in already:
            return False
        return self._shares_no_students(reviewer, reviewee)
