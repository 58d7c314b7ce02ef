"""Random assignment engine — reviewer groups to reviewee groups.

Given reviewer groups, reviewee groups and a quota, gives every reviewer
group `quota` distinct reviewees such that:
- No reviewer reviews a group containing one of its own students.
- No (reviewer, reviewee) pair is created twice, including pairs
  already on record from earlier runs.

Algorithm (constructive, order-dependent, no global optimisation):
1. Build a working pool: the reviewee list repeated `quota` times and
   shuffled once. This is the only source of randomness.
2. Seed the assignment map from existing records.
3. Loop until every reviewer has met its quota: scan the eligible
   reviewers in order, each taking the pool entry at a running cursor.
   If that entry is ineligible, search forward and swap the first
   eligible entry into the cursor slot. The cursor advances after every
   reviewer and is never reset.
4. If forward search exhausts the pool, backward repair is attempted.
   Backward repair is not implemented, so the run fails.

Each pairing is persisted as soon as it is made. A failed run keeps
whatever it already persisted; runs are not atomic.
"""

from __future__ import annotations

import enum
import logging
import random
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from peerreview.models.group import ArtifactRef, ReviewerGroup, RevieweeGroup
from peerreview.models.peer_review import PeerReviewRecord
from peerreview.review.eligibility import (
    EligibilityOracle,
    SharesNoStudents,
    members_disjoint,
)
from peerreview.review.history import load_history
from peerreview.review.pool import build_pool, make_rng

logger = logging.getLogger(__name__)

LatestArtifact = Callable[[RevieweeGroup], Optional[ArtifactRef]]
CreateRecord = Callable[[ReviewerGroup, RevieweeGroup, ArtifactRef], PeerReviewRecord]


def submission_of(reviewee: RevieweeGroup) -> Optional[ArtifactRef]:
    return reviewee.submission


class AssignmentFailure(str, enum.Enum):
    """Why an assignment run stopped before every quota was met."""
    UNABLE_TO_RANDOMLY_ASSIGN = "unable_to_randomly_assign"
    INSUFFICIENT_CAPACITY = "insufficient_capacity"
    PERSISTENCE_FAILURE = "persistence_failure"


@dataclass
class AssignmentState:
    """Working state of one run, passed explicitly through every step.

    pool never changes length once built; entries are only swapped.
    eligible only shrinks. assigned never holds more than `quota`
    reviewees for a reviewer that is still eligible.
    """
    quota: int
    pool: list[RevieweeGroup]
    eligible: list[ReviewerGroup]
    assigned: dict[str, set[str]] = field(default_factory=dict)
    cursor: int = 0
    created: list[PeerReviewRecord] = field(default_factory=list)
    round_sizes: list[int] = field(default_factory=list)

    def assigned_count(self, reviewer: ReviewerGroup) -> int:
        return len(self.assigned.get(reviewer.group_id, ()))


@dataclass(frozen=True)
class AssignmentResult:
    """Result of an assignment run."""
    records: list[PeerReviewRecord]
    assigned: dict[str, set[str]]
    errors: list[str] = field(default_factory=list)
    failure: Optional[AssignmentFailure] = None
    round_sizes: list[int] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.failure is None


class AssignmentLoop:
    """The fixed-point loop: prune, scan, search, commit.

    Fully deterministic given the pool order and the oracle's answers.
    """

    def __init__(
        self,
        oracle: EligibilityOracle,
        create_record: CreateRecord,
        latest_artifact: LatestArtifact = submission_of,
    ) -> None:
        self._oracle = oracle
        self._create_record = create_record
        self._latest_artifact = latest_artifact

    def run(self, state: AssignmentState) -> AssignmentResult:
        """Assign until no reviewer remains under quota, or fail."""
        self.prune(state)

        while state.eligible:
            state.round_sizes.append(len(state.eligible))

            for reviewer in state.eligible:
                reviewee = self.forward_search(state, reviewer, state.cursor)

                if reviewee is not None:
                    error = self._commit(state, reviewer, reviewee)
                    if error:
                        return _failed(state, AssignmentFailure.PERSISTENCE_FAILURE, error)
                elif not self.backward_repair(state, reviewer, state.cursor):
                    return _failed(
                        state,
                        AssignmentFailure.UNABLE_TO_RANDOMLY_ASSIGN,
                        f"Unable to randomly assign reviewer group {reviewer.group_id}: "
                        f"no eligible reviewee from pool position {state.cursor} "
                        f"of {len(state.pool)}",
                    )

                state.cursor += 1

            self.prune(state)

        logger.info(
            "Assignment complete: %d peer reviews created over %d rounds",
            len(state.created), len(state.round_sizes),
        )
        return AssignmentResult(
            records=list(state.created),
            assigned=_copy_map(state.assigned),
            round_sizes=list(state.round_sizes),
        )

    @staticmethod
    def prune(state: AssignmentState) -> None:
        """Drop reviewers that have met their quota. They never come back."""
        remaining = [
            r for r in state.eligible if state.assigned_count(r) < state.quota
        ]
        if len(remaining) != len(state.eligible):
            logger.debug(
                "Pruned %d reviewer groups at quota",
                len(state.eligible) - len(remaining),
            )
        state.eligible = remaining

    def forward_search(
        self,
        state: AssignmentState,
        reviewer: ReviewerGroup,
        index: int,
    ) -> Optional[RevieweeGroup]:
        """First eligible reviewee at or after `index`, swapped into `index`.

        Returns None if nothing in pool[index:] is eligible. A cursor
        past the end of the pool is an empty range.
        """
        pool = state.pool
        for position in range(index, len(pool)):
            candidate = pool[position]
            if self._oracle.is_eligible(reviewer, candidate, state.assigned):
                if position != index:
                    pool[index], pool[position] = pool[position], pool[index]
                    logger.debug(
                        "Swapped pool positions %d and %d for reviewer group %s",
                        index, position, reviewer.group_id,
                    )
                return candidate
        return None

    def backward_repair(
        self,
        state: AssignmentState,
        reviewer: ReviewerGroup,
        index: int,
    ) -> bool:
        """Resolve an exhausted forward search by displacing an earlier pairing.

        Not implemented: always returns False, so forward-search
        exhaustion is fatal. A working version would walk pool[index-1..0],
        find the reviewer holding each slot, and trade assignments when
        both resulting pairings are eligible, replacing the persisted
        record of the displaced pairing.
        """
        return False

    def _commit(
        self,
        state: AssignmentState,
        reviewer: ReviewerGroup,
        reviewee: RevieweeGroup,
    ) -> Optional[str]:
        """Persist the pairing, then remember it. Returns error string or None."""
        artifact = self._latest_artifact(reviewee)
        if artifact is None:
            return (
                f"Persistence failure: reviewee group {reviewee.group_id} "
                f"has no gradable result"
            )
        try:
            record = self._create_record(reviewer, reviewee, artifact)
        except (ValueError, OSError) as e:
            return f"Persistence failure: {e}"

        state.created.append(record)
        state.assigned.setdefault(reviewer.group_id, set()).add(reviewee.group_id)
        return None


class AssignmentEngine:
    """Runs the full random assignment for one peer review assignment.

    Usage:
        engine = AssignmentEngine(create_record=store_peer_review)
        result = engine.run(reviewers, reviewees, existing, quota=2, seed="s1")
        if not result.success:
            report(result.failure, result.errors)
    """

    def __init__(
        self,
        create_record: CreateRecord,
        shares_no_students: SharesNoStudents = members_disjoint,
        latest_artifact: LatestArtifact = submission_of,
        validate_capacity: bool = True,
    ) -> None:
        self._latest_artifact = latest_artifact
        self._validate_capacity = validate_capacity
        self._loop = AssignmentLoop(
            oracle=EligibilityOracle(shares_no_students),
            create_record=create_record,
            latest_artifact=latest_artifact,
        )

    @property
    def loop(self) -> AssignmentLoop:
        return self._loop

    def run(
        self,
        reviewer_groups: list[ReviewerGroup],
        reviewee_groups: list[RevieweeGroup],
        existing_records: Iterable[PeerReviewRecord],
        quota: int,
        seed: Optional[str] = None,
        rng: Optional[random.Random] = None,
    ) -> AssignmentResult:
        """Assign `quota` distinct reviewees to every reviewer group.

        Args:
            reviewer_groups: Groups doing the reviewing.
            reviewee_groups: Groups being reviewed. Groups with no
                gradable artifact are left out of the pool.
            existing_records: Pairings already on record.
            quota: Required distinct reviewees per reviewer group (>= 1).
            seed: Seed for the pool permutation. Ignored if rng is given.
            rng: Explicit PRNG, for callers that manage their own.

        Returns:
            AssignmentResult with the records created in this run, or
            a failure kind and errors explaining why the run stopped.

        Raises:
            ValueError: if quota < 1.
        """
        if quota < 1:
            raise ValueError(f"Quota must be at least 1, got {quota}")

        candidates: list[RevieweeGroup] = []
        for reviewee in reviewee_groups:
            if self._latest_artifact(reviewee) is None:
                logger.warning(
                    "Reviewee group %s has no gradable submission; left out of pool",
                    reviewee.group_id,
                )
                continue
            candidates.append(reviewee)

        if rng is None:
            rng = make_rng(seed)

        state = AssignmentState(
            quota=quota,
            pool=build_pool(reviewer_groups, candidates, quota, rng),
            eligible=list(reviewer_groups),
            assigned=load_history(existing_records),
        )
        logger.info(
            "Assigning %d reviewer groups to %d reviewee groups "
            "(quota %d, pool size %d)",
            len(reviewer_groups), len(candidates), quota, len(state.pool),
        )

        self._loop.prune(state)
        if self._validate_capacity:
            error = capacity_error(state)
            if error:
                return _failed(state, AssignmentFailure.INSUFFICIENT_CAPACITY, error)

        return self._loop.run(state)


def capacity_error(state: AssignmentState) -> Optional[str]:
    """Check that the pool can satisfy the remaining demand.

    Returns an error string or None. Conflicts between groups are not
    considered; those surface later as UNABLE_TO_RANDOMLY_ASSIGN.
    """
    demand = sum(state.quota - state.assigned_count(r) for r in state.eligible)
    supply = len(state.pool) - state.cursor
    if supply < demand:
        return (
            f"Insufficient capacity: {demand} reviews needed but the pool "
            f"holds {supply}"
        )

    distinct = {g.group_id for g in state.pool}
    for reviewer in state.eligible:
        needed = state.quota - state.assigned_count(reviewer)
        available = len(distinct - state.assigned.get(reviewer.group_id, set()))
        if available < needed:
            return (
                f"Insufficient capacity: reviewer group {reviewer.group_id} "
                f"needs {needed} more reviewees but only {available} are unassigned"
            )
    return None


def _failed(
    state: AssignmentState,
    failure: AssignmentFailure,
    error: str,
) -> AssignmentResult:
    logger.warning("Assignment failed (%s): %s", failure.value, error)
    return AssignmentResult(
        records=list(state.created),
        assigned=_copy_map(state.assigned),
        errors=[error],
        failure=failure,
        round_sizes=list(state.round_sizes),
    )


def _copy_map(assigned: dict[str, set[str]]) -> dict[str, set[str]]:
    return {k: set(v) for k, v in assigned.items()}
