"""Tests for the random assignment engine — proves assignment invariants."""

import pytest

from peerreview.models.group import ArtifactRef, ReviewerGroup, RevieweeGroup
from peerreview.models.peer_review import PeerReviewRecord
from peerreview.review.eligibility import EligibilityOracle
from peerreview.review.engine import (
    AssignmentEngine,
    AssignmentFailure,
    AssignmentLoop,
    AssignmentState,
    capacity_error,
)


def _reviewer(gid: str, *members: str) -> ReviewerGroup:
    return ReviewerGroup(group_id=gid, member_ids=frozenset(members))


def _reviewee(gid: str, *members: str, submitted: bool = True) -> RevieweeGroup:
    submission = ArtifactRef(f"sub-{gid}", f"res-{gid}") if submitted else None
    return RevieweeGroup(group_id=gid, member_ids=frozenset(members), submission=submission)


def _record(reviewer_id: str, reviewee_id: str, n: int = 0) -> PeerReviewRecord:
    return PeerReviewRecord(
        review_id=f"OLD-{n}",
        pr_assignment_id="PR",
        reviewer_group_id=reviewer_id,
        reviewee_group_id=reviewee_id,
        result_id=f"res-{reviewee_id}",
    )


class _Recorder:
    """In-memory stand-in for the persistence collaborator."""

    def __init__(self, fail_on: int | None = None) -> None:
        self.records: list[PeerReviewRecord] = []
        self._fail_on = fail_on

    def __call__(
        self,
        reviewer: ReviewerGroup,
        reviewee: RevieweeGroup,
        artifact: ArtifactRef,
    ) -> PeerReviewRecord:
        if self._fail_on is not None and len(self.records) + 1 == self._fail_on:
            raise OSError("disk full")
        record = PeerReviewRecord(
            review_id=f"PR-{len(self.records) + 1}",
            pr_assignment_id="PR",
            reviewer_group_id=reviewer.group_id,
            reviewee_group_id=reviewee.group_id,
            result_id=artifact.result_id,
        )
        self.records.append(record)
        return record

    @property
    def pairs(self) -> list[tuple[str, str]]:
        return [(r.reviewer_group_id, r.reviewee_group_id) for r in self.records]


class _FixedOrder:
    """Stands in for the PRNG: shuffle lays the pool out in a given order of group IDs."""

    def __init__(self, order: list[str]) -> None:
        self._order = order

    def shuffle(self, x) -> None:
        by_id: dict[str, list] = {}
        for g in x:
            by_id.setdefault(g.group_id, []).append(g)
        x[:] = [by_id[gid].pop() for gid in self._order]


def _loop(recorder: _Recorder) -> AssignmentLoop:
    return AssignmentLoop(oracle=EligibilityOracle(), create_record=recorder)


# =====================================================================
# Scenarios
# =====================================================================


class TestScenarios:
    def test_two_by_two_quota_one(self) -> None:
        recorder = _Recorder()
        engine = AssignmentEngine(create_record=recorder)
        result = engine.run(
            [_reviewer("R1", "a"), _reviewer("R2", "b")],
            [_reviewee("X", "c"), _reviewee("Y", "d")],
            [],
            quota=1,
            seed="scenario-1",
        )
        assert result.success
        assert len(result.assigned["R1"]) == 1
        assert len(result.assigned["R2"]) == 1
        assert result.assigned["R1"] | result.assigned["R2"] == {"X", "Y"}

    def test_only_candidate_shares_student(self) -> None:
        recorder = _Recorder()
        engine = AssignmentEngine(create_record=recorder)
        result = engine.run(
            [_reviewer("R", "alice")],
            [_reviewee("X", "alice", "bob")],
            [],
            quota=1,
            seed="scenario-2",
        )
        assert not result.success
        assert result.failure == AssignmentFailure.UNABLE_TO_RANDOMLY_ASSIGN
        assert "Unable to randomly assign" in result.errors[0]
        assert recorder.records == []

    def test_three_by_three_quota_two(self) -> None:
        recorder = _Recorder()
        engine = AssignmentEngine(create_record=recorder)
        result = engine.run(
            [_reviewer("R1", "a"), _reviewer("R2", "b"), _reviewer("R3", "c")],
            [_reviewee("X", "d"), _reviewee("Y", "e"), _reviewee("Z", "f")],
            [],
            quota=2,
            rng=_FixedOrder(["X", "Y", "Z", "Y", "Z", "X"]),
        )
        assert result.success
        for rid in ("R1", "R2", "R3"):
            assert len(result.assigned[rid]) == 2
        assert len(set(recorder.pairs)) == len(recorder.pairs) == 6

    def test_history_satisfies_quota(self) -> None:
        recorder = _Recorder()
        engine = AssignmentEngine(create_record=recorder)
        result = engine.run(
            [_reviewer("A", "a"), _reviewer("B", "b")],
            [_reviewee("X", "x"), _reviewee("Y", "y")],
            [_record("A", "X")],
            quota=1,
            seed="scenario-4",
        )
        assert result.success
        assert [r.reviewer_group_id for r in result.records] == ["B"]
        assert result.round_sizes[0] == 1
        assert result.assigned["A"] == {"X"}

    def test_forward_search_swaps_into_cursor(self) -> None:
        x, y, z = _reviewee("X", "m"), _reviewee("Y", "n"), _reviewee("Z", "o")
        reviewer = _reviewer("R", "m", "n")
        state = AssignmentState(quota=1, pool=[x, y, z], eligible=[reviewer])
        loop = _loop(_Recorder())

        found = loop.forward_search(state, reviewer, 0)

        assert found is z
        assert state.pool == [z, y, x]
        # A later reader of the old cursor+2 slot sees the old cursor value.
        assert state.pool[2] is x


# =====================================================================
# Properties
# =====================================================================


class TestProperties:
    def _conflicting_setup(self):
        reviewers = [
            _reviewer("R1", "s1", "s2"),
            _reviewer("R2", "s3"),
            _reviewer("R3", "s4", "s5"),
            _reviewer("R4", "s6"),
        ]
        reviewees = [
            _reviewee("G1", "s1", "s7"),
            _reviewee("G2", "s3", "s8"),
            _reviewee("G3", "s4"),
            _reviewee("G4", "s9"),
            _reviewee("G5", "s10"),
        ]
        return reviewers, reviewees

    def test_invariants_hold_on_every_successful_run(self) -> None:
        reviewers, reviewees = self._conflicting_setup()
        members = {g.group_id: g.member_ids for g in reviewers + reviewees}
        successes = 0
        for n in range(40):
            recorder = _Recorder()
            engine = AssignmentEngine(create_record=recorder)
            result = engine.run(reviewers, reviewees, [], quota=2, seed=f"prop-{n}")
            if not result.success:
                assert result.failure == AssignmentFailure.UNABLE_TO_RANDOMLY_ASSIGN
                continue
            successes += 1
            # No duplicate pairing
            assert len(set(recorder.pairs)) == len(recorder.pairs)
            # No self-conflict
            for reviewer_id, reviewee_id in recorder.pairs:
                assert members[reviewer_id].isdisjoint(members[reviewee_id])
            # Quota met exactly
            for r in reviewers:
                assert len(result.assigned[r.group_id]) == 2
            # Eligible set never grows
            assert result.round_sizes == sorted(result.round_sizes, reverse=True)
        assert successes > 0

    def test_same_seed_same_pairings(self) -> None:
        reviewers, reviewees = self._conflicting_setup()
        first, second = _Recorder(), _Recorder()
        r1 = AssignmentEngine(create_record=first).run(
            reviewers, reviewees, [], quota=1, seed="replay",
        )
        r2 = AssignmentEngine(create_record=second).run(
            reviewers, reviewees, [], quota=1, seed="replay",
        )
        assert r1.success == r2.success
        assert first.pairs == second.pairs

    def test_history_pairs_never_repeated(self) -> None:
        recorder = _Recorder()
        engine = AssignmentEngine(create_record=recorder)
        result = engine.run(
            [_reviewer("R", "a")],
            [_reviewee("X", "x"), _reviewee("Y", "y"), _reviewee("Z", "z")],
            [_record("R", "X")],
            quota=3,
            seed="history",
        )
        assert result.success
        assert ("R", "X") not in recorder.pairs
        assert sorted(recorder.pairs) == [("R", "Y"), ("R", "Z")]

    def test_eligible_set_shrinks_between_rounds(self) -> None:
        recorder = _Recorder()
        engine = AssignmentEngine(create_record=recorder)
        result = engine.run(
            [_reviewer("A", "a"), _reviewer("B", "b"), _reviewer("C", "c")],
            [_reviewee("X", "x"), _reviewee("Y", "y"), _reviewee("Z", "z")],
            [_record("A", "X")],
            quota=2,
            rng=_FixedOrder(["Y", "X", "Z", "Z", "Y", "X"]),
        )
        assert result.success
        assert result.round_sizes == [3, 2]
        assert recorder.pairs == [
            ("A", "Y"), ("B", "X"), ("C", "Z"), ("B", "Z"), ("C", "Y"),
        ]


# =====================================================================
# Loop mechanics
# =====================================================================


class TestLoop:
    def test_cursor_advances_across_rounds(self) -> None:
        recorder = _Recorder()
        x, y = _reviewee("X", "x"), _reviewee("Y", "y")
        state = AssignmentState(
            quota=2, pool=[x, y, y, x], eligible=[_reviewer("R", "r")],
        )
        result = _loop(recorder).run(state)
        assert result.success
        assert state.cursor == 2
        assert recorder.pairs == [("R", "X"), ("R", "Y")]

    def test_cursor_past_pool_end_is_exhaustion(self) -> None:
        state = AssignmentState(
            quota=1,
            pool=[_reviewee("X", "x")],
            eligible=[_reviewer("R", "r")],
            cursor=1,
        )
        result = _loop(_Recorder()).run(state)
        assert result.failure == AssignmentFailure.UNABLE_TO_RANDOMLY_ASSIGN

    def test_backward_repair_never_recovers(self) -> None:
        state = AssignmentState(
            quota=1, pool=[_reviewee("X", "x")], eligible=[_reviewer("R", "r")],
        )
        assert _loop(_Recorder()).backward_repair(state, state.eligible[0], 0) is False

    def test_prune_drops_reviewers_at_quota(self) -> None:
        a, b = _reviewer("A", "a"), _reviewer("B", "b")
        state = AssignmentState(
            quota=1, pool=[], eligible=[a, b], assigned={"A": {"X"}},
        )
        AssignmentLoop.prune(state)
        assert state.eligible == [b]

    def test_swap_does_not_change_pool_length(self) -> None:
        pool = [_reviewee("X", "r"), _reviewee("Y", "r"), _reviewee("Z", "z")]
        state = AssignmentState(quota=1, pool=list(pool), eligible=[_reviewer("R", "r")])
        _loop(_Recorder()).forward_search(state, state.eligible[0], 0)
        assert len(state.pool) == 3
        assert {g.group_id for g in state.pool} == {"X", "Y", "Z"}


# =====================================================================
# Failures and edge cases
# =====================================================================


class TestFailures:
    def test_quota_below_one_rejected(self) -> None:
        engine = AssignmentEngine(create_record=_Recorder())
        with pytest.raises(ValueError, match="Quota"):
            engine.run([_reviewer("R", "a")], [_reviewee("X", "b")], [], quota=0)

    def test_insufficient_pool_supply(self) -> None:
        recorder = _Recorder()
        engine = AssignmentEngine(create_record=recorder)
        result = engine.run(
            [_reviewer("R1", "a"), _reviewer("R2", "b"), _reviewer("R3", "c")],
            [_reviewee("X", "x")],
            [],
            quota=1,
            seed="cap",
        )
        assert result.failure == AssignmentFailure.INSUFFICIENT_CAPACITY
        assert "Insufficient capacity" in result.errors[0]
        assert recorder.records == []

    def test_too_few_distinct_reviewees(self) -> None:
        engine = AssignmentEngine(create_record=_Recorder())
        result = engine.run(
            [_reviewer("R", "a")], [_reviewee("X", "x")], [], quota=2, seed="cap",
        )
        assert result.failure == AssignmentFailure.INSUFFICIENT_CAPACITY

    def test_capacity_check_disabled_keeps_partial_pairings(self) -> None:
        recorder = _Recorder()
        engine = AssignmentEngine(create_record=recorder, validate_capacity=False)
        result = engine.run(
            [_reviewer("R1", "a"), _reviewer("R2", "b")],
            [_reviewee("X", "x")],
            [],
            quota=1,
            seed="partial",
        )
        assert result.failure == AssignmentFailure.UNABLE_TO_RANDOMLY_ASSIGN
        assert recorder.pairs == [("R1", "X")]
        assert [r.review_id for r in result.records] == ["PR-1"]

    def test_persistence_failure_stops_run(self) -> None:
        recorder = _Recorder(fail_on=2)
        engine = AssignmentEngine(create_record=recorder)
        result = engine.run(
            [_reviewer("R1", "a"), _reviewer("R2", "b")],
            [_reviewee("X", "x"), _reviewee("Y", "y")],
            [],
            quota=1,
            seed="persist",
        )
        assert result.failure == AssignmentFailure.PERSISTENCE_FAILURE
        assert "disk full" in result.errors[0]
        assert len(result.records) == 1

    def test_reviewee_without_submission_left_out(self) -> None:
        recorder = _Recorder()
        engine = AssignmentEngine(create_record=recorder)
        result = engine.run(
            [_reviewer("R", "a")],
            [_reviewee("X", "x", submitted=False), _reviewee("Y", "y")],
            [],
            quota=1,
            seed="nosub",
        )
        assert result.success
        assert recorder.pairs == [("R", "Y")]

    def test_injected_oracle_is_used(self) -> None:
        blocked = {("R", "X")}
        recorder = _Recorder()
        engine = AssignmentEngine(
            create_record=recorder,
            shares_no_students=lambda r, e: (r.group_id, e.group_id) not in blocked,
        )
        result = engine.run(
            [_reviewer("R")], [_reviewee("X"), _reviewee("Y")], [], quota=1,
            rng=_FixedOrder(["X", "Y"]),
        )
        assert result.success
        assert recorder.pairs == [("R", "Y")]

    def test_capacity_error_counts_history(self) -> None:
        state = AssignmentState(
            quota=2,
            pool=[_reviewee("X", "x"), _reviewee("Y", "y")],
            eligible=[_reviewer("R", "r")],
            assigned={"R": {"X"}},
        )
        assert capacity_error(state) is None
