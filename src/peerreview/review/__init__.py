"""Review module — group roster and random assignment engine."""

from peerreview.review.roster import GroupEntry, GroupRoster
from peerreview.review.eligibility import EligibilityOracle, members_disjoint
from peerreview.review.engine import (
    AssignmentEngine,
    AssignmentFailure,
    AssignmentLoop,
    AssignmentResult,
    AssignmentState,
)
from peerreview.review.history import load_history
from peerreview.review.pool import build_pool

__all__ = [
    "GroupEntry",
    "GroupRoster",
    "EligibilityOracle",
    "members_disjoint",
    "AssignmentEngine",
    "AssignmentFailure",
    "AssignmentLoop",
    "AssignmentResult",
    "AssignmentState",
    "load_history",
    "build_pool",
]
