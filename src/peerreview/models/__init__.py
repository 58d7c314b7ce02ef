"""Data models — groupings, artifacts and peer review records."""

from peerreview.models.group import (
    ArtifactRef,
    GroupStatus,
    ReviewerGroup,
    RevieweeGroup,
)
from peerreview.models.peer_review import AssignmentContext, PeerReviewRecord

__all__ = [
    "ArtifactRef",
    "GroupStatus",
    "ReviewerGroup",
    "RevieweeGroup",
    "AssignmentContext",
    "PeerReviewRecord",
]
