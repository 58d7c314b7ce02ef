"""Grouping data models — the reviewer and reviewee sides of a peer review.

Groupings are owned by the roster. The assignment engine only ever sees
frozen views of them: identity, member students (for conflict checks),
and, on the reviewee side, the artifact a peer review is attached to.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Optional


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class GroupStatus(str, enum.Enum):
    """Validation status of a grouping. Only VALID groupings take part."""
    VALID = "valid"
    PENDING = "pending"
    REJECTED = "rejected"


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ArtifactRef:
    """The gradable result of a reviewee's current submission."""
    submission_id: str
    result_id: str


@dataclass(frozen=True)
class ReviewerGroup:
    """A group of students collectively reviewing other groups' work."""
    group_id: str
    member_ids: frozenset[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class RevieweeGroup:
    """A group whose current submission is the subject of review.

    submission is None when the group has nothing gradable yet.
    """
    group_id: str
    member_ids: frozenset[str] = field(default_factory=frozenset)
    submission: Optional[ArtifactRef] = None
